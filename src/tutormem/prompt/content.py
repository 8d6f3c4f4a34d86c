"""Provider-neutral message content with images."""

from typing import Any, Sequence

from .models import Message, MessageImage

DATA_URI_PREFIX = "data:image/"


def is_data_uri(reference: str) -> bool:
    return reference.startswith(DATA_URI_PREFIX)


def resolve_image(
    message_id: str, reference: str, images: Sequence[MessageImage]
) -> str:
    """Resolve an image reference to data.

    Data URIs pass through unchanged. Anything else is a storage path looked
    up by exact (message_id, path) match; an unknown path resolves to "".
    """
    if is_data_uri(reference):
        return reference
    for image in images:
        if image.message_id == message_id and image.path == reference:
            return image.data
    return ""


def format_content(
    message: Message, images: Sequence[MessageImage] = ()
) -> str | list[dict[str, Any]]:
    """Build the content for a {role, content} message.

    Returns:
        The plain text when the message has no images, otherwise a text
        part followed by one image_url part per image, in order.
    """
    if not message.image_paths:
        return message.content

    parts: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
    for reference in message.image_paths:
        parts.append(
            {
                "type": "image_url",
                "image_url": {"url": resolve_image(message.id, reference, images)},
            }
        )
    return parts


def _inline_data(data: str) -> dict[str, Any]:
    """Split a data URI into Gemini inline_data; raw data is taken as JPEG."""
    mime_type = "image/jpeg"
    if is_data_uri(data) and "," in data:
        header, data = data.split(",", 1)
        mime_type = header[len("data:"):].split(";", 1)[0] or mime_type
    return {"inline_data": {"mime_type": mime_type, "data": data}}


def format_parts(
    message: Message, images: Sequence[MessageImage] = ()
) -> list[dict[str, Any]]:
    """Build the parts for a {role, parts} message."""
    parts: list[dict[str, Any]] = [{"text": message.content}]
    for reference in message.image_paths:
        parts.append(_inline_data(resolve_image(message.id, reference, images)))
    return parts
