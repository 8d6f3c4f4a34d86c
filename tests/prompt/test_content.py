"""Tests for message content formatting."""

from tutormem.prompt import Message, MessageImage, format_content, format_parts, resolve_image

DATA_URI = "data:image/png;base64,iVBORw0KGgo="


def make_message(image_paths: tuple[str, ...] = ()) -> Message:
    return Message(
        id="m1", sequence_number=1, role="user", content="Look at this", image_paths=image_paths
    )


IMAGES = [MessageImage(message_id="m1", path="user/img.jpg", data="data:image/jpeg;base64,AAAA")]


class TestResolveImage:
    """Tests for resolve_image."""

    def test_data_uri_passthrough(self):
        """Data URIs are used as-is."""
        assert resolve_image("m1", DATA_URI, []) == DATA_URI

    def test_path_lookup(self):
        """Storage paths resolve through the image list."""
        assert resolve_image("m1", "user/img.jpg", IMAGES) == "data:image/jpeg;base64,AAAA"

    def test_lookup_requires_matching_message(self):
        """The same path on another message does not resolve."""
        assert resolve_image("m2", "user/img.jpg", IMAGES) == ""

    def test_unknown_path(self):
        """Unknown paths resolve to an empty string."""
        assert resolve_image("m1", "user/missing.jpg", IMAGES) == ""


class TestFormatContent:
    """Tests for {role, content} formatting."""

    def test_text_only(self):
        """Messages without images are plain strings."""
        assert format_content(make_message()) == "Look at this"

    def test_with_images(self):
        """Images become image_url parts after the text."""
        content = format_content(make_message((DATA_URI, "user/img.jpg")), IMAGES)
        assert content == [
            {"type": "text", "text": "Look at this"},
            {"type": "image_url", "image_url": {"url": DATA_URI}},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}},
        ]


class TestFormatParts:
    """Tests for {role, parts} formatting."""

    def test_text_only(self):
        """Messages without images have a single text part."""
        assert format_parts(make_message()) == [{"text": "Look at this"}]

    def test_data_uri_split(self):
        """Data URIs become inline_data with their mime type."""
        parts = format_parts(make_message((DATA_URI,)))
        assert parts[1] == {
            "inline_data": {"mime_type": "image/png", "data": "iVBORw0KGgo="}
        }

    def test_raw_data_assumed_jpeg(self):
        """Resolved data that is not a data URI is taken as JPEG."""
        images = [MessageImage(message_id="m1", path="p.jpg", data="AAAA")]
        parts = format_parts(make_message(("p.jpg",)), images)
        assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "AAAA"}}
