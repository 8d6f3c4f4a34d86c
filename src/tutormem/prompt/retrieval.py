"""Injecting retrieved sources into selected messages."""

from dataclasses import replace
from typing import Sequence

from .models import Message, SourceItem

SOURCES_HEADING = "You may use the following sources:"


def format_source(source: SourceItem) -> str:
    return f"<BEGIN SOURCE>\n{source.content}\n</END SOURCE>"


def format_sources(sources: Sequence[SourceItem]) -> str:
    """Render the sources block appended to a message."""
    blocks = "\n\n".join(format_source(s) for s in sources)
    return f"\n\n{SOURCES_HEADING}\n\n{blocks}"


def inject_sources(
    messages: Sequence[Message],
    message_sources: Sequence[SourceItem] = (),
    chat_sources: Sequence[SourceItem] = (),
) -> list[Message]:
    """Append retrieved sources to the selected messages.

    Message-level sources go on the last (newest) message. A chat-level
    source referenced by a message goes on the message just before it;
    a reference from the first message has no target and is dropped.

    This runs after budget allocation, so the added text is not counted
    against the budget.

    Args:
        messages: The selected window, oldest first.
        message_sources: Sources retrieved for the newest message.
        chat_sources: Sources attached to the chat as a whole.

    Returns:
        New Message objects; the inputs are left untouched.
    """
    if not messages:
        return []

    pending: list[list[SourceItem]] = [[] for _ in messages]
    by_id = {source.id: source for source in chat_sources}

    for index, message in enumerate(messages):
        if index == 0:
            continue
        for source_id in message.attached_source_ids:
            source = by_id.get(source_id)
            if source is not None:
                pending[index - 1].append(source)

    if message_sources:
        pending[-1].extend(message_sources)

    result = []
    for message, sources in zip(messages, pending):
        if sources:
            message = replace(message, content=message.content + format_sources(sources))
        result.append(message)
    return result
