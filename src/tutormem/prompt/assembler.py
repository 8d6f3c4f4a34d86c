"""Assembling the final message list sent to the model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Sequence

from .budget import allocate_context
from .composer import build_system_prompt
from .content import format_content, format_parts
from .models import ChatPayload, Message, MessageImage
from .retrieval import inject_sources
from .tokens import TokenCounter

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)


@dataclass
class AssembledPrompt:
    """Messages ready for a model call.

    Attributes:
        messages: Provider-formatted messages, system prompt first.
        used_tokens: System prompt plus kept history, counted before
            sources were injected. The actual payload can be larger.
        system_prompt: The composed system prompt.
    """

    messages: list[dict[str, Any]] = field(default_factory=list)
    used_tokens: int = 0
    system_prompt: str = ""


def _prepare(
    payload: ChatPayload,
    count_tokens: TokenCounter,
    profile_context: str,
    today: date | None,
    event_logger: JSONLLogger | None,
) -> tuple[str, list[Message], int]:
    settings = payload.settings
    system_prompt = build_system_prompt(
        settings.prompt,
        profile_context=profile_context,
        workspace_instructions=payload.workspace_instructions,
        admin_prompt=payload.admin_prompt,
        assistant_name=payload.assistant_name,
        student_prompt=payload.student_system_prompt,
        include_profile_context=settings.include_profile_context,
        include_workspace_instructions=settings.include_workspace_instructions,
        today=today,
    )

    window = allocate_context(
        payload.messages,
        settings.context_length,
        count_tokens(system_prompt),
        count_tokens,
    )
    dropped = len(payload.messages) - len(window.messages)
    if dropped:
        logger.debug(
            "Context budget %d kept %d of %d messages",
            settings.context_length,
            len(window.messages),
            len(payload.messages),
        )

    if event_logger:
        event_logger.log_prompt_assembled(
            model=settings.model,
            budget=settings.context_length,
            used_tokens=window.used_tokens,
            messages_total=len(payload.messages),
            messages_included=len(window.messages),
            chat_id=payload.chat_id,
        )

    messages = inject_sources(
        window.messages, payload.message_sources, payload.chat_sources
    )
    return system_prompt, messages, window.used_tokens


def build_final_messages(
    payload: ChatPayload,
    count_tokens: TokenCounter,
    profile_context: str = "",
    images: Sequence[MessageImage] = (),
    event_logger: JSONLLogger | None = None,
    today: date | None = None,
) -> AssembledPrompt:
    """Assemble {role, content} messages for chat-completion style providers.

    The budget charges the fully composed system prompt, with every section
    included, rather than only the base prompt from the chat settings.

    Args:
        payload: Chat settings, instructions, history and retrieved sources.
        count_tokens: Token counter for the budget.
        profile_context: The user's profile text for the "User Info" section.
        images: Resolved data for images stored by path.
        event_logger: Optional JSONL logger for the assembly event.
        today: Date for the system prompt; defaults to the current date.

    Returns:
        AssembledPrompt with a system message followed by the kept history.
    """
    system_prompt, messages, used_tokens = _prepare(
        payload, count_tokens, profile_context, today, event_logger
    )

    final: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in messages:
        final.append({"role": message.role, "content": format_content(message, images)})

    return AssembledPrompt(
        messages=final, used_tokens=used_tokens, system_prompt=system_prompt
    )


def build_gemini_messages(
    payload: ChatPayload,
    count_tokens: TokenCounter,
    profile_context: str = "",
    images: Sequence[MessageImage] = (),
    event_logger: JSONLLogger | None = None,
    today: date | None = None,
) -> AssembledPrompt:
    """Assemble {role, parts} messages for turn-based providers.

    The system prompt becomes the first "user" turn and assistant messages
    use the "model" role. Budgeting and injection match
    build_final_messages.
    """
    system_prompt, messages, used_tokens = _prepare(
        payload, count_tokens, profile_context, today, event_logger
    )

    final: list[dict[str, Any]] = [{"role": "user", "parts": [{"text": system_prompt}]}]
    for message in messages:
        role = "model" if message.role == "assistant" else "user"
        final.append({"role": role, "parts": format_parts(message, images)})

    return AssembledPrompt(
        messages=final, used_tokens=used_tokens, system_prompt=system_prompt
    )
