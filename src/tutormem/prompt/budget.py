"""Selecting the recent history that fits the context budget."""

from dataclasses import dataclass, field
from typing import Sequence

from ..errors import ConfigurationError
from .models import Message
from .tokens import TokenCounter


@dataclass
class ContextWindow:
    """The messages that fit the budget, oldest first, and their cost."""

    messages: list[Message] = field(default_factory=list)
    used_tokens: int = 0


def allocate_context(
    messages: Sequence[Message],
    budget: int,
    system_tokens: int,
    count_tokens: TokenCounter,
) -> ContextWindow:
    """Pick the longest run of recent messages that fits the budget.

    Messages are walked from newest to oldest. The walk stops at the first
    message that does not fit, so older messages are never considered even
    if they are small: the result is always a contiguous suffix of the
    conversation.

    Args:
        messages: The conversation, oldest first.
        budget: Total tokens available for system prompt and history.
        system_tokens: Cost of the system prompt.
        count_tokens: Token counter applied to message content.

    Returns:
        ContextWindow with the kept messages and system plus message cost.

    Raises:
        ConfigurationError: If the budget is not a positive integer.
    """
    if isinstance(budget, bool) or not isinstance(budget, int) or budget < 1:
        raise ConfigurationError(f"Context budget must be a positive integer, got {budget!r}")

    remaining = budget - system_tokens
    kept: list[Message] = []
    used = system_tokens

    if remaining <= 0:
        return ContextWindow(messages=[], used_tokens=used)

    for message in reversed(messages):
        cost = count_tokens(message.content)
        if cost > remaining:
            break
        kept.append(message)
        remaining -= cost
        used += cost

    kept.reverse()
    return ContextWindow(messages=kept, used_tokens=used)
