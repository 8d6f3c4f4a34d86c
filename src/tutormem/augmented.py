"""Memory-augmented prompt assembly.

Combines what is stored about the student (structured facts and learner
insights) and memories retrieved from past conversations with the chat
payload, then hands everything to the prompt assembler.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from .config import Settings
from .memory.insights import InsightExtractor, format_insights
from .memory.manager import MemoryManager
from .prompt import (
    AssembledPrompt,
    ChatPayload,
    ChatSettings,
    Message,
    MessageImage,
    SourceItem,
    TiktokenCounter,
    TokenCounter,
    build_final_messages,
    build_gemini_messages,
)

if TYPE_CHECKING:
    from .logging import JSONLLogger

logger = logging.getLogger(__name__)

# Insights need some back-and-forth to say anything useful
MIN_INSIGHT_MESSAGES = 3

# (user_id, query, limit) -> sources from past conversations
Retriever = Callable[[str, str, int], Awaitable[Sequence[SourceItem]]]


def latest_user_text(messages: Sequence[Message]) -> str:
    """Return the content of the newest user message, or ""."""
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


class MemoryAugmentedPrompter:
    """Builds prompts enriched with memory about the student.

    Every memory source is optional and degrades to nothing on failure:
    a storage error yields no facts block, a failed retrieval yields no
    sources and a failed insight extraction yields no insights section.
    """

    def __init__(
        self,
        manager: MemoryManager,
        settings: Settings,
        retriever: Retriever | None = None,
        insight_extractor: InsightExtractor | None = None,
        count_tokens: TokenCounter | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the prompter.

        Args:
            manager: MemoryManager holding the student's facts.
            settings: Runtime settings (fact count, budget, tokenizer).
            retriever: Optional async search over past conversations.
            insight_extractor: Optional extractor for learner insights.
            count_tokens: Token counter; a TiktokenCounter for the
                configured encoding if None.
            event_logger: Optional JSONL logger for assembly events.
        """
        self.manager = manager
        self.settings = settings
        self.retriever = retriever
        self.insight_extractor = insight_extractor
        self.count_tokens = count_tokens or TiktokenCounter(settings.tokenizer_encoding)
        self.event_logger = event_logger

    def chat_settings(self, model: str, prompt: str, **overrides) -> ChatSettings:
        """Create ChatSettings using the configured context length."""
        overrides.setdefault("context_length", self.settings.context_length)
        return ChatSettings(model=model, prompt=prompt, **overrides)

    async def retrieve(self, user_id: str, query: str) -> list[SourceItem]:
        """Fetch memories relevant to query, or [] if retrieval fails."""
        if self.retriever is None or not query.strip():
            return []
        try:
            sources = await self.retriever(user_id, query, self.settings.retrieval_limit)
        except Exception as e:
            logger.warning(f"Memory retrieval failed: {e}")
            return []
        return list(sources)[: self.settings.retrieval_limit]

    async def insights_for_prompt(self, messages: Sequence[Message]) -> str:
        if self.insight_extractor is None or len(messages) < MIN_INSIGHT_MESSAGES:
            return ""
        insights = await self.insight_extractor.extract(
            [{"role": m.role, "content": m.content} for m in messages]
        )
        return format_insights(insights)

    async def profile_context(
        self,
        user_id: str,
        messages: Sequence[Message],
        subject: str | None = None,
        include_facts: bool = True,
        include_insights: bool = True,
    ) -> str:
        """Build the "User Info" text from facts and learner insights."""
        sections = []
        if include_facts:
            facts = self.manager.facts_for_prompt(
                user_id, subject=subject, max_facts=self.settings.max_prompt_facts
            )
            if facts:
                sections.append(facts)
        if include_insights:
            insights = await self.insights_for_prompt(messages)
            if insights:
                sections.append(insights)
        return "\n\n".join(sections)

    async def assemble(
        self,
        user_id: str,
        payload: ChatPayload,
        subject: str | None = None,
        images: Sequence[MessageImage] = (),
        include_facts: bool = True,
        include_insights: bool = True,
        gemini: bool = False,
        today: date | None = None,
    ) -> AssembledPrompt:
        """Assemble the final messages with memory folded in.

        Retrieved memories are added to the payload's message-level
        sources, so they land on the newest message after budgeting.

        Args:
            user_id: The student the chat belongs to.
            payload: Chat settings, instructions, history and sources.
            subject: Restrict the facts block to one subject.
            images: Resolved data for images stored by path.
            include_facts: Whether to add the structured facts block.
            include_insights: Whether to add learner insights.
            gemini: Produce {role, parts} messages instead of {role, content}.
            today: Date for the system prompt; defaults to the current date.
        """
        profile = await self.profile_context(
            user_id,
            payload.messages,
            subject=subject,
            include_facts=include_facts,
            include_insights=include_insights,
        )

        memories = await self.retrieve(user_id, latest_user_text(payload.messages))
        if memories:
            payload = replace(
                payload, message_sources=[*payload.message_sources, *memories]
            )

        build = build_gemini_messages if gemini else build_final_messages
        return build(
            payload,
            self.count_tokens,
            profile_context=profile,
            images=images,
            event_logger=self.event_logger,
            today=today,
        )
