"""Memory manager for orchestrating fact storage, retrieval and analysis."""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from ..errors import FactStoreError
from .analytics import (
    KnowledgeGaps,
    KnowledgeProfile,
    PatternAnalysis,
    analyze_fact_patterns,
    generate_profile_summary,
    group_facts,
    identify_knowledge_gaps,
)
from .conflicts import BatchImportResult, ConflictResolver, ConflictStrategy
from .models import Fact, FactExport
from .relevance import rank_facts
from .store import FactStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .extractor import FactExtractor

logger = logging.getLogger(__name__)

NO_FACTS_MESSAGE = "No prior information about the student available."


class MemoryManager:
    """Orchestrates memory operations: extraction, storage and prompt context.

    This is the main interface for the memory system. Every collaborator is
    passed in; the manager holds no global state of its own.
    """

    def __init__(
        self,
        store: FactStore,
        extractor: FactExtractor | None = None,
        resolver: ConflictResolver | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: The FactStore for persistence.
            extractor: Optional FactExtractor for automatic extraction.
            resolver: ConflictResolver to use; one is built over store if None.
            event_logger: Optional JSONL logger for structured events.
        """
        self.store = store
        self.extractor = extractor
        self.event_logger = event_logger
        self.resolver = resolver or ConflictResolver(store, event_logger=event_logger)

    def load_facts(self, user_id: str, include_inactive: bool = False) -> list[Fact]:
        """Load a user's facts, most recently updated first."""
        return self.store.get_facts(user_id, include_inactive=include_inactive)

    def format_for_prompt(self, facts: list[Fact]) -> str:
        """Format facts as a block for injection into the system prompt.

        Args:
            facts: List of facts to format.

        Returns:
            A "Known information" block, or a placeholder line if no facts.
        """
        if not facts:
            return NO_FACTS_MESSAGE

        lines = []
        for fact in facts:
            subject = f" [{fact.subject}]" if fact.subject else ""
            lines.append(f"- {fact.fact_type.upper()}{subject}: {fact.details}")

        return "Known information about the student:\n" + "\n".join(lines)

    def facts_for_prompt(
        self,
        user_id: str,
        subject: str | None = None,
        fact_types: Iterable[str] | None = None,
        max_facts: int = 15,
    ) -> str:
        """Load and format the user's most recent facts for a prompt.

        A storage failure returns an empty string so prompt assembly can
        carry on without personalization.
        """
        try:
            facts = self.store.get_facts(
                user_id, fact_types=fact_types, subject=subject, limit=max_facts
            )
        except (sqlite3.Error, FactStoreError) as e:
            logger.warning("Could not load facts for prompt: %s", e)
            return ""
        return self.format_for_prompt(facts)

    async def extract_from_conversation(
        self,
        user_id: str,
        messages: list[dict[str, Any]],
        chat_id: str | None = None,
        strategy: ConflictStrategy | str = ConflictStrategy.PREFER_HIGH_CONFIDENCE,
    ) -> BatchImportResult:
        """Extract facts from a conversation and store them.

        Extraction failures yield no candidates; the candidates that are
        produced go through conflict resolution like any batch import.

        Args:
            user_id: The user the conversation belongs to.
            messages: The conversation messages to analyze.
            chat_id: The chat the messages came from.
            strategy: Conflict strategy for the extracted facts.

        Returns:
            BatchImportResult (all zeros if no extractor or no facts).
        """
        if not self.extractor:
            return BatchImportResult()

        started = time.monotonic()
        candidates = await self.extractor.extract(messages)

        if self.event_logger:
            self.event_logger.log_extraction(
                user_id,
                candidates=len(candidates),
                chat_id=chat_id,
                duration_ms=(time.monotonic() - started) * 1000,
            )

        if not candidates:
            logger.info("No facts extracted from conversation")
            return BatchImportResult()

        return self.resolver.batch_import(
            user_id, candidates, chat_id=chat_id, strategy=strategy
        )

    def relevant_facts(
        self,
        user_id: str,
        context: str,
        limit: int = 10,
        fact_types: Iterable[str] | None = None,
        include_inactive: bool = False,
    ) -> list[Fact]:
        """Get the facts most relevant to a topic or query."""
        fact_types = list(fact_types) if fact_types else None
        facts = self.store.get_facts(
            user_id, include_inactive=include_inactive, fact_types=fact_types
        )
        return rank_facts(
            facts,
            context,
            limit=limit,
            fact_types=fact_types,
            include_inactive=include_inactive,
        )

    def knowledge_gaps(self, user_id: str) -> KnowledgeGaps:
        return identify_knowledge_gaps(self.load_facts(user_id))

    def profile(
        self,
        user_id: str,
        max_facts_per_type: int = 3,
        now: datetime | None = None,
    ) -> KnowledgeProfile:
        return generate_profile_summary(
            self.load_facts(user_id), max_facts_per_type=max_facts_per_type, now=now
        )

    def patterns(self, user_id: str) -> PatternAnalysis:
        return analyze_fact_patterns(self.load_facts(user_id))

    def grouped(self, user_id: str) -> dict[str, list[Fact]]:
        return group_facts(self.load_facts(user_id))

    def export(self, user_id: str, include_inactive: bool = False) -> FactExport:
        return self.store.export_facts(user_id, include_inactive=include_inactive)

    def import_export(
        self,
        user_id: str,
        data: FactExport | dict[str, Any],
        strategy: ConflictStrategy | str = ConflictStrategy.SKIP_DUPLICATES,
    ) -> BatchImportResult:
        return self.resolver.import_facts(user_id, data, strategy=strategy)
