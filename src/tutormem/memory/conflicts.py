"""Conflict resolution between new and existing facts."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Union

from ..errors import FactStoreError, UnknownStrategyError
from .models import Fact, FactCandidate, FactExport
from .store import FactStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)


class ConflictStrategy(str, Enum):
    """How a new fact interacts with active facts sharing its key."""

    PREFER_NEW = "prefer_new"
    PREFER_HIGH_CONFIDENCE = "prefer_high_confidence"
    MERGE = "merge"
    SKIP_DUPLICATES = "skip_duplicates"


class ConflictAction(str, Enum):
    """What happened to a proposed fact."""

    ADDED = "added"
    UPDATED = "updated"
    MERGED = "merged"
    IGNORED = "ignored"
    SKIPPED = "skipped"


def parse_strategy(strategy: ConflictStrategy | str) -> ConflictStrategy:
    """Turn a strategy name into a ConflictStrategy.

    Raises:
        UnknownStrategyError: If the name is not a known strategy.
    """
    try:
        return ConflictStrategy(strategy)
    except ValueError:
        raise UnknownStrategyError(strategy) from None


@dataclass
class ConflictResult:
    """Outcome of resolving one proposed fact.

    Attributes:
        action: What was done with the proposed fact.
        existing_facts: Active facts that shared its key before resolution.
        result: The inserted or merged fact, None when nothing was written.
    """

    action: ConflictAction
    existing_facts: list[Fact] = field(default_factory=list)
    result: Fact | None = None


@dataclass
class ImportFailure:
    """A candidate that could not be imported and why."""

    candidate: Any
    error: str


@dataclass
class BatchImportResult:
    """Counts of what a batch import did."""

    imported: int = 0
    skipped: int = 0
    updated: int = 0
    errors: list[ImportFailure] = field(default_factory=list)

    def record(self, action: ConflictAction) -> None:
        if action is ConflictAction.ADDED:
            self.imported += 1
        elif action in (ConflictAction.UPDATED, ConflictAction.MERGED):
            self.updated += 1
        else:
            self.skipped += 1

    def fail(self, candidate: Any, error: str) -> None:
        self.skipped += 1
        self.errors.append(ImportFailure(candidate=candidate, error=error))


CandidateLike = Union[FactCandidate, dict[str, Any]]


def merge_details(existing: str, new: str) -> str:
    return f"{existing} (Updated: {new})"


def _max_confidence(a: float | None, b: float | None) -> float | None:
    if a is None and b is None:
        return None
    return max(a or 0.0, b or 0.0)


def _most_recent(facts: list[Fact]) -> Fact:
    return max(facts, key=lambda f: (f.updated_at or f.created_at or "", f.id or 0))


class ConflictResolver:
    """Applies a conflict strategy when storing proposed facts.

    A proposed fact conflicts with the active facts of the same user, type
    and subject. Resolution for one key runs under the store's key lock so
    two callers in this process cannot both observe "no conflict".
    """

    def __init__(
        self,
        store: FactStore,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: The FactStore to read matches from and write to.
            event_logger: Optional JSONL logger for resolution events.
        """
        self.store = store
        self.event_logger = event_logger

    def resolve(
        self,
        user_id: str,
        candidate: FactCandidate | Fact,
        strategy: ConflictStrategy | str = ConflictStrategy.PREFER_NEW,
        chat_id: str | None = None,
    ) -> ConflictResult:
        """Store a proposed fact according to a conflict strategy.

        Args:
            user_id: The user the fact is about.
            candidate: The proposed fact.
            strategy: One of the ConflictStrategy values.
            chat_id: Chat to attribute the fact to, if any.

        Returns:
            ConflictResult describing the action taken.

        Raises:
            UnknownStrategyError: If the strategy is not recognised.
            ValueError: If the candidate fails validation or is a Fact owned
                by another user.
            FactStoreError: If a read or write fails.
        """
        strategy = parse_strategy(strategy)
        if isinstance(candidate, FactCandidate):
            fact = candidate.to_fact(user_id, chat_id)
        elif candidate.user_id != user_id:
            raise ValueError(
                f"Fact belongs to {candidate.user_id!r}, not {user_id!r}"
            )
        else:
            fact = candidate
        return self._resolve_fact(fact, strategy)

    def _resolve_fact(self, fact: Fact, strategy: ConflictStrategy) -> ConflictResult:
        with self.store.key_lock(fact.user_id, fact.fact_type, fact.subject):
            matches = self.store.find_matches(fact.user_id, fact.fact_type, fact.subject)
            outcome = self._apply(fact, matches, strategy)

        if matches:
            logger.debug(
                "Resolved %d conflicting facts for %s/%s with %s: %s",
                len(matches),
                fact.fact_type,
                fact.subject,
                strategy.value,
                outcome.action.value,
            )
        if self.event_logger:
            self.event_logger.log_conflict(
                fact.user_id,
                outcome.action.value,
                strategy.value,
                fact_type=fact.fact_type,
                subject=fact.subject,
                matches=len(matches),
            )
        return outcome

    def _apply(
        self, fact: Fact, matches: list[Fact], strategy: ConflictStrategy
    ) -> ConflictResult:
        if not matches:
            return ConflictResult(ConflictAction.ADDED, [], self.store.add_fact(fact))

        if strategy is ConflictStrategy.SKIP_DUPLICATES:
            return ConflictResult(ConflictAction.SKIPPED, matches, None)

        if strategy is ConflictStrategy.PREFER_NEW:
            return ConflictResult(
                ConflictAction.UPDATED, matches, self._supersede(fact, matches)
            )

        if strategy is ConflictStrategy.PREFER_HIGH_CONFIDENCE:
            best = max((m.confidence or 0.0) for m in matches)
            if (fact.confidence or 0.0) > best:
                return ConflictResult(
                    ConflictAction.UPDATED, matches, self._supersede(fact, matches)
                )
            return ConflictResult(ConflictAction.IGNORED, matches, None)

        if strategy is ConflictStrategy.MERGE:
            target = _most_recent(matches)
            merged = self.store.update_fact(
                target.id,
                details=merge_details(target.details, fact.details),
                confidence=_max_confidence(target.confidence, fact.confidence),
            )
            return ConflictResult(ConflictAction.MERGED, matches, merged)

        raise UnknownStrategyError(strategy)

    def _supersede(self, fact: Fact, matches: list[Fact]) -> Fact:
        """Deactivate the matches and insert the new fact."""
        for match in matches:
            self.store.deactivate_fact(match.id)
        return self.store.add_fact(fact)

    def batch_import(
        self,
        user_id: str,
        candidates: Iterable[CandidateLike],
        chat_id: str | None = None,
        strategy: ConflictStrategy | str = ConflictStrategy.PREFER_HIGH_CONFIDENCE,
    ) -> BatchImportResult:
        """Import candidates one at a time, folding results as it goes.

        Each candidate sees the store as left by the ones before it, so two
        candidates with the same key in one batch conflict with each other.
        Bad candidates are recorded in ``errors`` and the batch carries on.

        Raises:
            UnknownStrategyError: If the strategy is not recognised.
        """
        strategy = parse_strategy(strategy)
        started = time.monotonic()

        result = BatchImportResult()
        for candidate in candidates:
            result = self._import_step(result, user_id, candidate, chat_id, strategy)

        logger.info(
            "Batch import for %s: %d imported, %d updated, %d skipped, %d errors",
            user_id,
            result.imported,
            result.updated,
            result.skipped,
            len(result.errors),
        )
        if self.event_logger:
            self.event_logger.log_batch_import(
                user_id,
                strategy.value,
                imported=result.imported,
                updated=result.updated,
                skipped=result.skipped,
                errors=len(result.errors),
                duration_ms=(time.monotonic() - started) * 1000,
            )
        return result

    def _import_step(
        self,
        result: BatchImportResult,
        user_id: str,
        candidate: CandidateLike,
        chat_id: str | None,
        strategy: ConflictStrategy,
    ) -> BatchImportResult:
        if isinstance(candidate, dict):
            try:
                candidate = FactCandidate.from_dict(candidate)
            except (TypeError, ValueError) as e:
                result.fail(candidate, f"Invalid fact: {e}")
                return result
        elif not isinstance(candidate, FactCandidate):
            result.fail(candidate, "Invalid fact: expected a mapping")
            return result

        if not isinstance(candidate.details, str) or not candidate.details.strip():
            result.fail(candidate, "Fact details missing or empty")
            return result

        try:
            fact = candidate.to_fact(user_id, chat_id)
        except ValueError as e:
            result.fail(candidate, str(e))
            return result

        try:
            outcome = self._resolve_fact(fact, strategy)
        except FactStoreError as e:
            logger.warning("Error importing fact %r: %s", candidate, e)
            result.fail(candidate, str(e))
            return result

        result.record(outcome.action)
        return result

    def import_facts(
        self,
        user_id: str,
        data: FactExport | dict[str, Any],
        strategy: ConflictStrategy | str = ConflictStrategy.SKIP_DUPLICATES,
    ) -> BatchImportResult:
        """Import facts from an export document.

        Ids, owners and timestamps from the source are discarded; only the
        content fields are carried over.

        Raises:
            ValueError: If the document has no facts list.
        """
        if isinstance(data, FactExport):
            data = data.to_dict()

        facts = data.get("facts") if isinstance(data, dict) else None
        if not isinstance(facts, list):
            raise ValueError("Invalid import data: facts array is required")

        candidates: list[CandidateLike] = []
        for item in facts:
            if isinstance(item, dict):
                candidates.append(
                    {
                        "fact_type": item.get("fact_type"),
                        "subject": item.get("subject"),
                        "details": item.get("details"),
                        "confidence": item.get("confidence"),
                        "source_message_id": item.get("source_message_id"),
                        "active": item.get("active", True),
                        "tags": item.get("tags") or [],
                    }
                )
            else:
                candidates.append(item)

        return self.batch_import(user_id, candidates, strategy=strategy)
