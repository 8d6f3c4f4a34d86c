"""Data models for the fact memory."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class FactType(str, Enum):
    """Canonical categories of facts about a user."""

    PREFERENCE = "preference"
    STRUGGLE = "struggle"
    GOAL = "goal"
    TOPIC_INTEREST = "topic_interest"
    LEARNING_STYLE = "learning_style"
    OTHER = "other"


FACT_TYPES: tuple[str, ...] = tuple(t.value for t in FactType)


def normalize_tags(tags: Any) -> tuple[str, ...]:
    """Strip and de-duplicate tags, keeping first-seen order."""
    if not tags:
        return ()
    if isinstance(tags, str):
        tags = [tags]
    elif not isinstance(tags, (list, tuple, set, frozenset)):
        return ()
    cleaned = (str(t).strip() for t in tags)
    return tuple(dict.fromkeys(t for t in cleaned if t))


def normalize_subject(subject: str | None) -> str | None:
    """Treat empty and missing subjects as the same value.

    Raises:
        ValueError: If the subject is not a string.
    """
    if subject is None:
        return None
    if not isinstance(subject, str):
        raise ValueError(f"Subject must be a string, got {subject!r}")
    subject = subject.strip()
    return subject or None


@dataclass(frozen=True)
class Fact:
    """An atomic statement inferred about a user.

    Attributes:
        user_id: The user the fact describes.
        fact_type: One of the canonical FactType values.
        details: The statement itself, never empty.
        id: Database ID, None for facts not yet stored.
        chat_id: The chat the fact was discovered in, if any.
        subject: Optional academic subject (e.g. 'Math').
        confidence: Optional score in [0, 1].
        source_message_id: Message the fact was extracted from, if known.
        active: False marks a soft-deleted fact.
        tags: Free-form labels, de-duplicated.
        created_at: ISO timestamp when created.
        updated_at: ISO timestamp when last updated.
    """

    user_id: str
    fact_type: str
    details: str
    id: int | None = None
    chat_id: str | None = None
    subject: str | None = None
    confidence: float | None = None
    source_message_id: str | None = None
    active: bool = True
    tags: tuple[str, ...] = ()
    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.fact_type, FactType):
            object.__setattr__(self, "fact_type", self.fact_type.value)
        if self.fact_type not in FACT_TYPES:
            raise ValueError(f"Invalid fact type: {self.fact_type}")
        if not isinstance(self.details, str) or not self.details.strip():
            raise ValueError("Fact details must not be empty")
        if self.confidence is not None and (
            isinstance(self.confidence, bool)
            or not isinstance(self.confidence, (int, float))
            or not 0.0 <= self.confidence <= 1.0
        ):
            raise ValueError(
                f"Confidence must be between 0 and 1, got {self.confidence}"
            )
        object.__setattr__(self, "subject", normalize_subject(self.subject))
        object.__setattr__(self, "tags", normalize_tags(self.tags))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "fact_type": self.fact_type,
            "subject": self.subject,
            "details": self.details,
            "confidence": self.confidence,
            "source_message_id": self.source_message_id,
            "active": self.active,
            "tags": list(self.tags),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class FactCandidate:
    """A proposed fact that has not been stored yet.

    Candidates come from extraction, batch import and JSON import. They are
    not validated on construction so that a batch can report bad items
    instead of failing as a whole.
    """

    fact_type: str
    details: str
    subject: str | None = None
    confidence: float | None = None
    tags: tuple[str, ...] = ()
    source_message_id: str | None = None
    active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FactCandidate":
        """Build a candidate from a plain dict, ignoring ids and timestamps."""
        fact_type = data.get("fact_type", FactType.OTHER.value)
        if isinstance(fact_type, FactType):
            fact_type = fact_type.value
        confidence = data.get("confidence")
        return cls(
            fact_type=str(fact_type),
            details=str(data.get("details") or ""),
            subject=normalize_subject(data.get("subject")),
            confidence=float(confidence) if confidence is not None else None,
            tags=normalize_tags(data.get("tags")),
            source_message_id=data.get("source_message_id"),
            active=True if data.get("active") is None else bool(data["active"]),
        )

    def to_fact(self, user_id: str, chat_id: str | None = None) -> Fact:
        """Validate the candidate and turn it into an unsaved Fact."""
        return Fact(
            user_id=user_id,
            chat_id=chat_id,
            fact_type=self.fact_type,
            subject=self.subject,
            details=self.details,
            confidence=self.confidence,
            source_message_id=self.source_message_id,
            active=self.active,
            tags=self.tags,
        )


SORT_FIELDS = ("created_at", "updated_at", "confidence")


@dataclass
class SearchParams:
    """Filters, ordering and paging for FactStore.search."""

    query: str | None = None
    fact_types: list[str] | None = None
    subjects: list[str] | None = None
    from_date: datetime | str | None = None
    to_date: datetime | str | None = None
    include_inactive: bool = False
    min_confidence: float | None = None
    limit: int = 20
    offset: int = 0
    sort_by: str = "updated_at"
    sort_order: str = "desc"

    def __post_init__(self) -> None:
        if self.sort_by not in SORT_FIELDS:
            raise ValueError(f"Cannot sort facts by {self.sort_by!r}")
        if self.sort_order not in ("asc", "desc"):
            raise ValueError(f"Invalid sort order: {self.sort_order!r}")
        if self.limit < 1:
            raise ValueError("limit must be at least 1")
        if self.offset < 0:
            raise ValueError("offset must not be negative")


@dataclass
class SearchResult:
    """A page of search results."""

    facts: list[Fact]
    count: int
    has_more: bool


@dataclass
class FactExport:
    """Portable snapshot of a user's facts."""

    facts: list[Fact]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "facts": [fact.to_dict() for fact in self.facts],
            "metadata": self.metadata,
        }
