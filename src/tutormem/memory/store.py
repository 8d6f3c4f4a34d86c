"""SQLite storage for user facts."""

import json
import sqlite3
import threading
import weakref
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from ..errors import ConfigurationError, FactNotFoundError, FactStoreError
from .models import (
    FACT_TYPES,
    Fact,
    FactExport,
    SearchParams,
    SearchResult,
    normalize_subject,
    normalize_tags,
)

EXPORT_VERSION = "1.0"

_COLUMNS = (
    "id, user_id, chat_id, fact_type, subject, details, confidence, "
    "source_message_id, active, tags, created_at, updated_at"
)

_UPDATABLE = frozenset(
    {
        "chat_id",
        "fact_type",
        "subject",
        "details",
        "confidence",
        "source_message_id",
        "active",
        "tags",
    }
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime | str) -> str:
    """Render a datetime the way the store writes timestamps."""
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FactStore:
    """Persistent storage for facts using SQLite.

    Facts are never removed by normal operations: deactivation flips the
    ``active`` flag. Several active facts may share the same
    (user, type, subject); consolidation is left to ConflictResolver.
    """

    def __init__(
        self,
        db_path: Path | str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
            clock: Returns the current time; defaults to UTC now.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.clock = clock or utc_now
        self._conn: sqlite3.Connection | None = None
        # Entries disappear once no caller holds the lock
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the facts table if it doesn't exist."""
        allowed = ", ".join(f"'{t}'" for t in FACT_TYPES)
        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS facts (
                id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id            TEXT NOT NULL,
                chat_id            TEXT,
                fact_type          TEXT NOT NULL CHECK (fact_type IN ({allowed})),
                subject            TEXT,
                details            TEXT NOT NULL CHECK (length(trim(details)) > 0),
                confidence         REAL CHECK (
                    confidence IS NULL OR (confidence >= 0 AND confidence <= 1)
                ),
                source_message_id  TEXT,
                active             INTEGER NOT NULL DEFAULT 1,
                tags               TEXT NOT NULL DEFAULT '[]',
                created_at         TEXT NOT NULL,
                updated_at         TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_facts_user ON facts(user_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_facts_user_type "
            "ON facts(user_id, fact_type)"
        )
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def key_lock(
        self, user_id: str, fact_type: str, subject: str | None
    ) -> threading.Lock:
        """Return the lock that serializes writes for one conflict key."""
        key = (user_id, fact_type, normalize_subject(subject) or "")
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _now(self) -> str:
        return to_timestamp(self.clock())

    # -- writes -------------------------------------------------------------

    def add_fact(self, fact: Fact) -> Fact:
        """Insert a fact and return it with its id and timestamps.

        Raises:
            FactStoreError: If the insert produced no row.
        """
        now = self._now()
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"""
                INSERT INTO facts (
                    user_id, chat_id, fact_type, subject, details, confidence,
                    source_message_id, active, tags, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING {_COLUMNS}
                """,
                (
                    fact.user_id,
                    fact.chat_id,
                    fact.fact_type,
                    fact.subject,
                    fact.details,
                    fact.confidence,
                    fact.source_message_id,
                    int(fact.active),
                    json.dumps(list(fact.tags)),
                    now,
                    now,
                ),
            )
            row = cursor.fetchone()
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise FactStoreError(f"Failed to insert fact: {e}") from e

        if row is None:
            raise FactStoreError("Insert returned no row")
        return self._row_to_fact(row)

    def update_fact(self, fact_id: int, **changes: Any) -> Fact:
        """Update fields of a fact and bump its updated_at.

        Args:
            fact_id: The id of the fact to update.
            **changes: New values for chat_id, fact_type, subject, details,
                confidence, source_message_id, active or tags.

        Returns:
            The updated fact.

        Raises:
            ConfigurationError: If fact_id is missing.
            ValueError: If a field cannot be updated or fails validation.
            FactNotFoundError: If no fact has this id.
        """
        if fact_id is None:
            raise ConfigurationError("Fact ID is required for updates")

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = self.get_fact(fact_id)
        # replace() re-runs Fact validation on the merged values
        updated = replace(current, **changes)

        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            UPDATE facts SET
                chat_id = ?, fact_type = ?, subject = ?, details = ?,
                confidence = ?, source_message_id = ?, active = ?, tags = ?,
                updated_at = ?
            WHERE id = ?
            RETURNING {_COLUMNS}
            """,
            (
                updated.chat_id,
                updated.fact_type,
                updated.subject,
                updated.details,
                updated.confidence,
                updated.source_message_id,
                int(updated.active),
                json.dumps(list(updated.tags)),
                self._now(),
                fact_id,
            ),
        )
        row = cursor.fetchone()
        conn.commit()
        if row is None:
            raise FactNotFoundError(fact_id)
        return self._row_to_fact(row)

    def deactivate_fact(self, fact_id: int) -> Fact:
        """Soft-delete a fact by marking it inactive."""
        if fact_id is None:
            raise ConfigurationError("Fact ID is required for deactivation")
        return self.update_fact(fact_id, active=False)

    def update_tags(self, fact_id: int, tags: Iterable[str]) -> Fact:
        """Replace the tag set of a fact."""
        if fact_id is None:
            raise ConfigurationError("Fact ID is required for tag updates")
        return self.update_fact(fact_id, tags=normalize_tags(list(tags)))

    def delete_fact(self, fact_id: int) -> bool:
        """Permanently remove a fact.

        Only export/import tooling should call this; everything else
        deactivates.

        Returns:
            True if a fact was deleted, False otherwise.
        """
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM facts WHERE id = ?", (fact_id,))
        conn.commit()
        return cursor.rowcount > 0

    # -- reads --------------------------------------------------------------

    def get_fact(self, fact_id: int) -> Fact:
        """Get a fact by id.

        Raises:
            FactNotFoundError: If no fact has this id.
        """
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM facts WHERE id = ?", (fact_id,)
        ).fetchone()
        if row is None:
            raise FactNotFoundError(fact_id)
        return self._row_to_fact(row)

    def get_facts(
        self,
        user_id: str,
        *,
        include_inactive: bool = False,
        fact_types: Iterable[str] | None = None,
        subject: str | None = None,
        limit: int | None = None,
    ) -> list[Fact]:
        """Get a user's facts, most recently updated first."""
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if not include_inactive:
            clauses.append("active = 1")
        if fact_types:
            types = list(fact_types)
            clauses.append(f"fact_type IN ({', '.join('?' * len(types))})")
            params.extend(types)
        if subject:
            clauses.append("subject = ?")
            params.append(subject)

        sql = (
            f"SELECT {_COLUMNS} FROM facts WHERE {' AND '.join(clauses)} "
            "ORDER BY updated_at DESC, id DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._get_connection()
        return [self._row_to_fact(row) for row in conn.execute(sql, params)]

    def find_matches(
        self, user_id: str, fact_type: str, subject: str | None
    ) -> list[Fact]:
        """Get active facts sharing the (user, type, subject) conflict key."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {_COLUMNS} FROM facts
            WHERE user_id = ? AND active = 1 AND fact_type = ?
              AND COALESCE(subject, '') = ?
            ORDER BY id
            """,
            (user_id, fact_type, normalize_subject(subject) or ""),
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def get_all_tags(self, user_id: str) -> list[str]:
        """Get the de-duplicated union of tags across active facts."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT tag.value FROM facts, json_each(facts.tags) AS tag
            WHERE facts.user_id = ? AND facts.active = 1
            ORDER BY facts.id, tag.key
            """,
            (user_id,),
        )
        return list(dict.fromkeys(row[0] for row in cursor.fetchall()))

    def get_facts_by_tags(
        self, user_id: str, tags: Iterable[str], match_all: bool = False
    ) -> list[Fact]:
        """Get active facts carrying any (or all) of the given tags.

        Raises:
            ValueError: If no tags are given.
        """
        wanted = normalize_tags(list(tags))
        if not wanted:
            raise ValueError("At least one tag must be specified")

        placeholders = ", ".join("?" * len(wanted))
        matching = (
            "SELECT COUNT(DISTINCT tag.value) FROM json_each(facts.tags) AS tag "
            f"WHERE tag.value IN ({placeholders})"
        )
        condition = f"({matching}) = ?" if match_all else f"({matching}) > 0"
        params: list[Any] = [user_id, *wanted]
        if match_all:
            params.append(len(wanted))

        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM facts "
            f"WHERE user_id = ? AND active = 1 AND {condition} "
            "ORDER BY updated_at DESC, id DESC",
            params,
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def search(self, user_id: str, params: SearchParams | None = None) -> SearchResult:
        """Search a user's facts with filters, sorting and pagination.

        Every whitespace-separated query term must appear, case-insensitively,
        in either the details or the subject.
        """
        params = params or SearchParams()
        clauses = ["user_id = ?"]
        values: list[Any] = [user_id]

        if not params.include_inactive:
            clauses.append("active = 1")
        if params.fact_types:
            clauses.append(
                f"fact_type IN ({', '.join('?' * len(params.fact_types))})"
            )
            values.extend(params.fact_types)
        if params.subjects:
            clauses.append(f"subject IN ({', '.join('?' * len(params.subjects))})")
            values.extend(params.subjects)
        if params.from_date is not None:
            clauses.append("created_at >= ?")
            values.append(to_timestamp(params.from_date))
        if params.to_date is not None:
            clauses.append("created_at <= ?")
            values.append(to_timestamp(params.to_date))
        if params.min_confidence is not None:
            clauses.append("confidence >= ?")
            values.append(params.min_confidence)
        if params.query and params.query.strip():
            for term in params.query.split():
                pattern = f"%{_escape_like(term.lower())}%"
                clauses.append(
                    "(lower(details) LIKE ? ESCAPE '\\' "
                    "OR lower(COALESCE(subject, '')) LIKE ? ESCAPE '\\')"
                )
                values.extend([pattern, pattern])

        where = " AND ".join(clauses)
        conn = self._get_connection()
        count = conn.execute(
            f"SELECT COUNT(*) FROM facts WHERE {where}", values
        ).fetchone()[0]

        direction = "ASC" if params.sort_order == "asc" else "DESC"
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM facts WHERE {where} "
            f"ORDER BY {params.sort_by} {direction}, id {direction} "
            "LIMIT ? OFFSET ?",
            [*values, params.limit, params.offset],
        )
        facts = [self._row_to_fact(row) for row in cursor.fetchall()]

        return SearchResult(
            facts=facts,
            count=count,
            has_more=params.offset + params.limit < count,
        )

    def export_facts(self, user_id: str, include_inactive: bool = False) -> FactExport:
        """Export a user's facts with counts metadata."""
        facts = self.get_facts(user_id, include_inactive=include_inactive)
        type_counts: dict[str, int] = {}
        for fact in facts:
            type_counts[fact.fact_type] = type_counts.get(fact.fact_type, 0) + 1

        return FactExport(
            facts=facts,
            metadata={
                "export_date": self._now(),
                "total_count": len(facts),
                "fact_type_counts": type_counts,
                "version": EXPORT_VERSION,
            },
        )

    def _row_to_fact(self, row: sqlite3.Row) -> Fact:
        """Convert a database row to a Fact."""
        return Fact(
            id=row["id"],
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            fact_type=row["fact_type"],
            subject=row["subject"],
            details=row["details"],
            confidence=row["confidence"],
            source_message_id=row["source_message_id"],
            active=bool(row["active"]),
            tags=tuple(json.loads(row["tags"] or "[]")),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
