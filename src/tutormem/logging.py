"""JSONL logging for memory and prompt assembly events."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    user_id: str | None = None
    chat_id: str | None = None
    action: str | None = None
    strategy: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".tutormem" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: str | None = None,
        chat_id: str | None = None,
        action: str | None = None,
        strategy: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id,
            chat_id=chat_id,
            action=action,
            strategy=strategy,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_conflict(
        self,
        user_id: str,
        action: str,
        strategy: str,
        *,
        fact_type: str,
        subject: str | None,
        matches: int,
    ) -> None:
        """Log the outcome of a conflict resolution."""
        self.log(
            "conflict_resolved",
            user_id=user_id,
            action=action,
            strategy=strategy,
            fact_type=fact_type,
            subject=subject,
            matches=matches,
        )

    def log_batch_import(
        self,
        user_id: str,
        strategy: str,
        *,
        imported: int,
        updated: int,
        skipped: int,
        errors: int,
        duration_ms: float | None = None,
    ) -> None:
        """Log a finished batch import."""
        self.log(
            "batch_import",
            user_id=user_id,
            strategy=strategy,
            duration_ms=duration_ms,
            imported=imported,
            updated=updated,
            skipped=skipped,
            errors=errors,
        )

    def log_prompt_assembled(
        self,
        *,
        model: str,
        budget: int,
        used_tokens: int,
        messages_total: int,
        messages_included: int,
        chat_id: str | None = None,
    ) -> None:
        """Log a prompt assembly and how much history fit the budget."""
        self.log(
            "prompt_assembled",
            chat_id=chat_id,
            model=model,
            budget=budget,
            used_tokens=used_tokens,
            messages_total=messages_total,
            messages_included=messages_included,
        )

    def log_extraction(
        self,
        user_id: str,
        *,
        candidates: int,
        chat_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log how many candidate facts an extraction produced."""
        self.log(
            "facts_extracted",
            user_id=user_id,
            chat_id=chat_id,
            duration_ms=duration_ms,
            candidates=candidates,
        )


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Create an event logger writing under log_dir.

    Each call returns a new logger; callers pass it to the components that
    emit events.
    """
    return JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
