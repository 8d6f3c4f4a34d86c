"""Tests for JSONL logging."""

import json
import tempfile
from pathlib import Path

import pytest

from tutormem import logging as event_logging
from tutormem.logging import JSONLLogger, LogEntry


@pytest.fixture
def temp_log_dir():
    """Create a temporary directory for logs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def logger(temp_log_dir: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=temp_log_dir)


def read_entries(logger: JSONLLogger) -> list[dict]:
    with open(logger.log_path) as f:
        return [json.loads(line) for line in f]


def test_log_entry_to_dict():
    """Test LogEntry excludes None values."""
    entry = LogEntry(timestamp="2026-01-01T00:00:00Z", event="test")
    data = entry.to_dict()

    assert "timestamp" in data
    assert "event" in data
    assert "user_id" not in data  # None excluded
    assert "extra" not in data  # Empty dict excluded


def test_log_creates_file(logger: JSONLLogger):
    """Test that logging creates the log file."""
    logger.log("test_event")

    assert logger.log_path.exists()
    assert logger.log_path.name == "events.jsonl"


def test_log_writes_jsonl(logger: JSONLLogger):
    """Test that logs are written in JSONL format."""
    logger.log("event1", user_id="u1")
    logger.log("event2", chat_id="c1")

    entries = read_entries(logger)

    assert len(entries) == 2
    assert entries[0]["event"] == "event1"
    assert entries[0]["user_id"] == "u1"
    assert entries[1]["chat_id"] == "c1"


def test_log_conflict(logger: JSONLLogger):
    """Test logging a conflict resolution."""
    logger.log_conflict(
        "u1", "merged", "merge", fact_type="goal", subject="Math", matches=2
    )

    entry = read_entries(logger)[0]

    assert entry["event"] == "conflict_resolved"
    assert entry["action"] == "merged"
    assert entry["strategy"] == "merge"
    assert entry["extra"] == {"fact_type": "goal", "subject": "Math", "matches": 2}


def test_log_batch_import(logger: JSONLLogger):
    """Test logging a batch import."""
    logger.log_batch_import(
        "u1",
        "prefer_high_confidence",
        imported=3,
        updated=1,
        skipped=2,
        errors=1,
        duration_ms=12.5,
    )

    entry = read_entries(logger)[0]

    assert entry["event"] == "batch_import"
    assert entry["duration_ms"] == 12.5
    assert entry["extra"]["imported"] == 3
    assert entry["extra"]["errors"] == 1


def test_log_prompt_assembled(logger: JSONLLogger):
    """Test logging a prompt assembly."""
    logger.log_prompt_assembled(
        model="gpt-4o",
        budget=4096,
        used_tokens=1200,
        messages_total=10,
        messages_included=7,
        chat_id="c1",
    )

    entry = read_entries(logger)[0]

    assert entry["event"] == "prompt_assembled"
    assert entry["chat_id"] == "c1"
    assert entry["extra"]["messages_included"] == 7


def test_log_extraction(logger: JSONLLogger):
    """Test logging an extraction."""
    logger.log_extraction("u1", candidates=4)

    entry = read_entries(logger)[0]

    assert entry["event"] == "facts_extracted"
    assert entry["extra"] == {"candidates": 4}


def test_rotation(temp_log_dir: Path):
    """Test log rotation when max size is exceeded."""
    logger = JSONLLogger(log_dir=temp_log_dir, max_size_mb=0.001)  # ~1KB

    # Write enough to trigger rotation
    for i in range(100):
        logger.log(f"event_{i}", data="x" * 100)

    log_files = list(temp_log_dir.glob("events*.jsonl"))
    assert len(log_files) >= 2


def test_extra_fields(logger: JSONLLogger):
    """Test that extra fields are included."""
    logger.log("custom", custom_field="value", another=123)

    entry = read_entries(logger)[0]

    assert entry["extra"]["custom_field"] == "value"
    assert entry["extra"]["another"] == 123


def test_configure_logger(temp_log_dir: Path):
    """Test that configure_logger returns a fresh logger each call."""
    configured = event_logging.configure_logger(temp_log_dir, max_size_mb=1)

    assert configured.log_dir == temp_log_dir
    assert configured.max_size_bytes == 1024 * 1024
    assert event_logging.configure_logger(temp_log_dir) is not configured
