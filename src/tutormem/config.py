"""Settings loader.

Loads settings from ~/.tutormem/config.json and TUTORMEM_* environment
variables. Environment values win over the file.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .memory.conflicts import ConflictStrategy, parse_strategy
from .memory.extractor import DEFAULT_MODEL
from .prompt.tokens import DEFAULT_ENCODING

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".tutormem"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        db_path: SQLite database holding facts (~/.tutormem/memory.db).
        log_dir: Directory for the JSONL event log (~/.tutormem/logs).
        extraction_model: Groq model used for fact extraction.
        conflict_strategy: Default strategy for extracted and imported facts.
        max_prompt_facts: Facts included in the prompt's fact block.
        tokenizer_encoding: tiktoken encoding for the default token counter.
        context_length: Default context budget when a chat sets none.
        retrieval_limit: Past-conversation memories retrieved per prompt.
    """

    db_path: Path | None = None
    log_dir: Path | None = None
    extraction_model: str = DEFAULT_MODEL
    conflict_strategy: str = ConflictStrategy.PREFER_HIGH_CONFIDENCE.value
    max_prompt_facts: int = 15
    tokenizer_encoding: str = DEFAULT_ENCODING
    context_length: int = 4096
    retrieval_limit: int = 4

    def __post_init__(self) -> None:
        """Validate settings and set defaults."""
        if self.db_path is None:
            self.db_path = DEFAULT_HOME / "memory.db"
        if self.log_dir is None:
            self.log_dir = DEFAULT_HOME / "logs"
        self.db_path = Path(self.db_path).expanduser()
        self.log_dir = Path(self.log_dir).expanduser()

        # Raises UnknownStrategyError for a bad name
        self.conflict_strategy = parse_strategy(self.conflict_strategy).value

        if self.max_prompt_facts < 1:
            raise ValueError("max_prompt_facts must be at least 1")
        if self.context_length < 1:
            raise ValueError("context_length must be at least 1")
        if self.retrieval_limit < 1:
            raise ValueError("retrieval_limit must be at least 1")


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load Settings from a JSON file and the environment.

    The config file should have this structure:
    ```json
    {
      "memory": {
        "db_path": "~/.tutormem/memory.db",
        "extraction_model": "llama-3.1-70b-versatile",
        "conflict_strategy": "merge",
        "max_prompt_facts": 15
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.
        environ: Environment mapping. Uses os.environ if None.

    Returns:
        Settings instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    values = _read_file(path)
    values.update(_read_env(environ))
    return Settings(**values)


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return {}

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return {}
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return {}

    return _parse_config(data)


def _parse_config(data: dict[str, Any]) -> dict[str, Any]:
    """Pick valid settings out of the "memory" section."""
    section = data.get("memory", {}) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        return {}

    values: dict[str, Any] = {}

    for key in ("db_path", "log_dir"):
        if isinstance(section.get(key), str):
            values[key] = Path(section[key])

    for key in ("extraction_model", "tokenizer_encoding", "conflict_strategy"):
        if isinstance(section.get(key), str) and section[key]:
            values[key] = section[key]

    for key in ("max_prompt_facts", "context_length", "retrieval_limit"):
        value = section.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
            values[key] = value
        elif value is not None:
            logger.warning("Ignoring invalid %s in config: %r", key, value)

    return values


def _read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if environ.get("TUTORMEM_DB_PATH"):
        values["db_path"] = Path(environ["TUTORMEM_DB_PATH"])
    if environ.get("TUTORMEM_LOG_DIR"):
        values["log_dir"] = Path(environ["TUTORMEM_LOG_DIR"])
    if environ.get("TUTORMEM_EXTRACTION_MODEL"):
        values["extraction_model"] = environ["TUTORMEM_EXTRACTION_MODEL"]
    if environ.get("TUTORMEM_CONFLICT_STRATEGY"):
        values["conflict_strategy"] = environ["TUTORMEM_CONFLICT_STRATEGY"]
    if environ.get("TUTORMEM_MAX_PROMPT_FACTS"):
        values["max_prompt_facts"] = int(environ["TUTORMEM_MAX_PROMPT_FACTS"])
    if environ.get("TUTORMEM_CONTEXT_LENGTH"):
        values["context_length"] = int(environ["TUTORMEM_CONTEXT_LENGTH"])
    if environ.get("TUTORMEM_RETRIEVAL_LIMIT"):
        values["retrieval_limit"] = int(environ["TUTORMEM_RETRIEVAL_LIMIT"])
    return values
