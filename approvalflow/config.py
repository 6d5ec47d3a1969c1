# approvalflow configuration
# Module-level defaults plus environment overrides

import logging
import os
from dataclasses import dataclass
from typing import Optional

# Directory holding the Turtle files of the reference engine
DEFAULT_STORAGE_PATH = "data/approvalflow_rdf"

# Identity link kind that grants candidate standing on a task
CANDIDATE_LINK_TYPE = "candidate"

# Deletion cause used when a rejection does not name one
DEFAULT_REJECT_REASON = "Rejected"

DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a boolean-like environment variable value."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_storage_path() -> str:
    """Return the storage directory from APPROVALFLOW_STORAGE_PATH."""
    return os.getenv("APPROVALFLOW_STORAGE_PATH", DEFAULT_STORAGE_PATH).strip()


def is_persistence_enabled() -> bool:
    """Return whether engine graphs are written to disk."""
    return _as_bool(os.getenv("APPROVALFLOW_PERSIST"), default=True)


def get_log_level() -> str:
    """Return the log level name from APPROVALFLOW_LOG_LEVEL."""
    level = os.getenv("APPROVALFLOW_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        return DEFAULT_LOG_LEVEL
    return level


@dataclass
class Settings:
    """Resolved configuration for building an engine."""

    storage_path: Optional[str] = DEFAULT_STORAGE_PATH
    persist: bool = True
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        persist = is_persistence_enabled()
        return cls(
            storage_path=get_storage_path() if persist else None,
            persist=persist,
            log_level=get_log_level(),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a basic root handler for applications embedding approvalflow.

    The library itself never configures logging on import.
    """
    logging.basicConfig(level=level or get_log_level(), format=LOG_FORMAT)
