# Tests for environment-driven configuration.

import logging

from approvalflow.config import (
    DEFAULT_STORAGE_PATH,
    Settings,
    configure_logging,
    get_log_level,
    get_storage_path,
    is_persistence_enabled,
)


def test_defaults(monkeypatch):
    """Unset variables fall back to the module defaults."""
    monkeypatch.delenv("APPROVALFLOW_STORAGE_PATH", raising=False)
    monkeypatch.delenv("APPROVALFLOW_PERSIST", raising=False)
    monkeypatch.delenv("APPROVALFLOW_LOG_LEVEL", raising=False)

    settings = Settings.from_env()

    assert settings.storage_path == DEFAULT_STORAGE_PATH
    assert settings.persist is True
    assert settings.log_level == "INFO"


def test_storage_path_override(monkeypatch):
    monkeypatch.setenv("APPROVALFLOW_STORAGE_PATH", " /var/lib/approvals ")

    assert get_storage_path() == "/var/lib/approvals"


def test_persistence_disabled(monkeypatch):
    """Turning persistence off yields an in-memory configuration."""
    monkeypatch.setenv("APPROVALFLOW_PERSIST", "off")

    settings = Settings.from_env()

    assert is_persistence_enabled() is False
    assert settings.persist is False
    assert settings.storage_path is None


def test_log_level(monkeypatch):
    monkeypatch.setenv("APPROVALFLOW_LOG_LEVEL", "debug")
    assert get_log_level() == "DEBUG"

    monkeypatch.setenv("APPROVALFLOW_LOG_LEVEL", "chatty")
    assert get_log_level() == "INFO"


def test_configure_logging_is_explicit(monkeypatch):
    """Importing the package installs no handlers; configure_logging does."""
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)

    configure_logging("WARNING")

    assert root.handlers
    assert root.level == logging.WARNING
