"""Pytest fixtures for Warden tests."""

import json
import logging
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import structlog

from warden.state import InMemoryStateStore
from warden.state.audit import AuditLog


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset CLI and structlog state before and after each test."""
    from warden.cli import helpers

    original = (
        helpers._log_config.level,
        helpers._log_config.file,
        helpers._log_config.format,
        helpers._log_config.configured,
    )
    original_output_level = helpers._output_level

    helpers._log_config.level = "WARNING"
    helpers._log_config.file = None
    helpers._log_config.format = "console"
    helpers._log_config.configured = False
    helpers.set_output_level(helpers.OutputLevel.NORMAL)
    helpers.reset_state_config()

    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    (
        helpers._log_config.level,
        helpers._log_config.file,
        helpers._log_config.format,
        helpers._log_config.configured,
    ) = original
    helpers.set_output_level(original_output_level)
    helpers.reset_state_config()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


class FakeClock:
    """Manually advanced clock for cooldown tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def audit(store: InMemoryStateStore) -> AuditLog:
    return AuditLog(store, session_id="test-session")


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the delays passed to an injected sleep function."""
    return []


@pytest.fixture
def repo_dirs(tmp_path: Path) -> Path:
    """A workspace holding directories a, b, c and d."""
    for name in ("a", "b", "c", "d"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def write_repo_config(repo_dirs: Path):
    """Write a declaration into the repo workspace and return its path."""

    def _write(entries: list[dict], filename: str = "repos.json") -> Path:
        path = repo_dirs / filename
        path.write_text(json.dumps(entries))
        return path

    return _write
