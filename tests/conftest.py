"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from profile_runner.persistence.event_log import RunnerEventLog
from profile_runner.persistence.state_store import RunnerStateStore

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def harness_command(mode: str, *extra: str, profile_id: str = "{profile_id}") -> list[str]:
    """Argv running the failure injection harness with this interpreter."""
    return [
        sys.executable, "-m", "profile_runner.harness",
        "--profile", profile_id, "--type", mode, *extra,
    ]


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def db_path(tmp_path) -> str:
    """Path of a fresh runner database."""
    return str(tmp_path / "runner_state.db")


@pytest.fixture
def store(db_path) -> RunnerStateStore:
    return RunnerStateStore(db_path)


@pytest.fixture
def event_log(db_path) -> RunnerEventLog:
    return RunnerEventLog(db_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def worker_env() -> dict[str, str]:
    """Environment that lets worker subprocesses import the package."""
    return {"PYTHONPATH": str(PROJECT_ROOT), "PYTHONIOENCODING": "utf-8"}


@pytest.fixture
def harness():
    """Builder for harness argv lists."""
    return harness_command
