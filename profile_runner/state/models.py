"""
Runner state data models for per-profile supervision.

This module defines immutable data structures for the persisted runner
record, the classification of each worker run and the result of one
scheduling cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..errors import CrashError, ExitError, WorkerFailureError, WorkerTimeoutError
from ..utils.time import format_timestamp


class FailureKind(str, Enum):
    """Classification of how a worker run ended."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    CRASH = "crash"
    CANCELLED = "cancelled"


class ProfilePhase(str, Enum):
    """Supervisor phases for a single profile."""
    IDLE = "idle"
    RUNNING = "running"
    RECOVERY_EXECUTING = "recovery_executing"
    PAUSED = "paused"


class CycleAction(str, Enum):
    """What a scheduling cycle ended up doing."""
    SUCCEEDED = "succeeded"
    RECOVERED = "recovered"
    RECOVERY_FAILED = "recovery_failed"
    PAUSED = "paused"
    SKIPPED_PAUSED = "skipped_paused"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RunnerFlags:
    """Boolean flags of a runner record."""
    running: bool = False
    needs_recovery: bool = False
    paused: bool = False


# Fields accepted by RunnerStateStore.update
UPDATABLE_FIELDS = frozenset({"error_streak", "flags", "paused_until", "last_recovery_step"})
FLAG_FIELDS = frozenset({"running", "needs_recovery", "paused"})


@dataclass(frozen=True)
class RunnerState:
    """Persisted supervision record for one profile."""

    profile_id: str
    error_streak: int = 0
    flags: RunnerFlags = field(default_factory=RunnerFlags)
    paused_until: Optional[datetime] = None
    last_recovery_step: int = 0
    updated_at: Optional[datetime] = None

    def is_paused(self, now: datetime) -> bool:
        """Paused as long as the flag is set and the cooldown has not elapsed."""
        return (
            self.flags.paused
            and self.paused_until is not None
            and now < self.paused_until
        )

    def cooldown_elapsed(self, now: datetime) -> bool:
        """Pause flag still set but the cooldown is over."""
        return (
            self.flags.paused
            and (self.paused_until is None or now >= self.paused_until)
        )

    def to_record(self) -> dict[str, Any]:
        """External record shape read by inspection tooling."""
        return {
            "profileId": self.profile_id,
            "errorStreak": self.error_streak,
            "flags": {
                "running": self.flags.running,
                "needsRecovery": self.flags.needs_recovery,
                "paused": self.flags.paused,
            },
            "pausedUntil": format_timestamp(self.paused_until),
            "lastRecoveryStep": self.last_recovery_step,
        }


@dataclass(frozen=True)
class FailureEvent:
    """Classification result of one worker launch."""

    kind: FailureKind
    exit_code: Optional[int] = None

    @classmethod
    def success(cls) -> "FailureEvent":
        return cls(FailureKind.SUCCESS, 0)

    @classmethod
    def timeout(cls, exit_code: Optional[int] = None) -> "FailureEvent":
        return cls(FailureKind.TIMEOUT, exit_code)

    @classmethod
    def non_zero_exit(cls, exit_code: int) -> "FailureEvent":
        return cls(FailureKind.NON_ZERO_EXIT, exit_code)

    @classmethod
    def crash(cls, exit_code: Optional[int] = None) -> "FailureEvent":
        return cls(FailureKind.CRASH, exit_code)

    @classmethod
    def cancelled(cls, exit_code: Optional[int] = None) -> "FailureEvent":
        return cls(FailureKind.CANCELLED, exit_code)

    @property
    def is_success(self) -> bool:
        return self.kind == FailureKind.SUCCESS

    @property
    def is_failure(self) -> bool:
        """Counts toward the error streak."""
        return self.kind in (FailureKind.TIMEOUT, FailureKind.NON_ZERO_EXIT, FailureKind.CRASH)

    def to_error(self, profile_id: str, output: str = "") -> Optional[WorkerFailureError]:
        """Exception matching this classification, None for non-failures."""
        if self.kind == FailureKind.TIMEOUT:
            return WorkerTimeoutError(
                f"Worker for {profile_id} exceeded its maximum runtime",
                profile_id=profile_id, output=output
            )
        if self.kind == FailureKind.NON_ZERO_EXIT:
            return ExitError(
                f"Worker for {profile_id} exited with code {self.exit_code}",
                exit_code=self.exit_code, profile_id=profile_id, output=output
            )
        if self.kind == FailureKind.CRASH:
            return CrashError(
                f"Worker for {profile_id} crashed (exit code {self.exit_code})",
                exit_code=self.exit_code, profile_id=profile_id, output=output
            )
        return None

    def __str__(self) -> str:
        if self.kind == FailureKind.NON_ZERO_EXIT:
            return f"NonZeroExit({self.exit_code})"
        return self.kind.value


@dataclass(frozen=True)
class WorkerOutcome:
    """Everything the launcher reports about one worker run."""

    profile_id: str
    event: FailureEvent
    output: str
    started_at: datetime
    duration_seconds: float
    pid: Optional[int] = None


@dataclass(frozen=True)
class CycleResult:
    """Result of one supervisor scheduling cycle."""

    profile_id: str
    action: CycleAction
    next_delay_seconds: float
    event: Optional[FailureEvent] = None
    error_streak: int = 0
    recovery_step: Optional[int] = None
    recovery_action: Optional[str] = None
    session_id: Optional[str] = None
