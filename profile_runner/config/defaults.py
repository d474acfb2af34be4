"""Default configuration parameters for the profile runner."""

import sys
from dataclasses import dataclass, field

RECOVERY_LADDER_LENGTH = 5                           # Rungs in the standard recovery ladder


@dataclass(frozen=True)
class RecoveryParams:
    """Error streak and recovery ladder parameters."""
    max_error_streak: int = 3                        # Pause once the streak exceeds this
    max_recovery_steps: int = 5                      # Ladder length before wrapping to step 1
    cooldown_seconds: float = 24 * 60 * 60           # Pause duration
    retry_backoff_seconds: float = 1.0               # Fixed delay after a failed recovery


@dataclass(frozen=True)
class LauncherParams:
    """Worker subprocess parameters."""
    max_runtime_seconds: float = 3600.0              # Deadline before termination
    grace_period_seconds: float = 5.0                # SIGTERM -> SIGKILL grace
    crash_markers: tuple[str, ...] = ("Traceback (most recent call last):",)
    worker_command: tuple[str, ...] = (
        sys.executable, "-m", "profile_runner.harness",
        "--profile", "{profile_id}", "--type", "exit",
    )


@dataclass(frozen=True)
class SupervisorParams:
    """Scheduling loop parameters."""
    cycle_interval_seconds: float = 120.0            # Idle wait after a healthy cycle
    pause_poll_seconds: float = 60.0                 # Max sleep while a profile is paused


@dataclass(frozen=True)
class StoreParams:
    """Persistence parameters."""
    db_path: str = "data/runner_state.db"
    busy_timeout_seconds: float = 30.0               # Operator commands (status, reset)
    supervisor_busy_timeout_seconds: float = 2.0     # Scheduling loop; a locked store fails the cycle fast


@dataclass(frozen=True)
class LoggingParams:
    """Logging parameters."""
    level: str = "INFO"
    format_json: bool = False


@dataclass(frozen=True)
class RecoveryActionParams:
    """Recovery action wiring."""
    client: str = "simulated"                        # simulated | command
    simulated_delay_seconds: float = 0.0
    commands: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    recovery: RecoveryParams
    launcher: LauncherParams
    supervisor: SupervisorParams
    store: StoreParams
    logging: LoggingParams
    actions: RecoveryActionParams


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        recovery=RecoveryParams(),
        launcher=LauncherParams(),
        supervisor=SupervisorParams(),
        store=StoreParams(),
        logging=LoggingParams(),
        actions=RecoveryActionParams(),
    )
