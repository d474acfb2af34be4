"""
Error classification for worker supervision.

This module provides the exception hierarchy for the failures the supervisor
can encounter: worker launch problems, classified worker outcomes, recovery
action failures and persistence or configuration faults.
"""

from .launch import (
    SupervisorError,
    LaunchError,
    AlreadyRunningError,
)
from .worker_failures import (
    WorkerFailureError,
    WorkerTimeoutError,
    ExitError,
    CrashError,
)
from .recovery import RecoveryStepError
from .system_failures import (
    SystemFailureError,
    PersistenceError,
    ConfigurationError,
)

__all__ = [
    # Launch Errors
    "SupervisorError",
    "LaunchError",
    "AlreadyRunningError",
    # Worker Outcomes
    "WorkerFailureError",
    "WorkerTimeoutError",
    "ExitError",
    "CrashError",
    # Recovery
    "RecoveryStepError",
    # System Failures
    "SystemFailureError",
    "PersistenceError",
    "ConfigurationError",
]
