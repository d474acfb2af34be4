"""
Classified worker failures.

These are recoverable: the supervisor absorbs them into the error streak
and recovery machinery instead of letting them escape a cycle.
"""

from typing import Optional

from .launch import SupervisorError


class WorkerFailureError(SupervisorError):
    """Base class for a worker run that ended in failure."""

    def __init__(self, message: str, profile_id: Optional[str] = None,
                 output: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.profile_id = profile_id
        self.output = output
        self.recoverable = True


class WorkerTimeoutError(WorkerFailureError, TimeoutError):
    """Worker did not exit before its maximum runtime."""

    def __init__(self, message: str, max_runtime_seconds: Optional[float] = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.max_runtime_seconds = max_runtime_seconds


class ExitError(WorkerFailureError):
    """Worker exited with a non-zero code."""

    def __init__(self, message: str, exit_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code


class CrashError(WorkerFailureError):
    """Worker died from an uncaught error or an unexpected signal."""

    def __init__(self, message: str, exit_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
