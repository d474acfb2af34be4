"""
Recovery action failures.

A failing remedial action is an ordinary recovery failure. The executor
catches these and reports them; they never escalate to the supervisor.
"""

from typing import Optional

from .launch import SupervisorError


class RecoveryStepError(SupervisorError):
    """A remedial action could not be completed."""

    def __init__(self, message: str, profile_id: Optional[str] = None,
                 step: Optional[int] = None, action: Optional[str] = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.profile_id = profile_id
        self.step = step
        self.action = action
        self.recoverable = True
