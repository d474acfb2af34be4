"""
Launch error classifications.

These exceptions abort a scheduling cycle before any worker outcome exists.
"""

from typing import Any, Optional, Sequence


class SupervisorError(Exception):
    """Base class for all supervisor errors."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class LaunchError(SupervisorError):
    """Worker subprocess could not be started."""

    def __init__(self, message: str, profile_id: Optional[str] = None,
                 command: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.profile_id = profile_id
        self.command = list(command) if command else []


class AlreadyRunningError(LaunchError):
    """A worker is already active for the profile."""

    def __init__(self, profile_id: str, **kwargs):
        super().__init__(f"Worker already running for profile {profile_id}",
                         profile_id=profile_id, **kwargs)
