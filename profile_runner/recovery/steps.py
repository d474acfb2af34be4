"""Ordered remedial strategies, least to most disruptive."""

from abc import ABC
from typing import Any

from .actions import ProfileActionClient


class RecoveryStep(ABC):
    """One rung of the recovery ladder."""

    action: str = ""
    description: str = ""

    def __init__(self, client: ProfileActionClient):
        self.client = client

    async def run(self, profile_id: str) -> dict[str, Any]:
        """Execute the step; failures propagate as exceptions."""
        return await self.client.perform(profile_id, self.action)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(action={self.action!r})"


class NavigateHomeStep(RecoveryStep):
    action = "navigate_home"
    description = "Return the profile's browser to the landing page"


class NavigateBackStep(RecoveryStep):
    action = "navigate_back"
    description = "Go back one entry in browser history"


class RefreshPageStep(RecoveryStep):
    action = "refresh"
    description = "Reload the current page"


class ReopenProfileSessionStep(RecoveryStep):
    action = "reopen_profile_session"
    description = "Close and reopen the profile's browser session"


class RestartProfileRuntimeStep(RecoveryStep):
    action = "restart_profile_runtime"
    description = "Restart the managed browser-profile runtime"


DEFAULT_STEP_TYPES: tuple[type[RecoveryStep], ...] = (
    NavigateHomeStep,
    NavigateBackStep,
    RefreshPageStep,
    ReopenProfileSessionStep,
    RestartProfileRuntimeStep,
)


def default_ladder(client: ProfileActionClient) -> list[RecoveryStep]:
    """The standard five-step ladder bound to one action client."""
    return [step_type(client) for step_type in DEFAULT_STEP_TYPES]
