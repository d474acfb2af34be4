"""Clients that carry out remedial actions against a profile's runtime."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import structlog

from ..config.loader import render_command
from ..errors import RecoveryStepError

logger = structlog.get_logger(__name__)


class ProfileActionClient(ABC):
    """Performs one named remedial action for a profile."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logger.bind(client=name)

    @abstractmethod
    async def perform(self, profile_id: str, action: str) -> dict[str, Any]:
        """
        Carry out the action.

        Returns:
            Free-form details about what happened

        Raises:
            RecoveryStepError: The action could not be completed
        """


class SimulatedActionClient(ProfileActionClient):
    """Logs the action and waits, for runs without a browser bridge."""

    def __init__(self, delay_seconds: float = 0.0,
                 delays: Optional[dict[str, float]] = None):
        super().__init__("simulated")
        self.delay_seconds = delay_seconds
        self.delays = delays or {}
        self.performed: list[tuple[str, str]] = []

    async def perform(self, profile_id: str, action: str) -> dict[str, Any]:
        delay = self.delays.get(action, self.delay_seconds)
        self.logger.info("Simulating recovery action", profile_id=profile_id,
                         action=action, delay_seconds=delay)
        if delay:
            await asyncio.sleep(delay)
        self.performed.append((profile_id, action))
        return {"message": f"{action} simulated", "delay_seconds": delay}


class CommandActionClient(ProfileActionClient):
    """Runs a configured command per action; non-zero exit fails the step."""

    def __init__(self, commands: dict[str, Sequence[str]], timeout_seconds: float = 60.0):
        super().__init__("command")
        self.commands = {name: list(argv) for name, argv in commands.items()}
        self.timeout_seconds = timeout_seconds

    async def perform(self, profile_id: str, action: str) -> dict[str, Any]:
        template = self.commands.get(action)
        if not template:
            raise RecoveryStepError(
                f"No command configured for recovery action {action}",
                profile_id=profile_id, action=action
            )

        argv = render_command(template, profile_id)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise RecoveryStepError(
                f"Cannot start recovery command for {action}: {e}",
                profile_id=profile_id, action=action
            ) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), self.timeout_seconds)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise RecoveryStepError(
                f"Recovery command for {action} timed out after {self.timeout_seconds}s",
                profile_id=profile_id, action=action
            ) from e

        output = stdout.decode(errors="replace") if stdout else ""
        if proc.returncode != 0:
            raise RecoveryStepError(
                f"Recovery command for {action} exited with code {proc.returncode}",
                profile_id=profile_id, action=action,
                context={"output": output[-2000:]}
            )

        self.logger.info("Recovery command completed", profile_id=profile_id, action=action)
        return {"message": f"{action} completed", "output": output}
