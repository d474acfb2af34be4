"""
Recovery step executor.

Runs exactly one rung of the ladder per invocation and advances the
profile's persisted cursor (lastRecoveryStep) whether or not the action
worked. After the last rung the cursor wraps back to step 1.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ..logging.config import get_recovery_logger, log_recovery_step
from ..persistence.state_store import RunnerStateStore
from .steps import RecoveryStep

logger = get_recovery_logger(__name__)


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of one recovery step."""
    profile_id: str
    step: int
    action: str
    success: bool
    error: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


class RecoveryStepExecutor:
    """Ordered ladder of named remedial actions selected by 1-based index."""

    def __init__(
        self,
        store: RunnerStateStore,
        steps: Sequence[RecoveryStep],
        max_recovery_steps: Optional[int] = None
    ):
        if not steps:
            raise ValueError("Recovery ladder needs at least one step")
        if max_recovery_steps is None:
            max_recovery_steps = len(steps)
        if max_recovery_steps < 1 or max_recovery_steps > len(steps):
            raise ValueError(
                f"max_recovery_steps must be between 1 and {len(steps)}, got {max_recovery_steps}"
            )

        self.store = store
        self.ladder = list(steps)
        self.steps = self.ladder[:max_recovery_steps]
        self.max_recovery_steps = max_recovery_steps
        self.logger = logger

    @property
    def actions(self) -> list[str]:
        return [step.action for step in self.steps]

    def _limit(self, max_recovery_steps: Optional[int]) -> int:
        if max_recovery_steps is None:
            return self.max_recovery_steps
        if not 1 <= max_recovery_steps <= len(self.ladder):
            raise ValueError(
                f"max_recovery_steps must be between 1 and {len(self.ladder)}, got {max_recovery_steps}"
            )
        return max_recovery_steps

    def step_for(self, step_number: int, max_recovery_steps: Optional[int] = None) -> RecoveryStep:
        """Step at a 1-based ladder position."""
        if not 1 <= step_number <= self._limit(max_recovery_steps):
            raise ValueError(f"Invalid recovery step: {step_number}")
        return self.ladder[step_number - 1]

    def next_step(self, profile_id: str, max_recovery_steps: Optional[int] = None) -> int:
        """Ladder position the next recovery attempt should run."""
        last = self.store.get(profile_id).last_recovery_step
        return (last % self._limit(max_recovery_steps)) + 1

    async def execute(self, profile_id: str, step_number: int,
                      max_recovery_steps: Optional[int] = None) -> RecoveryResult:
        """
        Run exactly the action at step_number.

        A failing action is reported as success=False and never raised.
        The cursor is stored as step_number after the attempt.
        """
        limit = self._limit(max_recovery_steps)
        step = self.step_for(step_number, limit)
        self.logger.info(
            "Executing recovery step",
            profile_id=profile_id,
            step=step_number,
            max_steps=limit,
            action=step.action
        )

        try:
            details = await step.run(profile_id)
            result = RecoveryResult(
                profile_id=profile_id,
                step=step_number,
                action=step.action,
                success=True,
                details=details or {},
            )
        except Exception as e:
            result = RecoveryResult(
                profile_id=profile_id,
                step=step_number,
                action=step.action,
                success=False,
                error=str(e) or type(e).__name__,
            )

        self.store.update(profile_id, {"last_recovery_step": step_number})
        log_recovery_step(
            self.logger,
            profile_id=profile_id,
            step=step_number,
            action=step.action,
            success=result.success,
            error=result.error
        )
        return result

    async def recover(self, profile_id: str,
                      max_recovery_steps: Optional[int] = None) -> RecoveryResult:
        """Run the next step of the ladder for a profile."""
        limit = self._limit(max_recovery_steps)
        return await self.execute(profile_id, self.next_step(profile_id, limit), limit)
