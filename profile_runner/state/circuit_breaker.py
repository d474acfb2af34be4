"""
Per-profile error-streak circuit breaker.

Counts consecutive classified failures and pauses a profile for a cooldown
once the streak is strictly greater than the configured maximum. The streak
only resets on a successful worker run; an elapsed cooldown makes the
profile eligible again without forgiving its streak.
"""

from datetime import datetime
from typing import Callable, Optional

from ..logging.config import get_supervisor_logger
from ..persistence.state_store import RunnerStateStore
from ..utils.time import add_seconds, format_timestamp, seconds_until, utc_now
from .models import RunnerState

logger = get_supervisor_logger(__name__)

DEFAULT_COOLDOWN_SECONDS = 24 * 60 * 60


class CircuitBreaker:
    """Decides pausing and cooldown expiry from a profile's error streak."""

    def __init__(
        self,
        store: RunnerStateStore,
        max_error_streak: int = 3,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = utc_now
    ):
        if max_error_streak < 1:
            raise ValueError("max_error_streak must be at least 1")
        self.store = store
        self.max_error_streak = max_error_streak
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.logger = logger

    def should_pause(self, error_streak: int, max_error_streak: Optional[int] = None) -> bool:
        """Strictly greater than the maximum trips the breaker."""
        return error_streak > (max_error_streak or self.max_error_streak)

    def _pause_patch(self, cooldown_seconds: Optional[float] = None) -> dict:
        if cooldown_seconds is None:
            cooldown_seconds = self.cooldown_seconds
        return {
            "flags": {"paused": True, "needs_recovery": False, "running": False},
            "paused_until": add_seconds(self.clock(), cooldown_seconds),
        }

    def on_failure(
        self,
        profile_id: str,
        max_error_streak: Optional[int] = None,
        cooldown_seconds: Optional[float] = None
    ) -> int:
        """
        Record one classified failure.

        Args:
            profile_id: Profile whose worker failed
            max_error_streak: Profile override of the breaker's maximum
            cooldown_seconds: Profile override of the pause duration

        Returns:
            The new error streak
        """
        limit = max_error_streak or self.max_error_streak

        def compute(current: RunnerState) -> dict:
            streak = current.error_streak + 1
            patch = {
                "error_streak": streak,
                "flags": {"running": False, "needs_recovery": True},
            }
            if self.should_pause(streak, limit):
                patch.update(self._pause_patch(cooldown_seconds))
            return patch

        state = self.store.update_with(profile_id, compute)

        if state.flags.paused:
            self.logger.warning(
                "Profile paused, error streak exceeded maximum",
                profile_id=profile_id,
                error_streak=state.error_streak,
                max_error_streak=limit,
                paused_until=format_timestamp(state.paused_until)
            )
        else:
            self.logger.info(
                "Error streak incremented",
                profile_id=profile_id,
                error_streak=state.error_streak,
                max_error_streak=limit
            )
        return state.error_streak

    def on_success(self, profile_id: str) -> RunnerState:
        """Reset the streak and every recovery/pause marker."""
        state = self.store.update(profile_id, {
            "error_streak": 0,
            "flags": {"running": False, "needs_recovery": False, "paused": False},
            "paused_until": None,
            "last_recovery_step": 0,
        })
        self.logger.info("Error streak reset", profile_id=profile_id)
        return state

    def evaluate(
        self,
        profile_id: str,
        max_error_streak: Optional[int] = None,
        cooldown_seconds: Optional[float] = None
    ) -> RunnerState:
        """
        Apply the pause rule to the stored streak.

        A streak above the maximum without an active cooldown gets a fresh
        one, whether no pausedUntil was ever recorded or the recorded one
        has already elapsed. Profiles within their limit, or still inside
        their cooldown, are returned unchanged.
        """
        def compute(current: RunnerState) -> dict:
            if (self.should_pause(current.error_streak, max_error_streak)
                    and not current.is_paused(self.clock())):
                return self._pause_patch(cooldown_seconds)
            return {}

        return self.store.update_with(profile_id, compute)

    def is_paused(self, profile_id: str, now: Optional[datetime] = None) -> bool:
        """Paused while now < pausedUntil."""
        return self.store.get(profile_id).is_paused(now or self.clock())

    def pause_remaining(self, profile_id: str, now: Optional[datetime] = None) -> float:
        """Seconds left in the cooldown, 0.0 when not paused."""
        state = self.store.get(profile_id)
        now = now or self.clock()
        if not state.is_paused(now):
            return 0.0
        return seconds_until(state.paused_until, now)  # type: ignore[arg-type]

    def release_if_expired(self, profile_id: str, now: Optional[datetime] = None) -> bool:
        """
        Clear the pause flag once the cooldown has elapsed.

        Returns:
            True if the profile was released by this call
        """
        now = now or self.clock()
        released = False

        def compute(current: RunnerState) -> dict:
            nonlocal released
            if current.cooldown_elapsed(now):
                released = True
                return {"flags": {"paused": False}}
            return {}

        state = self.store.update_with(profile_id, compute)
        if released:
            self.logger.info(
                "Cooldown elapsed, profile eligible again",
                profile_id=profile_id,
                error_streak=state.error_streak
            )
        return released
