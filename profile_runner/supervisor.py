"""
Profile supervisor.

Orchestrates one independent scheduling loop per profile:
launch worker -> classify outcome -> update breaker -> recover or pause ->
wait -> repeat. Cycles of different profiles run concurrently; everything
inside one profile's cycle is serialized by that profile's lock.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .config.defaults import DefaultConfig, LauncherParams, SupervisorParams
from .config.loader import ConfigLoader, render_command
from .errors import ConfigurationError, LaunchError, PersistenceError
from .launcher.worker_launcher import WorkerLauncher
from .logging.config import get_supervisor_logger, log_state_transition
from .persistence.event_log import RunnerEventLog
from .persistence.state_store import RunnerStateStore
from .recovery.actions import CommandActionClient, ProfileActionClient, SimulatedActionClient
from .recovery.executor import RecoveryStepExecutor
from .recovery.steps import default_ladder
from .state.circuit_breaker import CircuitBreaker
from .state.models import (
    CycleAction,
    CycleResult,
    FailureKind,
    ProfilePhase,
    WorkerOutcome,
)

logger = get_supervisor_logger(__name__)


@dataclass(frozen=True)
class ProfileSettings:
    """Thresholds resolved for one profile; None defers to the component's own value."""
    max_error_streak: Optional[int] = None
    cooldown_seconds: Optional[float] = None
    max_recovery_steps: Optional[int] = None
    retry_backoff_seconds: Optional[float] = None
    max_runtime_seconds: Optional[float] = None
    grace_period_seconds: Optional[float] = None
    crash_markers: Optional[tuple[str, ...]] = None

    @classmethod
    def from_config(cls, config: DefaultConfig) -> "ProfileSettings":
        return cls(
            max_error_streak=config.recovery.max_error_streak,
            cooldown_seconds=config.recovery.cooldown_seconds,
            max_recovery_steps=config.recovery.max_recovery_steps,
            retry_backoff_seconds=config.recovery.retry_backoff_seconds,
            max_runtime_seconds=config.launcher.max_runtime_seconds,
            grace_period_seconds=config.launcher.grace_period_seconds,
            crash_markers=config.launcher.crash_markers,
        )


class Supervisor:
    """
    Drives every profile of a pod through its scheduling cycles.

    Manages the supervision pipeline per profile:
    Launch -> Classify -> CircuitBreaker -> Recovery / Pause -> Backoff
    """

    def __init__(
        self,
        store: RunnerStateStore,
        launcher: WorkerLauncher,
        breaker: CircuitBreaker,
        recovery: RecoveryStepExecutor,
        event_log: Optional[RunnerEventLog] = None,
        params: Optional[SupervisorParams] = None,
        retry_backoff_seconds: float = 1.0,
        command_for: Optional[Callable[[str], list[str]]] = None,
        max_runtime_for: Optional[Callable[[str], Optional[float]]] = None,
        settings_for: Optional[Callable[[str], ProfileSettings]] = None,
    ) -> None:
        self.store = store
        self.launcher = launcher
        self.breaker = breaker
        self.recovery = recovery
        self.event_log = event_log
        self.params = params or SupervisorParams()
        self.retry_backoff_seconds = retry_backoff_seconds
        self.command_for = command_for or (
            lambda profile_id: render_command(LauncherParams().worker_command, profile_id)
        )
        self.max_runtime_for = max_runtime_for or (lambda _profile_id: None)
        self.settings_for = settings_for
        self.logger = logger

        self._locks: dict[str, asyncio.Lock] = {}
        self._phases: dict[str, ProfilePhase] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._disabled: set[str] = set()
        self._stopping = asyncio.Event()

    @classmethod
    def from_config(
        cls,
        config: DefaultConfig,
        loader: Optional[ConfigLoader] = None,
        action_client: Optional[ProfileActionClient] = None,
        busy_timeout_seconds: Optional[float] = None,
    ) -> "Supervisor":
        """
        Wire every component from a loaded configuration.

        With a loader, each profile's `profiles:` section in runner.yaml is
        layered over config on every cycle, so any recovery or launcher
        threshold can differ per profile. The store uses the short
        supervisor busy timeout unless busy_timeout_seconds says otherwise.
        """
        if busy_timeout_seconds is None:
            busy_timeout_seconds = config.store.supervisor_busy_timeout_seconds
        store = RunnerStateStore(config.store.db_path, busy_timeout_seconds)
        event_log = RunnerEventLog(config.store.db_path, busy_timeout_seconds)

        launcher = WorkerLauncher(
            max_runtime_seconds=config.launcher.max_runtime_seconds,
            grace_period_seconds=config.launcher.grace_period_seconds,
            crash_markers=config.launcher.crash_markers,
        )
        breaker = CircuitBreaker(
            store,
            max_error_streak=config.recovery.max_error_streak,
            cooldown_seconds=config.recovery.cooldown_seconds,
        )

        if action_client is None:
            if config.actions.client == "command":
                action_client = CommandActionClient(config.actions.commands)
            else:
                action_client = SimulatedActionClient(config.actions.simulated_delay_seconds)
        recovery = RecoveryStepExecutor(
            store,
            default_ladder(action_client),
            max_recovery_steps=config.recovery.max_recovery_steps,
        )

        settings_for: Optional[Callable[[str], ProfileSettings]] = None
        if loader is not None:
            def command_for(profile_id: str) -> list[str]:
                profile_config = loader.profile_config(config, profile_id)
                return render_command(profile_config.launcher.worker_command, profile_id)

            def max_runtime_for(profile_id: str) -> Optional[float]:
                return loader.profile_config(config, profile_id).launcher.max_runtime_seconds

            def profile_settings(profile_id: str) -> ProfileSettings:
                return ProfileSettings.from_config(loader.profile_config(config, profile_id))

            settings_for = profile_settings
        else:
            def command_for(profile_id: str) -> list[str]:
                return render_command(config.launcher.worker_command, profile_id)

            def max_runtime_for(profile_id: str) -> Optional[float]:
                return None

        return cls(
            store=store,
            launcher=launcher,
            breaker=breaker,
            recovery=recovery,
            event_log=event_log,
            params=config.supervisor,
            retry_backoff_seconds=config.recovery.retry_backoff_seconds,
            command_for=command_for,
            max_runtime_for=max_runtime_for,
            settings_for=settings_for,
        )

    def settings(self, profile_id: str) -> ProfileSettings:
        """Thresholds that apply to the profile's next cycle."""
        if self.settings_for is not None:
            return self.settings_for(profile_id)
        return ProfileSettings(max_runtime_seconds=self.max_runtime_for(profile_id))

    def _retry_backoff(self, settings: ProfileSettings) -> float:
        if settings.retry_backoff_seconds is not None:
            return settings.retry_backoff_seconds
        return self.retry_backoff_seconds

    def phase(self, profile_id: str) -> ProfilePhase:
        """Current in-memory phase of a profile."""
        return self._phases.get(profile_id, ProfilePhase.IDLE)

    def _lock(self, profile_id: str) -> asyncio.Lock:
        if profile_id not in self._locks:
            self._locks[profile_id] = asyncio.Lock()
        return self._locks[profile_id]

    def _transition(self, profile_id: str, to_phase: ProfilePhase, trigger: str,
                    context: Optional[dict] = None) -> None:
        from_phase = self.phase(profile_id)
        self._phases[profile_id] = to_phase
        log_state_transition(
            self.logger,
            profile_id=profile_id,
            from_state=from_phase.value,
            to_state=to_phase.value,
            trigger=trigger,
            context=context
        )

    def _record(self, profile_id: str, event: str, **kwargs) -> None:
        if self.event_log is not None:
            self.event_log.record(profile_id, event, **kwargs)

    def clear_stale_flags(self, profiles: Iterable[str]) -> list[str]:
        """
        Reset running flags left behind by a supervisor that died mid-run.

        Returns:
            Profiles whose records were cleared
        """
        cleared = []
        for profile_id in profiles:
            if self.launcher.is_running(profile_id):
                continue
            state = self.store.get(profile_id)
            if state.flags.running:
                self.store.update(profile_id, {"flags": {"running": False, "needs_recovery": False}})
                cleared.append(profile_id)

        if cleared:
            self.logger.info("Cleared stale running flags", profiles=cleared)
        return cleared

    async def run_cycle(self, profile_id: str) -> CycleResult:
        """
        Run one scheduling cycle for a profile.

        Raises:
            LaunchError: The worker could not be started
            PersistenceError: The state store is unavailable
            ConfigurationError: The profile's configuration no longer validates
        """
        async with self._lock(profile_id):
            now = self.breaker.clock()
            state = self.store.get(profile_id)

            if state.is_paused(now):
                if self.phase(profile_id) != ProfilePhase.PAUSED:
                    self._transition(profile_id, ProfilePhase.PAUSED, "paused_on_start")
                remaining = self.breaker.pause_remaining(profile_id, now)
                self.logger.info("Profile paused, skipping cycle", profile_id=profile_id,
                                 remaining_seconds=round(remaining, 1))
                return CycleResult(
                    profile_id=profile_id,
                    action=CycleAction.SKIPPED_PAUSED,
                    next_delay_seconds=min(remaining, self.params.pause_poll_seconds),
                    error_streak=state.error_streak,
                )

            if state.cooldown_elapsed(now) and self.breaker.release_if_expired(profile_id, now):
                self._record(profile_id, "unpause", kind="recovery",
                             params={"reason": "pausePeriodExpired"})
                self._transition(profile_id, ProfilePhase.IDLE, "cooldown_elapsed",
                                 {"error_streak": state.error_streak})

            session_id = str(uuid.uuid4())
            command = self.command_for(profile_id)
            settings = self.settings(profile_id)

            self.store.update(profile_id, {"flags": {"running": True}})
            self._transition(profile_id, ProfilePhase.RUNNING, "launch",
                             {"session_id": session_id})
            self._record(profile_id, "start", kind="worker",
                         params={"command": command}, session_id=session_id)

            try:
                outcome = await self.launcher.launch(
                    profile_id,
                    command,
                    settings.max_runtime_seconds,
                    grace_period_seconds=settings.grace_period_seconds,
                    crash_markers=settings.crash_markers,
                )
            except LaunchError as e:
                self.store.update(profile_id, {"flags": {"running": False}})
                self._record(profile_id, "error", kind="worker", session_id=session_id,
                             outcome="launch_error", params={"error": str(e)})
                self._transition(profile_id, ProfilePhase.IDLE, "launch_error",
                                 {"error": str(e)})
                raise
            except asyncio.CancelledError:
                self.store.update(profile_id, {"flags": {"running": False}})
                self._transition(profile_id, ProfilePhase.IDLE, "shutdown")
                raise

            try:
                return await self._handle_outcome(profile_id, session_id, outcome, settings)
            except PersistenceError as e:
                self._clear_running(profile_id, e)
                raise

    def _clear_running(self, profile_id: str, error: PersistenceError) -> None:
        """Leave the profile idle after its cycle lost a state write."""
        self._transition(profile_id, ProfilePhase.IDLE, "persistence_error",
                         {"error": str(error)})
        try:
            self.store.update(profile_id, {"flags": {"running": False}})
        except PersistenceError as e:
            self.logger.error("Could not clear running flag", profile_id=profile_id,
                              error=str(e))

    async def _handle_outcome(self, profile_id: str, session_id: str,
                              outcome: WorkerOutcome,
                              settings: Optional[ProfileSettings] = None) -> CycleResult:
        settings = settings or ProfileSettings()
        event = outcome.event
        duration_ms = int(outcome.duration_seconds * 1000)

        if event.is_success:
            self.breaker.on_success(profile_id)
            self._record(profile_id, "finish", kind="worker", session_id=session_id,
                         outcome="ok", duration_ms=duration_ms)
            self._transition(profile_id, ProfilePhase.IDLE, "success")
            return CycleResult(
                profile_id=profile_id,
                action=CycleAction.SUCCEEDED,
                next_delay_seconds=self.params.cycle_interval_seconds,
                event=event,
                session_id=session_id,
            )

        if event.kind == FailureKind.CANCELLED:
            state = self.store.update(profile_id, {"flags": {"running": False}})
            self._record(profile_id, "cancel", kind="worker", session_id=session_id,
                         outcome="cancelled", duration_ms=duration_ms)
            self._transition(profile_id, ProfilePhase.IDLE, "cancelled")
            return CycleResult(
                profile_id=profile_id,
                action=CycleAction.CANCELLED,
                next_delay_seconds=0.0,
                event=event,
                error_streak=state.error_streak,
                session_id=session_id,
            )

        error = event.to_error(profile_id, outcome.output)
        self.logger.warning(
            "Worker failed",
            profile_id=profile_id,
            classification=str(event),
            error_type=type(error).__name__,
            error=str(error),
            output_tail=outcome.output[-500:]
        )
        self._record(profile_id, "error", kind="worker", session_id=session_id,
                     outcome=event.kind.value, duration_ms=duration_ms,
                     params={"exit_code": event.exit_code})

        error_streak = self.breaker.on_failure(
            profile_id,
            max_error_streak=settings.max_error_streak,
            cooldown_seconds=settings.cooldown_seconds,
        )

        if self.breaker.is_paused(profile_id):
            remaining = self.breaker.pause_remaining(profile_id)
            self._record(profile_id, "pause", kind="recovery", session_id=session_id,
                         params={
                             "reason": "maxErrorStreakExceeded",
                             "errorStreak": error_streak,
                             "maxErrorStreak": settings.max_error_streak or self.breaker.max_error_streak,
                         })
            self._transition(profile_id, ProfilePhase.PAUSED, "max_error_streak_exceeded",
                             {"error_streak": error_streak})
            return CycleResult(
                profile_id=profile_id,
                action=CycleAction.PAUSED,
                next_delay_seconds=min(remaining, self.params.pause_poll_seconds),
                event=event,
                error_streak=error_streak,
                session_id=session_id,
            )

        self._transition(profile_id, ProfilePhase.RECOVERY_EXECUTING, str(event),
                         {"error_streak": error_streak})
        result = await self.recovery.recover(profile_id, settings.max_recovery_steps)
        self._record(profile_id, "recover", kind="recovery", session_id=session_id,
                     outcome="ok" if result.success else "failed",
                     params={"step": result.step, "action": result.action,
                             "error": result.error})

        if result.success:
            self.store.update(profile_id, {"flags": {"needs_recovery": False}})
            self._transition(profile_id, ProfilePhase.IDLE, "recovery_ok",
                             {"step": result.step, "action": result.action})
            action = CycleAction.RECOVERED
            delay = 0.0
        else:
            self._transition(profile_id, ProfilePhase.IDLE, "recovery_failed",
                             {"step": result.step, "action": result.action})
            action = CycleAction.RECOVERY_FAILED
            delay = self._retry_backoff(settings)

        return CycleResult(
            profile_id=profile_id,
            action=action,
            next_delay_seconds=delay,
            event=event,
            error_streak=error_streak,
            recovery_step=result.step,
            recovery_action=result.action,
            session_id=session_id,
        )

    async def run_profile(self, profile_id: str, max_cycles: Optional[int] = None) -> list[CycleResult]:
        """
        Cycle a profile until shutdown, disable, or max_cycles is reached.

        Launch, persistence and configuration faults abort only the current
        cycle; the loop logs them and tries again after the fixed backoff.
        """
        results: list[CycleResult] = []
        cycles = 0

        while not self._stopping.is_set() and profile_id not in self._disabled:
            if max_cycles is not None and cycles >= max_cycles:
                break
            cycles += 1

            try:
                result = await self.run_cycle(profile_id)
                results.append(result)
                delay = result.next_delay_seconds
            except (LaunchError, PersistenceError, ConfigurationError) as e:
                self.logger.error(
                    "Scheduling cycle aborted",
                    profile_id=profile_id,
                    error_type=type(e).__name__,
                    error=str(e)
                )
                delay = self.retry_backoff_seconds

            if max_cycles is not None and cycles >= max_cycles:
                break
            await self._idle(delay)

        return results

    async def _idle(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stopping.wait(), delay)
        except asyncio.TimeoutError:
            pass

    def start(self, profiles: Iterable[str]) -> dict[str, asyncio.Task]:
        """Start one task per profile; must be called inside a running loop."""
        profiles = list(profiles)
        self._stopping.clear()
        self.clear_stale_flags(profiles)
        for profile_id in profiles:
            self._start_task(profile_id)
        self.logger.info("Supervisor started", profiles=profiles)
        return dict(self._tasks)

    def _start_task(self, profile_id: str) -> None:
        task = self._tasks.get(profile_id)
        if task is not None and not task.done():
            return
        self._tasks[profile_id] = asyncio.create_task(
            self.run_profile(profile_id), name=f"profile:{profile_id}"
        )

    async def run(self, profiles: Iterable[str]) -> None:
        """Supervise profiles until shutdown() is called."""
        self.start(profiles)
        await self._stopping.wait()
        await self._collect_tasks()

    async def shutdown(self) -> None:
        """Stop every loop; live workers get SIGTERM then SIGKILL."""
        if self._stopping.is_set() and not self._tasks:
            return
        self.logger.info("Supervisor shutting down", active_workers=self.launcher.active_profiles())
        self._stopping.set()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        await self._collect_tasks()
        self.logger.info("Supervisor stopped")

    async def _collect_tasks(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, Exception):
                self.logger.error("Profile loop ended with error", error=str(result))

    def disable_profile(self, profile_id: str) -> bool:
        """
        External pause request: stop the live worker and stop scheduling.

        Returns:
            True if a live worker was signalled
        """
        self._disabled.add(profile_id)
        cancelled = self.launcher.cancel(profile_id)
        self.logger.info("Profile disabled", profile_id=profile_id, worker_cancelled=cancelled)
        return cancelled

    def enable_profile(self, profile_id: str) -> None:
        """Resume scheduling a disabled profile."""
        self._disabled.discard(profile_id)
        if profile_id in self._tasks and not self._stopping.is_set():
            self._start_task(profile_id)
        self.logger.info("Profile enabled", profile_id=profile_id)

    def is_disabled(self, profile_id: str) -> bool:
        return profile_id in self._disabled

    def reset_profile(self, profile_id: str) -> None:
        """Operator reset: same effect on the record as a successful run."""
        self.breaker.on_success(profile_id)
        self._record(profile_id, "reset", kind="operator")
        self._transition(profile_id, ProfilePhase.IDLE, "operator_reset")
