"""
Worker subprocess launcher.

Starts at most one worker per profile, captures its combined output and
races process exit against the maximum-runtime deadline and an external
cancel request. Termination is cooperative first (SIGTERM), then forceful
(SIGKILL) once the grace period runs out.
"""

import asyncio
import os
import time
from typing import Optional, Sequence

import structlog

from ..errors import AlreadyRunningError, LaunchError
from ..state.models import FailureEvent, WorkerOutcome
from ..utils.time import utc_now

logger = structlog.get_logger(__name__)

DEFAULT_CRASH_MARKERS = ("Traceback (most recent call last):",)
MAX_OUTPUT_BYTES = 1024 * 1024


def classify_exit(returncode: int, output: str,
                  crash_markers: Sequence[str] = DEFAULT_CRASH_MARKERS) -> FailureEvent:
    """
    Classify a worker that exited on its own.

    A negative return code means the worker was killed by a signal we did
    not send; a crash marker in the output means it died on an uncaught
    error. Both are crashes. Other non-zero codes are ordinary failures.
    """
    if returncode == 0:
        return FailureEvent.success()
    if returncode < 0:
        return FailureEvent.crash(returncode)
    if any(marker in output for marker in crash_markers):
        return FailureEvent.crash(returncode)
    return FailureEvent.non_zero_exit(returncode)


class WorkerLauncher:
    """Launches and supervises one worker subprocess per profile."""

    def __init__(
        self,
        max_runtime_seconds: float = 3600.0,
        grace_period_seconds: float = 5.0,
        crash_markers: Sequence[str] = DEFAULT_CRASH_MARKERS,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[str] = None
    ):
        self.max_runtime_seconds = max_runtime_seconds
        self.grace_period_seconds = grace_period_seconds
        self.crash_markers = tuple(crash_markers)
        self.env = env
        self.cwd = cwd
        self.logger = logger
        self._active: dict[str, Optional[asyncio.subprocess.Process]] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}

    def is_running(self, profile_id: str) -> bool:
        return profile_id in self._active

    def active_profiles(self) -> list[str]:
        return sorted(self._active)

    def cancel(self, profile_id: str) -> bool:
        """
        Ask the profile's live worker to stop.

        Returns:
            True if a worker was active and has been signalled
        """
        event = self._cancel_events.get(profile_id)
        if event is None:
            return False
        self.logger.info("Cancelling worker", profile_id=profile_id)
        event.set()
        return True

    def cancel_all(self) -> int:
        """Cancel every live worker; returns how many were signalled."""
        return sum(1 for profile_id in list(self._cancel_events) if self.cancel(profile_id))

    async def launch(
        self,
        profile_id: str,
        command: Sequence[str],
        max_runtime_seconds: Optional[float] = None,
        grace_period_seconds: Optional[float] = None,
        crash_markers: Optional[Sequence[str]] = None
    ) -> WorkerOutcome:
        """
        Run one worker to completion, timeout or cancellation.

        Args:
            profile_id: Profile the worker is bound to
            command: Full argv of the worker
            max_runtime_seconds: Override of the launcher's deadline
            grace_period_seconds: Override of the SIGTERM -> SIGKILL grace
            crash_markers: Override of the output markers that mean a crash

        Returns:
            WorkerOutcome with the classification and captured output

        Raises:
            AlreadyRunningError: A worker is already active for the profile
            LaunchError: The subprocess could not be started
        """
        if profile_id in self._active:
            raise AlreadyRunningError(profile_id)
        # Reserve the slot before the first await
        self._active[profile_id] = None
        cancel_event = asyncio.Event()
        self._cancel_events[profile_id] = cancel_event

        deadline = max_runtime_seconds if max_runtime_seconds is not None else self.max_runtime_seconds
        grace = grace_period_seconds if grace_period_seconds is not None else self.grace_period_seconds
        markers = tuple(crash_markers) if crash_markers is not None else self.crash_markers
        started_at = utc_now()
        started = time.monotonic()

        try:
            proc = await self._spawn(profile_id, command)
            self._active[profile_id] = proc
            self.logger.info(
                "Worker started",
                profile_id=profile_id,
                pid=proc.pid,
                command=list(command),
                max_runtime_seconds=deadline
            )

            buffer = bytearray()
            reader = asyncio.ensure_future(self._read_output(proc, buffer))
            try:
                event = await self._supervise(profile_id, proc, cancel_event, deadline, grace)
            finally:
                await self._drain(reader, grace)

            output = buffer.decode(errors="replace")
            if event is None:
                event = classify_exit(proc.returncode, output, markers)
            duration = time.monotonic() - started
            self.logger.info(
                "Worker finished",
                profile_id=profile_id,
                pid=proc.pid,
                classification=str(event),
                returncode=proc.returncode,
                duration_seconds=round(duration, 3)
            )
            return WorkerOutcome(
                profile_id=profile_id,
                event=event,
                output=output,
                started_at=started_at,
                duration_seconds=duration,
                pid=proc.pid,
            )
        finally:
            self._active.pop(profile_id, None)
            self._cancel_events.pop(profile_id, None)

    async def _spawn(self, profile_id: str, command: Sequence[str]) -> asyncio.subprocess.Process:
        if not command:
            raise LaunchError("Empty worker command", profile_id=profile_id)

        env = None
        if self.env:
            env = {**os.environ, **self.env}

        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
                cwd=self.cwd,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            self.logger.error("Worker launch failed", profile_id=profile_id,
                              command=list(command), error=str(e))
            raise LaunchError(
                f"Cannot start worker for {profile_id}: {e}",
                profile_id=profile_id,
                command=command
            ) from e

    async def _supervise(
        self,
        profile_id: str,
        proc: asyncio.subprocess.Process,
        cancel_event: asyncio.Event,
        deadline: float,
        grace_period_seconds: Optional[float] = None
    ) -> Optional[FailureEvent]:
        """
        Wait for whichever comes first: exit, cancel request or deadline.

        Returns:
            None when the worker exited on its own (classified once its
            output is fully read), otherwise the Cancelled/Timeout event
        """
        wait_task = asyncio.ensure_future(proc.wait())
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {wait_task, cancel_task},
                timeout=deadline,
                return_when=asyncio.FIRST_COMPLETED
            )

            if wait_task in done:
                return None

            if cancel_task in done:
                returncode = await self.terminate(proc, profile_id, grace_period_seconds)
                return FailureEvent.cancelled(returncode)

            self.logger.warning(
                "Worker exceeded maximum runtime",
                profile_id=profile_id,
                pid=proc.pid,
                max_runtime_seconds=deadline
            )
            returncode = await self.terminate(proc, profile_id, grace_period_seconds)
            return FailureEvent.timeout(returncode)

        except asyncio.CancelledError:
            # Supervisor shutdown: never leave the worker behind
            await self.terminate(proc, profile_id, grace_period_seconds)
            raise
        finally:
            for task in (wait_task, cancel_task):
                if not task.done():
                    task.cancel()

    async def terminate(self, proc: asyncio.subprocess.Process,
                        profile_id: Optional[str] = None,
                        grace_period_seconds: Optional[float] = None) -> Optional[int]:
        """
        SIGTERM, wait the grace period, then SIGKILL.

        Returns:
            The worker's return code
        """
        if grace_period_seconds is None:
            grace_period_seconds = self.grace_period_seconds
        if proc.returncode is not None:
            return proc.returncode

        try:
            proc.terminate()
        except ProcessLookupError:
            return await proc.wait()

        try:
            return await asyncio.wait_for(proc.wait(), grace_period_seconds)
        except asyncio.TimeoutError:
            self.logger.warning(
                "Worker ignored SIGTERM, killing",
                profile_id=profile_id,
                pid=proc.pid,
                grace_period_seconds=grace_period_seconds
            )

        try:
            proc.kill()
        except ProcessLookupError:
            pass
        return await proc.wait()

    async def _read_output(self, proc: asyncio.subprocess.Process, buffer: bytearray) -> None:
        if proc.stdout is None:
            return
        while True:
            chunk = await proc.stdout.read(4096)
            if not chunk:
                return
            buffer.extend(chunk)
            overflow = len(buffer) - MAX_OUTPUT_BYTES
            if overflow > 0:
                del buffer[:overflow]

    async def _drain(self, reader: "asyncio.Future[None]", grace_period_seconds: float) -> None:
        # Grandchildren may hold the pipe open after the worker is gone
        try:
            await asyncio.wait_for(asyncio.shield(reader), grace_period_seconds + 1.0)
        except asyncio.TimeoutError:
            reader.cancel()
