"""Tests for the worker subprocess launcher."""

import asyncio
import sys

import pytest

from profile_runner.errors import AlreadyRunningError, LaunchError
from profile_runner.launcher.worker_launcher import WorkerLauncher, classify_exit
from profile_runner.state.models import FailureKind


@pytest.fixture
def launcher(worker_env):
    return WorkerLauncher(max_runtime_seconds=30, grace_period_seconds=2, env=worker_env)


class TestClassifyExit:
    """Test exit classification."""

    def test_zero_is_success(self):
        assert classify_exit(0, "").kind == FailureKind.SUCCESS

    def test_non_zero_exit(self):
        event = classify_exit(7, "❌ Exiting with code 7")
        assert event.kind == FailureKind.NON_ZERO_EXIT
        assert event.exit_code == 7

    def test_traceback_is_crash(self):
        output = "Traceback (most recent call last):\n  File ...\nRuntimeError: boom"
        assert classify_exit(1, output).kind == FailureKind.CRASH

    def test_signal_death_is_crash(self):
        assert classify_exit(-11, "").kind == FailureKind.CRASH

    def test_custom_crash_markers(self):
        event = classify_exit(1, "FATAL: out of memory", crash_markers=("FATAL:",))
        assert event.kind == FailureKind.CRASH


class TestLaunchOutcomes:
    """Test real worker runs through the failure harness."""

    @pytest.mark.asyncio
    async def test_successful_worker(self, launcher, harness):
        outcome = await launcher.launch(
            "k12im9s2", harness("exit", "--exitCode", "0", "--delay", "100", profile_id="k12im9s2")
        )

        assert outcome.event.kind == FailureKind.SUCCESS
        assert outcome.profile_id == "k12im9s2"
        assert "Simulating failure for profile: k12im9s2" in outcome.output
        assert outcome.pid is not None

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, launcher, harness):
        outcome = await launcher.launch(
            "k12im9s2", harness("exit", "--exitCode", "7", "--delay", "100", profile_id="k12im9s2")
        )

        assert outcome.event.kind == FailureKind.NON_ZERO_EXIT
        assert outcome.event.exit_code == 7
        assert "❌ Exiting with code 7" in outcome.output

    @pytest.mark.asyncio
    async def test_unhandled_error_is_crash(self, launcher, harness):
        outcome = await launcher.launch(
            "k12im9s2", harness("error", "--delay", "100", profile_id="k12im9s2")
        )

        assert outcome.event.kind == FailureKind.CRASH
        assert "❌ Throwing unhandled error" in outcome.output
        assert "Traceback (most recent call last):" in outcome.output

    @pytest.mark.asyncio
    async def test_hang_times_out(self, launcher, harness):
        outcome = await launcher.launch(
            "k12im9s2", harness("hang", profile_id="k12im9s2"), max_runtime_seconds=1
        )

        assert outcome.event.kind == FailureKind.TIMEOUT
        assert outcome.duration_seconds >= 1
        assert not launcher.is_running("k12im9s2")

    @pytest.mark.asyncio
    async def test_sigterm_ignored_then_killed(self, worker_env):
        """Test a worker ignoring SIGTERM is killed after the grace period."""
        launcher = WorkerLauncher(max_runtime_seconds=1, grace_period_seconds=0.5, env=worker_env)
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(60)\n"
        )

        outcome = await launcher.launch("k12im9s2", [sys.executable, "-c", script])

        assert outcome.event.kind == FailureKind.TIMEOUT
        assert outcome.event.exit_code is not None and outcome.event.exit_code < 0
        assert outcome.duration_seconds < 10

    @pytest.mark.asyncio
    async def test_launch_grace_period_override(self, worker_env):
        """Test a per-launch grace period wins over the launcher's own."""
        launcher = WorkerLauncher(max_runtime_seconds=1, grace_period_seconds=60, env=worker_env)
        script = (
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "time.sleep(60)\n"
        )

        outcome = await launcher.launch(
            "k12im9s2", [sys.executable, "-c", script], grace_period_seconds=0.5
        )

        assert outcome.event.kind == FailureKind.TIMEOUT
        assert outcome.duration_seconds < 10

    @pytest.mark.asyncio
    async def test_launch_crash_markers_override(self, launcher, harness):
        """Test a traceback without a matching marker is an ordinary exit."""
        outcome = await launcher.launch(
            "k12im9s2", harness("error", "--delay", "100", profile_id="k12im9s2"),
            crash_markers=()
        )

        assert outcome.event.kind == FailureKind.NON_ZERO_EXIT
        assert outcome.event.exit_code == 1


class TestLaunchControl:
    """Test single-instance, cancel and launch errors."""

    @pytest.mark.asyncio
    async def test_second_launch_rejected(self, launcher, harness):
        first = asyncio.create_task(
            launcher.launch("k12im9s2", harness("hang", profile_id="k12im9s2"))
        )
        await asyncio.sleep(1.0)

        with pytest.raises(AlreadyRunningError):
            await launcher.launch("k12im9s2", harness("hang", profile_id="k12im9s2"))

        assert launcher.cancel("k12im9s2") is True
        outcome = await first
        assert outcome.event.kind == FailureKind.CANCELLED

    @pytest.mark.asyncio
    async def test_different_profiles_run_concurrently(self, launcher, harness):
        outcomes = await asyncio.gather(
            launcher.launch("k12im9s2", harness("exit", "--delay", "300", profile_id="k12im9s2")),
            launcher.launch("k12im9s3", harness("exit", "--delay", "300", profile_id="k12im9s3")),
        )

        assert [o.profile_id for o in outcomes] == ["k12im9s2", "k12im9s3"]

    @pytest.mark.asyncio
    async def test_cancel_hanging_worker(self, launcher, harness):
        task = asyncio.create_task(
            launcher.launch("k12im9s2", harness("hang", profile_id="k12im9s2"))
        )
        await asyncio.sleep(1.0)
        assert launcher.active_profiles() == ["k12im9s2"]

        launcher.cancel_all()
        outcome = await task

        assert outcome.event.kind == FailureKind.CANCELLED
        assert outcome.event.exit_code == 0
        assert "Received SIGTERM" in outcome.output
        assert launcher.active_profiles() == []

    def test_cancel_without_worker(self, launcher):
        assert launcher.cancel("k12im9s2") is False

    @pytest.mark.asyncio
    async def test_task_cancellation_terminates_worker(self, launcher, harness):
        """Test cancelling the awaiting task still stops the subprocess."""
        task = asyncio.create_task(
            launcher.launch("k12im9s2", harness("hang", profile_id="k12im9s2"))
        )
        await asyncio.sleep(1.0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not launcher.is_running("k12im9s2")

    @pytest.mark.asyncio
    async def test_missing_binary_is_launch_error(self, launcher):
        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch("k12im9s2", ["/nonexistent/worker-binary"])

        assert exc_info.value.profile_id == "k12im9s2"
        assert not launcher.is_running("k12im9s2")

    @pytest.mark.asyncio
    async def test_empty_command_is_launch_error(self, launcher):
        with pytest.raises(LaunchError):
            await launcher.launch("k12im9s2", [])

        assert not launcher.is_running("k12im9s2")
