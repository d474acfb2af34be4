"""Tests for the recovery step ladder."""

import sys

import pytest

from profile_runner.errors import RecoveryStepError
from profile_runner.recovery.actions import CommandActionClient, SimulatedActionClient
from profile_runner.recovery.executor import RecoveryStepExecutor
from profile_runner.recovery.steps import DEFAULT_STEP_TYPES, default_ladder


class FailingClient(SimulatedActionClient):
    """Fails the configured actions."""

    def __init__(self, failing: set[str]):
        super().__init__()
        self.failing = failing

    async def perform(self, profile_id, action):
        if action in self.failing:
            raise RecoveryStepError(f"{action} failed", profile_id=profile_id, action=action)
        return await super().perform(profile_id, action)


@pytest.fixture
def client():
    return SimulatedActionClient()


@pytest.fixture
def executor(store, client):
    return RecoveryStepExecutor(store, default_ladder(client))


class TestLadder:
    """Test ladder construction."""

    def test_default_ladder_order(self, executor):
        assert executor.actions == [
            "navigate_home",
            "navigate_back",
            "refresh",
            "reopen_profile_session",
            "restart_profile_runtime",
        ]
        assert len(DEFAULT_STEP_TYPES) == 5

    def test_shorter_ladder(self, store, client):
        executor = RecoveryStepExecutor(store, default_ladder(client), max_recovery_steps=3)
        assert executor.actions == ["navigate_home", "navigate_back", "refresh"]

    @pytest.mark.parametrize("max_steps", [0, 6])
    def test_invalid_max_recovery_steps(self, store, client, max_steps):
        with pytest.raises(ValueError):
            RecoveryStepExecutor(store, default_ladder(client), max_recovery_steps=max_steps)

    @pytest.mark.parametrize("step", [0, 6, -1])
    def test_step_out_of_range(self, executor, step):
        with pytest.raises(ValueError, match="Invalid recovery step"):
            executor.step_for(step)


class TestExecute:
    """Test running individual steps."""

    @pytest.mark.asyncio
    async def test_execute_runs_exactly_that_step(self, executor, client, store):
        result = await executor.execute("k12im9s2", 3)

        assert result.success is True
        assert result.step == 3
        assert result.action == "refresh"
        assert client.performed == [("k12im9s2", "refresh")]
        assert store.get("k12im9s2").last_recovery_step == 3

    @pytest.mark.asyncio
    async def test_failing_action_reported_not_raised(self, store):
        executor = RecoveryStepExecutor(store, default_ladder(FailingClient({"navigate_back"})))

        result = await executor.execute("k12im9s2", 2)

        assert result.success is False
        assert "navigate_back failed" in result.error
        assert store.get("k12im9s2").last_recovery_step == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_reported(self, store):
        """Test any exception from an action becomes a failed result."""
        class BrokenClient(SimulatedActionClient):
            async def perform(self, profile_id, action):
                raise KeyError(action)

        executor = RecoveryStepExecutor(store, default_ladder(BrokenClient()))

        result = await executor.execute("k12im9s2", 1)

        assert result.success is False
        assert result.error


class TestRecoverCursor:
    """Test cursor advance and wrap-around."""

    @pytest.mark.asyncio
    async def test_steps_cycle_and_wrap(self, executor, client):
        """Test successive recoveries walk 1..5 then restart at 1."""
        steps = [(await executor.recover("k12im9s2")).step for _ in range(7)]

        assert steps == [1, 2, 3, 4, 5, 1, 2]
        assert [action for _, action in client.performed][:5] == executor.actions

    @pytest.mark.asyncio
    async def test_cursor_advances_after_failure(self, store):
        """Test a failed step still moves the ladder forward."""
        executor = RecoveryStepExecutor(store, default_ladder(FailingClient({"navigate_home"})))

        first = await executor.recover("k12im9s2")
        second = await executor.recover("k12im9s2")

        assert first.success is False
        assert second.step == 2
        assert second.success is True

    @pytest.mark.asyncio
    async def test_profiles_have_independent_cursors(self, executor):
        await executor.recover("k12im9s2")
        await executor.recover("k12im9s2")

        result = await executor.recover("k13ab001")

        assert result.step == 1

    def test_next_step_follows_stored_cursor(self, executor, store):
        store.update("k12im9s2", {"last_recovery_step": 5})
        assert executor.next_step("k12im9s2") == 1

        store.update("k12im9s2", {"last_recovery_step": 0})
        assert executor.next_step("k12im9s2") == 1

        store.update("k12im9s2", {"last_recovery_step": 4})
        assert executor.next_step("k12im9s2") == 5


class TestCommandActionClient:
    """Test the command-backed action client."""

    @pytest.mark.asyncio
    async def test_successful_command(self):
        client = CommandActionClient({
            "refresh": [sys.executable, "-c", "print('refreshed {profile_id}')"],
        })

        details = await client.perform("k12im9s2", "refresh")

        assert "refreshed k12im9s2" in details["output"]

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails(self):
        client = CommandActionClient({
            "refresh": [sys.executable, "-c", "import sys; sys.exit(3)"],
        })

        with pytest.raises(RecoveryStepError, match="exited with code 3"):
            await client.perform("k12im9s2", "refresh")

    @pytest.mark.asyncio
    async def test_missing_command_fails(self):
        client = CommandActionClient({})

        with pytest.raises(RecoveryStepError, match="No command configured"):
            await client.perform("k12im9s2", "refresh")

    @pytest.mark.asyncio
    async def test_timeout_fails(self):
        client = CommandActionClient(
            {"refresh": [sys.executable, "-c", "import time; time.sleep(30)"]},
            timeout_seconds=0.5,
        )

        with pytest.raises(RecoveryStepError, match="timed out"):
            await client.perform("k12im9s2", "refresh")


class TestProfileLadderLength:
    """Test a per-profile ladder length over the executor's own."""

    @pytest.mark.asyncio
    async def test_shorter_profile_ladder_wraps_early(self, executor):
        steps = [(await executor.recover("k12im9s2", max_recovery_steps=2)).step for _ in range(5)]

        assert steps == [1, 2, 1, 2, 1]

    @pytest.mark.asyncio
    async def test_longer_profile_ladder_reaches_later_steps(self, store, client):
        executor = RecoveryStepExecutor(store, default_ladder(client), max_recovery_steps=2)

        steps = [(await executor.recover("k12im9s2", max_recovery_steps=4)).step for _ in range(4)]

        assert steps == [1, 2, 3, 4]
        assert client.performed[-1] == ("k12im9s2", "reopen_profile_session")

    @pytest.mark.asyncio
    async def test_profile_ladder_longer_than_steps(self, executor):
        with pytest.raises(ValueError, match="max_recovery_steps"):
            await executor.recover("k12im9s2", max_recovery_steps=6)

    def test_cursor_beyond_profile_ladder_wraps(self, executor, store):
        store.update("k12im9s2", {"last_recovery_step": 4})

        assert executor.next_step("k12im9s2", max_recovery_steps=3) == 2
