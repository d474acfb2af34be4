#!/usr/bin/env python3
"""
Failure Drill Demo - Profile Runner

This script drives one profile through a scripted series of worker
failures using the failure injection harness, showing how to:
- Classify exits, crashes and timeouts
- Walk the recovery ladder one step per failed cycle
- Trip the circuit breaker on the fourth consecutive failure
- Resume after the cooldown and reset on success

Run: python examples/failure_drill_demo.py
"""

import asyncio
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from profile_runner.config.defaults import SupervisorParams
from profile_runner.launcher.worker_launcher import WorkerLauncher
from profile_runner.logging.config import configure_logging
from profile_runner.persistence.event_log import RunnerEventLog
from profile_runner.persistence.state_store import RunnerStateStore
from profile_runner.recovery.actions import SimulatedActionClient
from profile_runner.recovery.executor import RecoveryStepExecutor
from profile_runner.recovery.steps import default_ladder
from profile_runner.state.circuit_breaker import CircuitBreaker
from profile_runner.supervisor import Supervisor

PROFILE_ID = "k12im9s2"

# (label, harness arguments)
DRILL = [
    ("non-zero exit", ["--type", "exit", "--exitCode", "7", "--delay", "200"]),
    ("unhandled error", ["--type", "error", "--delay", "200"]),
    ("hang past deadline", ["--type", "hang"]),
    ("non-zero exit", ["--type", "exit", "--exitCode", "1", "--delay", "200"]),
    ("paused, not launched", ["--type", "exit", "--exitCode", "0"]),
]


class DemoClock:
    """Wall clock the demo can fast-forward."""

    def __init__(self):
        self.offset = timedelta()

    def __call__(self) -> datetime:
        return datetime.now(timezone.utc) + self.offset


def build_supervisor(db_path: str, clock: DemoClock, harness_args: dict) -> Supervisor:
    store = RunnerStateStore(db_path)
    breaker = CircuitBreaker(store, max_error_streak=3, cooldown_seconds=86400, clock=clock)
    recovery = RecoveryStepExecutor(store, default_ladder(SimulatedActionClient(0.1)))

    def command_for(profile_id):
        return [sys.executable, "-m", "profile_runner.harness",
                "--profile", profile_id, *harness_args["current"]]

    return Supervisor(
        store=store,
        launcher=WorkerLauncher(max_runtime_seconds=2, grace_period_seconds=1),
        breaker=breaker,
        recovery=recovery,
        event_log=RunnerEventLog(db_path),
        params=SupervisorParams(cycle_interval_seconds=0, pause_poll_seconds=0),
        retry_backoff_seconds=0,
        command_for=command_for,
    )


def print_record(supervisor: Supervisor) -> None:
    record = supervisor.store.get(PROFILE_ID).to_record()
    print(f"   errorStreak={record['errorStreak']} "
          f"lastRecoveryStep={record['lastRecoveryStep']} "
          f"paused={record['flags']['paused']} pausedUntil={record['pausedUntil']}")


async def run_drill() -> None:
    print("🧪 FAILURE DRILL")
    print("=" * 50)

    clock = DemoClock()
    harness_args = {"current": []}

    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = str(Path(temp_dir) / "drill.db")
        supervisor = build_supervisor(db_path, clock, harness_args)

        for i, (label, args) in enumerate(DRILL, 1):
            harness_args["current"] = args
            print(f"\n{i}. {label}")
            result = await supervisor.run_cycle(PROFILE_ID)
            step = f" step {result.recovery_step} ({result.recovery_action})" if result.recovery_step else ""
            print(f"   → {result.action.value} [{result.event or 'not launched'}]{step}")
            print_record(supervisor)

        print("\n6. Fast-forward past the cooldown and succeed")
        clock.offset = timedelta(days=1, seconds=1)
        harness_args["current"] = ["--type", "exit", "--exitCode", "0", "--delay", "200"]
        result = await supervisor.run_cycle(PROFILE_ID)
        print(f"   → {result.action.value} [{result.event}]")
        print_record(supervisor)

        print("\n📜 Event log:")
        for event in supervisor.event_log.events_for(PROFILE_ID):
            print(f"   {event.event:<8} {event.outcome or '':<14} {event.params}")


def main():
    configure_logging(level="WARNING")
    asyncio.run(run_drill())
    print("\n✅ Drill complete")


if __name__ == "__main__":
    main()
