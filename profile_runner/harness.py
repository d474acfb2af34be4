#!/usr/bin/env python3
"""
Failure injection harness.

A deterministic stand-in worker for exercising the supervisor's failure
paths. Every mode prints an explicit announcement before it terminates so
log-based assertions can tell which mode ran.

Usage:
    python -m profile_runner.harness --profile <id> --type <exit|timeout|error|hang>
        [--exitCode <int>] [--duration <ms>] [--delay <ms>]

Modes:
    exit     wait --delay (2s), exit with --exitCode (default 1)
    timeout  wait --duration (10s), exit 1
    error    wait --delay (2s), die on an unhandled exception
    hang     block until SIGINT/SIGTERM, then exit 0
"""

import argparse
import signal
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import NoReturn, Optional, Sequence


class FailureMode(str, Enum):
    """Closed set of simulated worker behaviours."""
    EXIT = "exit"
    TIMEOUT = "timeout"
    ERROR = "error"
    HANG = "hang"


@dataclass(frozen=True)
class HarnessConfig:
    """Parsed harness arguments."""
    profile: str
    mode: FailureMode
    exit_code: int = 1
    duration_ms: int = 10000
    delay_ms: int = 2000


class SimulatedWorkerError(RuntimeError):
    """Raised uncaught in error mode."""


class HarnessArgumentParser(argparse.ArgumentParser):
    """Usage errors print help and exit 1."""

    def error(self, message: str) -> NoReturn:
        print(f"❌ Error: {message}", file=sys.stderr, flush=True)
        self.print_help(sys.stderr)
        sys.exit(1)


def build_parser() -> HarnessArgumentParser:
    parser = HarnessArgumentParser(
        prog="profile_runner.harness",
        description="Simulate worker failures to test the supervisor's recovery system.",
        epilog=(
            "Examples:\n"
            "  python -m profile_runner.harness --profile k12im9s2 --type exit --exitCode 1\n"
            "  python -m profile_runner.harness --profile k12im9s2 --type timeout --duration 5000\n"
            "  python -m profile_runner.harness --profile k12im9s2 --type error\n"
            "  python -m profile_runner.harness --profile k12im9s2 --type hang"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--profile", required=True, help="Profile ID (required)")
    parser.add_argument(
        "--type", dest="mode", required=True,
        choices=[mode.value for mode in FailureMode],
        help="Failure type (required)"
    )
    parser.add_argument("--exitCode", dest="exit_code", type=int, default=1,
                        help="Exit code for 'exit' type (default: 1)")
    parser.add_argument("--duration", dest="duration_ms", type=int, default=10000,
                        help="Duration in ms for 'timeout' type (default: 10000)")
    parser.add_argument("--delay", dest="delay_ms", type=int, default=2000,
                        help="Wait in ms before 'exit' and 'error' fire (default: 2000)")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> HarnessConfig:
    args = build_parser().parse_args(argv)
    return HarnessConfig(
        profile=args.profile,
        mode=FailureMode(args.mode),
        exit_code=args.exit_code,
        duration_ms=args.duration_ms,
        delay_ms=args.delay_ms,
    )


def _announce(message: str) -> None:
    print(message, flush=True)


def _handle_shutdown(signum: int, _frame) -> NoReturn:
    _announce(f"\n🛑 Received {signal.Signals(signum).name}, shutting down...")
    sys.exit(0)


def install_signal_handlers() -> None:
    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)


def simulate_failure(config: HarnessConfig) -> int:
    """Run the selected mode; returns the exit code for modes that exit."""
    _announce(f"🧪 Simulating failure for profile: {config.profile}")
    _announce(f"📋 Failure type: {config.mode.value}")

    if config.mode == FailureMode.EXIT:
        _announce(f"⏳ Running for {config.delay_ms}ms, then exiting with code {config.exit_code}...")
        time.sleep(config.delay_ms / 1000)
        _announce(f"❌ Exiting with code {config.exit_code}")
        return config.exit_code

    if config.mode == FailureMode.TIMEOUT:
        _announce(f"⏳ Running for {config.duration_ms}ms, then exiting with code 1...")
        time.sleep(config.duration_ms / 1000)
        _announce("❌ Timeout reached, exiting with code 1")
        return 1

    if config.mode == FailureMode.ERROR:
        _announce(f"⏳ Running for {config.delay_ms}ms, then throwing error...")
        time.sleep(config.delay_ms / 1000)
        _announce("❌ Throwing unhandled error")
        raise SimulatedWorkerError("Simulated unhandled error for testing recovery")

    _announce("⏳ Hanging indefinitely (send SIGINT or SIGTERM to stop)...")
    while True:
        time.sleep(3600)


def main(argv: Optional[Sequence[str]] = None) -> int:
    install_signal_handlers()
    config = parse_args(argv)
    return simulate_failure(config)


if __name__ == "__main__":
    sys.exit(main())
