"""
Command line entry point for the profile runner.

    profile-runner run --pod podA
    profile-runner status [--profile k12im9s2]
    profile-runner reset --profile k12im9s2
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config.loader import ConfigLoader
from .errors import ConfigurationError, PersistenceError
from .logging.config import configure_logging, get_logger
from .persistence.state_store import RunnerStateStore
from .supervisor import Supervisor

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config-dir", type=Path, default=None,
                        help="Directory holding runner.yaml and pods.yaml (default: ./config)")
    common.add_argument("--json-logs", action="store_true",
                        help="Emit JSON log lines instead of console output")
    common.add_argument("--log-level", default=None,
                        help="Override the configured log level")

    parser = argparse.ArgumentParser(
        prog="profile-runner",
        description="Supervise browser-automation workers, one per profile."
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", parents=[common], help="Supervise every profile of a pod")
    run.add_argument("--pod", required=True, help="Pod name from pods.yaml")

    status = commands.add_parser("status", parents=[common], help="Print persisted runner records")
    status.add_argument("--profile", default=None, help="Only this profile")

    reset = commands.add_parser("reset", parents=[common], help="Clear a profile's streak and pause")
    reset.add_argument("--profile", required=True, help="Profile to reset")

    return parser


async def run_pod(supervisor: Supervisor, profiles: list[str]) -> None:
    """Supervise profiles until SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    supervisor.start(profiles)
    try:
        await stop.wait()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await supervisor.shutdown()


def cmd_run(loader: ConfigLoader, args: argparse.Namespace) -> int:
    profiles = loader.profiles_for_pod(args.pod)
    if not profiles:
        logger.warning("Pod has no profiles", pod=args.pod)
        return 0

    config = loader.load_runner_config()
    supervisor = Supervisor.from_config(config, loader)
    logger.info("Starting pod", pod=args.pod, profiles=profiles,
                db_path=config.store.db_path)
    asyncio.run(run_pod(supervisor, profiles))
    return 0


def cmd_status(loader: ConfigLoader, args: argparse.Namespace) -> int:
    config = loader.load_runner_config()
    store = RunnerStateStore(config.store.db_path, config.store.busy_timeout_seconds)

    if args.profile:
        records = [store.get(args.profile).to_record()]
    else:
        records = [state.to_record() for state in store.all_states()]

    print(json.dumps(records, indent=2))
    return 0


def cmd_reset(loader: ConfigLoader, args: argparse.Namespace) -> int:
    config = loader.load_runner_config(args.profile)
    supervisor = Supervisor.from_config(config, loader,
                                        busy_timeout_seconds=config.store.busy_timeout_seconds)
    supervisor.reset_profile(args.profile)
    print(json.dumps(supervisor.store.get(args.profile).to_record(), indent=2))
    return 0


COMMANDS = {
    "run": cmd_run,
    "status": cmd_status,
    "reset": cmd_reset,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    loader = ConfigLoader.create(args.config_dir)

    try:
        logging_params = loader.load_runner_config().logging
        configure_logging(
            level=args.log_level or logging_params.level,
            format_json=args.json_logs or logging_params.format_json,
        )
        return COMMANDS[args.command](loader, args)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2
    except PersistenceError as e:
        print(f"❌ State store error: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())
