"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any

from .defaults import RECOVERY_LADDER_LENGTH


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_recovery_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate error streak and recovery ladder parameters."""
        errors = []

        for name in ("max_error_streak", "max_recovery_steps"):
            if name in params:
                value = params[name]
                if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                    errors.append(ValidationError(
                        field=f"recovery.{name}",
                        message="Must be a positive integer",
                        value=value
                    ))

        steps = params.get("max_recovery_steps")
        if isinstance(steps, int) and not isinstance(steps, bool) and steps > RECOVERY_LADDER_LENGTH:
            errors.append(ValidationError(
                field="recovery.max_recovery_steps",
                message=f"Ladder has only {RECOVERY_LADDER_LENGTH} steps",
                value=steps
            ))

        if "cooldown_seconds" in params:
            value = params["cooldown_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="recovery.cooldown_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "retry_backoff_seconds" in params:
            value = params["retry_backoff_seconds"]
            if not _is_number(value) or value < 0:
                errors.append(ValidationError(
                    field="recovery.retry_backoff_seconds",
                    message="Must be a non-negative number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_launcher_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate worker launch parameters."""
        errors = []

        if "max_runtime_seconds" in params:
            value = params["max_runtime_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="launcher.max_runtime_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        if "grace_period_seconds" in params:
            value = params["grace_period_seconds"]
            if not _is_number(value) or value < 0:
                errors.append(ValidationError(
                    field="launcher.grace_period_seconds",
                    message="Must be a non-negative number",
                    value=value
                ))

        if "worker_command" in params:
            value = params["worker_command"]
            if (not isinstance(value, (list, tuple)) or not value
                    or not all(isinstance(part, str) for part in value)):
                errors.append(ValidationError(
                    field="launcher.worker_command",
                    message="Must be a non-empty list of strings",
                    value=value
                ))

        if "crash_markers" in params:
            value = params["crash_markers"]
            if not isinstance(value, (list, tuple)) or not all(isinstance(m, str) for m in value):
                errors.append(ValidationError(
                    field="launcher.crash_markers",
                    message="Must be a list of strings",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_supervisor_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate scheduling loop parameters."""
        errors = []

        for name in ("cycle_interval_seconds", "pause_poll_seconds"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0:
                    errors.append(ValidationError(
                        field=f"supervisor.{name}",
                        message="Must be a non-negative number",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_store_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate state store parameters."""
        errors = []

        for name in ("busy_timeout_seconds", "supervisor_busy_timeout_seconds"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0:
                    errors.append(ValidationError(
                        field=f"store.{name}",
                        message="Must be a non-negative number",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_action_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate recovery action wiring."""
        errors = []

        if "client" in params and params["client"] not in ("simulated", "command"):
            errors.append(ValidationError(
                field="actions.client",
                message="Must be one of: simulated, command",
                value=params["client"]
            ))

        commands = params.get("commands", {})
        if not isinstance(commands, dict):
            errors.append(ValidationError(
                field="actions.commands",
                message="Must be a mapping of action name to argv list",
                value=commands
            ))
        else:
            for action, argv in commands.items():
                if not isinstance(argv, list) or not argv or not all(isinstance(p, str) for p in argv):
                    errors.append(ValidationError(
                        field=f"actions.commands.{action}",
                        message="Must be a non-empty list of strings",
                        value=argv
                    ))

        return errors

    @classmethod
    def validate_config(cls, config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "recovery" in config:
            errors.extend(cls.validate_recovery_params(config["recovery"]))

        if "launcher" in config:
            errors.extend(cls.validate_launcher_params(config["launcher"]))

        if "supervisor" in config:
            errors.extend(cls.validate_supervisor_params(config["supervisor"]))

        if "store" in config:
            errors.extend(cls.validate_store_params(config["store"]))

        if "actions" in config:
            errors.extend(cls.validate_action_params(config["actions"]))

        return errors
