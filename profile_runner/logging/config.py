"""
Centralized logging configuration for the profile runner.

This module provides standardized logging configuration using structlog
for all components. All logging throughout the system should use this
configuration to ensure consistent formatting and structured logging.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_supervisor_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for supervisor scheduling decisions and phase changes.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger bound with the supervisor subsystem context
    """
    logger = get_logger(name)

    return logger.bind(
        subsystem="supervisor",
        audit_trail=True
    )


def get_recovery_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for recovery ladder activity.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger bound with the recovery subsystem context
    """
    logger = get_logger(name)

    return logger.bind(
        subsystem="recovery",
        audit_trail=True
    )


def log_state_transition(
    logger: FilteringBoundLogger,
    profile_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a profile phase transition with standardized format.

    Args:
        logger: Structlog logger instance
        profile_id: Profile whose phase changed
        from_state: Previous phase
        to_state: New phase
        trigger: What caused the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        profile_id=profile_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("state_transition")


def log_recovery_step(
    logger: FilteringBoundLogger,
    profile_id: str,
    step: int,
    action: str,
    success: bool,
    error: Optional[str] = None
) -> None:
    """
    Log the outcome of a single recovery step.

    Args:
        logger: Structlog logger instance
        profile_id: Profile being recovered
        step: 1-based ladder position that ran
        action: Name of the remedial action
        success: Whether the action completed
        error: Error message when the action failed
    """
    bound_logger = logger.bind(
        profile_id=profile_id,
        step=step,
        action=action,
        step_result="OK" if success else "FAILED",
    )

    if success:
        bound_logger.info("recovery_step")
    else:
        bound_logger.warning("recovery_step", error=error)
