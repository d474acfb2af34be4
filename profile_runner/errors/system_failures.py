"""
System failure error classifications.

These exceptions represent faults outside any single worker run that
require operator attention.
"""

from typing import Any, Optional

from .launch import SupervisorError


class SystemFailureError(SupervisorError):
    """Base class for unrecoverable system failures."""


class PersistenceError(SystemFailureError):
    """State store or event log is unavailable."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
        self.target = target


class ConfigurationError(SystemFailureError):
    """Runner configuration failed validation."""

    def __init__(self, message: str, errors: Optional[list[Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
