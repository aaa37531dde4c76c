"""Errors raised by the recurring schedule engine."""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for schedule engine errors."""


class InvalidRuleError(SchedulingError, ValueError):
    """Recurrence rule is malformed or inconsistent with its inputs.

    Always surfaced to the end user: it describes bad input, not a
    transient condition.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RecurrenceDisabledError(SchedulingError):
    """A recurring rule was requested while recurring sessions are disabled."""


class ComputationBoundExceeded(SchedulingError):
    """Occurrence expansion hit its iteration cap before the window end.

    Not raised by the calculator itself. Callers that want strict
    behaviour call ``ExpansionResult.raise_if_truncated()``.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class RepositoryUnavailable(SchedulingError):
    """Existing sessions could not be loaded, so conflicts cannot be checked."""
