"""Throttle exception types.

Administrative operations raise these errors; runtime hooks never do. A
tenant without a throttle, or one whose state could not be allocated, is
simply unthrottled on the I/O path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and callers."""

    code: str
    message: str
    hint: str
    tenant: str
    domain: str
    field: str
    min_value: int
    max_value: int
    actual_value: Any
    errors: list[dict[str, Any]]
    context: NotRequired[dict[str, Any]]


@dataclass
class ThrottleError(Exception):
    """Base error for throttle failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class InvalidArgumentError(ThrottleError):
    """Raised for an unknown domain or an out-of-range limit value."""


class NotFoundError(ThrottleError):
    """Raised when querying a tenant that has no throttle configured."""


class ResourceExhaustedError(ThrottleError):
    """Raised when a tenant's throttle state cannot be allocated."""
