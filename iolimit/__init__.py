"""Per-tenant I/O rate limiting (bandwidth and iops)."""

from iolimit.core.cancellation import CancellationToken
from iolimit.core.errors import (
    InvalidArgumentError,
    NotFoundError,
    ResourceExhaustedError,
    ThrottleError,
)
from iolimit.core.logging import configure_logging
from iolimit.services.admission import AdmissionController, AdmissionResult
from iolimit.services.registry import TenantRegistry
from iolimit.throttle import Domain, DualThrottle, TokenBucket

__all__ = [
    "AdmissionController",
    "AdmissionResult",
    "CancellationToken",
    "Domain",
    "DualThrottle",
    "InvalidArgumentError",
    "NotFoundError",
    "ResourceExhaustedError",
    "TenantRegistry",
    "ThrottleError",
    "TokenBucket",
    "configure_logging",
]
