"""Tenant registry: owns each tenant's throttle and serves admin operations.

The registry is the only owner of :class:`DualThrottle` instances. Throttles
hold no reference back to it; the admission path looks them up by tenant on
every call and treats a missing entry as "unthrottled".
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from pydantic import ValidationError

from iolimit.core.config import ThrottleSettings, settings
from iolimit.core.errors import InvalidArgumentError, NotFoundError, ResourceExhaustedError
from iolimit.schemas.limits import LimitSpec, LimitState
from iolimit.throttle.dual import Domain, DualThrottle
from iolimit.throttle.token_bucket import Clock

logger = logging.getLogger(__name__)


ThrottleFactory = Callable[..., DualThrottle]


def _validate_limits(
    speed: int,
    burst: int,
    latency_ms: int,
    ceilings: ThrottleSettings,
) -> LimitSpec:
    """Range-check limit values before they reach the engine.

    Args:
        speed: Units per second.
        burst: Burst credit.
        latency_ms: Latency bound in milliseconds.
        ceilings: Administrative maxima from settings.

    Returns:
        LimitSpec: Validated values.

    Raises:
        InvalidArgumentError: If any value is out of range.
    """
    try:
        spec = LimitSpec(speed=speed, burst=burst, latency_ms=latency_ms)
    except ValidationError as exc:
        raise InvalidArgumentError(
            code="invalid_limit",
            message="Limit values are out of range.",
            details={
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ]
            },
        ) from exc

    for field, value, maximum in (
        ("speed", spec.speed, ceilings.max_speed),
        ("burst", spec.burst, ceilings.max_burst),
        ("latency_ms", spec.latency_ms, ceilings.max_latency_ms),
    ):
        if value > maximum:
            raise InvalidArgumentError(
                code="invalid_limit",
                message=f"{field} exceeds the configured maximum of {maximum}.",
                details={"field": field, "max_value": maximum, "actual_value": value},
            )
    return spec


class TenantRegistry:
    """Thread-safe map of tenant → :class:`DualThrottle`.

    Args:
        clock: Monotonic nanosecond clock handed to every throttle.
        ceilings: Administrative maxima; defaults to global settings.
        throttle_factory: Constructor for new throttles.
    """

    def __init__(
        self,
        *,
        clock: Clock = time.monotonic_ns,
        ceilings: ThrottleSettings | None = None,
        throttle_factory: ThrottleFactory = DualThrottle,
    ) -> None:
        self._clock = clock
        self._ceilings = ceilings or settings.throttle
        self._factory = throttle_factory
        self._lock = threading.Lock()
        # Serializes set/update/remove; taken before ``_lock``, never after.
        self._admin_lock = threading.RLock()
        self._throttles: dict[str, DualThrottle] = {}

    def __contains__(self, tenant: object) -> bool:
        return tenant in self._throttles

    def __len__(self) -> int:
        return len(self._throttles)

    def get(self, tenant: str) -> DualThrottle | None:
        """Return the tenant's throttle, or None when it has none."""
        return self._throttles.get(tenant)

    def tenants(self) -> list[str]:
        with self._lock:
            return sorted(self._throttles)

    def _get_or_create(self, tenant: str) -> DualThrottle:
        throttle = self._throttles.get(tenant)
        if throttle is not None:
            return throttle

        try:
            candidate = self._factory(clock=self._clock)
        except MemoryError as exc:
            logger.error("registry.allocation_failed", extra={"tenant": tenant})
            raise ResourceExhaustedError(
                code="throttle_allocation_failed",
                message=f"Could not allocate throttle state for tenant {tenant!r}.",
                details={"tenant": tenant},
            ) from exc

        # Another thread may have won the race; keep its instance.
        with self._lock:
            throttle = self._throttles.setdefault(tenant, candidate)

        if throttle is candidate:
            logger.info("registry.created", extra={"tenant": tenant})
        return throttle

    def set_limit(
        self,
        tenant: str,
        domain: Domain | str,
        speed: int,
        burst: int = 0,
        latency_ms: int = 0,
    ) -> LimitState:
        """Configure one domain for a tenant, creating its throttle lazily.

        Every waiter on the tenant is woken to re-evaluate against the new
        limits.

        Returns:
            LimitState: The limits now in effect.

        Raises:
            InvalidArgumentError: Unknown domain or out-of-range values.
            ResourceExhaustedError: Throttle state could not be allocated.
        """
        resolved = Domain.parse(domain)
        spec = _validate_limits(speed, burst, latency_ms, self._ceilings)
        with self._admin_lock:
            throttle = self._get_or_create(tenant)
            throttle.configure(resolved, spec.speed, spec.burst, spec.latency_ms)

        logger.info(
            "throttle.configured",
            extra={
                "tenant": tenant,
                "domain": resolved.label,
                "speed": spec.speed,
                "burst": spec.burst,
                "latency_ms": spec.latency_ms,
            },
        )
        return LimitState(tenant=tenant, domain=resolved.label, **spec.model_dump())

    def get_limit(self, tenant: str, domain: Domain | str) -> LimitState:
        """Return the limits configured for one domain.

        Raises:
            InvalidArgumentError: Unknown domain.
            NotFoundError: The tenant has no throttle.
        """
        resolved = Domain.parse(domain)
        throttle = self._throttles.get(tenant)
        if throttle is None:
            raise NotFoundError(
                code="throttle_not_found",
                message=f"No throttle configured for tenant {tenant!r}.",
                details={"tenant": tenant, "domain": resolved.label},
            )

        speed, burst, latency_ms = throttle.limits(resolved)
        return LimitState(
            tenant=tenant,
            domain=resolved.label,
            speed=speed,
            burst=burst,
            latency_ms=latency_ms,
        )

    def update_limit(
        self,
        tenant: str,
        domain: Domain | str,
        *,
        speed: int | None = None,
        burst: int | None = None,
        latency_ms: int | None = None,
    ) -> LimitState:
        """Change individual limit fields, keeping the others.

        A tenant without a throttle starts from all-zero limits.
        """
        resolved = Domain.parse(domain)
        with self._admin_lock:
            throttle = self._throttles.get(tenant)
            current = throttle.limits(resolved) if throttle is not None else (0, 0, 0)

            return self.set_limit(
                tenant,
                resolved,
                speed=current[0] if speed is None else speed,
                burst=current[1] if burst is None else burst,
                latency_ms=current[2] if latency_ms is None else latency_ms,
            )

    def remove(self, tenant: str) -> bool:
        """Drop a tenant's throttle, releasing anyone blocked on it.

        Returns:
            True if a throttle was removed.
        """
        with self._admin_lock:
            with self._lock:
                throttle = self._throttles.pop(tenant, None)
            if throttle is None:
                return False
            throttle.disable()

        logger.info("registry.removed", extra={"tenant": tenant})
        return True
