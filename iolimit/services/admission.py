"""Admission controller: the hooks the I/O dispatch layer calls.

Workflow for a typical write:
1. ``pre_admit`` before issuing work; blocks while the tenant is in debt.
2. ``charge_op`` once per operation and ``account`` once the byte count is
   known; both only book capacity, later callers pay the wait.
3. ``balance_dirty`` from the buffered-write path, so that heavy dirtying
   pre-charges the bandwidth bucket before write-back floods the device.

Tenants without a throttle (or with both domains disabled) take a fast path
and are never delayed; none of the hooks raise for them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from iolimit.adapters.dirty.base import AbstractDirtyCounter
from iolimit.core.cancellation import CancellationToken
from iolimit.services.registry import TenantRegistry
from iolimit.throttle.dual import Domain, DualThrottle
from iolimit.throttle.token_bucket import NSEC_PER_SEC

logger = logging.getLogger(__name__)


DirtyCounterLookup = Callable[[str], AbstractDirtyCounter | None]


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of a blocking admission.

    The caller always proceeds; ``cancelled`` only tells it that the wait
    was cut short and the operation goes through unthrottled.

    Attributes:
        tenant: Tenant the request was admitted for.
        cancelled: Whether cancellation ended the wait.
        timeout_seconds: Wait computed at entry.
        waited_seconds: Time actually spent blocked.
    """

    tenant: str
    cancelled: bool = False
    timeout_seconds: float = 0.0
    waited_seconds: float = 0.0


class AdmissionController:
    """Runtime admission and accounting on top of :class:`TenantRegistry`.

    Args:
        registry: Owner of the per-tenant throttles.
        dirty_counters: Lookup returning a tenant's dirty counter, or None
            when the tenant does no buffered writes.
    """

    def __init__(
        self,
        registry: TenantRegistry,
        *,
        dirty_counters: DirtyCounterLookup | None = None,
    ) -> None:
        self._registry = registry
        self._dirty_counters = dirty_counters

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    def _throttle(self, tenant: str) -> DualThrottle | None:
        throttle = self._registry.get(tenant)
        if throttle is None or not throttle.enabled:
            return None
        return throttle

    def pre_admit(
        self,
        tenant: str,
        *,
        domains: Domain = Domain.ALL,
        cancel: CancellationToken | None = None,
        exempt: bool = False,
    ) -> AdmissionResult:
        """Block until the tenant may issue I/O.

        Args:
            tenant: Tenant issuing the I/O.
            domains: Domains whose debt must be waited out.
            cancel: Token that aborts the wait; the caller then proceeds.
            exempt: Skip waiting entirely (memory-pressure write-back).

        Returns:
            AdmissionResult describing the wait.
        """
        throttle = self._throttle(tenant)
        if throttle is None or exempt:
            return AdmissionResult(tenant=tenant)

        timeout = throttle.timeout(domains)
        if not timeout:
            return AdmissionResult(tenant=tenant)

        timeout_s = timeout / NSEC_PER_SEC
        logger.debug(
            "admission.wait",
            extra={"tenant": tenant, "domains": str(domains), "timeout_s": timeout_s},
        )

        started = time.monotonic()
        cancelled = throttle.wait(domains, cancel)
        waited = time.monotonic() - started

        if cancelled:
            logger.info(
                "admission.cancelled",
                extra={"tenant": tenant, "timeout_s": timeout_s, "waited_s": waited},
            )

        return AdmissionResult(
            tenant=tenant,
            cancelled=cancelled,
            timeout_seconds=timeout_s,
            waited_seconds=waited,
        )

    def congestion_check(self, tenant: str, *, domains: Domain = Domain.ALL) -> bool:
        """Return True when a request would have to wait; never sleeps."""
        throttle = self._throttle(tenant)
        if throttle is None:
            return False
        return throttle.timeout(domains) > 0

    def charge_bandwidth(self, tenant: str, nbytes: int, *, add_debt: bool = False) -> None:
        """Book ``nbytes`` against the tenant's bandwidth bucket.

        Args:
            tenant: Tenant that moved the bytes.
            nbytes: Byte count; a negative value is clamped to zero.
            add_debt: When False the bytes are also spent from the balance,
                so only future callers feel them. When True the bucket is
                pre-charged and the balance is left to cover upcoming I/O.
        """
        throttle = self._throttle(tenant)
        if throttle is None or not throttle.bandwidth.enabled:
            return

        if nbytes < 0:
            logger.warning("throttle.drift", extra={"tenant": tenant, "nbytes": nbytes})
            nbytes = 0

        with throttle.mutate():
            bucket = throttle.bandwidth
            # Re-check under the lock; a concurrent reconfigure may have disabled it.
            if bucket.enabled:
                bucket.charge(nbytes)
                if not add_debt:
                    bucket.consume(nbytes)

    def account(self, tenant: str, nbytes: int) -> None:
        """Post-hoc accounting of completed I/O; adds no wait for this caller."""
        self.charge_bandwidth(tenant, nbytes, add_debt=False)

    def charge_op(self, tenant: str, *, exempt: bool = False) -> None:
        """Book one operation against the tenant's iops bucket.

        Args:
            tenant: Tenant issuing the operation.
            exempt: Writers that must never be fully blocked leave the last
                credit in place for everyone else.
        """
        throttle = self._throttle(tenant)
        if throttle is None or not throttle.iops.enabled:
            return

        with throttle.mutate():
            bucket = throttle.iops
            if bucket.enabled:
                bucket.charge(1)
                if bucket.balance > 1 or not exempt:
                    bucket.consume(1)

    def balance_dirty(self, tenant: str, pending_bytes: int) -> bool:
        """Pre-charge bandwidth when buffered data outgrows the tenant's credit.

        The cheap approximate counter filters out the common case; only near
        the threshold is the exact aggregate read.

        Args:
            tenant: Tenant dirtying buffers.
            pending_bytes: Bytes about to be dirtied by the caller.

        Returns:
            True if the bucket was pre-charged and throttling marked active.
        """
        if self._dirty_counters is None:
            return False

        throttle = self._throttle(tenant)
        if throttle is None or not throttle.bandwidth.enabled:
            return False

        counter = self._dirty_counters(tenant)
        if counter is None:
            return False

        bucket = throttle.bandwidth
        # Unlocked read; it is only a hint.
        credit = bucket.balance_bytes()
        dirty = counter.approximate() + pending_bytes
        if dirty + counter.slack < credit:
            return False

        dirty = counter.exact() + pending_bytes
        if dirty < credit:
            return False

        with throttle.mutate():
            if not bucket.enabled:
                return False
            bucket.charge(dirty)
            throttle.mark_dirty_exceeded()

        logger.info(
            "throttle.dirty_exceeded",
            extra={"tenant": tenant, "dirty_bytes": dirty, "credit_bytes": credit},
        )
        return True

    def is_dirty_exceeded(self, tenant: str) -> bool:
        throttle = self._registry.get(tenant)
        return throttle is not None and throttle.dirty_exceeded

    def clear_dirty_exceeded(self, tenant: str) -> None:
        throttle = self._registry.get(tenant)
        if throttle is not None:
            throttle.clear_dirty_exceeded()
