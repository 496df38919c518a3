"""Per-tenant pair of token buckets sharing one wait condition."""

from __future__ import annotations

import enum
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from iolimit.core.cancellation import CancellationToken
from iolimit.core.errors import InvalidArgumentError
from iolimit.throttle.token_bucket import NSEC_PER_SEC, Clock, TokenBucket


class Domain(enum.Flag):
    """Accounting domains; combine with ``|`` to build a mask."""

    BANDWIDTH = 1
    IOPS = 2
    ALL = BANDWIDTH | IOPS

    @classmethod
    def parse(cls, value: "Domain | str") -> "Domain":
        """Resolve a single domain from an enum member or its name.

        Raises:
            InvalidArgumentError: If the value names no single domain.
        """
        if isinstance(value, cls):
            domain = value
        elif isinstance(value, str) and value.strip().upper() in ("BANDWIDTH", "IOPS"):
            domain = cls[value.strip().upper()]
        else:
            domain = None

        if domain not in (cls.BANDWIDTH, cls.IOPS):
            raise InvalidArgumentError(
                code="invalid_domain",
                message=f"Unknown throttle domain: {value!r}. Expected 'bandwidth' or 'iops'.",
                details={"field": "domain", "actual_value": str(value)},
            )
        return domain

    @property
    def label(self) -> str:
        return (self.name or "").lower()


class DualThrottle:
    """Bandwidth and iops buckets for one tenant.

    All mutation happens under ``_lock``; the condition built on it is shared
    by both domains so a waiter is woken whichever bucket changes. Timeout
    queries go through the buckets' lock-free path.

    Attributes:
        bandwidth: Byte-rate bucket.
        iops: Operation-rate bucket.
    """

    def __init__(self, *, clock: Clock = time.monotonic_ns) -> None:
        self._clock = clock
        # Reentrant so a cancellation callback can fire on the waiter's thread.
        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self.bandwidth = TokenBucket(clock=clock)
        self.iops = TokenBucket(clock=clock)
        self._dirty_exceeded = False

    def bucket(self, domain: Domain) -> TokenBucket:
        return self.bandwidth if domain is Domain.BANDWIDTH else self.iops

    def _buckets(self, domains: Domain) -> list[TokenBucket]:
        buckets = []
        if Domain.BANDWIDTH in domains:
            buckets.append(self.bandwidth)
        if Domain.IOPS in domains:
            buckets.append(self.iops)
        return buckets

    @property
    def enabled(self) -> bool:
        return self.bandwidth.enabled or self.iops.enabled

    @property
    def dirty_exceeded(self) -> bool:
        return self._dirty_exceeded

    def mark_dirty_exceeded(self) -> None:
        with self._lock:
            self._dirty_exceeded = True

    def clear_dirty_exceeded(self) -> None:
        with self._lock:
            self._dirty_exceeded = False

    def configure(self, domain: Domain, speed: int, burst: int, latency_ms: int) -> None:
        """Re-arm one domain and wake every waiter to re-evaluate."""
        with self._cond:
            self.bucket(domain).setup(speed, burst, latency_ms)
            self._cond.notify_all()

    def disable(self) -> None:
        """Turn both domains off and release all waiters."""
        with self._cond:
            self.bandwidth.setup(0, 0, 0)
            self.iops.setup(0, 0, 0)
            self._dirty_exceeded = False
            self._cond.notify_all()

    def limits(self, domain: Domain) -> tuple[int, int, int]:
        with self._lock:
            return self.bucket(domain).limits()

    @contextmanager
    def mutate(self) -> Iterator["DualThrottle"]:
        """Hold the tenant lock for bucket bookkeeping.

        Waiters are broadcast on exit only if the work pulled a published
        debt horizon back, so each of them re-checks its own remaining wait.
        Charges that leave the horizons where they were wake nobody.
        """
        with self._cond:
            before = self._horizons()
            yield self
            if any(after < prior for after, prior in zip(self._horizons(), before)):
                self._cond.notify_all()

    def _horizons(self) -> tuple[int, int]:
        return self.bandwidth.snapshot.clock, self.iops.snapshot.clock

    def timeout(self, domains: Domain = Domain.ALL) -> int:
        """Largest remaining wait (ns) across the masked domains; lock-free."""
        now = self._clock()
        return max(
            (bucket.timeout_remaining(now) for bucket in self._buckets(domains)),
            default=0,
        )

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def wait(
        self,
        domains: Domain = Domain.ALL,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """Block until the masked domains are out of debt.

        Wakes on timeout, reconfiguration or cancellation and recomputes the
        remaining wait every time.

        Args:
            domains: Domains whose debt must be waited out.
            cancel: Optional token; cancelling it ends the wait immediately.

        Returns:
            True if the wait was cut short by cancellation.
        """
        if cancel is not None and cancel.is_cancelled():
            return True
        if not self.timeout(domains):
            return False

        with self._cond:
            remove_callback = cancel.add_callback(self._wake) if cancel is not None else None
            try:
                timeout = self.timeout(domains)
                while timeout:
                    if cancel is not None and cancel.is_cancelled():
                        return True
                    self._cond.wait(timeout / NSEC_PER_SEC)
                    timeout = self.timeout(domains)
            finally:
                if remove_callback is not None:
                    remove_callback()
        return False

    def stats(self) -> dict[str, Any]:
        """Point-in-time accounting view of both domains."""
        with self._lock:
            return {
                "bandwidth": self.bandwidth.stats(),
                "iops": self.iops.stats(),
                "dirty_exceeded": self._dirty_exceeded,
            }
