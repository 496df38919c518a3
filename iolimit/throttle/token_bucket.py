"""Single-resource token bucket with a debt horizon.

Time is kept in integer nanoseconds from a monotonic clock and tokens are
integers, so long-running accounting never drifts: the fractional part of
generated tokens is carried in ``remainder`` (in token-nanoseconds).

Credit shortfall is not stored as a large negative balance. Instead ``charge``
moves ``clock`` into the future by the time it takes to generate the missing
tokens, and callers wait until the wall clock catches up with it. That wait is
capped by the latency bound.

Concurrency contract:
- ``setup``, ``charge`` and ``consume`` must be serialized by the owner
  (the tenant's lock in :class:`~iolimit.throttle.dual.DualThrottle`).
- ``timeout_remaining`` is lock-free. It reads ``_snapshot``, an immutable
  :class:`BucketSnapshot` replaced by a single reference assignment at the end
  of every mutation. A reader therefore sees ``speed``, ``clock`` and
  ``latency`` from the same publication, never a half-configured bucket.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

NSEC_PER_SEC = 1_000_000_000
NSEC_PER_MSEC = 1_000_000

Clock = Callable[[], int]


@dataclass(frozen=True)
class BucketSnapshot:
    """Published view of the fields the lock-free reader needs.

    Attributes:
        speed: Units per second; 0 when disabled.
        clock: Debt horizon in monotonic nanoseconds.
        latency: Maximum wait in nanoseconds.
    """

    speed: int
    clock: int
    latency: int


_DISABLED = BucketSnapshot(speed=0, clock=0, latency=0)


class TokenBucket:
    """Rate accounting state for one resource (bytes or operations).

    Args:
        clock: Monotonic time source returning integer nanoseconds.
    """

    def __init__(self, *, clock: Clock = time.monotonic_ns) -> None:
        self._now = clock
        self.speed = 0
        self.burst = 0
        self.latency = 0
        self.clock = clock()
        self.balance = 0
        self.remainder = 0
        self._snapshot = _DISABLED

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TokenBucket(speed={self.speed}, burst={self.burst}, "
            f"latency_ms={self.latency_ms}, balance={self.balance})"
        )

    @property
    def enabled(self) -> bool:
        return self._snapshot.speed != 0

    @property
    def snapshot(self) -> BucketSnapshot:
        return self._snapshot

    @property
    def latency_ms(self) -> int:
        return self.latency // NSEC_PER_MSEC

    def _publish(self) -> None:
        # Single reference store; must stay the last write of every mutation.
        self._snapshot = BucketSnapshot(
            speed=self.speed, clock=self.clock, latency=self.latency
        )

    def setup(self, speed: int, burst: int, latency_ms: int) -> None:
        """Configure the bucket and restart token generation from now.

        The balance and remainder carry over, so reconfiguring does not hand
        out free credit or forgive accumulated debt.

        Args:
            speed: Units per second (0 disables the bucket).
            burst: Credit allowed above the size of the pending charge.
            latency_ms: Maximum wait a single charge may impose.
        """
        self.clock = self._now()
        self.burst = burst
        self.latency = latency_ms * NSEC_PER_MSEC
        self.speed = speed
        self._publish()

    def charge(self, amount: int) -> None:
        """Make ``amount`` units available, pushing the debt horizon if needed.

        Never rejects. After the call ``balance`` covers ``amount`` unless the
        latency bound clipped the horizon; the caller is expected to wait out
        ``timeout_remaining()`` and to ``consume`` what it actually used.
        """
        if not self.speed:
            return

        now = self._now()
        ceiling = amount + self.burst

        if now > self.clock:
            acc = self.speed * (now - self.clock) + self.remainder
            tokens, remainder = divmod(acc, NSEC_PER_SEC)
            step = self.balance + tokens
            # Feed as much as the ceiling allows; never shrink existing credit.
            if step <= ceiling:
                self.balance = step
                self.remainder = remainder
            else:
                if self.balance < ceiling:
                    self.balance = ceiling
                self.remainder = 0
            self.clock = now

        if amount > self.balance:
            deficit = amount - self.balance
            delta = -(-deficit * NSEC_PER_SEC // self.speed)
            horizon = min(self.clock + delta, now + self.latency)
            if horizon > self.clock:
                acc = self.speed * (horizon - self.clock) + self.remainder
                tokens, self.remainder = divmod(acc, NSEC_PER_SEC)
                self.balance += tokens
                self.clock = horizon

        self._publish()

    def consume(self, amount: int) -> None:
        """Spend ``amount`` units from the balance (may go negative)."""
        if not self.speed:
            return
        self.balance -= amount

    def timeout_remaining(self, now: int | None = None) -> int:
        """Nanoseconds a caller must still wait; lock-free.

        Args:
            now: Current monotonic nanoseconds; read from the clock if omitted.

        Returns:
            0 when disabled or idle, else ``min(clock - now, latency)``.
        """
        snapshot = self._snapshot
        if not snapshot.speed:
            return 0
        if now is None:
            now = self._now()
        if snapshot.clock <= now:
            return 0
        return min(snapshot.clock - now, snapshot.latency)

    def balance_bytes(self) -> int:
        """Unused credit, clamped at zero.

        Read without the lock by the dirty-page path; the value is a hint.
        """
        return max(0, self.balance)

    def limits(self) -> tuple[int, int, int]:
        """Return ``(speed, burst, latency_ms)``."""
        return self.speed, self.burst, self.latency_ms

    def stats(self) -> dict[str, Any]:
        """Return the accounting state for diagnostics."""
        return {
            "speed": self.speed,
            "burst": self.burst,
            "latency_ms": self.latency_ms,
            "balance": self.balance,
            "remainder": self.remainder,
            "timeout_ns": self.timeout_remaining(),
        }
