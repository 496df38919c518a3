"""In-memory sharded dirty counter.

Notes:
- Each thread is pinned to one shard and accumulates a local delta there.
- A shard's delta is folded into the global value once its magnitude reaches
  ``batch_bytes``, so the global value lags by less than one batch per shard.
- Per-process only.
"""

from __future__ import annotations

import itertools
import logging
import threading
from contextlib import ExitStack

from iolimit.adapters.dirty.base import AbstractDirtyCounter

logger = logging.getLogger(__name__)


class ShardedDirtyCounter(AbstractDirtyCounter):
    """Dirty byte counter with per-shard batching.

    Args:
        batch_bytes: Shard delta that triggers a fold into the global value.
        shards: Number of shards threads are spread across.
        name: Label used in drift warnings (typically the tenant).

    Raises:
        ValueError: If batch_bytes or shards are invalid.
    """

    def __init__(self, *, batch_bytes: int, shards: int, name: str = "") -> None:
        if batch_bytes < 1:
            raise ValueError("batch_bytes must be >= 1")
        if shards < 1:
            raise ValueError("shards must be >= 1")

        self._batch = batch_bytes
        self._name = name
        self._global = 0
        self._global_lock = threading.Lock()
        self._shards = [0] * shards
        self._shard_locks = [threading.Lock() for _ in range(shards)]
        self._next_shard = itertools.count()
        self._local = threading.local()

    def _shard_index(self) -> int:
        index = getattr(self._local, "index", None)
        if index is None:
            index = next(self._next_shard) % len(self._shards)
            self._local.index = index
        return index

    def add(self, delta: int) -> None:
        index = self._shard_index()
        with self._shard_locks[index]:
            value = self._shards[index] + delta
            if abs(value) >= self._batch:
                with self._global_lock:
                    self._global += value
                value = 0
            self._shards[index] = value

    def approximate(self) -> int:
        return max(0, self._global)

    def exact(self) -> int:
        # Same lock order as add(): shards first, global last.
        with ExitStack() as stack:
            for lock in self._shard_locks:
                stack.enter_context(lock)
            with self._global_lock:
                total = self._global + sum(self._shards)

        if total < 0:
            logger.warning(
                "dirty_counter.drift",
                extra={"counter": self._name, "value": total},
            )
            return 0
        return total

    @property
    def slack(self) -> int:
        return self._batch * len(self._shards)
