"""Dirty-data counter interface.

The admission controller only reads these counters; the write path that
dirties and cleans buffers updates them. A shared-store backend can replace
the in-memory implementation behind the same interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractDirtyCounter(ABC):
    """Per-tenant count of buffered (dirty) bytes awaiting write-back."""

    @abstractmethod
    def add(self, delta: int) -> None:
        """Adjust the count; negative when buffers are cleaned."""
        raise NotImplementedError

    @abstractmethod
    def approximate(self) -> int:
        """Cheap, eventually consistent reading in bytes.

        May differ from :meth:`exact` by up to :attr:`slack`.
        """
        raise NotImplementedError

    @abstractmethod
    def exact(self) -> int:
        """Fully aggregated reading in bytes (never negative)."""
        raise NotImplementedError

    @property
    @abstractmethod
    def slack(self) -> int:
        """Upper bound on ``|approximate() - exact()|`` in bytes."""
        raise NotImplementedError
