"""Cooperative cancellation for blocking admission.

A :class:`CancellationToken` is threaded through ``pre_admit``. Besides the
usual flag, it keeps wake callbacks: a waiter parked on a tenant's condition
registers one so that ``cancel()`` from another thread notifies the condition
and the waiter returns at once instead of sleeping out its timeout.
"""

from __future__ import annotations

import itertools
import threading
from typing import Callable


class CancellationToken:
    """Thread-safe cancellation token with wake callbacks.

    Examples:
        >>> token = CancellationToken()
        >>> remove = token.add_callback(lambda: print("woken"))
        >>> token.cancel()
        woken
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._ids = itertools.count()

    def cancel(self) -> None:
        """Signal cancellation and run every registered callback once."""
        with self._lock:
            if self._is_cancelled.is_set():
                return
            self._is_cancelled.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        # Run outside our lock: callbacks take the tenant's lock.
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._is_cancelled.is_set()

    def reset(self) -> None:
        """Reset the token to its initial state.

        This should only be used for testing or when reusing tokens
        in controlled scenarios.
        """
        with self._lock:
            self._is_cancelled.clear()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        If the token is already cancelled the callback runs immediately.

        Args:
            callback: Zero-argument callable.

        Returns:
            A function that unregisters the callback; safe to call twice.
        """
        with self._lock:
            if not self._is_cancelled.is_set():
                key = next(self._ids)
                self._callbacks[key] = callback
                return lambda: self._remove(key)

        callback()
        return lambda: None

    def _remove(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def __len__(self) -> int:
        """Return the number of pending callbacks."""
        with self._lock:
            return len(self._callbacks)
