"""Unit tests for the cancellation token."""

from unittest.mock import Mock

from iolimit.core.cancellation import CancellationToken


def test_cancel_runs_callbacks_once() -> None:
    token = CancellationToken()
    callback = Mock()
    token.add_callback(callback)

    token.cancel()
    token.cancel()

    assert token.is_cancelled() is True
    callback.assert_called_once_with()
    assert len(token) == 0


def test_callback_added_after_cancel_runs_immediately() -> None:
    token = CancellationToken()
    token.cancel()
    callback = Mock()

    remove = token.add_callback(callback)

    callback.assert_called_once_with()
    remove()


def test_removed_callback_is_not_run() -> None:
    token = CancellationToken()
    callback = Mock()
    remove = token.add_callback(callback)

    remove()
    remove()
    token.cancel()

    callback.assert_not_called()


def test_reset_allows_reuse() -> None:
    token = CancellationToken()
    token.cancel()

    token.reset()

    assert token.is_cancelled() is False
