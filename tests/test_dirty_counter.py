"""Unit tests for the sharded dirty counter."""

import logging
import threading

import pytest

from iolimit.adapters.dirty.in_memory import ShardedDirtyCounter


def test_small_deltas_stay_in_shard() -> None:
    counter = ShardedDirtyCounter(batch_bytes=10, shards=2)

    counter.add(5)

    assert counter.approximate() == 0
    assert counter.exact() == 5


def test_batch_is_folded_into_global() -> None:
    counter = ShardedDirtyCounter(batch_bytes=10, shards=2)

    counter.add(5)
    counter.add(5)

    assert counter.approximate() == 10
    assert counter.exact() == 10


def test_slack_bounds_drift() -> None:
    counter = ShardedDirtyCounter(batch_bytes=8, shards=4)
    assert counter.slack == 32

    def _writer() -> None:
        for _ in range(100):
            counter.add(3)

    threads = [threading.Thread(target=_writer) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter.exact() == 1800
    assert abs(counter.approximate() - counter.exact()) <= counter.slack


def test_negative_aggregate_clamped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    counter = ShardedDirtyCounter(batch_bytes=100, shards=1, name="ct-101")

    with caplog.at_level(logging.WARNING, logger="iolimit.adapters.dirty.in_memory"):
        counter.add(-3)
        value = counter.exact()

    assert value == 0
    assert counter.approximate() == 0
    assert any(r.getMessage() == "dirty_counter.drift" for r in caplog.records)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_bytes": 0, "shards": 1},
        {"batch_bytes": 1, "shards": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ShardedDirtyCounter(**kwargs)
