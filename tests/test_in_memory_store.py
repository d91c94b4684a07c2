"""Unit tests for the in-memory counting store."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from quota_gate.adapters.store.base import BlockStatus
from quota_gate.adapters.store.in_memory import InMemoryCountingStore


def test_increment_counts_within_window(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    assert store.increment("k") == 1
    assert store.increment("k") == 2
    assert store.increment("k") == 3


def test_counter_expires_one_second_after_first_increment(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    assert store.increment("k") == 1
    clock.return_value += 0.5
    assert store.increment("k") == 2

    # Window is anchored at the first increment, not the latest one
    clock.return_value += 0.5
    assert store.increment("k") == 1


def test_counters_isolated_by_identifier(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.increment("k1")
    store.increment("k1")

    assert store.increment("k2") == 1


def test_block_reports_remaining_time(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.block("k", 60)
    clock.return_value += 15

    status = store.is_blocked("k")
    assert status.blocked is True
    assert status.remaining_seconds == pytest.approx(45)


def test_absent_and_expired_block_are_equivalent(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    assert store.is_blocked("k") == BlockStatus(blocked=False, remaining_seconds=0.0)

    store.block("k", 0.5)
    clock.return_value += 0.5

    assert store.is_blocked("k") == BlockStatus(blocked=False, remaining_seconds=0.0)


def test_zero_duration_block_is_never_active(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.block("k", 0)

    assert store.is_blocked("k").blocked is False


def test_block_overwrites_previous_marker(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.block("k", 60)
    store.block("k", 5)

    assert store.is_blocked("k").remaining_seconds == pytest.approx(5)


def test_block_without_counter(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.block("never-seen", 10)

    assert store.is_blocked("never-seen").blocked is True
    assert store.counter_value("never-seen") == 0


def test_counter_expiry_does_not_clear_block(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.increment("k")
    store.block("k", 60)
    clock.return_value += 2

    assert store.counter_value("k") == 0
    assert store.is_blocked("k").blocked is True


def test_expire_counter_leaves_block_in_place(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    store.increment("k")
    store.increment("k")
    store.block("k", 60)

    store.expire_counter("k")

    assert store.counter_value("k") == 0
    assert store.is_blocked("k").blocked is True
    assert store.increment("k") == 1


def test_concurrent_increments_observe_distinct_counts() -> None:
    store = InMemoryCountingStore(counter_ttl_seconds=60)
    start = threading.Barrier(8)

    def worker() -> list[int]:
        start.wait()
        return [store.increment("shared") for _ in range(250)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = [count for batch in pool.map(lambda _: worker(), range(8)) for count in batch]

    assert sorted(results) == list(range(1, 2001))


@pytest.mark.parametrize("ttl", [0, -1])
def test_invalid_counter_ttl(ttl: float) -> None:
    with pytest.raises(ValueError):
        InMemoryCountingStore(counter_ttl_seconds=ttl)


def test_negative_block_duration_rejected(clock) -> None:
    store = InMemoryCountingStore(clock=clock)

    with pytest.raises(ValueError):
        store.block("k", -1)


def test_expired_entries_swept_once_threshold_reached(clock) -> None:
    store = InMemoryCountingStore(sweep_threshold=100, clock=clock)

    for i in range(10_000):
        store.increment(f"10.0.{i // 256}.{i % 256}")
    assert store.entry_count() == 10_000

    clock.return_value += 3600
    store.increment("fresh")

    assert store.entry_count() == 1
    assert store.counter_value("fresh") == 1


def test_sweep_keeps_live_counters_and_blocks(clock) -> None:
    store = InMemoryCountingStore(sweep_threshold=3, clock=clock)

    store.increment("stale-1")
    store.increment("stale-2")
    store.block("blocked", 60)
    clock.return_value += 5

    store.increment("live")

    assert store.entry_count() == 2
    assert store.is_blocked("blocked").blocked is True
    assert store.counter_value("live") == 1


def test_no_sweep_below_threshold(clock) -> None:
    store = InMemoryCountingStore(sweep_threshold=10, clock=clock)

    store.increment("a")
    store.increment("b")
    clock.return_value += 5
    store.increment("c")

    assert store.entry_count() == 3


def test_sweep_runs_at_most_once_per_window(clock) -> None:
    store = InMemoryCountingStore(sweep_threshold=2, clock=clock)

    store.increment("a")
    store.increment("b")
    clock.return_value += 1
    store.increment("c")
    assert store.entry_count() == 1

    store.block("short", 0.25)
    clock.return_value += 0.5
    store.increment("d")

    # The short block has expired, but the last sweep was under a second ago
    assert store.entry_count() == 3

    clock.return_value += 0.5
    store.increment("e")
    assert store.entry_count() == 2
    assert store.counter_value("d") == 1


def test_invalid_sweep_threshold() -> None:
    with pytest.raises(ValueError):
        InMemoryCountingStore(sweep_threshold=0)
