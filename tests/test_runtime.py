"""Tests for the TTL read cache and the keyed debouncer."""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError

import pytest

from salesbook.runtime import Debouncer, ReadCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# ReadCache
# ---------------------------------------------------------------------------


def test_get_or_load_serves_cached_value_within_ttl():
    clock = FakeClock()
    cache = ReadCache(5, clock=clock)
    calls = []

    def loader():
        calls.append(1)
        return len(calls)

    assert cache.get_or_load(("products",), loader) == 1
    clock.now = 4.9
    assert cache.get_or_load(("products",), loader) == 1
    assert len(calls) == 1


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ReadCache(5, clock=clock)
    cache.put("key", "value")

    clock.now = 5.0

    assert cache.get("key") is None
    assert len(cache) == 0


def test_zero_ttl_disables_caching():
    cache = ReadCache(0)
    values = iter([1, 2])

    assert cache.get_or_load("key", lambda: next(values)) == 1
    assert cache.get_or_load("key", lambda: next(values)) == 2
    assert len(cache) == 0


def test_invalidate_sheets_drops_dependent_entries_only():
    """A write to one sheet should evict only reads that depended on it."""

    cache = ReadCache(60)
    cache.put("products", 1, sheets=["Products"])
    cache.put("ledger", 2, sheets=["Accounts", "Journal"])

    removed = cache.invalidate_sheets("Journal")

    assert removed == 1
    assert cache.get("products").value == 1
    assert cache.get("ledger") is None


def test_negative_ttl_is_rejected():
    with pytest.raises(ValueError):
        ReadCache(-1)


# ---------------------------------------------------------------------------
# Debouncer
# ---------------------------------------------------------------------------


def test_rapid_submissions_collapse_into_last_call():
    """Only the last call under a key should run; earlier futures are cancelled."""

    debouncer = Debouncer(0.05)
    calls = []

    first = debouncer.submit("save", calls.append, 1)
    second = debouncer.submit("save", calls.append, 2)

    assert second.result(timeout=2) is None
    assert calls == [2]
    assert first.cancelled()
    with pytest.raises(CancelledError):
        first.result(timeout=0)


def test_distinct_keys_run_independently():
    debouncer = Debouncer(0.01)
    done = threading.Event()
    results = []

    def record(value):
        results.append(value)
        if len(results) == 2:
            done.set()

    debouncer.submit("a", record, "a")
    debouncer.submit("b", record, "b")

    assert done.wait(2)
    assert sorted(results) == ["a", "b"]


def test_flush_runs_pending_calls_immediately():
    debouncer = Debouncer(60)
    future = debouncer.submit("save", lambda value: value * 2, 21)

    debouncer.flush()

    assert future.result(timeout=0) == 42
    assert debouncer.pending() == []


def test_failures_propagate_through_future():
    debouncer = Debouncer(60)

    def explode():
        raise RuntimeError("boom")

    future = debouncer.submit("save", explode)
    debouncer.flush("save")

    with pytest.raises(RuntimeError, match="boom"):
        future.result(timeout=0)


def test_cancel_all_cancels_pending_calls():
    debouncer = Debouncer(60)
    calls = []
    future = debouncer.submit("save", calls.append, 1)

    assert debouncer.cancel_all() == 1
    assert future.cancelled()
    assert calls == []
