"""
Brief: Tests for bdixdns.cache.ResponseCache freshness and concurrency.

Inputs:
  - None

Outputs:
  - None
"""

import threading

import pytest

from bdixdns.cache import ResponseCache
from bdixdns.models import Answer, Response, ResponseStatus

KEY = ("example.com", 1)


def _resp(data="192.0.2.1"):
    return Response(ResponseStatus.OK, (Answer("example.com", "A", 300, data),))


def test_lookup_missing_returns_none(clock):
    cache = ResponseCache(300, clock=clock)
    assert cache.lookup(KEY) is None
    assert cache.lookup_with_meta(KEY) == (None, None)


def test_store_then_lookup_within_horizon(clock):
    """
    Brief: A stored response is served unchanged with the remaining horizon.

    Inputs:
      - clock advanced 120s of a 300s horizon

    Outputs:
      - None: Asserts identical value and 180s remaining
    """
    cache = ResponseCache(300, clock=clock)
    resp = _resp()
    cache.store(KEY, resp)
    clock.advance(120)
    value, remaining = cache.lookup_with_meta(KEY)
    assert value is resp
    assert remaining == pytest.approx(180)


def test_entry_at_horizon_boundary_is_still_fresh(clock):
    cache = ResponseCache(300, clock=clock)
    cache.store(KEY, _resp())
    clock.advance(300)
    value, remaining = cache.lookup_with_meta(KEY)
    assert value is not None
    assert remaining == pytest.approx(0)
    assert len(cache) == 1


def test_entry_just_past_horizon_is_purged_and_not_counted(clock):
    """
    Brief: Entries aged past the horizon are absent even before TTLCache drops them.

    Inputs:
      - clock advanced 300.5s of a 300s horizon

    Outputs:
      - None: Asserts lookup miss, len 0 and purge count 1
    """
    cache = ResponseCache(300, clock=clock)
    cache.store(KEY, _resp())
    clock.advance(300.5)
    assert cache.lookup(KEY) is None
    assert len(cache) == 0
    assert cache.purge() == 1
    assert cache.purge() == 0


def test_entry_past_horizon_is_gone(clock):
    cache = ResponseCache(300, clock=clock)
    cache.store(KEY, _resp())
    clock.advance(300.5)
    assert cache.lookup(KEY) is None
    assert KEY not in cache


def test_store_replaces_stale_entry_and_restamps(clock):
    cache = ResponseCache(300, clock=clock)
    cache.store(KEY, _resp("192.0.2.1"))
    clock.advance(400)
    fresh = _resp("192.0.2.2")
    cache.store(KEY, fresh)
    clock.advance(100)
    value, remaining = cache.lookup_with_meta(KEY)
    assert value is fresh
    assert remaining == pytest.approx(200)


def test_record_types_are_independent_entries(clock):
    cache = ResponseCache(300, clock=clock)
    a = _resp()
    cache.store(("example.com", 1), a)
    assert cache.lookup(("example.com", 28)) is None
    assert cache.lookup(("example.com", 1)) is a


def test_purge_and_len(clock):
    cache = ResponseCache(300, shards=4, clock=clock)
    cache.store(("a.example", 1), _resp())
    cache.store(("b.example", 1), _resp())
    clock.advance(200)
    cache.store(("c.example", 1), _resp())
    assert len(cache) == 3
    clock.advance(150)
    assert cache.purge() == 2
    assert len(cache) == 1


def test_clear(clock):
    cache = ResponseCache(300, clock=clock)
    cache.store(KEY, _resp())
    cache.clear()
    assert cache.lookup(KEY) is None


def test_non_positive_horizon_rejected():
    with pytest.raises(ValueError):
        ResponseCache(0)


def test_concurrent_store_and_lookup(clock):
    """
    Brief: Concurrent stores and lookups across shards stay consistent.

    Inputs:
      - 8 threads each storing and reading 200 distinct keys

    Outputs:
      - None: Asserts every key is readable and no thread raised
    """
    cache = ResponseCache(300, shards=8, clock=clock)
    errors = []

    def worker(n):
        try:
            for i in range(200):
                key = (f"host{n}-{i}.example", 1)
                resp = _resp()
                cache.store(key, resp)
                assert cache.lookup(key) is resp
        except Exception as exc:  # pragma: no cover - surfaced via assertion
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert len(cache) == 8 * 200
