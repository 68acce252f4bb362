"""Tests for ExpiringCache."""

from review_forge.cache import ExpiringCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_seen_records_then_reports():
    cache = ExpiringCache(ttl_seconds=10, clock=FakeClock())
    assert cache.seen("a") is False
    assert cache.seen("a") is True
    assert "a" in cache


def test_entries_expire():
    clock = FakeClock()
    cache = ExpiringCache(ttl_seconds=10, clock=clock)
    cache.add("a")
    clock.now += 5
    cache.add("b")

    clock.now += 5
    assert "a" not in cache
    assert len(cache) == 1

    clock.now += 5
    assert len(cache) == 0
    assert cache.seen("a") is False
