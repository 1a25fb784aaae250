"""Tests del cache rolling (valor live + ventana de histórico)."""

from datetime import timedelta

from telemetry_api.core.cache.rolling_cache import RollingCacheStore
from telemetry_api.core.domain.reading import Reading

from .fakes import FIXED_NOW, FakeClock


def _reading(device_id="dev1", at=FIXED_NOW, line1=0.0) -> Reading:
    return Reading(device_id=device_id, timestamp=at, line1=line1)


class TestLiveness:

    def test_unknown_device_has_no_live_data(self, clock):
        cache = RollingCacheStore(clock=clock)
        assert cache.get_live("dev1") is None

    def test_fresh_reading_is_live(self, clock):
        cache = RollingCacheStore(clock=clock)
        reading = _reading()
        cache.put(reading)
        assert cache.get_live("dev1") == reading

    def test_boundary_just_inside_timeout(self, clock):
        cache = RollingCacheStore(liveness_timeout_seconds=30, clock=clock)
        cache.put(_reading())

        clock.advance(29.999)
        assert cache.get_live("dev1") is not None

    def test_boundary_just_outside_timeout(self, clock):
        cache = RollingCacheStore(liveness_timeout_seconds=30, clock=clock)
        cache.put(_reading())

        clock.advance(30.001)
        assert cache.get_live("dev1") is None

    def test_stale_live_still_in_history(self, clock):
        cache = RollingCacheStore(clock=clock)
        cache.put(_reading())

        clock.advance(120)
        assert cache.get_live("dev1") is None
        assert len(cache.get_history("dev1")) == 1


class TestHistory:

    def test_order_follows_insertion(self, clock):
        cache = RollingCacheStore(clock=clock)
        readings = [_reading(at=FIXED_NOW + timedelta(seconds=i), line1=i) for i in range(5)]
        for r in readings:
            cache.put(r)

        assert cache.get_history("dev1") == readings

    def test_old_readings_evicted_on_put(self):
        clock = FakeClock(FIXED_NOW.timestamp())
        cache = RollingCacheStore(retention_seconds=48 * 3600, clock=clock)

        old = _reading(at=FIXED_NOW - timedelta(hours=49))
        recent = _reading(at=FIXED_NOW - timedelta(hours=1))
        cache.put(old)
        cache.put(recent)

        history = cache.get_history("dev1")
        assert old not in history
        assert history == [recent]

    def test_window_slides_with_clock(self):
        clock = FakeClock(FIXED_NOW.timestamp())
        cache = RollingCacheStore(retention_seconds=3600, clock=clock)

        first = _reading(at=FIXED_NOW)
        cache.put(first)

        clock.advance(3601)
        second = _reading(at=FIXED_NOW + timedelta(seconds=3601))
        cache.put(second)

        assert cache.get_history("dev1") == [second]

    def test_devices_are_isolated(self, clock):
        cache = RollingCacheStore(clock=clock)
        cache.put(_reading("dev1"))
        cache.put(_reading("dev2"))
        cache.put(_reading("dev2"))

        assert len(cache.get_history("dev1")) == 1
        assert len(cache.get_history("dev2")) == 2
        assert cache.stats["devices"] == 2
        assert cache.stats["history_entries"] == 3

    def test_history_is_a_copy(self, clock):
        cache = RollingCacheStore(clock=clock)
        cache.put(_reading())

        snapshot = cache.get_history("dev1")
        snapshot.clear()
        assert len(cache.get_history("dev1")) == 1

    def test_unknown_device_empty_history(self, clock):
        cache = RollingCacheStore(clock=clock)
        assert cache.get_history("nope") == []


def test_default_windows():
    cache = RollingCacheStore()
    assert cache.liveness_timeout_seconds == 30.0
    assert cache.retention_seconds == 48 * 3600.0
