"""
Read-through cache tests.

Covers:
- Miss loads and stores with TTL; hit skips the loader
- Redis failures degrade to the loader and are logged
- Explicit invalidation
"""

import pytest

from erp_services.cache import ReadThroughCache


class CountingLoader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestReadThrough:

    def test_miss_then_hit(self, cache, fake_redis):
        loader = CountingLoader([{"id": "a"}])

        assert cache.get_or_load("things:1", loader) == [{"id": "a"}]
        assert cache.get_or_load("things:1", loader) == [{"id": "a"}]

        assert loader.calls == 1
        assert fake_redis.ttls["erp:things:1"] == 300

    def test_custom_prefix(self, fake_redis):
        cache = ReadThroughCache(fake_redis, ttl_seconds=60, prefix="research:")
        cache.get_or_load("k", lambda: 1)
        assert fake_redis.ttls == {"research:k": 60}

    def test_ttl_must_be_positive(self, fake_redis):
        with pytest.raises(ValueError):
            ReadThroughCache(fake_redis, ttl_seconds=0)


class TestDegradedRedis:

    def test_read_failure_falls_back(self, cache, fake_redis, captured_logs):
        fake_redis.failing = True
        loader = CountingLoader({"n": 1})

        assert cache.get_or_load("things:2", loader) == {"n": 1}
        assert cache.get_or_load("things:2", loader) == {"n": 1}

        assert loader.calls == 2
        messages = [r["message"] for r in captured_logs()]
        assert "cache_read_failed" in messages
        assert "cache_write_failed" in messages

    def test_invalidate_failure_logged(self, cache, fake_redis, captured_logs):
        fake_redis.failing = True
        cache.invalidate("things:3")
        record = next(r for r in captured_logs() if r["message"] == "cache_invalidate_failed")
        assert record["cache_keys"] == ["erp:things:3"]


class TestInvalidate:

    def test_invalidate_forces_reload(self, cache, fake_redis):
        loader = CountingLoader("v")
        cache.get_or_load("things:4", loader)

        cache.invalidate("things:4")

        assert "erp:things:4" not in fake_redis.store
        cache.get_or_load("things:4", loader)
        assert loader.calls == 2

    def test_invalidate_nothing(self, cache, fake_redis):
        fake_redis.failing = True
        cache.invalidate()
