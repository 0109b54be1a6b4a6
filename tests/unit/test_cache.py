from stockfunnel.core.cache import MemoryCache


class _FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryCache:
    def test_set_and_get(self):
        cache = MemoryCache()
        cache.set("k", {"a": 1})
        assert cache.get("k") == {"a": 1}

    def test_missing_key(self):
        assert MemoryCache().get("nope") is None

    def test_entry_expires(self):
        clock = _FakeClock()
        cache = MemoryCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_no_ttl_never_expires(self):
        clock = _FakeClock()
        cache = MemoryCache(clock=clock)
        cache.set("k", "v")
        clock.now = 1e9
        assert cache.get("k") == "v"

    def test_delete(self):
        cache = MemoryCache()
        cache.set("k", "v")
        cache.delete("k")
        cache.delete("k")
        assert cache.get("k") is None


class TestCounter:
    def test_incr_starts_at_one(self):
        cache = MemoryCache()
        assert cache.incr("calls") == 1
        assert cache.incr("calls") == 2
        assert cache.get("calls") == 2

    def test_incr_keeps_original_expiry(self):
        clock = _FakeClock()
        cache = MemoryCache(clock=clock)
        cache.incr("calls", ttl=100)
        clock.now = 90
        cache.incr("calls", ttl=100)
        clock.now = 100
        # window started at 0, so the counter resets at 100 rather than 190
        assert cache.get("calls") is None
        assert cache.incr("calls", ttl=100) == 1
