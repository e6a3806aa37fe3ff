"""Tests for the MetadataCache."""

from porttop.cache import MetadataCache


class TestExpiry:
    """Tests for TTL handling."""

    def test_get_before_expiry(self, clock):
        """Test an entry is served until its TTL elapses."""
        cache: MetadataCache[int, str] = MetadataCache(ttl=30.0, clock=clock)
        cache.set(1, "a")

        clock.advance(29.9)
        assert cache.get(1) == "a"

    def test_get_after_expiry(self, clock):
        """Test an expired entry is absent and removed."""
        cache: MetadataCache[int, str] = MetadataCache(ttl=30.0, clock=clock)
        cache.set(1, "a")

        clock.advance(30.0)
        assert cache.get(1) is None
        assert len(cache) == 0

    def test_set_restarts_ttl(self, clock):
        """Test overwriting a key gives it a fresh TTL."""
        cache: MetadataCache[int, str] = MetadataCache(ttl=10.0, clock=clock)
        cache.set(1, "a")
        clock.advance(8)
        cache.set(1, "b")
        clock.advance(8)

        assert cache.get(1) == "b"

    def test_cleanup_removes_only_expired(self, clock):
        """Test cleanup sweeps expired entries and reports the count."""
        cache: MetadataCache[int, str] = MetadataCache(ttl=10.0, clock=clock)
        cache.set(1, "old")
        clock.advance(5)
        cache.set(2, "new")
        clock.advance(6)

        assert cache.cleanup() == 1
        assert cache.get(1) is None
        assert cache.get(2) == "new"

    def test_delete_and_clear(self, clock):
        """Test explicit removal."""
        cache: MetadataCache[int, str] = MetadataCache(clock=clock)
        cache.set(1, "a")
        cache.set(2, "b")

        cache.delete(1)
        cache.delete(99)
        assert cache.get(1) is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0


class TestCapacity:
    """Tests for least-recently-used eviction."""

    def test_never_exceeds_capacity(self, clock):
        """Test inserting past max_size keeps the size bounded."""
        cache: MetadataCache[int, int] = MetadataCache(max_size=3, clock=clock)
        for key in range(10):
            cache.set(key, key)

        assert len(cache) == 3
        assert [cache.get(k) for k in (7, 8, 9)] == [7, 8, 9]

    def test_recently_read_entry_survives(self, clock):
        """Test get refreshes recency so the entry outlives older ones."""
        cache: MetadataCache[int, str] = MetadataCache(max_size=2, clock=clock)
        cache.set(1, "a")
        cache.set(2, "b")
        cache.get(1)
        cache.set(3, "c")

        assert cache.get(1) == "a"
        assert cache.get(2) is None
        assert cache.get(3) == "c"

    def test_defaults(self):
        """Test default TTL and capacity."""
        cache: MetadataCache[int, str] = MetadataCache()
        assert cache.ttl == 30.0
        assert cache.max_size == 1000
