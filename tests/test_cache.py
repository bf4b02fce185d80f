"""Tests for the single-slot query cache"""

import threading

import pytest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from block_battle.cache import CacheEntry, QueryCache


TTL = 30.0
T0 = 1_000.0


def make_entry(captured_at: float = T0, n: int = 2) -> CacheEntry:
    return CacheEntry(records=tuple(f"entry-{i}" for i in range(n)), captured_at=captured_at)


class TestQueryCache:
    """TTL boundaries and invalidation"""

    def test_empty_cache_misses(self):
        cache = QueryCache(TTL)
        assert cache.get(T0) is None
        assert cache.is_empty

    def test_fresh_entry_is_served(self):
        cache = QueryCache(TTL)
        entry = make_entry()
        cache.put(entry)
        assert cache.get(T0 + TTL - 1) is entry

    def test_expired_entry_is_not_served(self):
        cache = QueryCache(TTL)
        cache.put(make_entry())
        assert cache.get(T0 + TTL + 1) is None

    def test_exactly_ttl_is_expired(self):
        cache = QueryCache(TTL)
        cache.put(make_entry())
        assert cache.get(T0 + TTL) is None

    def test_invalidate_clears_regardless_of_age(self):
        cache = QueryCache(TTL)
        cache.put(make_entry())
        cache.invalidate()
        assert cache.get(T0) is None
        assert cache.get(T0 + 1) is None
        assert cache.is_empty

    def test_put_replaces_wholesale(self):
        cache = QueryCache(TTL)
        cache.put(make_entry(T0, n=3))
        newer = make_entry(T0 + 100, n=1)
        cache.put(newer)
        assert cache.get(T0 + 101) is newer
        assert len(cache.get(T0 + 101)) == 1

    def test_empty_result_is_still_cached(self):
        cache = QueryCache(TTL)
        cache.put(make_entry(n=0))
        hit = cache.get(T0 + 1)
        assert hit is not None
        assert len(hit) == 0

    def test_age(self):
        cache = QueryCache(TTL)
        assert cache.age(T0) is None
        cache.put(make_entry())
        assert cache.age(T0 + 45) == 45

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_rejects_non_positive_ttl(self, ttl):
        with pytest.raises(ValueError):
            QueryCache(ttl)

    def test_concurrent_put_get(self):
        """Readers only ever see a complete entry."""
        cache = QueryCache(TTL)
        entries = [make_entry(T0, n=i % 5 + 1) for i in range(50)]
        seen = []

        def writer():
            for entry in entries:
                cache.put(entry)

        def reader():
            for _ in range(200):
                hit = cache.get(T0)
                if hit is not None:
                    seen.append(hit)

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(any(hit is e for e in entries) for hit in seen)
