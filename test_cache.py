#!/usr/bin/env python3
"""
Tests for the in-process TTL cache, its memoizing decorator and key builders.
"""

import pytest

from smartspend.governance.cache import CacheKeys, MemoryCache, with_cache


class TestMemoryCache:
    """Test TTL expiry and bounded capacity."""

    def test_set_then_get(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("budgets_u1", [{"id": 1}])
        assert cache.get("budgets_u1") == [{"id": 1}]
        assert cache.has("budgets_u1")
        assert "budgets_u1" in cache

    def test_missing_key(self, clock):
        cache = MemoryCache(clock=clock)
        assert cache.get("nope") is None
        assert not cache.has("nope")

    def test_entry_expires_at_ttl(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("k", "v", ttl=10)

        clock.advance(9.999)
        assert cache.get("k") == "v"

        clock.advance(0.001)
        assert cache.get("k") is None
        assert cache.size() == 0

    def test_default_ttl_applies(self, clock):
        cache = MemoryCache(default_ttl=5, clock=clock)
        cache.set("k", "v")
        clock.advance(5)
        assert cache.get("k") is None

    def test_eviction_drops_oldest_quarter(self, clock):
        """Inserting into a full 50-entry cache evicts the 13 oldest keys."""
        cache = MemoryCache(max_size=50, clock=clock)
        for i in range(50):
            cache.set(f"key{i}", i)

        cache.set("key50", 50)

        assert cache.size() == 38
        for i in range(13):
            assert cache.get(f"key{i}") is None
        for i in range(13, 51):
            assert cache.get(f"key{i}") == i

    def test_size_never_exceeds_max(self, clock):
        cache = MemoryCache(max_size=8, clock=clock)
        for i in range(100):
            cache.set(f"k{i}", i)
            assert cache.size() <= 8

    def test_overwrite_does_not_evict(self, clock):
        cache = MemoryCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 3)
        assert cache.keys() == ["b", "a"]
        assert cache.get("a") == 3

    def test_overwrite_refreshes_timestamp(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("k", 1, ttl=10)
        clock.advance(8)
        cache.set("k", 2, ttl=10)
        clock.advance(8)
        assert cache.get("k") == 2

    def test_delete_and_clear(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert cache.size() == 0

    def test_delete_matching(self, clock):
        cache = MemoryCache(clock=clock)
        cache.set("budgets_u1", 1)
        cache.set("bills_u1", 2)
        cache.set("budgets_u2", 3)
        assert cache.delete_matching("_u1") == 2
        assert cache.keys() == ["budgets_u2"]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            MemoryCache(max_size=0)


class TestWithCache:
    """Test the memoizing decorator."""

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, clock):
        calls = []

        @with_cache(lambda user_id: f"profile_{user_id}", ttl=60, cache=MemoryCache(clock=clock))
        async def load_profile(user_id):
            calls.append(user_id)
            return {"id": user_id}

        assert await load_profile("u1") == {"id": "u1"}
        assert await load_profile("u1") == {"id": "u1"}
        assert calls == ["u1"]

        await load_profile("u2")
        assert calls == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_reloads_after_ttl(self, clock):
        calls = []

        @with_cache(lambda: "k", ttl=60, cache=MemoryCache(clock=clock))
        async def load():
            calls.append(1)
            return len(calls)

        assert await load() == 1
        clock.advance(60)
        assert await load() == 2

    @pytest.mark.asyncio
    async def test_none_result_not_memoized(self, clock):
        calls = []

        @with_cache(lambda user_id: f"profile_{user_id}", cache=MemoryCache(clock=clock))
        async def load_profile(user_id):
            calls.append(user_id)
            return None

        await load_profile("u1")
        await load_profile("u1")

        assert calls == ["u1", "u1"]
        assert not load_profile.cache.has("profile_u1")

    @pytest.mark.asyncio
    async def test_private_cache_exposed(self):
        @with_cache(lambda x: str(x))
        async def double(x):
            return x * 2

        await double(4)
        assert double.cache.get("4") == 8


class TestCacheKeys:
    """Test key builders."""

    def test_builders(self):
        assert CacheKeys.transactions("u") == "transactions_u"
        assert CacheKeys.savings_goals("u") == "savings_goals_u"
        assert CacheKeys.analytics("u", "2024-05") == "analytics_u_2024-05"
        assert CacheKeys.ai_insights("u") == "ai_insights_u"
        assert CacheKeys.profile("u") == "profile_u"

    def test_for_collection(self):
        assert CacheKeys.for_collection("bills", "u") == "bills_u"
        assert CacheKeys.for_collection("profiles", "u") == "profile_u"

    def test_for_unknown_collection(self):
        with pytest.raises(ValueError):
            CacheKeys.for_collection("accounts", "u")
