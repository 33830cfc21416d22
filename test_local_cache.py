#!/usr/bin/env python3
"""
Tests for the SQLite-backed durable store and persistent cache.

Each test opens its own database file under pytest's tmp_path.
"""

import json

import pytest
import pytest_asyncio

from smartspend.exceptions import StorageError
from smartspend.governance.local_cache import DurableStore, LocalPersistentCache


@pytest_asyncio.fixture
async def store(tmp_path):
    store = DurableStore(str(tmp_path / "cache.db"))
    yield store
    await store.close()


class FailingStore(DurableStore):
    """Store whose every operation fails like a full or locked database."""

    async def _execute(self, sql, params=()):
        raise StorageError("database is locked")


class TestDurableStore:
    """Test the key/value interface."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, store):
        assert await store.get_item("k") is None
        await store.set_item("k", "v1")
        await store.set_item("k", "v2")
        assert await store.get_item("k") == "v2"

        await store.remove_item("k")
        assert await store.get_item("k") is None

    @pytest.mark.asyncio
    async def test_keys_in_insertion_order(self, store):
        for key in ["b", "a", "c"]:
            await store.set_item(key, "x")
        assert await store.keys() == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        async with DurableStore(path) as first:
            await first.set_item("k", "v")
        async with DurableStore(path) as second:
            assert await second.get_item("k") == "v"


class TestLocalPersistentCache:
    """Test TTL records, corruption handling and prefix scoping."""

    @pytest.mark.asyncio
    async def test_round_trip_within_ttl(self, store, clock):
        cache = LocalPersistentCache(store, clock=clock)
        await cache.set("budgets_u1", [{"id": 1, "amount": 500}], ttl=60)

        clock.advance(59)
        assert await cache.get("budgets_u1") == [{"id": 1, "amount": 500}]
        assert await cache.has("budgets_u1")

    @pytest.mark.asyncio
    async def test_record_layout(self, store, clock):
        cache = LocalPersistentCache(store, prefix="p_", clock=clock)
        await cache.set("k", {"a": 1})

        record = json.loads(await store.get_item("p_k"))
        assert record == {"data": {"a": 1}, "timestamp": clock.now, "ttl": 86400}

    @pytest.mark.asyncio
    async def test_expired_record_removed(self, store, clock):
        cache = LocalPersistentCache(store, clock=clock)
        await cache.set("k", "v", ttl=60)

        clock.advance(60)
        assert await cache.get("k") is None
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_corrupt_record_is_a_miss(self, store, clock):
        cache = LocalPersistentCache(store, prefix="p_", clock=clock)
        await store.set_item("p_broken", "{not json")
        await store.set_item("p_partial", json.dumps({"data": 1}))

        assert await cache.get("broken") is None
        assert await cache.get("partial") is None
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_clear_only_touches_prefix(self, store, clock):
        cache = LocalPersistentCache(store, prefix="p_", clock=clock)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await store.set_item("other_key", "keep")

        await cache.clear()

        assert await store.keys() == ["other_key"]

    @pytest.mark.asyncio
    async def test_delete(self, store, clock):
        cache = LocalPersistentCache(store, clock=clock)
        await cache.set("k", 1)
        await cache.delete("k")
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_unserializable_value_is_dropped(self, store, clock):
        cache = LocalPersistentCache(store, clock=clock)
        await cache.set("k", object())
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_storage_failures_degrade_to_misses(self, tmp_path, clock):
        cache = LocalPersistentCache(FailingStore(str(tmp_path / "x.db")), clock=clock)

        await cache.set("k", 1)
        assert await cache.get("k") is None
        await cache.clear()
