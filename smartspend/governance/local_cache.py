"""
Durable TTL cache backed by SQLite.

DurableStore offers a string key/value interface; LocalPersistentCache
stores ``{"data", "timestamp", "ttl"}`` JSON records in it under a prefix.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import Any

import aiosqlite

from smartspend.exceptions import StorageError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "smartspend_cache_"
DEFAULT_LOCAL_TTL_SECONDS = 24 * 60 * 60


class DurableStore:
    """
    Durable string key/value store with a localStorage-like interface.
    Uses SQLite; every write commits immediately and the last writer wins.
    """

    def __init__(self, db_path: str = "smartspend_cache.db"):
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._connection_lock = asyncio.Lock()  # Serialize database access
        self._connection: aiosqlite.Connection | None = None
        self._initialized = False

    async def _initialize(self) -> None:
        """
        Lazily open the connection and create the table on first use.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return

            try:
                self._connection = await aiosqlite.connect(self.db_path)
                await self._connection.execute("PRAGMA journal_mode=WAL")
                await self._connection.execute("PRAGMA synchronous=NORMAL")
                await self._connection.execute("PRAGMA busy_timeout=30000")
                await self._connection.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
                await self._connection.commit()
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to open durable store {self.db_path}: {e}") from e

            self._initialized = True

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False

    async def __aenter__(self) -> DurableStore:
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        await self._initialize()
        if not self._connection:
            raise StorageError("Database connection not available")

        async with self._connection_lock:
            try:
                cursor = await self._connection.execute(sql, params)
                rows = list(await cursor.fetchall())
                await self._connection.commit()
            except aiosqlite.Error as e:
                raise StorageError(f"Durable store operation failed: {e}") from e
        return rows

    async def get_item(self, key: str) -> str | None:
        rows = await self._execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    async def set_item(self, key: str, value: str) -> None:
        await self._execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    async def remove_item(self, key: str) -> None:
        await self._execute("DELETE FROM kv_store WHERE key = ?", (key,))

    async def keys(self) -> list[str]:
        rows = await self._execute("SELECT key FROM kv_store ORDER BY rowid")
        return [row[0] for row in rows]


class LocalPersistentCache:
    """
    TTL cache persisted in a DurableStore under a key prefix.

    A cache failure never reaches the caller: unreadable records count as
    misses and are removed, failed writes are logged and dropped.
    """

    def __init__(
        self,
        store: DurableStore,
        prefix: str = DEFAULT_PREFIX,
        default_ttl: float = DEFAULT_LOCAL_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._clock = clock

    def _key(self, key: str) -> str:
        return self.prefix + key

    async def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        item = {
            "data": data,
            "timestamp": self._clock(),
            "ttl": self.default_ttl if ttl is None else ttl,
        }
        try:
            await self.store.set_item(self._key(key), json.dumps(item))
        except (StorageError, TypeError, ValueError) as e:
            logger.warning(f"Failed to cache data for '{key}' in durable store: {e}")

    async def get(self, key: str) -> Any | None:
        storage_key = self._key(key)
        try:
            raw = await self.store.get_item(storage_key)
        except StorageError as e:
            logger.warning(f"Failed to retrieve cached data for '{key}': {e}")
            return None

        if raw is None:
            return None

        try:
            parsed = json.loads(raw)
            data = parsed["data"]
            expired = self._clock() - float(parsed["timestamp"]) >= float(parsed["ttl"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupt cache record '{storage_key}': {e}")
            await self._remove_quietly(storage_key)
            return None

        if expired:
            await self._remove_quietly(storage_key)
            return None

        return data

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def _remove_quietly(self, storage_key: str) -> None:
        try:
            await self.store.remove_item(storage_key)
        except StorageError as e:
            logger.warning(f"Failed to remove cache record '{storage_key}': {e}")

    async def delete(self, key: str) -> None:
        await self._remove_quietly(self._key(key))

    async def clear(self) -> None:
        """Remove every record under this cache's prefix."""
        try:
            keys = await self.store.keys()
        except StorageError as e:
            logger.warning(f"Failed to list durable cache keys: {e}")
            return

        for storage_key in keys:
            if storage_key.startswith(self.prefix):
                await self._remove_quietly(storage_key)
