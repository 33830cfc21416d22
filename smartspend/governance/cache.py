"""
In-process memoization with TTL expiry and bounded capacity.
"""

from __future__ import annotations

import functools
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")
T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60
EVICTION_FRACTION = 0.25


@dataclass
class CacheEntry(Generic[T]):
    data: T
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class MemoryCache:
    """
    Bounded TTL cache.

    When full, inserting a new key first evicts the oldest quarter of the
    entries by insertion order. Expired entries are dropped when read.

    ``get`` returns None for a miss, so a stored None is indistinguishable
    from an absent key: ``has`` reports it as missing and ``with_cache``
    calls through again instead of memoizing a None result.
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        # Re-setting a key moves it to the back of the insertion order
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            data=data,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def _evict_oldest(self) -> None:
        count = max(1, math.ceil(self.max_size * EVICTION_FRACTION))
        for key in list(self._entries)[:count]:
            del self._entries[key]

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            return None

        return entry.data

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """Delete every key containing pattern."""
        matching = [key for key in self._entries if pattern in key]
        for key in matching:
            del self._entries[key]
        return len(matching)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)


def with_cache(
    key_generator: Callable[P, str],
    ttl: float = DEFAULT_TTL_SECONDS,
    cache: MemoryCache | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Memoize a coroutine function in a MemoryCache.

    Args:
        key_generator: Builds the cache key from the call's arguments
        ttl: Seconds a stored result stays fresh
        cache: Target cache; a private cache is created when omitted

    Returns:
        Decorator; the wrapped function exposes the cache as ``.cache``
    """
    target = cache if cache is not None else MemoryCache()

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            key = key_generator(*args, **kwargs)

            cached = target.get(key)
            if cached is not None:
                return cached

            result = await func(*args, **kwargs)
            target.set(key, result, ttl)
            return result

        wrapper.cache = target  # type: ignore[attr-defined]
        return wrapper
    return decorator


class CacheKeys:
    """Cache key builders for per-user data."""

    @staticmethod
    def transactions(user_id: str) -> str:
        return f"transactions_{user_id}"

    @staticmethod
    def budgets(user_id: str) -> str:
        return f"budgets_{user_id}"

    @staticmethod
    def savings_goals(user_id: str) -> str:
        return f"savings_goals_{user_id}"

    @staticmethod
    def bills(user_id: str) -> str:
        return f"bills_{user_id}"

    @staticmethod
    def debts(user_id: str) -> str:
        return f"debts_{user_id}"

    @staticmethod
    def investments(user_id: str) -> str:
        return f"investments_{user_id}"

    @staticmethod
    def analytics(user_id: str, period: str) -> str:
        return f"analytics_{user_id}_{period}"

    @staticmethod
    def ai_insights(user_id: str) -> str:
        return f"ai_insights_{user_id}"

    @staticmethod
    def profile(user_id: str) -> str:
        return f"profile_{user_id}"

    @classmethod
    def for_collection(cls, collection: str, user_id: str) -> str:
        builders: dict[str, Callable[[str], str]] = {
            "transactions": cls.transactions,
            "budgets": cls.budgets,
            "savings_goals": cls.savings_goals,
            "bills": cls.bills,
            "debts": cls.debts,
            "investments": cls.investments,
            "profiles": cls.profile,
        }
        if collection not in builders:
            raise ValueError(f"No cache key for collection '{collection}'")
        return builders[collection](user_id)
