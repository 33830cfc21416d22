"""
HTTP client for the SmartSpend serverless AI endpoints.

Every request method returns an ApiResponse and never raises: timeouts,
transport errors, non-2xx statuses, malformed JSON and invalid request
bodies are all reported through ApiResponse.error.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from smartspend.exceptions import StorageError
from smartspend.fallbacks import FinancialData
from smartspend.governance.cache import MemoryCache
from smartspend.governance.local_cache import DEFAULT_PREFIX, DurableStore
from smartspend.governance.rate_limiting.models import RateLimitResult
from smartspend.logging_utils import ErrorHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_RESPONSE_TTL_SECONDS = 5 * 60
PRELOAD_TTL_SECONDS = 10 * 60


@dataclass(frozen=True)
class ApiResponse(Generic[T]):
    """Uniform result of an API call."""
    success: bool
    data: T | None = None
    error: str | None = None

    # Set when the call went through a rate limiter
    rate_limit: RateLimitResult | None = None

    @property
    def retry_after(self) -> int | None:
        return self.rate_limit.retry_after if self.rate_limit else None


class UserRequest(BaseModel):
    user_id: str = Field(alias="userId", min_length=1)

    model_config = {"populate_by_name": True}


class CoachRequest(BaseModel):
    user_context: str = Field(alias="userContext", min_length=1)

    model_config = {"populate_by_name": True}


class RiskRequest(BaseModel):
    financial_data: FinancialData = Field(alias="financialData")

    model_config = {"populate_by_name": True}


class ApiClient:
    """Typed wrapper over POST calls to the AI proxy endpoints."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", **(headers or {})},
        )

    async def _request(
        self,
        endpoint: str,
        *,
        method: str = "POST",
        body: BaseModel | None = None,
        timeout: float | None = None,
    ) -> ApiResponse[Any]:
        payload = body.model_dump(by_alias=True, mode="json") if body is not None else None

        try:
            # Deadline for the whole exchange, body included
            async with asyncio.timeout(timeout or self.timeout):
                response = await self.client.request(method, endpoint, json=payload)
                await response.aread()
        except (TimeoutError, httpx.TimeoutException):
            logger.warning(f"{method} {endpoint} timed out")
            return ApiResponse(success=False, error="Request timeout")
        except httpx.HTTPError as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            return ApiResponse(success=False, error=str(e) or type(e).__name__)

        if not response.is_success:
            error_text = response.text
            return ApiResponse(
                success=False,
                error=f"HTTP {response.status_code}: {error_text or response.reason_phrase}",
            )

        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        try:
            data = response.json()
        except ValueError as e:
            return ApiResponse(success=False, error=f"Invalid JSON response: {e}")

        return ApiResponse(success=True, data=data)

    def _invalid(self, error: ValidationError, operation: str) -> ApiResponse[Any]:
        return ApiResponse(
            success=False,
            error=ErrorHandler.to_api_error(error, operation),
        )

    async def generate_financial_insights(self, user_id: str) -> ApiResponse[dict[str, Any]]:
        try:
            body = UserRequest(user_id=user_id)
        except ValidationError as e:
            return self._invalid(e, "generate_financial_insights")
        return await self._request("/api/ai-insights", body=body)

    async def generate_budget_recommendations(self, user_id: str) -> ApiResponse[dict[str, Any]]:
        try:
            body = UserRequest(user_id=user_id)
        except ValidationError as e:
            return self._invalid(e, "generate_budget_recommendations")
        return await self._request("/api/budget-ai", body=body)

    async def generate_spending_predictions(self, user_id: str) -> ApiResponse[dict[str, float]]:
        try:
            body = UserRequest(user_id=user_id)
        except ValidationError as e:
            return self._invalid(e, "generate_spending_predictions")
        return await self._request("/api/spending-predictions", body=body)

    async def get_financial_advice(self, user_context: str) -> ApiResponse[dict[str, str]]:
        try:
            body = CoachRequest(user_context=user_context)
        except ValidationError as e:
            return self._invalid(e, "get_financial_advice")
        return await self._request("/api/ai-coach", body=body)

    async def analyze_financial_risk(
        self, financial_data: FinancialData | dict[str, Any]
    ) -> ApiResponse[dict[str, Any]]:
        try:
            body = RiskRequest(financial_data=financial_data)
        except ValidationError as e:
            return self._invalid(e, "analyze_financial_risk")
        return await self._request("/api/risk-prediction", body=body)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def with_retry(
    api_call: Callable[[], Awaitable[ApiResponse[T]]],
    max_retries: int = 3,
    delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ApiResponse[T]:
    """
    Re-invoke api_call until it succeeds, up to max_retries attempts.

    Waits delay * attempt seconds after each failed attempt except the last.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    last_error = ""
    for attempt in range(1, max_retries + 1):
        result = await api_call()
        if result.success:
            return result

        last_error = result.error or "Unknown error"
        logger.debug(f"Attempt {attempt}/{max_retries} failed: {last_error}")

        if attempt < max_retries:
            await sleep(delay * attempt)

    return ApiResponse(
        success=False,
        error=f"Failed after {max_retries} attempts. Last error: {last_error}",
    )


class ResponseCache:
    """
    Two-tier store for successful API responses.

    A bounded MemoryCache answers first, then the durable store. Records are
    ``{"data", "timestamp"}`` and stay fresh for the ttl passed at read time;
    stale memory records are dropped when read. Both tiers key records by
    ``prefix + cache_key``, so the memory tier can be shared with other users
    of the same MemoryCache.
    """

    def __init__(
        self,
        store: DurableStore,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], float] = time.time,
        memory: MemoryCache | None = None,
    ):
        self.store = store
        self.prefix = prefix
        self._clock = clock
        self.memory = memory if memory is not None else MemoryCache(clock=clock)

    def _storage_key(self, cache_key: str) -> str:
        return self.prefix + cache_key

    def _is_fresh(self, record: dict[str, Any], ttl: float) -> bool:
        return self._clock() - float(record["timestamp"]) < ttl

    async def lookup(self, cache_key: str, ttl: float) -> tuple[bool, Any]:
        """Return (hit, data) for cache_key."""
        storage_key = self._storage_key(cache_key)

        record = self.memory.get(storage_key)
        if record is not None:
            if self._is_fresh(record, ttl):
                return True, record["data"]
            self.memory.delete(storage_key)

        try:
            raw = await self.store.get_item(storage_key)
        except StorageError as e:
            logger.warning(f"Response cache read failed for '{cache_key}': {e}")
            return False, None

        if raw is None:
            return False, None

        try:
            record = json.loads(raw)
            fresh = self._is_fresh(record, ttl)
            data = record["data"]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            await self._remove_quietly(storage_key)
            return False, None

        if not fresh:
            return False, None

        self.memory.set(storage_key, record, ttl)
        return True, data

    async def store_response(
        self, cache_key: str, data: Any, ttl: float = DEFAULT_RESPONSE_TTL_SECONDS
    ) -> None:
        record = {"data": data, "timestamp": self._clock()}
        storage_key = self._storage_key(cache_key)
        self.memory.set(storage_key, record, ttl)

        encoded = json.dumps(record)
        try:
            await self.store.set_item(storage_key, encoded)
            return
        except StorageError as e:
            logger.warning(f"Cache storage full, clearing old entries: {e}")

        await self._drop_oldest_half()
        try:
            await self.store.set_item(storage_key, encoded)
        except StorageError:
            logger.warning(f"Unable to cache '{cache_key}' in durable store")

    async def _drop_oldest_half(self) -> None:
        try:
            keys = [key for key in await self.store.keys() if key.startswith(self.prefix)]
        except StorageError:
            return
        for key in keys[: len(keys) // 2]:
            await self._remove_quietly(key)

    async def _remove_quietly(self, storage_key: str) -> None:
        try:
            await self.store.remove_item(storage_key)
        except StorageError as e:
            logger.warning(f"Failed to remove cache record '{storage_key}': {e}")

    def _matches(self, storage_key: str, pattern: str | None) -> bool:
        return storage_key.startswith(self.prefix) and (pattern is None or pattern in storage_key)

    async def clear(self, pattern: str | None = None) -> None:
        """Drop cached responses whose key contains pattern, or all of them."""
        for key in self.memory.keys():
            if self._matches(key, pattern):
                self.memory.delete(key)

        try:
            keys = await self.store.keys()
        except StorageError as e:
            logger.warning(f"Failed to list response cache keys: {e}")
            return

        for key in keys:
            if self._matches(key, pattern):
                await self._remove_quietly(key)

    async def with_cache(
        self,
        cache_key: str,
        api_call: Callable[[], Awaitable[ApiResponse[T]]],
        ttl: float = DEFAULT_RESPONSE_TTL_SECONDS,
    ) -> ApiResponse[T]:
        hit, data = await self.lookup(cache_key, ttl)
        if hit:
            return ApiResponse(success=True, data=data)

        result = await api_call()
        if result.success and result.data:
            await self.store_response(cache_key, result.data, ttl)
        return result


async def with_cache(
    cache_key: str,
    api_call: Callable[[], Awaitable[ApiResponse[T]]],
    ttl: float = DEFAULT_RESPONSE_TTL_SECONDS,
    *,
    cache: ResponseCache,
) -> ApiResponse[T]:
    """Return a fresh cached response for cache_key or call api_call and cache it."""
    return await cache.with_cache(cache_key, api_call, ttl)


async def clear_api_cache(cache: ResponseCache, pattern: str | None = None) -> None:
    await cache.clear(pattern)


def preload_critical_data(
    client: ApiClient,
    cache: ResponseCache,
    user_id: str,
    ttl: float = PRELOAD_TTL_SECONDS,
) -> list[asyncio.Task[ApiResponse[Any]]]:
    """Warm the response cache for a user's dashboard in the background."""
    if not user_id:
        return []

    critical = {
        "generate_financial_insights": client.generate_financial_insights,
        "generate_budget_recommendations": client.generate_budget_recommendations,
    }

    tasks = []
    for name, method in critical.items():
        task = asyncio.create_task(cache.with_cache(
            f"preload_{user_id}_{name}",
            lambda method=method: method(user_id),
            ttl,
        ))
        task.add_done_callback(_log_preload_failure)
        tasks.append(task)
    return tasks


def _log_preload_failure(task: asyncio.Task[ApiResponse[Any]]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Preload failed: {exc}")
