"""
Queued CRUD access to the hosted SmartSpend database.

The backend exposes a PostgREST-style interface: one path per collection,
``column=eq.value`` filters and ``order=column.asc|desc``. Every call is
admitted through a RequestQueue; per-user reads are memoized in a
MemoryCache and invalidated by writes.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from smartspend.exceptions import BackendError
from smartspend.governance.cache import CacheKeys, MemoryCache
from smartspend.governance.request_queue import RequestQueue
from smartspend.logging_utils import log_operation

logger = logging.getLogger(__name__)

COLLECTIONS = frozenset({
    "transactions",
    "budgets",
    "savings_goals",
    "bills",
    "debts",
    "investments",
    "profiles",
})

# profiles are keyed by the user id itself
OWNER_COLUMN = {"profiles": "id"}
DEFAULT_ORDER = {"transactions": ("date", False)}


def _owner_column(collection: str) -> str:
    return OWNER_COLUMN.get(collection, "user_id")


class DataClient:
    """Backend data access where every request passes through the queue."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        queue: RequestQueue,
        cache: MemoryCache | None = None,
        access_token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.queue = queue
        self.cache = cache
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(
                f"Unknown collection '{collection}', expected one of {sorted(COLLECTIONS)}"
            )

    @staticmethod
    def _params(
        filters: dict[str, Any] | None,
        order_by: tuple[str, bool] | None = None,
    ) -> dict[str, str]:
        params = {column: f"eq.{value}" for column, value in (filters or {}).items()}
        if order_by:
            column, ascending = order_by
            params["order"] = f"{column}.{'asc' if ascending else 'desc'}"
        return params

    async def _send(
        self,
        method: str,
        collection: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> list[dict[str, Any]]:
        headers = {"Prefer": "return=representation"} if method != "GET" else None

        async def call() -> httpx.Response:
            return await self.client.request(
                method, f"/{collection}", params=params, json=json, headers=headers
            )

        try:
            response = await self.queue.add(call)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {collection} failed: {e}") from e

        if not response.is_success:
            raise BackendError(
                f"{method} {collection} failed: HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        if not response.content:
            return []
        return response.json()

    @log_operation("data_select", bind_args=("collection",))
    async def select(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: tuple[str, bool] | None = None,
    ) -> list[dict[str, Any]]:
        """Rows of collection matching every equality filter."""
        self._check_collection(collection)
        return await self._send("GET", collection, params=self._params(filters, order_by))

    async def list_for_user(self, collection: str, user_id: str) -> list[dict[str, Any]]:
        """All rows a user owns, memoized per user until the next write."""
        self._check_collection(collection)
        key = CacheKeys.for_collection(collection, user_id)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        rows = await self.select(
            collection,
            {_owner_column(collection): user_id},
            DEFAULT_ORDER.get(collection),
        )
        if self.cache is not None:
            self.cache.set(key, rows)
        return rows

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        rows = await self.list_for_user("profiles", user_id)
        return rows[0] if rows else None

    @log_operation("data_insert", bind_args=("collection", "user_id"))
    async def insert(
        self, collection: str, user_id: str, row: dict[str, Any]
    ) -> dict[str, Any]:
        self._check_collection(collection)
        rows = await self._send(
            "POST", collection, json={**row, _owner_column(collection): user_id}
        )
        self._invalidate(collection, user_id)
        return rows[0] if rows else {}

    @log_operation("data_update", bind_args=("collection", "user_id", "row_id"))
    async def update(
        self,
        collection: str,
        user_id: str,
        row_id: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        self._check_collection(collection)
        filters = {"id": row_id, _owner_column(collection): user_id}
        rows = await self._send("PATCH", collection, params=self._params(filters), json=updates)
        self._invalidate(collection, user_id)
        return rows[0] if rows else {}

    @log_operation("data_delete", bind_args=("collection", "user_id", "row_id"))
    async def delete(self, collection: str, user_id: str, row_id: str) -> None:
        self._check_collection(collection)
        filters = {"id": row_id, _owner_column(collection): user_id}
        await self._send("DELETE", collection, params=self._params(filters))
        self._invalidate(collection, user_id)

    def _invalidate(self, collection: str, user_id: str) -> None:
        if self.cache is not None:
            self.cache.delete(CacheKeys.for_collection(collection, user_id))

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> DataClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
