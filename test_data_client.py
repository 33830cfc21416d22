#!/usr/bin/env python3
"""
Tests for queued, memoized backend data access.
"""

import json

import httpx
import pytest
import pytest_asyncio
import respx

from smartspend.data_client import DataClient
from smartspend.exceptions import BackendError
from smartspend.governance.cache import MemoryCache
from smartspend.governance.request_queue import RequestQueue

DB_URL = "http://db.smartspend.test"
REST = f"{DB_URL}/rest/v1"


@pytest_asyncio.fixture
async def data_client(clock):
    client = DataClient(
        DB_URL + "/",
        "anon-key",
        RequestQueue(max_concurrent=2, min_delay=0),
        cache=MemoryCache(clock=clock),
        access_token="user-jwt",
    )
    yield client
    await client.close()


class TestSelect:
    """Test reads and the per-user memo."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_for_user_filters_and_orders(self, data_client):
        route = respx.get(f"{REST}/transactions").mock(
            return_value=httpx.Response(200, json=[{"id": "t1", "amount": 12.5}])
        )

        rows = await data_client.list_for_user("transactions", "u1")

        assert rows == [{"id": "t1", "amount": 12.5}]
        request = route.calls.last.request
        assert request.url.params["user_id"] == "eq.u1"
        assert request.url.params["order"] == "date.desc"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer user-jwt"

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_for_user_is_memoized(self, data_client):
        route = respx.get(f"{REST}/budgets").mock(
            return_value=httpx.Response(200, json=[{"id": "b1"}])
        )

        await data_client.list_for_user("budgets", "u1")
        await data_client.list_for_user("budgets", "u1")

        assert route.call_count == 1
        assert data_client.cache.has("budgets_u1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_memo_expires(self, data_client, clock):
        route = respx.get(f"{REST}/bills").mock(return_value=httpx.Response(200, json=[]))

        await data_client.list_for_user("bills", "u1")
        clock.advance(300)
        await data_client.list_for_user("bills", "u1")

        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_profile(self, data_client):
        route = respx.get(f"{REST}/profiles").mock(
            return_value=httpx.Response(200, json=[{"id": "u1", "full_name": "Sam"}])
        )

        profile = await data_client.get_profile("u1")

        assert profile == {"id": "u1", "full_name": "Sam"}
        assert route.calls.last.request.url.params["id"] == "eq.u1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_missing_profile(self, data_client):
        respx.get(f"{REST}/profiles").mock(return_value=httpx.Response(200, json=[]))
        assert await data_client.get_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_unknown_collection(self, data_client):
        with pytest.raises(ValueError, match="accounts"):
            await data_client.select("accounts")

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_failure_raises_backend_error(self, data_client):
        respx.get(f"{REST}/debts").mock(
            return_value=httpx.Response(401, json={"message": "JWT expired"})
        )

        with pytest.raises(BackendError) as exc_info:
            await data_client.select("debts", {"user_id": "u1"})

        assert exc_info.value.status_code == 401
        assert "JWT expired" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_failure_raises_backend_error(self, data_client):
        respx.get(f"{REST}/debts").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(BackendError, match="refused"):
            await data_client.select("debts")


class TestWrites:
    """Test writes and cache invalidation."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_insert_sets_owner_and_invalidates(self, data_client):
        data_client.cache.set("savings_goals_u1", [])
        route = respx.post(f"{REST}/savings_goals").mock(
            return_value=httpx.Response(201, json=[{"id": "g1", "name": "Trip"}])
        )

        row = await data_client.insert("savings_goals", "u1", {"name": "Trip"})

        assert row == {"id": "g1", "name": "Trip"}
        request = route.calls.last.request
        assert json.loads(request.content) == {"name": "Trip", "user_id": "u1"}
        assert request.headers["prefer"] == "return=representation"
        assert not data_client.cache.has("savings_goals_u1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_scopes_to_owner(self, data_client):
        route = respx.patch(f"{REST}/investments").mock(
            return_value=httpx.Response(200, json=[{"id": "i1", "shares": 3}])
        )

        row = await data_client.update("investments", "u1", "i1", {"shares": 3})

        assert row["shares"] == 3
        params = route.calls.last.request.url.params
        assert params["id"] == "eq.i1"
        assert params["user_id"] == "eq.u1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_with_empty_body(self, data_client):
        data_client.cache.set("transactions_u1", [{"id": "t1"}])
        respx.delete(f"{REST}/transactions").mock(return_value=httpx.Response(204))

        await data_client.delete("transactions", "u1", "t1")

        assert not data_client.cache.has("transactions_u1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_profile_write_invalidates_profile_key(self, data_client):
        data_client.cache.set("profile_u1", [{"id": "u1"}])
        route = respx.patch(f"{REST}/profiles").mock(
            return_value=httpx.Response(200, json=[{"id": "u1", "currency": "EUR"}])
        )

        await data_client.update("profiles", "u1", "u1", {"currency": "EUR"})

        assert route.calls.last.request.url.params["id"] == "eq.u1"
        assert not data_client.cache.has("profile_u1")
