"""
Governance Service for SmartSpend

This module wires the governance components into the request path used for
every AI endpoint call:

    rate limiter -> request queue -> response cache -> retry -> API client

Denials and failures come back as ApiResponse values; nothing on this path
raises into the caller. Response times and error samples are recorded in the
capacity planner for the monitoring dashboard.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

from smartspend.api_client import (
    ApiClient,
    ApiResponse,
    ResponseCache,
    preload_critical_data,
    with_retry,
)
from smartspend.config import Configuration
from smartspend.data_client import DataClient
from smartspend.exceptions import BackendError, QueueClearedError, QueueFullError
from smartspend.fallbacks import FinancialData, fallback_insights
from smartspend.governance.cache import CacheKeys, MemoryCache
from smartspend.governance.capacity import CapacityPlanner
from smartspend.governance.local_cache import DurableStore, LocalPersistentCache
from smartspend.governance.rate_limiting import RateLimiterRegistry
from smartspend.governance.request_queue import RequestQueue
from smartspend.logging_utils import ContextualLogger, operation_context

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Sub-prefixes keep API responses and persisted user data apart in one store
RESPONSE_CACHE_PREFIX = "api_"
DATA_CACHE_PREFIX = "data_"


class GovernanceService:
    """
    Owns the process-wide governance state.

    AI calls and backend data calls share one admission queue and one
    MemoryCache. Construct one per process (or per test) and call
    ``aclose()`` when done; ``reset()`` clears counters and caches without
    closing anything.
    """

    class GovernanceServiceConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        registry: RateLimiterRegistry
        queue: RequestQueue
        memory_cache: MemoryCache
        response_cache: ResponseCache
        persistent_cache: LocalPersistentCache
        api_client: ApiClient
        capacity_planner: CapacityPlanner
        data_client: DataClient | None = None
        max_retries: int = 3
        retry_delay: float = 1.0
        response_ttl: float = 300.0
        preload_ttl: float = 600.0

    def __init__(self, service_config: GovernanceService.GovernanceServiceConfig):
        self.registry = service_config.registry
        self.queue = service_config.queue
        self.memory_cache = service_config.memory_cache
        self.response_cache = service_config.response_cache
        self.persistent_cache = service_config.persistent_cache
        self.api_client = service_config.api_client
        self.capacity_planner = service_config.capacity_planner
        self.data_client = service_config.data_client
        self.max_retries = service_config.max_retries
        self.retry_delay = service_config.retry_delay
        self.response_ttl = service_config.response_ttl
        self.preload_ttl = service_config.preload_ttl
        self._log = ContextualLogger({"component": "governance_service"})

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> GovernanceService:
        """
        Build every component from YAML configuration.

        The backend data client is only built when SUPABASE_URL and
        SUPABASE_ANON_KEY are set; without them AI calls still work.
        """
        api_config = configuration.get_api_client_config()
        queue_config = configuration.get_request_queue_config()
        cache_config = configuration.get_cache_config()
        capacity_config = configuration.get_capacity_config()

        queue = RequestQueue(**queue_config)
        memory_cache = MemoryCache(
            max_size=cache_config["memory"]["max_size"],
            default_ttl=cache_config["memory"]["default_ttl"],
        )
        durable = cache_config["durable"]
        store = DurableStore(durable["path"])

        data_client = None
        try:
            backend_config = configuration.get_backend_config()
        except ValueError as e:
            logger.info(f"Backend data access disabled: {e}")
        else:
            data_client = DataClient(
                backend_config["url"],
                backend_config["api_key"],
                queue,
                cache=memory_cache,
                timeout=backend_config["timeout"],
            )

        return cls(cls.GovernanceServiceConfig(
            registry=RateLimiterRegistry(configuration.get_rate_limit_configs()),
            queue=queue,
            memory_cache=memory_cache,
            response_cache=ResponseCache(
                store,
                prefix=durable["prefix"] + RESPONSE_CACHE_PREFIX,
                memory=memory_cache,
            ),
            persistent_cache=LocalPersistentCache(
                store,
                prefix=durable["prefix"] + DATA_CACHE_PREFIX,
                default_ttl=durable["default_ttl"],
            ),
            api_client=ApiClient(
                base_url=api_config["base_url"], timeout=api_config["timeout"]
            ),
            capacity_planner=CapacityPlanner(
                thresholds=capacity_config["thresholds"],
                history_size=capacity_config["history_size"],
            ),
            data_client=data_client,
            max_retries=api_config["max_retries"],
            retry_delay=api_config["retry_delay"],
            response_ttl=api_config["response_ttl"],
            preload_ttl=api_config["preload_ttl"],
        ))

    async def governed_call(
        self,
        endpoint: str,
        identifier: str,
        call: Callable[[], Awaitable[ApiResponse[T]]],
        *,
        cache_key: str | None = None,
        is_authenticated: bool = False,
        is_admin: bool = False,
        retries: int | None = None,
        ttl: float | None = None,
    ) -> ApiResponse[T]:
        """
        Run call for identifier under the endpoint's rate limit.

        Args:
            endpoint: Rate limiter name, e.g. "ai-insights"
            identifier: Caller identity the limit is counted against
            call: Zero-argument coroutine factory issuing the API request
            cache_key: Serve and store the response under this key when set
            is_authenticated: Caller is signed in
            is_admin: Caller is an administrator
            retries: Attempts for the call; defaults to the configured value
            ttl: Response cache freshness in seconds

        Returns:
            ApiResponse carrying the rate limit decision in ``rate_limit``
        """
        limit = self.registry.get(endpoint).check_rate_limit(
            identifier, is_authenticated=is_authenticated, is_admin=is_admin
        )
        if not limit.allowed:
            self._log.for_request(endpoint, identifier).warning(
                "Request denied by rate limiter", retry_after=limit.retry_after
            )
            return ApiResponse(
                success=False,
                error=f"Rate limit exceeded. Try again in {limit.retry_after} seconds.",
                rate_limit=limit,
            )

        attempts = self.max_retries if retries is None else retries

        async def dispatch() -> ApiResponse[T]:
            if attempts > 1:
                return await with_retry(call, attempts, self.retry_delay)
            return await call()

        async def cached_dispatch() -> ApiResponse[T]:
            if cache_key is None:
                return await dispatch()
            return await self.response_cache.with_cache(
                cache_key, dispatch, self.response_ttl if ttl is None else ttl
            )

        start_time = time.perf_counter()
        async with operation_context(
            "governed_call", endpoint=endpoint, identifier=identifier
        ):
            try:
                response = await self.queue.add(cached_dispatch)
            except (QueueFullError, QueueClearedError) as e:
                logger.warning(f"{endpoint} call for {identifier} not admitted: {e}")
                response = ApiResponse(success=False, error=str(e))

        self._record(response, start_time)
        return dataclasses.replace(response, rate_limit=limit)

    def _record(self, response: ApiResponse[Any], start_time: float) -> None:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self.capacity_planner.record_metric("responseTime", elapsed_ms)
        self.capacity_planner.record_metric("errorRate", 0.0 if response.success else 100.0)

    async def insights_for(
        self,
        user_id: str,
        financial_data: FinancialData | None = None,
        **auth: bool,
    ) -> ApiResponse[dict[str, Any]]:
        """
        AI insights for a user, degrading to local heuristics on failure.

        A fallback response keeps ``success=False`` and the original error, and
        carries ``{"insights": [...], "fallback": True}`` as data.
        """
        response = await self.governed_call(
            "ai-insights",
            user_id,
            lambda: self.api_client.generate_financial_insights(user_id),
            cache_key=CacheKeys.ai_insights(user_id),
            **auth,
        )
        if response.success or financial_data is None:
            return response

        insights = [
            insight.model_dump() for insight in fallback_insights(financial_data)
        ]
        return dataclasses.replace(
            response, data={"insights": insights, "fallback": True}
        )

    async def budget_recommendations_for(
        self, user_id: str, **auth: bool
    ) -> ApiResponse[dict[str, Any]]:
        return await self.governed_call(
            "budget-ai",
            user_id,
            lambda: self.api_client.generate_budget_recommendations(user_id),
            cache_key=f"budget_ai_{user_id}",
            **auth,
        )

    async def spending_predictions_for(
        self, user_id: str, **auth: bool
    ) -> ApiResponse[dict[str, float]]:
        return await self.governed_call(
            "spending-predictions",
            user_id,
            lambda: self.api_client.generate_spending_predictions(user_id),
            cache_key=f"spending_predictions_{user_id}",
            **auth,
        )

    async def advice_for(
        self, user_id: str, user_context: str, **auth: bool
    ) -> ApiResponse[dict[str, str]]:
        # Coaching answers depend on free text; never served from cache
        return await self.governed_call(
            "ai-coach",
            user_id,
            lambda: self.api_client.get_financial_advice(user_context),
            **auth,
        )

    async def risk_for(
        self, user_id: str, financial_data: FinancialData | dict[str, Any], **auth: bool
    ) -> ApiResponse[dict[str, Any]]:
        return await self.governed_call(
            "risk-prediction",
            user_id,
            lambda: self.api_client.analyze_financial_risk(financial_data),
            **auth,
        )

    def preload(self, user_id: str) -> list[asyncio.Task[ApiResponse[Any]]]:
        """Warm the response cache for a user's dashboard in the background."""
        return preload_critical_data(
            self.api_client, self.response_cache, user_id, self.preload_ttl
        )

    async def user_data(self, collection: str, user_id: str) -> list[dict[str, Any]]:
        """
        Rows a user owns in collection, read through the shared queue.

        Successful reads are persisted; when the backend fails, the last
        persisted copy is served instead. BackendError propagates when there
        is no backend configured or no persisted copy to fall back to.
        """
        key = CacheKeys.for_collection(collection, user_id)
        if self.data_client is None:
            raise BackendError("Backend data access is not configured")

        try:
            rows = await self.data_client.list_for_user(collection, user_id)
        except BackendError as e:
            cached = await self.persistent_cache.get(key)
            if cached is None:
                raise
            self._log.bind(collection=collection, identifier=user_id).warning(
                "Serving persisted rows after backend failure", error=str(e)
            )
            return cached

        await self.persistent_cache.set(key, rows)
        return rows

    def get_statistics(self) -> dict[str, Any]:
        report = self.capacity_planner.analyze_capacity()
        return {
            "queue": self.queue.get_status(),
            "rate_limits": self.registry.get_statistics(),
            "memory_cache_size": self.memory_cache.size(),
            "recommended_scaling": report.recommended_scaling,
            "bottlenecks": report.bottlenecks,
        }

    def start(self) -> None:
        """Start background sweeps; requires a running event loop."""
        self.registry.start_all()

    def reset(self) -> None:
        """Drop counters, cached values and samples; reject queued tasks."""
        self.registry.reset_all()
        self.memory_cache.clear()
        self.capacity_planner.reset()
        self.queue.clear()

    async def aclose(self) -> None:
        await self.registry.stop_all()
        await self.queue.close()
        await self.api_client.close()
        if self.data_client is not None:
            await self.data_client.close()
        await self.response_cache.store.close()
        if self.persistent_cache.store is not self.response_cache.store:
            await self.persistent_cache.store.close()

    async def __aenter__(self) -> GovernanceService:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
