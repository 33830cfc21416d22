"""
Client-side request governance for SmartSpend.

This package layers admission control in front of backend and AI calls:
- Memory and durable TTL caches
- Debounce and throttle helpers
- Fixed-window rate limiters with burst allowance
- A bounded-concurrency FIFO request queue
- An advisory capacity planner
"""

from __future__ import annotations

from .cache import CacheEntry, CacheKeys, MemoryCache, with_cache
from .capacity import CapacityMetrics, CapacityPlanner, CapacityReport, ScalingRecommendation
from .debounce import Debounced, Throttled, debounce, debounce_api_call, throttle
from .local_cache import DurableStore, LocalPersistentCache
from .rate_limiting import (
    EndpointRateLimiter,
    KeyedRateLimiter,
    RateLimitConfig,
    RateLimiterRegistry,
    RateLimitResult,
    add_rate_limit_headers,
    with_rate_limit,
)
from .request_queue import QueuedTask, RequestQueue, queued, queued_call

__all__ = [
    "CacheEntry",
    "CacheKeys",
    "CapacityMetrics",
    "CapacityPlanner",
    "CapacityReport",
    "Debounced",
    "DurableStore",
    "EndpointRateLimiter",
    "KeyedRateLimiter",
    "LocalPersistentCache",
    "MemoryCache",
    "QueuedTask",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiterRegistry",
    "RequestQueue",
    "ScalingRecommendation",
    "Throttled",
    "add_rate_limit_headers",
    "debounce",
    "debounce_api_call",
    "queued",
    "queued_call",
    "throttle",
    "with_cache",
    "with_rate_limit",
]
