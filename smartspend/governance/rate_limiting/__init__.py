"""
Rate limiting for AI endpoints and UI-triggered calls.
"""

from __future__ import annotations

from .limiter import (
    DEFAULT_ENDPOINT_LIMITS,
    EndpointRateLimiter,
    KeyedRateLimiter,
    RateLimiterRegistry,
    with_rate_limit,
)
from .models import (
    RateLimitConfig,
    RateLimitEntry,
    RateLimitResult,
    add_rate_limit_headers,
)

__all__ = [
    "DEFAULT_ENDPOINT_LIMITS",
    "EndpointRateLimiter",
    "KeyedRateLimiter",
    "RateLimitConfig",
    "RateLimitEntry",
    "RateLimitResult",
    "RateLimiterRegistry",
    "add_rate_limit_headers",
    "with_rate_limit",
]
