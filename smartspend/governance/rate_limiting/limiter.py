"""
Fixed-window rate limiting with burst allowance for AI endpoints.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from smartspend.exceptions import RateLimitExceededError

from .models import RateLimitConfig, RateLimitEntry, RateLimitResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]

# Endpoint limits used when configuration does not name any
DEFAULT_ENDPOINT_LIMITS: dict[str, RateLimitConfig] = {
    "ai-coach": RateLimitConfig(max_requests=5, window_seconds=60, burst_allowance=2),
    "ai-insights": RateLimitConfig(max_requests=3, window_seconds=300, burst_allowance=1),
    "budget-ai": RateLimitConfig(max_requests=2, window_seconds=300, burst_allowance=1),
    "spending-predictions": RateLimitConfig(max_requests=3, window_seconds=300),
    "risk-prediction": RateLimitConfig(max_requests=2, window_seconds=300),
}


class EndpointRateLimiter:
    """
    Fixed-window limiter keyed by endpoint and caller identity.

    Features:
    - Burst allowance above the nominal limit, tracked separately
    - Admin and authenticated bypass rules
    - Lazy expiry on read plus a periodic background sweep
    - Non-mutating status lookups for display

    State is in-memory only: limits reset on restart and are not shared
    between processes.
    """

    def __init__(
        self,
        endpoint: str,
        config: RateLimitConfig,
        clock: Clock = time.time,
    ):
        self.endpoint = endpoint
        self.config = config
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}

        self._cleanup_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> EndpointRateLimiter:
        """Start background cleanup."""
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop background cleanup."""
        await self.stop()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    def _key(self, identifier: str) -> str:
        return f"{self.endpoint}:{identifier}"

    def _live_entry(self, key: str, now: float) -> RateLimitEntry | None:
        entry = self._entries.get(key)
        if entry is not None and not entry.is_expired(now):
            return entry
        return None

    def _unlimited(self, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=self.config.max_requests,
            reset=now + self.config.window_seconds,
            limit=self.config.max_requests,
        )

    def check_rate_limit(
        self,
        identifier: str,
        is_authenticated: bool = False,
        is_admin: bool = False,
    ) -> RateLimitResult:
        """
        Check and count one request for identifier.

        Args:
            identifier: Caller identity (user id, IP address, ...)
            is_authenticated: Caller is signed in
            is_admin: Caller is an administrator

        Returns:
            RateLimitResult; denials carry retry_after in whole seconds
        """
        now = self._clock()

        if self.config.admin_bypass and is_admin:
            return self._unlimited(now)
        if self.config.skip_if_authenticated and is_authenticated:
            return self._unlimited(now)

        key = self._key(identifier)
        entry = self._live_entry(key, now)

        if entry is None:
            entry = RateLimitEntry(
                count=1,
                reset_at=now + self.config.window_seconds,
                last_request_at=now,
            )
            self._entries[key] = entry
            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_requests - 1,
                reset=entry.reset_at,
                limit=self.config.max_requests,
            )

        total_allowed = self.config.total_allowed
        current_usage = entry.count

        if current_usage >= total_allowed:
            retry_after = math.ceil(entry.reset_at - now)
            logger.info(
                f"Rate limit exceeded for {key}: {current_usage}/{total_allowed}, "
                f"retry after {retry_after}s"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset=entry.reset_at,
                limit=self.config.max_requests,
                retry_after=max(1, retry_after),
            )

        entry.count += 1
        entry.last_request_at = now
        if current_usage >= self.config.max_requests:
            entry.burst_used += 1

        return RateLimitResult(
            allowed=True,
            remaining=max(0, total_allowed - entry.count),
            reset=entry.reset_at,
            limit=self.config.max_requests,
        )

    def get_status(self, identifier: str) -> RateLimitResult:
        """Current status for identifier without counting a request."""
        now = self._clock()
        entry = self._live_entry(self._key(identifier), now)

        if entry is None:
            return self._unlimited(now)

        total_allowed = self.config.total_allowed
        return RateLimitResult(
            allowed=entry.count < total_allowed,
            remaining=max(0, total_allowed - entry.count),
            reset=entry.reset_at,
            limit=self.config.max_requests,
        )

    def get_entry(self, identifier: str) -> RateLimitEntry | None:
        """Live entry for identifier, if its window is still open."""
        return self._live_entry(self._key(identifier), self._clock())

    def cleanup(self) -> int:
        """Remove entries whose window has passed. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired rate limit entries for {self.endpoint}")
        return len(expired)

    def reset(self) -> None:
        """Forget every counter."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            self.cleanup()

    def get_statistics(self) -> dict[str, int | float | str]:
        now = self._clock()
        live = [entry for entry in self._entries.values() if not entry.is_expired(now)]
        return {
            "endpoint": self.endpoint,
            "tracked_identities": len(live),
            "burst_used": sum(entry.burst_used for entry in live),
            "max_requests": self.config.max_requests,
            "window_seconds": self.config.window_seconds,
        }


class KeyedRateLimiter:
    """
    Lightweight fixed-window limiter for UI-triggered calls.

    The key is derived from an arbitrary context mapping by key_generator;
    without one every caller shares the "default" key.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        key_generator: Callable[[Mapping[str, Any]], str] | None = None,
        clock: Clock = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_generator = key_generator
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}

    def _key(self, context: Mapping[str, Any]) -> str:
        if self.key_generator:
            return self.key_generator(context)
        return "default"

    def is_allowed(self, context: Mapping[str, Any] | None = None) -> bool:
        key = self._key(context or {})
        now = self._clock()
        entry = self._entries.get(key)

        if entry is None or entry.is_expired(now):
            self._entries[key] = RateLimitEntry(
                count=1, reset_at=now + self.window_seconds, last_request_at=now
            )
            return True

        if entry.count >= self.max_requests:
            return False

        entry.count += 1
        entry.last_request_at = now
        return True

    def get_remaining_requests(self, context: Mapping[str, Any] | None = None) -> int:
        entry = self._entries.get(self._key(context or {}))
        if entry is None or entry.is_expired(self._clock()):
            return self.max_requests
        return max(0, self.max_requests - entry.count)

    def get_reset_time(self, context: Mapping[str, Any] | None = None) -> float:
        """Epoch seconds at which the window resets, 0 when no window is open."""
        entry = self._entries.get(self._key(context or {}))
        if entry is None or entry.is_expired(self._clock()):
            return 0.0
        return entry.reset_at

    def seconds_until_reset(self, context: Mapping[str, Any] | None = None) -> int:
        reset_time = self.get_reset_time(context)
        if not reset_time:
            return 0
        return math.ceil(reset_time - self._clock())

    def cleanup(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)


async def with_rate_limit(
    limiter: KeyedRateLimiter,
    context: Mapping[str, Any],
    call: Callable[[], Awaitable[T]],
    on_rate_limited: Callable[[float], None] | None = None,
) -> T:
    """
    Run call only if limiter admits context.

    Raises:
        RateLimitExceededError: If the limiter denies the request
    """
    if not limiter.is_allowed(context):
        reset_time = limiter.get_reset_time(context)
        wait_time = limiter.seconds_until_reset(context)

        if on_rate_limited:
            on_rate_limited(reset_time)

        raise RateLimitExceededError(
            f"Rate limit exceeded. Try again in {wait_time} seconds.",
            retry_after=wait_time,
        )

    return await call()


class RateLimiterRegistry:
    """One EndpointRateLimiter per AI endpoint, with shared lifecycle hooks."""

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig] | None = None,
        clock: Clock = time.time,
    ):
        configs = DEFAULT_ENDPOINT_LIMITS if configs is None else configs
        self._limiters = {
            endpoint: EndpointRateLimiter(endpoint, config, clock=clock)
            for endpoint, config in configs.items()
        }

    def get(self, endpoint: str) -> EndpointRateLimiter:
        try:
            return self._limiters[endpoint]
        except KeyError:
            raise ValueError(f"No rate limiter configured for endpoint '{endpoint}'") from None

    def __contains__(self, endpoint: str) -> bool:
        return endpoint in self._limiters

    @property
    def endpoints(self) -> list[str]:
        return list(self._limiters)

    def start_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.start()

    async def stop_all(self) -> None:
        for limiter in self._limiters.values():
            await limiter.stop()

    def reset_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()

    def get_statistics(self) -> dict[str, dict[str, int | float | str]]:
        return {
            endpoint: limiter.get_statistics()
            for endpoint, limiter in self._limiters.items()
        }
