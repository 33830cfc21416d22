"""
Rate limiting models and dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for one endpoint's fixed-window limiter."""
    max_requests: int
    window_seconds: float

    # Extra requests admitted above max_requests within one window
    burst_allowance: int = 0
    recovery_period_seconds: float = 3600.0

    # Bypass rules
    skip_if_authenticated: bool = False
    admin_bypass: bool = True

    # Background sweep of expired entries
    cleanup_interval_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.burst_allowance < 0:
            raise ValueError("burst_allowance must be non-negative")
        if self.cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be positive")

    @property
    def total_allowed(self) -> int:
        return self.max_requests + self.burst_allowance


@dataclass
class RateLimitEntry:
    """Counter state for one endpoint:identifier key."""
    count: int
    reset_at: float
    burst_used: int = 0
    last_request_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now > self.reset_at


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    reset: float  # epoch seconds
    limit: int
    retry_after: int | None = None  # whole seconds, only set on denial

    def to_headers(self) -> dict[str, str]:
        """Advisory HTTP headers describing this result."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset)),
        }
        if self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def add_rate_limit_headers(
    headers: dict[str, str], result: RateLimitResult
) -> dict[str, str]:
    """Return a copy of headers with the rate limit headers merged in."""
    return {**headers, **result.to_headers()}
