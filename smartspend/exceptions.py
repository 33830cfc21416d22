"""
Error types for the SmartSpend request governance layer.

Every error carries the component that raised it plus optional details:
- Rate limit denials with retry guidance
- Request queue admission failures
- Durable storage failures
- Backend data service failures
"""

from __future__ import annotations

from typing import Any


class GovernanceError(Exception):
    """Base governance error with rich context."""

    def __init__(
        self,
        message: str,
        component: str = "governance",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.component = component
        self.details = details or {}


class RateLimitExceededError(GovernanceError):
    """Rate limit denial with retry information."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs,
    ):
        kwargs.setdefault("component", "rate_limiter")
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class QueueFullError(GovernanceError):
    """Request queue backlog is at capacity."""

    def __init__(self, message: str = "Request queue is full. Please try again later.", **kwargs):
        kwargs.setdefault("component", "request_queue")
        super().__init__(message, **kwargs)


class QueueClearedError(GovernanceError):
    """A pending task was dropped by a queue teardown."""

    def __init__(self, message: str = "Queue cleared", **kwargs):
        kwargs.setdefault("component", "request_queue")
        super().__init__(message, **kwargs)


class StorageError(GovernanceError):
    """Durable key/value storage failure."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("component", "durable_store")
        super().__init__(message, **kwargs)


class BackendError(GovernanceError):
    """Backend data service returned an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        **kwargs,
    ):
        kwargs.setdefault("component", "data_client")
        super().__init__(message, **kwargs)
        self.status_code = status_code
