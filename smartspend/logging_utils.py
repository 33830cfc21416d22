"""
Centralized logging and error handling utilities for SmartSpend.

This module provides decorators and helper functions to standardize logging
and error classification across the governance layer.

Features:
- Structured logging with contextual information
- Error classification into the governance failure taxonomy
- Performance timing for awaited operations
- Context-aware error messages
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from smartspend.exceptions import (
    BackendError,
    QueueClearedError,
    QueueFullError,
    RateLimitExceededError,
    StorageError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO", fmt: str | None = None) -> None:
    """Configure the stdlib root logger that structlog renders through."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt or "%(asctime)s - %(levelname)s - %(message)s",
    )


class ErrorHandler:
    """Maps exceptions onto the governance failure taxonomy."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error into a governance error category.

        Args:
            error: The exception to classify

        Returns:
            Error category name
        """
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, RateLimitExceededError):
            return "rate_limit_error"
        if isinstance(error, QueueFullError | QueueClearedError):
            return "queue_error"
        if isinstance(error, StorageError):
            return "storage_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, BackendError | httpx.HTTPError):
            return "connection_error"
        if isinstance(error, ConnectionError | OSError):
            return "connection_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def to_api_error(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Log an error with context and render the message callers see.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging

        Returns:
            Uniform error message for an ApiResponse
        """
        category = ErrorHandler.classify_error(error)

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
            **(context or {}),
        )

        if category == "timeout_error":
            return "Request timeout"
        if category == "validation_error" and isinstance(error, ValidationError):
            fields = ", ".join(
                ".".join(str(part) for part in err["loc"]) for err in error.errors()
            )
            return f"Invalid request: {fields}"
        return str(error) or "Unknown error occurred"


def _bound_arguments(
    func: Callable[..., Any],
    names: tuple[str, ...],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> dict[str, Any]:
    """Pick the named call arguments, e.g. collection or user_id, for log context."""
    if not names:
        return {}
    arguments = inspect.signature(func).bind_partial(*args, **kwargs).arguments
    return {name: arguments[name] for name in names if name in arguments}


def log_operation(
    operation: str,
    *,
    bind_args: tuple[str, ...] = (),
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging governed async operations with structured context.

    Args:
        operation: Name of the operation, e.g. "data_select"
        bind_args: Parameter names whose values are bound to every log line
        log_result: Whether to log the function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                **_bound_arguments(func, bind_args, args, kwargs),
                **(context or {}),
            )
            operation_logger.debug("Operation started")

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                operation_logger.error(
                    "Operation failed", **_failure_data(e, start_time)
                )
                raise

            end_log_data: dict[str, Any] = {}
            if start_time is not None:
                end_log_data["duration_ms"] = _elapsed_ms(start_time)
            if log_result:
                end_log_data["result"] = result

            operation_logger.debug("Operation completed", **end_log_data)
            return result

        return wrapper
    return decorator


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


def _failure_data(error: Exception, start_time: float | None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_category": ErrorHandler.classify_error(error),
        "error_message": str(error),
    }
    if start_time is not None:
        data["duration_ms"] = _elapsed_ms(start_time)
    return data


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    endpoint: str | None = None,
    identifier: str | None = None,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager logging one governed request.

    Args:
        operation: Name of the operation, e.g. "governed_call"
        endpoint: Rate-limited endpoint the request targets
        identifier: Caller identity the request is counted against
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    request_context = {
        key: value
        for key, value in (("endpoint", endpoint), ("identifier", identifier))
        if value is not None
    }
    operation_logger = logger.bind(
        operation=operation, **request_context, **(context or {})
    )

    operation_logger.debug("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger
    except Exception as e:
        operation_logger.error("Operation failed", **_failure_data(e, start_time))
        raise

    log_data: dict[str, Any] = {}
    if start_time is not None:
        log_data["duration_ms"] = _elapsed_ms(start_time)
    operation_logger.debug("Operation completed", **log_data)


class ContextualLogger:
    """Logger that keeps request context (endpoint, identity) across log calls."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def for_request(self, endpoint: str, identifier: str) -> ContextualLogger:
        return self.bind(endpoint=endpoint, identifier=identifier)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
