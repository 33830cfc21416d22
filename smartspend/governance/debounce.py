"""
Debounce and throttle helpers for UI-triggered calls.

Timers run on the asyncio event loop, so these helpers must be called from
inside a running loop. Coroutine functions are scheduled as tasks when
invoked; the task is returned as the call's result.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any


def _invoke(func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return asyncio.ensure_future(result)
    return result


class Debounced:
    """
    Delays calls to func until wait seconds have passed without a new call.

    leading invokes on the first call of a burst, trailing on the last;
    max_wait bounds how long a continuous burst can postpone an invocation.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        wait: float,
        *,
        leading: bool = False,
        trailing: bool = True,
        max_wait: float | None = None,
    ):
        self.func = func
        self.wait = wait
        self.leading = leading
        self.trailing = trailing
        self.max_wait = max(max_wait, wait) if max_wait is not None else None

        self._last_call_time: float | None = None
        self._last_invoke_time = 0.0
        self._timer: asyncio.TimerHandle | None = None
        self._last_args: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._result: Any = None

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    def _start_timer(self, delay: float) -> None:
        self._timer = asyncio.get_running_loop().call_later(delay, self._timer_expired)

    def _invoke_func(self, time: float) -> Any:
        args, kwargs = self._last_args or ((), {})
        self._last_args = None
        self._last_invoke_time = time
        self._result = _invoke(self.func, args, kwargs)
        return self._result

    def _leading_edge(self, time: float) -> Any:
        self._last_invoke_time = time
        self._start_timer(self.wait)
        return self._invoke_func(time) if self.leading else self._result

    def _remaining_wait(self, time: float) -> float:
        since_last_call = time - (self._last_call_time or 0.0)
        since_last_invoke = time - self._last_invoke_time
        waiting = self.wait - since_last_call
        if self.max_wait is not None:
            return min(waiting, self.max_wait - since_last_invoke)
        return waiting

    def _should_invoke(self, time: float) -> bool:
        if self._last_call_time is None:
            return True
        since_last_call = time - self._last_call_time
        since_last_invoke = time - self._last_invoke_time
        return (
            since_last_call >= self.wait
            or since_last_call < 0
            or (self.max_wait is not None and since_last_invoke >= self.max_wait)
        )

    def _timer_expired(self) -> None:
        time = self._now()
        if self._should_invoke(time):
            self._trailing_edge(time)
            return
        self._start_timer(self._remaining_wait(time))

    def _trailing_edge(self, time: float) -> Any:
        self._timer = None
        if self.trailing and self._last_args is not None:
            return self._invoke_func(time)
        self._last_args = None
        return self._result

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        time = self._now()
        is_invoking = self._should_invoke(time)

        self._last_args = (args, kwargs)
        self._last_call_time = time

        if is_invoking:
            if self._timer is None:
                return self._leading_edge(time)
            if self.max_wait is not None:
                self._timer.cancel()
                self._start_timer(self.wait)
                return self._invoke_func(time)
        if self._timer is None:
            self._start_timer(self.wait)
        return self._result

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._last_invoke_time = 0.0
        self._last_args = None
        self._last_call_time = None
        self._timer = None

    def flush(self) -> Any:
        """Invoke a pending trailing call now."""
        if self._timer is None:
            return self._result
        self._timer.cancel()
        return self._trailing_edge(self._now())

    def pending(self) -> bool:
        return self._timer is not None


def debounce(
    func: Callable[..., Any],
    wait: float,
    *,
    leading: bool = False,
    trailing: bool = True,
    max_wait: float | None = None,
) -> Debounced:
    return Debounced(func, wait, leading=leading, trailing=trailing, max_wait=max_wait)


def debounce_api_call(func: Callable[..., Any], wait: float = 0.5) -> Debounced:
    """Trailing-edge debounce that never postpones a call beyond 3 * wait."""
    return Debounced(func, wait, leading=False, trailing=True, max_wait=wait * 3)


class Throttled:
    """Runs func at most once per limit seconds, keeping the latest trailing call."""

    def __init__(self, func: Callable[..., Any], limit: float):
        self.func = func
        self.limit = limit
        self._in_throttle = False
        self._last_ran = 0.0
        self._timer: asyncio.TimerHandle | None = None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        loop = asyncio.get_running_loop()

        if not self._in_throttle:
            _invoke(self.func, args, kwargs)
            self._last_ran = loop.time()
            self._in_throttle = True
            return

        if self._timer is not None:
            self._timer.cancel()
        delay = max(0.0, self.limit - (loop.time() - self._last_ran))
        self._timer = loop.call_later(delay, self._trailing, args, kwargs)

    def _trailing(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self._timer = None
        _invoke(self.func, args, kwargs)
        self._last_ran = asyncio.get_running_loop().time()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._in_throttle = False


def throttle(func: Callable[..., Any], limit: float) -> Throttled:
    return Throttled(func, limit)
