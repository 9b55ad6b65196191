"""Exponential-backoff retry decorator for both sync and async callables.

The order workflow itself never retries.  This decorator is for callers that
wrap a whole *re-read then act* step, so a lost write race is resolved by
re-evaluating the preconditions against fresh state::

    from promptmarket.orchestrator.errors import ConflictError
    from promptmarket.utils.retry import retry

    @retry(max_attempts=3, base_delay=0.2, exceptions=(ConflictError,))
    async def approve():
        return await workflow.approve_current_version(order_id, caller_id)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import random
import time
from typing import Any, Callable, ParamSpec, TypeVar

import structlog

P = ParamSpec("P")
T = TypeVar("T")

log = structlog.stdlib.get_logger(__name__)


def _compute_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Return the back-off duration for the given *attempt* (0-indexed).

    Formula: ``min(base_delay * 2^attempt + jitter, max_delay)``
    where *jitter* is uniform in ``[0, base_delay]``.
    """
    exp = base_delay * (2 ** attempt)
    jitter = random.uniform(0, base_delay)
    return min(exp + jitter, max_delay)


def _give_up_or_delay(
    func: Callable[..., Any],
    exc: BaseException,
    attempt: int,
    max_attempts: int,
    base_delay: float,
    max_delay: float,
) -> float | None:
    """Log the failed attempt and return the delay, or ``None`` when exhausted."""
    context = {
        "func": func.__qualname__,
        "attempt": attempt + 1,
        "max_attempts": max_attempts,
        "error": str(exc),
        "error_type": type(exc).__name__,
    }
    if attempt + 1 == max_attempts:
        log.error("retry.exhausted", **context)
        return None
    delay = _compute_delay(attempt, base_delay, max_delay)
    log.warning("retry.attempt", delay=round(delay, 2), **context)
    return delay


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator factory that retries the wrapped function on failure.

    Parameters
    ----------
    max_attempts:
        Total number of attempts (including the first call).  Must be >= 1.
    base_delay:
        Initial delay in seconds before the first retry.
    max_delay:
        Upper cap on the computed delay.
    exceptions:
        Exception types that trigger a retry.  Anything else propagates
        immediately.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                for attempt in range(max_attempts):
                    try:
                        return await func(*args, **kwargs)  # type: ignore[misc]
                    except exceptions as exc:
                        delay = _give_up_or_delay(
                            func, exc, attempt, max_attempts, base_delay, max_delay
                        )
                        if delay is None:
                            raise
                        await asyncio.sleep(delay)
                raise AssertionError("unreachable")  # pragma: no cover

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    delay = _give_up_or_delay(
                        func, exc, attempt, max_attempts, base_delay, max_delay
                    )
                    if delay is None:
                        raise
                    time.sleep(delay)
            raise AssertionError("unreachable")  # pragma: no cover

        return sync_wrapper

    return decorator
