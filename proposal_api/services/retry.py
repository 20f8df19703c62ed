from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_LIMIT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota", "Too Many Requests")


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if value in (429, "429", "RESOURCE_EXHAUSTED"):
            return True
    message = str(exc)
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def retry_with_backoff(
    *,
    should_retry: Callable[[BaseException], bool] = is_rate_limit_error,
    max_retries: int = 5,
    initial_delay: float = 5.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry an async callable with exponential backoff.

    Only exceptions accepted by ``should_retry`` are retried; the delay doubles
    on every attempt (``initial_delay``, ``2 * initial_delay``, ...) and the
    last error is re-raised once ``max_retries`` retries are spent.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retries = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if retries >= max_retries or not should_retry(exc):
                        raise
                    retries += 1
                    delay = initial_delay * (2 ** (retries - 1))
                    logger.warning(
                        "Retryable error from %s (attempt %s/%s); waiting %.1fs: %s",
                        getattr(func, "__qualname__", func),
                        retries,
                        max_retries,
                        delay,
                        exc,
                    )
                    await sleep(delay)

        return wrapper

    return decorator
