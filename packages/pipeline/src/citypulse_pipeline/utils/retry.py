"""
utils/retry.py — Exponential-backoff retry decorator for async HTTP calls.

Built on tenacity. Only transport-level failures (connection refused,
timeouts, dropped connections) are retried by default: an HTTP status
error is an answer from the upstream and is handed to the resolver as-is
so the next tier can be tried without delay.

Usage:
    from citypulse_pipeline.utils.retry import with_retry

    @with_retry(base_delay=0.5)
    async def fetch(url: str) -> bytes:
        async with httpx.AsyncClient() as client:
            r = await client.get(url)
            r.raise_for_status()
            return r.content
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from citypulse_shared.config import settings

log = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (httpx.TransportError,)


def with_retry(
    max_attempts: int | None = None,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retry_on: type[Exception] | tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> Callable[[F], F]:
    """
    Retry an async function with exponential backoff.

    Args:
        max_attempts: Total attempts; None reads settings.http_retry_attempts
                      at call time.
        base_delay:   Multiplier for the exponential wait, in seconds.
        max_delay:    Cap on a single wait.
        retry_on:     Exception type(s) that trigger another attempt.

    Returns:
        Decorated async function. The last exception is re-raised.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max_attempts or settings.http_retry_attempts
            attempt_log = log.bind(function=fn.__qualname__)
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=base_delay, max=max_delay),
                retry=retry_if_exception_type(retry_on),
                reraise=True,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        attempt_log.warning(
                            "retry_attempt",
                            attempt=number,
                            max_attempts=attempts,
                        )
                    return await fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
