"""
utils/inflight.py — Process-scoped "last result" cache with in-flight de-duplication.

Concurrent callers asking for the same parameters share one upstream
request instead of issuing duplicates. The cache holds a single slot keyed
by a fingerprint of the normalized parameters:

  - first request for a fingerprint populates the slot
  - a request with a different fingerprint replaces it
  - an optional TTL lets a completed result be reused; with ttl=0 only
    requests that overlap in time are merged

The fetch runs as its own task. Every caller, the first included, awaits
it through asyncio.shield, so a caller that times out leaves the shared
refresh running for the others. Failures are not cached: the in-flight
marker is cleared and every waiter sees the same exception.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Generic, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def fingerprint(params: Mapping[str, Any]) -> str:
    """Stable SHA-256 of params; key order and whitespace do not matter."""
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _retrieve_exception(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()


class InFlightCache(Generic[T]):
    """Single-slot async result cache, one instance per logical resource."""

    def __init__(self, name: str, ttl: float = 0.0) -> None:
        self.name = name
        self._ttl = ttl
        self._key: str | None = None
        self._value: T | None = None
        self._stored_at = 0.0
        self._pending: dict[str, asyncio.Future[T]] = {}

    def is_pending(self, params: Mapping[str, Any] | None = None) -> bool:
        if params is None:
            return bool(self._pending)
        return fingerprint(params) in self._pending

    def invalidate(self) -> None:
        self._key = None
        self._value = None

    def _fresh(self, key: str) -> bool:
        if self._key != key or self._value is None:
            return False
        return self._ttl > 0 and (time.monotonic() - self._stored_at) <= self._ttl

    async def get_or_fetch(
        self,
        params: Mapping[str, Any],
        fetch: Callable[[], Awaitable[T]],
    ) -> T:
        key = fingerprint(params)
        if self._fresh(key):
            log.debug("inflight_cache_hit", cache=self.name)
            return self._value  # type: ignore[return-value]

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fetch))
            task.add_done_callback(_retrieve_exception)
            self._pending[key] = task
        else:
            log.debug("inflight_join", cache=self.name)
        # A caller that times out or is cancelled only abandons its own wait
        return await asyncio.shield(task)

    async def _run(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetch()
        finally:
            self._pending.pop(key, None)
        self._key = key
        self._value = value
        self._stored_at = time.monotonic()
        return value


async def await_or_fallback(
    awaitable: Awaitable[T],
    timeout: float,
    fallback: Callable[[], T | None],
    *,
    name: str,
) -> T | None:
    """
    Await with a deadline; on timeout abandon the work and return fallback().

    The abandoned coroutine is cancelled by asyncio.wait_for. Exceptions
    other than the timeout propagate.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("refresh_timed_out", name=name, timeout_s=timeout)
        return fallback()
