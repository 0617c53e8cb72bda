"""
sources/base.py — Abstract base class for all upstream source adapters.

Each concrete source wraps one upstream protocol (ArcGIS feature query,
MBTA JSON:API, GTFS enhanced JSON, RSS) and exposes fetch helpers that
return raw, protocol-shaped data. Normalization into citypulse records
happens in transforms/, not here.

Shared behaviour provided here:
  _get()        — GET with timeout, transport-error retry, and status check
  _get_json()   — _get() + JSON decode, requiring a JSON object
  _get_text()   — _get() + body text
  SourceError   — raised for non-2xx responses and upstream error bodies
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from citypulse_shared.config import settings
from citypulse_pipeline.utils.retry import with_retry

log = structlog.get_logger(__name__)

QueryParams = dict[str, str | int | float | bool]


class SourceError(RuntimeError):
    """An upstream answered, but not with usable data."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


def stringify_params(params: dict[str, Any]) -> dict[str, str]:
    """Query params as strings; booleans lower-cased, None dropped."""
    out: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            out[key] = "true" if value else "false"
        else:
            out[key] = str(value)
    return out


class BaseSource:
    """Base for citypulse upstream adapters: timeout, bound logger, HTTP helpers."""

    # Override in subclass; used in log events and error messages
    name: str = "unknown"

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else settings.http_timeout_s
        self._log = log.bind(source_name=self.name)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _error_detail(self, response: httpx.Response) -> str:
        """Short human-readable reason extracted from an error body."""
        return response.text.strip().replace("\n", " ")[:180]

    @with_retry(base_delay=0.5)
    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        t0 = time.monotonic()
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            response = await client.get(url, params=stringify_params(params or {}))
        self._log.debug(
            "http_get",
            url=url,
            status=response.status_code,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        if not response.is_success:
            detail = self._error_detail(response)
            message = f"{self.name} request failed ({response.status_code})"
            raise SourceError(
                f"{message}: {detail}" if detail else message,
                status_code=response.status_code,
                url=url,
            )
        return response

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = await self._get(url, params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceError(f"{self.name} returned invalid JSON", url=url) from exc
        if not isinstance(payload, dict):
            raise SourceError(f"{self.name} JSON payload was not an object", url=url)
        return payload

    async def _get_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        response = await self._get(url, params)
        return response.text
