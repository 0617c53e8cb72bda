"""
sources/mbta.py — MBTA v3 JSON:API client.

Endpoints used:
  GET /vehicles?include=route&filter[route_type]=0,1,2,3,4&page[limit]=1000
  GET /alerts?include=route&filter[route_type]=...&sort=-updated_at
  GET /routes?filter[id]=Red,Orange,...          (≤ 40 ids per request)
  GET /shapes?filter[route]=Red,Orange,...       (≤ 40 ids per request)

Document shape:
  {
    "data":     [{"id": "y1234", "type": "vehicle", "attributes": {...},
                  "relationships": {"route": {"data": {"id": "Red", "type": "route"}}}}],
    "included": [{"id": "Red", "type": "route", "attributes": {...}}]
  }

Error shape (any 4xx/5xx):
  {"errors": [{"detail": "...", "source": {"parameter": "filter[route_type]"}}]}

An API key (settings.mbta_api_key) is sent when configured; anonymous
access works at a lower rate limit.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from typing import Any, TypeVar

import httpx

from citypulse_shared.config import settings
from citypulse_shared.constants import MBTA_FILTER_CHUNK_SIZE, MBTA_ROUTE_TYPES
from citypulse_pipeline.sources.base import BaseSource, QueryParams

T = TypeVar("T")

VEHICLES_PAGE_LIMIT = 1000
ALERTS_PAGE_LIMIT = 250
SHAPES_PAGE_LIMIT = 2000


def chunked(items: Sequence[T], size: int = MBTA_FILTER_CHUNK_SIZE) -> Iterator[list[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def parse_jsonapi_error(body: str) -> str:
    """First JSON:API error as "detail (param: x)", or a trimmed raw body."""
    text = body.strip()
    if not text:
        return ""
    try:
        parsed = json.loads(text)
    except ValueError:
        return " ".join(text.split())[:180]

    errors = parsed.get("errors") if isinstance(parsed, dict) else None
    if not isinstance(errors, list) or not errors or not isinstance(errors[0], dict):
        return ""
    first = errors[0]
    detail = str(first.get("detail") or first.get("title") or "")
    source = first.get("source")
    parameter = source.get("parameter") if isinstance(source, dict) else None
    return f"{detail} (param: {parameter})".strip() if parameter else detail.strip()


class MBTASource(BaseSource):
    """Vehicles, alerts, routes and shapes from the MBTA v3 API."""

    name = "MBTA"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self._base_url = (base_url or settings.mbta_base_url).rstrip("/")
        self._api_key = settings.mbta_api_key if api_key is None else api_key.strip()

    @property
    def api_key_used(self) -> bool:
        return bool(self._api_key)

    def url(self, resource: str) -> str:
        return f"{self._base_url}/{resource}"

    def _error_detail(self, response: httpx.Response) -> str:
        return parse_jsonapi_error(response.text)

    async def fetch_document(self, resource: str, query: QueryParams) -> dict[str, Any]:
        params: dict[str, Any] = dict(query)
        if self._api_key:
            params["api_key"] = self._api_key
        return await self._get_json(self.url(resource), params)

    # ------------------------------------------------------------------
    # Query presets: filtered first, broad fallback second
    # ------------------------------------------------------------------

    @staticmethod
    def vehicle_queries() -> list[tuple[str, QueryParams]]:
        return [
            (
                "filtered",
                {
                    "include": "route",
                    "filter[route_type]": MBTA_ROUTE_TYPES,
                    "page[limit]": VEHICLES_PAGE_LIMIT,
                },
            ),
            ("fallback", {"include": "route", "page[limit]": VEHICLES_PAGE_LIMIT}),
        ]

    @staticmethod
    def alert_queries() -> list[tuple[str, QueryParams]]:
        return [
            (
                "filtered",
                {
                    "include": "route",
                    "filter[route_type]": MBTA_ROUTE_TYPES,
                    "page[limit]": ALERTS_PAGE_LIMIT,
                    "sort": "-updated_at",
                },
            ),
            (
                "fallback",
                {"include": "route", "page[limit]": ALERTS_PAGE_LIMIT, "sort": "-updated_at"},
            ),
        ]

    # ------------------------------------------------------------------
    # Resource fetchers
    # ------------------------------------------------------------------

    async def fetch_vehicles(self, query: QueryParams) -> dict[str, Any]:
        return await self.fetch_document("vehicles", query)

    async def fetch_alerts(self, query: QueryParams) -> dict[str, Any]:
        return await self.fetch_document("alerts", query)

    async def fetch_routes(self, route_ids: Sequence[str]) -> dict[str, Any]:
        """One chunk of route metadata; callers chunk with chunked()."""
        return await self.fetch_document(
            "routes",
            {"filter[id]": ",".join(route_ids), "page[limit]": len(route_ids)},
        )

    async def fetch_shapes(self, route_ids: Sequence[str]) -> dict[str, Any]:
        """One chunk of encoded shapes for the given routes."""
        return await self.fetch_document(
            "shapes",
            {"filter[route]": ",".join(route_ids), "page[limit]": SHAPES_PAGE_LIMIT},
        )
