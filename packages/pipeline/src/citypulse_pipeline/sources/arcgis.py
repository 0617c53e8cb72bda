"""
sources/arcgis.py — ArcGIS FeatureServer query client with bounded pagination.

Endpoints (per layer):
  GET {layer}/query?...&returnCountOnly=true&f=json      → {"count": 1234}
  GET {layer}/query?...&resultOffset=N&resultRecordCount=M&f=geojson
        → {"type": "FeatureCollection", "features": [...],
           "exceededTransferLimit": true}      (flag may sit under "properties")

Errors can arrive as HTTP 200 with {"error": {"code": 400, "message": ...}};
those are treated like a non-2xx page.

Paging protocol (fetch_features):
  1. Count query. Failure is a warning, not an error; paging then stops on
     short pages only.
  2. Sequential pages at offset += page_size until the record cap, a short
     page without the transfer-limit flag, the known total, an empty page,
     or the page guard.
  3. Any page failure aborts the whole fetch (SourceError). Callers fall
     back to other tiers; nothing is silently truncated.

Usage:
    source = ArcGISFeatureSource()
    result = await source.fetch_features(url, params, page_size=500, max_pages=8, max_records=4000)
    result.features, result.warnings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from citypulse_shared.models.sources import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE
from citypulse_pipeline.sources.base import BaseSource, QueryParams, SourceError


@dataclass
class ArcGISPage:
    features: list[dict[str, Any]]
    exceeded_transfer_limit: bool = False


@dataclass
class PagedResult:
    """Accumulated features plus the warnings raised while paging."""

    features: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    query_params: QueryParams = field(default_factory=dict)
    total_count: int | None = None
    pages: int = 0

    def __len__(self) -> int:
        return len(self.features)


def bounded_warning(max_records: int) -> str:
    return f"Record fetch bounded at {max_records} records for responsive local usage."


def capped_warning(max_pages: int) -> str:
    return f"Pagination capped at {max_pages} pages to protect local runtime."


TRANSFER_LIMIT_WARNING = (
    "ArcGIS reported exceededTransferLimit during paging; "
    "additional pages were requested automatically."
)
COUNT_UNAVAILABLE_WARNING = (
    "Could not retrieve total count from ArcGIS service (using page-length termination)."
)


class ArcGISFeatureSource(BaseSource):
    """Feature-query client for ArcGIS REST FeatureServer layers."""

    name = "ArcGIS"

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return super()._error_detail(response)
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "").strip()
        return ""

    @staticmethod
    def _raise_on_error_body(payload: dict[str, Any], url: str) -> None:
        error = payload.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            raise SourceError(
                f"ArcGIS request failed ({code}): {error.get('message', '').strip()}".rstrip(": "),
                status_code=code if isinstance(code, int) else None,
                url=url,
            )

    # ------------------------------------------------------------------
    # Single requests
    # ------------------------------------------------------------------

    async def fetch_count(self, url: str, params: QueryParams) -> int | None:
        """Count-only query. Returns None on any failure or unusable body."""
        try:
            payload = await self._get_json(
                url, {**params, "returnCountOnly": True, "f": "json"}
            )
        except (httpx.HTTPError, SourceError) as exc:
            self._log.warning("count_query_failed", url=url, error=str(exc))
            return None

        count = payload.get("count")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            self._log.warning("count_query_unusable", url=url, count=count)
            return None
        return count

    async def fetch_page(
        self,
        url: str,
        params: QueryParams,
        offset: int,
        limit: int,
    ) -> ArcGISPage:
        payload = await self._get_json(
            url,
            {**params, "resultOffset": offset, "resultRecordCount": limit, "f": "geojson"},
        )
        self._raise_on_error_body(payload, url)

        features = payload.get("features")
        properties = payload.get("properties")
        exceeded = payload.get("exceededTransferLimit")
        if exceeded is None and isinstance(properties, dict):
            exceeded = properties.get("exceededTransferLimit")

        return ArcGISPage(
            features=[f for f in features if isinstance(f, dict)] if isinstance(features, list) else [],
            exceeded_transfer_limit=exceeded is True,
        )

    async def fetch_feature_collection(self, url: str, params: QueryParams) -> PagedResult:
        """Single-request variant for small layers and static GeoJSON feeds."""
        payload = await self._get_json(url, {**params, "f": "geojson"})
        self._raise_on_error_body(payload, url)
        features = payload.get("features")
        result = PagedResult(
            features=[f for f in features if isinstance(f, dict)] if isinstance(features, list) else [],
            query_params=dict(params),
            pages=1,
        )
        self._log.info("feature_collection_fetched", url=url, features=len(result))
        return result

    # ------------------------------------------------------------------
    # Paginated fetch
    # ------------------------------------------------------------------

    async def fetch_features(
        self,
        url: str,
        params: QueryParams,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_records: int | None = None,
    ) -> PagedResult:
        """
        Fetch every feature for a query, bounded by page and record caps.

        Args:
            url:         Layer query endpoint.
            params:      Base query parameters (where, outFields, ...).
            page_size:   resultRecordCount per page.
            max_pages:   Page guard.
            max_records: Record cap; None means unbounded.

        Returns:
            PagedResult; len(result.features) never exceeds max_records.

        Raises:
            SourceError / httpx.HTTPError when any page request fails.
        """
        result = PagedResult(query_params={**params, "pageSize": page_size})
        page_log = self._log.bind(url=url, page_size=page_size)

        result.total_count = await self.fetch_count(url, params)
        if result.total_count is None:
            result.warnings.append(COUNT_UNAVAILABLE_WARNING)

        offset = 0
        has_more = True
        saw_transfer_limit = False

        while has_more and result.pages < max_pages:
            result.pages += 1
            page = await self.fetch_page(url, params, offset, page_size)
            received = len(page.features)
            if max_records is not None:
                remaining = max(0, max_records - len(result.features))
                result.features.extend(page.features[:remaining])
            else:
                result.features.extend(page.features)
            saw_transfer_limit = saw_transfer_limit or page.exceeded_transfer_limit

            page_log.debug(
                "page_fetched",
                page=result.pages,
                offset=offset,
                received=received,
                accumulated=len(result.features),
                exceeded_transfer_limit=page.exceeded_transfer_limit,
            )

            if max_records is not None and len(result.features) >= max_records:
                result.warnings.append(bounded_warning(max_records))
                has_more = False
            elif received == 0:
                has_more = False
            elif received < page_size and not page.exceeded_transfer_limit:
                has_more = False
            elif result.total_count is not None and len(result.features) >= result.total_count:
                has_more = False
            else:
                offset += page_size

        if has_more:
            result.warnings.append(capped_warning(max_pages))
        if saw_transfer_limit:
            result.warnings.append(TRANSFER_LIMIT_WARNING)

        page_log.info(
            "paged_fetch_complete",
            features=len(result.features),
            pages=result.pages,
            total_count=result.total_count,
            warnings=len(result.warnings),
        )
        return result
