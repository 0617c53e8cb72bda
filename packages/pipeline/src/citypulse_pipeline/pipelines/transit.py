"""
pipelines/transit.py — Live regional transit status: vehicles, lines, alerts, summaries.

Three independent branches run concurrently and each degrades on its own:
  - MBTA vehicles:  v3 filtered query → v3 broad query → GTFS enhanced feed,
                    region-filtered; then route metadata and shapes
  - MBTA alerts:    v3 filtered query → v3 broad query → GTFS enhanced feed
  - Amtrak alerts:  RSS candidates in order, Boston keyword filter

A failing branch contributes empty records and a warning. When every
branch failed outright the refresh raises TransitRefreshError and the
previous cached payload is left in place.

Usage:
    from citypulse_pipeline.pipelines.transit import refresh_transit

    payload = await refresh_transit()
    [s.status for s in payload.summaries]
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog
from pydantic import ValidationError

from citypulse_shared.config import settings
from citypulse_shared.constants import AMTRAK_REGION_KEYWORDS, MBTA_ROUTE_TYPES
from citypulse_shared.models import Provenance, RouteLine, TransitAlert, TransitPayload, Vehicle
from citypulse_shared.time_utils import utc_now_iso
from citypulse_pipeline.loaders.cache_store import CacheStore, get_default_cache
from citypulse_pipeline.sources.gtfs_enhanced import GTFSEnhancedSource
from citypulse_pipeline.sources.mbta import MBTASource, chunked
from citypulse_pipeline.sources.rss import FeedItem, RSSFeedSource
from citypulse_pipeline.transforms.routes import (
    RouteMeta,
    apply_route_meta,
    assemble_lines,
    route_meta_from_document,
    shape_lines_from_document,
)
from citypulse_pipeline.transforms.transit import (
    alerts_from_feed_items,
    alerts_from_gtfs,
    alerts_from_mbta,
    build_summaries,
    filter_alerts_by_keywords,
    filter_vehicles_in_region,
    sort_vehicles,
    vehicles_from_gtfs,
    vehicles_from_mbta,
)
from citypulse_pipeline.utils.inflight import InFlightCache, await_or_fallback
from citypulse_pipeline.utils.resolver import Tier, describe_error, merge_by_recency, resolve_first

log = structlog.get_logger(__name__)

DATASET_ID = "transit"
CACHE_KEY = "local-transit:status"

AMTRAK_NO_MATCH_WARNING = "Amtrak feed reachable but no Boston-area alerts matched filters."

T = TypeVar("T")


class TransitRefreshError(RuntimeError):
    """Vehicles, MBTA alerts and Amtrak alerts all failed; carries the warnings."""

    def __init__(self, notes: Sequence[str]) -> None:
        self.notes = list(notes)
        super().__init__("transit: all sources failed. " + " ".join(self.notes))


@dataclass
class TransitSources:
    """Upstream clients for one refresh; tests pass their own."""

    mbta: MBTASource = field(default_factory=MBTASource)
    gtfs: GTFSEnhancedSource = field(default_factory=GTFSEnhancedSource)
    rss: RSSFeedSource = field(default_factory=RSSFeedSource)


@dataclass
class BranchResult(Generic[T]):
    """Records from one branch; failed means every upstream tier raised."""

    records: list[T] = field(default_factory=list)
    source_url: str = ""
    failed: bool = False


def _region() -> tuple[float, float, float]:
    return settings.region_lat, settings.region_lon, settings.region_radius_km


def _regional_vehicles(vehicles: list[Vehicle]) -> list[Vehicle]:
    lat, lon, radius = _region()
    return sort_vehicles(filter_vehicles_in_region(vehicles, lat, lon, radius))


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------

async def fetch_vehicles(sources: TransitSources, warnings: list[str]) -> BranchResult[Vehicle]:
    mbta, gtfs = sources.mbta, sources.gtfs

    async def v3(query: dict) -> list[Vehicle]:
        return _regional_vehicles(vehicles_from_mbta(await mbta.fetch_vehicles(query)))

    async def gtfs_feed() -> list[Vehicle]:
        return _regional_vehicles(vehicles_from_gtfs(await gtfs.fetch_vehicle_positions()))

    tiers: list[Tier[list[Vehicle]]] = [
        Tier(f"MBTA {label} vehicle query", lambda q=query: v3(q), source_url=mbta.url("vehicles"))
        for label, query in mbta.vehicle_queries()
    ]
    tiers.append(Tier("MBTA GTFS vehicle fallback", gtfs_feed, source_url=gtfs.vehicles_url))

    resolution = await resolve_first(tiers, subject="Boston-area vehicles")
    warnings.extend(resolution.notes)
    return BranchResult(
        resolution.result or [], resolution.source_url, failed=resolution.all_failed
    )


async def fetch_mbta_alerts(
    sources: TransitSources, warnings: list[str]
) -> BranchResult[TransitAlert]:
    mbta, gtfs = sources.mbta, sources.gtfs

    async def v3(query: dict) -> list[TransitAlert]:
        return alerts_from_mbta(await mbta.fetch_alerts(query))

    async def gtfs_feed() -> list[TransitAlert]:
        return alerts_from_gtfs(await gtfs.fetch_alerts())

    tiers: list[Tier[list[TransitAlert]]] = [
        Tier(f"MBTA {label} alert query", lambda q=query: v3(q), source_url=mbta.url("alerts"))
        for label, query in mbta.alert_queries()
    ]
    tiers.append(Tier("MBTA GTFS alert fallback", gtfs_feed, source_url=gtfs.alerts_url))

    resolution = await resolve_first(tiers, subject="alerts")
    warnings.extend(resolution.notes)
    return BranchResult(
        resolution.result or [], resolution.source_url, failed=resolution.all_failed
    )


async def fetch_amtrak_alerts(
    sources: TransitSources, warnings: list[str]
) -> BranchResult[TransitAlert]:
    rss = sources.rss
    tiers: list[Tier[list[FeedItem]]] = [
        Tier(f"Amtrak feed {url}", lambda url=url: rss.fetch_items(url), source_url=url)
        for url in rss.candidates
    ]
    resolution = await resolve_first(tiers, subject="feed items")

    if not resolution.resolved:
        if resolution.notes:
            warnings.append(f"Amtrak alerts unavailable ({' | '.join(resolution.notes)}).")
        return BranchResult(
            source_url=" | ".join(rss.candidates), failed=resolution.all_failed
        )

    warnings.extend(resolution.notes)
    alerts = filter_alerts_by_keywords(
        alerts_from_feed_items(resolution.result or []), AMTRAK_REGION_KEYWORDS
    )
    if not alerts:
        warnings.append(AMTRAK_NO_MATCH_WARNING)
    return BranchResult(alerts, resolution.source_url)


async def fetch_lines(
    sources: TransitSources,
    vehicles: list[Vehicle],
    warnings: list[str],
) -> tuple[list[RouteLine], dict[str, RouteMeta]]:
    """Route metadata and shapes per chunk of route ids; a failed chunk is a warning."""
    mbta = sources.mbta
    route_ids = list(dict.fromkeys(v.route_id for v in vehicles if v.route_id))
    if not route_ids:
        return [], {}

    lat, lon, radius = _region()
    chunks = list(chunked(route_ids))

    meta: dict[str, RouteMeta] = {}
    for chunk in chunks:
        try:
            meta.update(route_meta_from_document(await mbta.fetch_routes(chunk)))
        except Exception as exc:
            log.warning("route_metadata_failed", routes=len(chunk), error=describe_error(exc))
            warnings.append(f"MBTA route metadata query failed ({describe_error(exc)}).")

    best: dict[str, RouteLine] = {}
    for chunk in chunks:
        try:
            shape_lines_from_document(await mbta.fetch_shapes(chunk), meta, (lat, lon), radius, best)
        except Exception as exc:
            log.warning("route_shapes_failed", routes=len(chunk), error=describe_error(exc))
            warnings.append(f"MBTA route shape query failed ({describe_error(exc)}).")

    return assemble_lines(best, vehicles, meta, warnings), meta


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

def _branch(
    result: BranchResult[T] | BaseException,
    label: str,
    warnings: list[str],
    fallback_url: str = "",
) -> BranchResult[T]:
    if isinstance(result, BaseException):
        log.warning("transit_branch_failed", branch=label, error=describe_error(result))
        warnings.append(f"{label} refresh failed ({describe_error(result)}).")
        return BranchResult(source_url=fallback_url, failed=True)
    return result


async def _refresh(sources: TransitSources, cache: CacheStore) -> TransitPayload:
    warnings: list[str] = []
    fetched_at = utc_now_iso()

    vehicles_result, mbta_alerts_result, amtrak_result = await asyncio.gather(
        fetch_vehicles(sources, warnings),
        fetch_mbta_alerts(sources, warnings),
        fetch_amtrak_alerts(sources, warnings),
        return_exceptions=True,
    )
    vehicle_branch = _branch(vehicles_result, "MBTA vehicle", warnings)
    mbta_alerts = _branch(mbta_alerts_result, "MBTA alert", warnings)
    amtrak = _branch(
        amtrak_result, "Amtrak", warnings, fallback_url=" | ".join(sources.rss.candidates)
    )
    if vehicle_branch.failed and mbta_alerts.failed and amtrak.failed:
        log.error("transit_refresh_failed", warnings=len(warnings))
        raise TransitRefreshError(warnings)

    vehicles = vehicle_branch.records
    lines: list[RouteLine] = []
    if vehicles:
        try:
            lines, meta = await fetch_lines(sources, vehicles, warnings)
            vehicles = sort_vehicles(apply_route_meta(vehicles, meta))
        except Exception as exc:
            log.warning("transit_lines_failed", error=describe_error(exc))
            warnings.append(f"MBTA transit line refresh failed ({describe_error(exc)}).")

    alerts = merge_by_recency(mbta_alerts.records, amtrak.records)
    lat, lon, radius = _region()
    payload = TransitPayload(
        vehicles=vehicles,
        lines=lines,
        alerts=alerts,
        summaries=build_summaries(vehicles, alerts),
        provenance=Provenance(
            dataset_id=DATASET_ID,
            source_url=sources.mbta.url("vehicles"),
            fetched_at=fetched_at,
            record_count=len(vehicles) + len(alerts),
            query_params={
                "mbta_route_types": MBTA_ROUTE_TYPES,
                "region_lat": lat,
                "region_lon": lon,
                "region_radius_km": radius,
                "mbta_api_key_used": sources.mbta.api_key_used,
                "mbta_alerts_endpoint": sources.mbta.url("alerts"),
                "mbta_vehicles_gtfs_fallback": sources.gtfs.vehicles_url,
                "mbta_alerts_gtfs_fallback": sources.gtfs.alerts_url,
                "amtrak_source": amtrak.source_url,
                "amtrak_feed_candidates": len(sources.rss.candidates),
                "amtrak_override_configured": sources.rss.override_configured,
            },
            warnings=tuple(warnings),
        ),
    )

    cache.write(CACHE_KEY, payload.model_dump(mode="json"))
    log.info(
        "transit_refreshed",
        vehicles=len(vehicles),
        lines=len(lines),
        alerts=len(alerts),
        warnings=len(warnings),
    )
    return payload


_inflight: InFlightCache[TransitPayload] = InFlightCache(
    CACHE_KEY, ttl=settings.refresh_dedupe_ttl_s
)


async def refresh_transit(
    *,
    cache: CacheStore | None = None,
    sources: TransitSources | None = None,
) -> TransitPayload:
    """
    Refresh transit status and cache it; concurrent calls share one refresh.

    Raises:
        TransitRefreshError: Every branch failed; the cache is not written.
    """
    store = cache or get_default_cache()
    clients = sources or TransitSources()
    params = {
        "dataset_id": DATASET_ID,
        "region": list(_region()),
        "amtrak_candidates": list(clients.rss.candidates),
    }
    return await _inflight.get_or_fetch(params, lambda: _refresh(clients, store))


async def refresh_transit_with_timeout(
    *,
    timeout: float | None = None,
    cache: CacheStore | None = None,
    sources: TransitSources | None = None,
) -> TransitPayload | None:
    store = cache or get_default_cache()
    return await await_or_fallback(
        refresh_transit(cache=store, sources=sources),
        timeout if timeout is not None else settings.refresh_timeout_s,
        lambda: get_cached_transit(cache=store),
        name=CACHE_KEY,
    )


def get_cached_transit(*, cache: CacheStore | None = None) -> TransitPayload | None:
    data = (cache or get_default_cache()).read(CACHE_KEY)
    if data is None:
        return None
    try:
        return TransitPayload.model_validate(data)
    except ValidationError as exc:
        log.warning("cached_payload_invalid", dataset_id=DATASET_ID, error=str(exc))
        return None


def mode_statuses(payload: TransitPayload) -> Sequence[tuple[str, str]]:
    return [(s.label, s.status) for s in payload.summaries]
