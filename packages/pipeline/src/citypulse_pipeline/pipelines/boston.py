"""
pipelines/boston.py — Boston municipal datasets: crime, fire, districts, facilities.

Ingests (ArcGIS FeatureServer layers under settings.arcgis_base_url):
  - crimeIncidents   -> Incident records (classification "crime")
  - fireIncidents    -> Incident records filtered by the fire keyword test
  - policeDistricts, fireDepartments, communityCenters -> GeoJSON layers
  - fireHydrants     -> stub (no stable public endpoint), zero records

Each refresh walks the dataset's resolver tiers (source URL × query
variant), normalizes the first non-empty result, stamps a Provenance and
writes the payload to the cache façade. A refresh in which every tier
raised is a failure: it propagates and leaves the cache untouched. Tiers
that succeed with zero records yield a cached, empty payload with
warnings.

Usage:
    from citypulse_pipeline.pipelines.boston import refresh_dataset, get_cached_bundle

    payload = await refresh_dataset("crimeIncidents")
    payload.provenance.warnings
    bundle = get_cached_bundle()              # offline read path
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from citypulse_shared.config import settings
from citypulse_shared.models import (
    DatasetPayload,
    FeatureCollection,
    Provenance,
    RefreshState,
    SourceConfig,
)
from citypulse_shared.time_utils import utc_now_iso
from citypulse_pipeline.loaders.cache_store import CacheStore, get_default_cache
from citypulse_pipeline.sources.arcgis import ArcGISFeatureSource, PagedResult
from citypulse_pipeline.transforms.incidents import normalize_incident_features
from citypulse_pipeline.utils.inflight import InFlightCache, await_or_fallback
from citypulse_pipeline.utils.resolver import Resolution, Tier, resolve_first

log = structlog.get_logger(__name__)

CACHE_PREFIX = "boston-open-data"
INCIDENT_PAGE_SIZE = 500
INCIDENT_MAX_PAGES = 8
INCIDENT_MAX_RECORDS = 4000

STUB_WARNING = "Dataset configured as stub."
HYDRANT_WARNING = (
    "Stable public hydrant endpoint not resolved yet. Configure an Analyze Boston "
    "or BostonMaps FeatureServer URL for the fireHydrants dataset."
)
NO_FIRE_MATCHES_WARNING = (
    "No fire incidents matched heuristic filters. Review the fire endpoint fields "
    "and the fire keyword list."
)


class DatasetRefreshError(RuntimeError):
    """Every resolver tier for a dataset raised; carries the per-tier notes."""

    def __init__(self, dataset_id: str, notes: Sequence[str]) -> None:
        self.dataset_id = dataset_id
        self.notes = list(notes)
        super().__init__(f"{dataset_id}: all sources failed. " + " ".join(self.notes))


# ---------------------------------------------------------------------------
# Dataset registry
# ---------------------------------------------------------------------------

def _layer_url(service: str) -> str:
    return f"{settings.arcgis_base_url}/{service}/FeatureServer/0/query"


def build_datasets() -> dict[str, SourceConfig]:
    """Registry of every Boston dataset, resolved against current settings."""
    return {
        "crimeIncidents": SourceConfig(
            dataset_id="crimeIncidents",
            source_urls=(_layer_url("Boston_Incidents_Public_v2_view"),),
            mode="paged-query",
            output="incidents",
            classification="crime",
            page_size=INCIDENT_PAGE_SIZE,
            max_pages=INCIDENT_MAX_PAGES,
            max_records=INCIDENT_MAX_RECORDS,
            query_params={"orderByFields": "occurred_on_date DESC, objectid DESC"},
            # Plain objectid ordering survives a renamed date column
            query_variants=({}, {"orderByFields": "objectid DESC"}),
        ),
        "fireIncidents": SourceConfig(
            dataset_id="fireIncidents",
            source_urls=(_layer_url("Boston_Incidents_View"),),
            mode="paged-query",
            output="incidents",
            classification="fire",
            page_size=INCIDENT_PAGE_SIZE,
            max_pages=INCIDENT_MAX_PAGES,
            max_records=INCIDENT_MAX_RECORDS,
            query_params={"orderByFields": "incident_date DESC, objectid DESC"},
            query_variants=({}, {"orderByFields": "objectid DESC"}),
        ),
        "policeDistricts": SourceConfig(
            dataset_id="policeDistricts",
            source_urls=(_layer_url("Police_Districts"),),
            mode="paged-query",
            page_size=INCIDENT_PAGE_SIZE,
        ),
        "fireHydrants": SourceConfig(
            dataset_id="fireHydrants",
            source_urls=("https://data.boston.gov/",),
            mode="stub",
            warning=HYDRANT_WARNING,
        ),
        "fireDepartments": SourceConfig(
            dataset_id="fireDepartments",
            source_urls=(_layer_url("BFD_Firehouse"),),
            mode="paged-query",
            page_size=INCIDENT_PAGE_SIZE,
        ),
        "communityCenters": SourceConfig(
            dataset_id="communityCenters",
            source_urls=(_layer_url("Community_Centers"),),
            mode="paged-query",
            page_size=INCIDENT_PAGE_SIZE,
        ),
    }


DATASETS: dict[str, SourceConfig] = build_datasets()


def dataset_ids() -> list[str]:
    return list(DATASETS)


def get_dataset_config(dataset_id: str) -> SourceConfig:
    try:
        return DATASETS[dataset_id]
    except KeyError:
        raise KeyError(f"Unknown Boston dataset: {dataset_id}") from None


def get_dataset_source(dataset_id: str) -> str:
    return get_dataset_config(dataset_id).source_url


def cache_key(dataset_id: str) -> str:
    return f"{CACHE_PREFIX}:{dataset_id}"


# ---------------------------------------------------------------------------
# Refresh state
# ---------------------------------------------------------------------------

_states: dict[str, RefreshState] = {}
_inflight: dict[str, InFlightCache[DatasetPayload]] = {}


def _set_state(dataset_id: str, state: RefreshState) -> None:
    _states[dataset_id] = state
    log.debug("refresh_state", dataset_id=dataset_id, state=state.value)


def refresh_state(dataset_id: str) -> RefreshState:
    get_dataset_config(dataset_id)
    return _states.get(dataset_id, RefreshState.IDLE)


def is_refreshing(dataset_id: str) -> bool:
    return refresh_state(dataset_id) in (RefreshState.FETCHING, RefreshState.NORMALIZING)


def _inflight_for(dataset_id: str) -> InFlightCache[DatasetPayload]:
    if dataset_id not in _inflight:
        _inflight[dataset_id] = InFlightCache(
            f"{CACHE_PREFIX}:{dataset_id}", ttl=settings.refresh_dedupe_ttl_s
        )
    return _inflight[dataset_id]


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

def _tiers(config: SourceConfig, source: ArcGISFeatureSource) -> list[Tier[PagedResult]]:
    tiers: list[Tier[PagedResult]] = []
    for index, (url, params) in enumerate(config.tiers(), start=1):
        label = f"{config.dataset_id} {'primary' if index == 1 else 'fallback'} query #{index}"
        if config.mode == "single-feed":
            fetch = lambda url=url, params=params: source.fetch_feature_collection(url, params)
        else:
            fetch = lambda url=url, params=params: source.fetch_features(
                url,
                params,
                page_size=config.page_size,
                max_pages=config.max_pages,
                max_records=config.max_records,
            )
        tiers.append(Tier(label, fetch, source_url=url))
    return tiers


def _stub_payload(config: SourceConfig, fetched_at: str) -> DatasetPayload:
    return DatasetPayload(
        layer=FeatureCollection(),
        provenance=Provenance(
            dataset_id=config.dataset_id,
            source_url=config.source_url,
            fetched_at=fetched_at,
            record_count=0,
            warnings=(config.warning or STUB_WARNING,),
        ),
    )


def _assemble(
    config: SourceConfig,
    resolution: Resolution[PagedResult],
    fetched_at: str,
) -> DatasetPayload:
    paged = resolution.result
    warnings = list(resolution.notes)
    if paged is not None:
        warnings.extend(paged.warnings)
        query_params = dict(paged.query_params)
        features = paged.features
    else:
        query_params = {**config.effective_params(), "pageSize": config.page_size}
        features = []

    def provenance(record_count: int) -> Provenance:
        return Provenance(
            dataset_id=config.dataset_id,
            source_url=resolution.source_url or config.source_url,
            fetched_at=fetched_at,
            record_count=record_count,
            query_params=query_params,
            warnings=tuple(warnings),
        )

    if config.output == "incidents":
        incidents = normalize_incident_features(features, config.classification)  # type: ignore[arg-type]
        if config.classification == "fire" and not incidents:
            warnings.append(NO_FIRE_MATCHES_WARNING)
        return DatasetPayload(incidents=incidents, provenance=provenance(len(incidents)))

    return DatasetPayload(
        layer=FeatureCollection(features=features),
        provenance=provenance(len(features)),
    )


async def _refresh(
    config: SourceConfig,
    cache: CacheStore,
    source: ArcGISFeatureSource,
) -> DatasetPayload:
    dataset_id = config.dataset_id
    dlog = log.bind(dataset_id=dataset_id, mode=config.mode)
    fetched_at = utc_now_iso()
    _set_state(dataset_id, RefreshState.FETCHING)
    try:
        if config.mode == "stub":
            payload = _stub_payload(config, fetched_at)
        else:
            resolution = await resolve_first(_tiers(config, source), subject="features")
            if resolution.all_failed:
                raise DatasetRefreshError(dataset_id, resolution.notes)
            _set_state(dataset_id, RefreshState.NORMALIZING)
            payload = _assemble(config, resolution, fetched_at)
    except BaseException as exc:
        _set_state(dataset_id, RefreshState.FAILED)
        dlog.error("dataset_refresh_failed", error=str(exc) or type(exc).__name__)
        raise

    cache.write(cache_key(dataset_id), payload.model_dump(mode="json"))
    _set_state(dataset_id, RefreshState.ASSEMBLED)
    dlog.info(
        "dataset_refreshed",
        records=payload.provenance.record_count,
        warnings=len(payload.provenance.warnings),
    )
    return payload


async def refresh_dataset(
    dataset_id: str,
    *,
    cache: CacheStore | None = None,
    source: ArcGISFeatureSource | None = None,
) -> DatasetPayload:
    """
    Refresh one dataset and cache the result.

    Concurrent calls for the same dataset share a single upstream fetch.

    Raises:
        KeyError:            Unknown dataset id.
        DatasetRefreshError: Every source tier raised; the cache is not written.
    """
    config = get_dataset_config(dataset_id)
    store = cache or get_default_cache()
    arcgis = source or ArcGISFeatureSource()
    fingerprint_params = {"dataset_id": dataset_id, "tiers": config.tiers()}
    return await _inflight_for(dataset_id).get_or_fetch(
        fingerprint_params, lambda: _refresh(config, store, arcgis)
    )


async def refresh_with_timeout(
    dataset_id: str,
    *,
    timeout: float | None = None,
    cache: CacheStore | None = None,
    source: ArcGISFeatureSource | None = None,
) -> DatasetPayload | None:
    """Refresh with a deadline; on timeout return the previous cached payload (or None)."""
    store = cache or get_default_cache()
    return await await_or_fallback(
        refresh_dataset(dataset_id, cache=store, source=source),
        timeout if timeout is not None else settings.refresh_timeout_s,
        lambda: get_cached_dataset(dataset_id, cache=store),
        name=cache_key(dataset_id),
    )


@dataclass
class RefreshReport:
    payloads: dict[str, DatasetPayload] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures


async def refresh_all_datasets(
    ids: Sequence[str] | None = None,
    *,
    cache: CacheStore | None = None,
    source: ArcGISFeatureSource | None = None,
) -> RefreshReport:
    """Refresh datasets concurrently; one failure never affects the others."""
    targets = list(ids) if ids is not None else dataset_ids()
    for dataset_id in targets:
        get_dataset_config(dataset_id)

    results = await asyncio.gather(
        *(refresh_dataset(d, cache=cache, source=source) for d in targets),
        return_exceptions=True,
    )

    report = RefreshReport()
    for dataset_id, result in zip(targets, results):
        if isinstance(result, BaseException):
            report.failures[dataset_id] = str(result) or type(result).__name__
        else:
            report.payloads[dataset_id] = result
    log.info(
        "datasets_refreshed",
        succeeded=len(report.payloads),
        failed=len(report.failures),
    )
    return report


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------

def get_cached_dataset(dataset_id: str, *, cache: CacheStore | None = None) -> DatasetPayload | None:
    get_dataset_config(dataset_id)
    data = (cache or get_default_cache()).read(cache_key(dataset_id))
    if data is None:
        return None
    try:
        return DatasetPayload.model_validate(data)
    except ValidationError as exc:
        log.warning("cached_payload_invalid", dataset_id=dataset_id, error=str(exc))
        return None


def get_cached_bundle(*, cache: CacheStore | None = None) -> dict[str, DatasetPayload]:
    """Every dataset with a cached payload; missing ones are omitted."""
    bundle: dict[str, DatasetPayload] = {}
    for dataset_id in dataset_ids():
        payload = get_cached_dataset(dataset_id, cache=cache)
        if payload is not None:
            bundle[dataset_id] = payload
    return bundle
