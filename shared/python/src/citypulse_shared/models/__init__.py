"""
citypulse_shared.models — Pydantic models for normalized records and payloads.

These models are used by:
- packages/pipeline sources/transforms: the normalized output shape
- packages/pipeline loaders: JSON (de)serialization for the cache

Payloads round-trip through model_dump(mode="json") / model_validate().
"""

from citypulse_shared.models.incidents import FeatureCollection, GeoPoint, Incident
from citypulse_shared.models.provenance import (
    DatasetPayload,
    Provenance,
    RefreshState,
    TransitPayload,
)
from citypulse_shared.models.sources import SourceConfig
from citypulse_shared.models.transit import ModeSummary, RouteLine, TransitAlert, Vehicle

__all__ = [
    "GeoPoint",
    "Incident",
    "FeatureCollection",
    "Vehicle",
    "RouteLine",
    "TransitAlert",
    "ModeSummary",
    "Provenance",
    "RefreshState",
    "DatasetPayload",
    "TransitPayload",
    "SourceConfig",
]
