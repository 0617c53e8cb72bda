"""
transforms/incidents.py — GeoJSON features → normalized Incident records.

Rules:
  - id: incident/case number, else object id, else the composite
    "{classification}-{address}-{date|no-date}-{type_code|na}". The
    composite is deterministic but not guaranteed unique.
  - location: Point geometry, else lat/lon property candidates; anything
    non-finite or out of range gives None (never 0,0).
  - fire datasets keep only records passing is_likely_fire_incident();
    records without fire vocabulary are dropped (known under-inclusion).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from citypulse_shared.constants import FIRE_HAYSTACK_FIELDS, FIRE_KEYWORDS, IncidentClass
from citypulse_shared.geo import is_valid_coordinate
from citypulse_shared.models import GeoPoint, Incident
from citypulse_pipeline.transforms.fields import (
    candidates,
    pick_date,
    pick_number,
    pick_string,
    to_number,
)

log = structlog.get_logger(__name__)


def keyword_pattern(keywords: Sequence[str]) -> re.Pattern[str]:
    return re.compile("|".join(re.escape(k.lower()) for k in keywords if k))


_FIRE_PATTERN = keyword_pattern(FIRE_KEYWORDS)


def is_likely_fire_incident(
    properties: Mapping[str, Any],
    *,
    pattern: re.Pattern[str] = _FIRE_PATTERN,
    fields: Sequence[str] = FIRE_HAYSTACK_FIELDS,
) -> bool:
    """Keyword test over the record's descriptive fields, case-insensitive."""
    haystack = " ".join(pick_string(properties, [f]) for f in fields).lower()
    return bool(pattern.search(haystack))


def feature_location(feature: Mapping[str, Any]) -> GeoPoint | None:
    """Point geometry first, then latitude/longitude property candidates."""
    geometry = feature.get("geometry")
    if isinstance(geometry, dict) and geometry.get("type") == "Point":
        coords = geometry.get("coordinates")
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            lon, lat = to_number(coords[0]), to_number(coords[1])
            if is_valid_coordinate(lat, lon):
                return GeoPoint(lat=lat, lon=lon)  # type: ignore[arg-type]

    properties = feature.get("properties")
    if not isinstance(properties, dict):
        return None
    lat = pick_number(properties, candidates("latitude"))
    lon = pick_number(properties, candidates("longitude"))
    if is_valid_coordinate(lat, lon):
        return GeoPoint(lat=lat, lon=lon)  # type: ignore[arg-type]
    return None


def derive_incident_id(
    classification: str,
    incident_number: str,
    object_id: str,
    address: str,
    occurred_at: str | None,
    type_code: str,
) -> str:
    return (
        incident_number
        or object_id
        or f"{classification}-{address}-{occurred_at or 'no-date'}-{type_code or 'na'}"
    )


def normalize_incident_feature(
    feature: Mapping[str, Any],
    classification: IncidentClass,
) -> Incident:
    properties: dict[str, Any] = dict(feature.get("properties") or {})

    occurred_at = pick_date(properties, candidates("occurred_at"))
    incident_type = pick_string(properties, candidates("incident_type"))
    incident_number = pick_string(properties, candidates("incident_number"))
    object_id = pick_string(properties, candidates("object_id"))
    if not object_id and feature.get("id") is not None:
        object_id = str(feature["id"]).strip()
    type_code = pick_string(properties, candidates("type_code"))
    address = pick_string(properties, candidates("address"))

    return Incident(
        id=derive_incident_id(
            classification, incident_number, object_id, address, occurred_at, type_code
        ),
        classification=classification,
        incident_number=incident_number or object_id,
        type_code=type_code,
        source_category=incident_type,
        occurred_at=occurred_at,
        reported_at=pick_date(properties, candidates("reported_at")),
        description=pick_string(properties, candidates("description")) or incident_type,
        district=pick_string(properties, candidates("district")),
        incident_type=incident_type,
        address=address,
        location=feature_location(feature),
        raw_properties=properties,
    )


def normalize_incident_features(
    features: Iterable[Mapping[str, Any]],
    classification: IncidentClass,
) -> list[Incident]:
    """Normalize features; fire datasets are filtered by the fire keyword test."""
    incidents: list[Incident] = []
    dropped = 0
    for feature in features:
        if not isinstance(feature, Mapping):
            dropped += 1
            continue
        incident = normalize_incident_feature(feature, classification)
        if classification == "fire" and not is_likely_fire_incident(incident.raw_properties):
            dropped += 1
            continue
        incidents.append(incident)

    if dropped:
        log.debug("incidents_dropped", classification=classification, dropped=dropped)
    return incidents
