"""
transforms/transit.py — MBTA/GTFS/RSS payloads → Vehicle, TransitAlert, ModeSummary.

Mode resolution order: GTFS route_type (0/1 subway, 2 commuter rail,
3 bus, 4 ferry), then the route id naming convention (Red, Green-B,
CR-Worcester, Boat-F1, ...), which defaults to bus.

Severity: MBTA numeric severity 0–10 where available, else a headline
keyword vocabulary (citypulse_shared.constants.SEVERITY_KEYWORDS).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from urllib.parse import urlparse

from citypulse_shared.constants import (
    ALL_MODES,
    AMTRAK_ALERTS_PAGE_URL,
    MBTA_ALERTS_PAGE_URL,
    MODE_COLORS,
    MODE_LABELS,
    MODE_RANK,
    SEVERITY_KEYWORDS,
    SUBWAY_ROUTE_IDS,
    AlertSeverity,
    VehicleMode,
)
from citypulse_shared.geo import is_valid_coordinate, is_within_radius
from citypulse_shared.models import GeoPoint, ModeSummary, TransitAlert, Vehicle
from citypulse_shared.time_utils import coerce_timestamp
from citypulse_pipeline.sources.rss import FeedItem
from citypulse_pipeline.transforms.fields import as_record, text_or_empty, to_number
from citypulse_pipeline.transforms.incidents import keyword_pattern

_HEX6 = re.compile(r"^[0-9A-F]{6}$")
_HEX3 = re.compile(r"^[0-9A-F]{3}$")


# ---------------------------------------------------------------------------
# Mode / colour / severity helpers
# ---------------------------------------------------------------------------

def mode_from_route_type(route_type: Any) -> VehicleMode | None:
    value = to_number(route_type)
    if value is None:
        return None
    return {0: "subway", 1: "subway", 2: "commuter_rail", 3: "bus", 4: "ferry"}.get(int(value))  # type: ignore[return-value]


def mode_from_route_id(route_id: str) -> VehicleMode | None:
    normalized = route_id.strip().upper()
    if not normalized:
        return None
    if normalized in SUBWAY_ROUTE_IDS or normalized.startswith("GREEN-"):
        return "subway"
    if normalized.startswith("CR-"):
        return "commuter_rail"
    if normalized.startswith(("FERRY", "BOAT-")) or normalized == "F1":
        return "ferry"
    return "bus"


def mode_color(mode: str) -> str:
    return MODE_COLORS.get(mode, "#7F8C8D")


def normalize_hex_color(value: Any, fallback: str) -> str:
    """'#RRGGBB' from 'RRGGBB', '#rgb' or 'rgb'; fallback for anything else."""
    raw = text_or_empty(value).lstrip("#").upper()
    if _HEX6.match(raw):
        return f"#{raw}"
    if _HEX3.match(raw):
        return "#" + "".join(ch * 2 for ch in raw)
    return fallback


def severity_from_mbta(raw: Any) -> AlertSeverity:
    severity = to_number(raw)
    if severity is None:
        return "minor"
    if severity >= 9:
        return "severe"
    if severity >= 7:
        return "major"
    if severity >= 4:
        return "minor"
    return "info"


_SEVERITY_PATTERNS = [(level, keyword_pattern(words)) for level, words in SEVERITY_KEYWORDS]


def severity_from_headline(text: str) -> AlertSeverity:
    lower = text.lower()
    for level, pattern in _SEVERITY_PATTERNS:
        if pattern.search(lower):
            return level
    return "info"


def sanitize_url(url: str, fallback: str = "") -> str:
    """Keep absolute http(s) URLs; anything else (javascript:, data:, junk) → fallback."""
    candidate = url.strip() if isinstance(url, str) else ""
    if not candidate:
        return fallback
    parsed = urlparse(candidate)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return candidate
    return fallback


def gtfs_translated_text(value: Any) -> str:
    """Plain string, {"text": ...}, or the first non-empty {"translation": [...]} entry."""
    if isinstance(value, str):
        return value.strip()
    obj = as_record(value)
    if obj is None:
        return ""
    direct = text_or_empty(obj.get("text"))
    if direct:
        return direct
    translations = obj.get("translation")
    for item in translations if isinstance(translations, list) else []:
        text = text_or_empty((as_record(item) or {}).get("text"))
        if text:
            return text
    return ""


def _label(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _included_routes(document: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    routes: dict[str, dict[str, Any]] = {}
    for row in document.get("included") or []:
        if isinstance(row, dict) and row.get("type") == "route" and row.get("id"):
            routes[str(row["id"])] = row
    return routes


def _related_id(row: Mapping[str, Any], relation: str) -> str:
    relationships = as_record(row.get("relationships")) or {}
    data = as_record((as_record(relationships.get(relation)) or {}).get("data")) or {}
    return _label(data.get("id"))


# ---------------------------------------------------------------------------
# Vehicles
# ---------------------------------------------------------------------------

def vehicles_from_mbta(document: Mapping[str, Any]) -> list[Vehicle]:
    """JSON:API /vehicles?include=route document → Vehicles with route labels joined."""
    routes = _included_routes(document)
    vehicles: list[Vehicle] = []
    for row in document.get("data") or []:
        if not isinstance(row, dict) or row.get("type") != "vehicle" or not row.get("id"):
            continue
        attrs = as_record(row.get("attributes")) or {}
        lat, lon = to_number(attrs.get("latitude")), to_number(attrs.get("longitude"))
        if not is_valid_coordinate(lat, lon):
            continue

        route_id = _related_id(row, "route")
        route_attrs = as_record((routes.get(route_id) or {}).get("attributes")) or {}
        mode = mode_from_route_type(route_attrs.get("route_type")) or mode_from_route_id(route_id)
        if mode is None:
            continue

        label = (
            _label(route_attrs.get("short_name"))
            or _label(route_attrs.get("long_name"))
            or route_id
            or "Unknown route"
        )
        status = _label(attrs.get("current_status")) or _label(attrs.get("current_stop_sequence"))
        vehicles.append(
            Vehicle(
                id=str(row["id"]),
                mode=mode,
                route_id=route_id or str(row["id"]),
                route_label=label,
                status=status or "IN_TRANSIT_TO",
                location=GeoPoint(lat=lat, lon=lon),  # type: ignore[arg-type]
                bearing=to_number(attrs.get("bearing")),
                updated_at=coerce_timestamp(attrs.get("updated_at")),
            )
        )
    return vehicles


def vehicles_from_gtfs(document: Mapping[str, Any]) -> list[Vehicle]:
    """GTFS-realtime enhanced VehiclePositions JSON → Vehicles (route label = route id)."""
    vehicles: list[Vehicle] = []
    for entity_raw in document.get("entity") or []:
        entity = as_record(entity_raw)
        vehicle = as_record((entity or {}).get("vehicle"))
        if entity is None or vehicle is None:
            continue

        position = as_record(vehicle.get("position")) or {}
        trip = as_record(vehicle.get("trip")) or {}
        lat = to_number(position.get("latitude", vehicle.get("latitude")))
        lon = to_number(position.get("longitude", vehicle.get("longitude")))
        if not is_valid_coordinate(lat, lon):
            continue

        entity_id = text_or_empty(entity.get("id"))
        route_id = (
            text_or_empty(trip.get("route_id"))
            or text_or_empty(vehicle.get("route_id"))
            or entity_id
        )
        mode = mode_from_route_type(
            trip.get("route_type", vehicle.get("route_type"))
        ) or mode_from_route_id(route_id)
        if mode is None:
            continue

        status = (
            text_or_empty(vehicle.get("current_status"))
            or text_or_empty(vehicle.get("currentStatus"))
            or "IN_TRANSIT_TO"
        )
        vehicles.append(
            Vehicle(
                id=entity_id or f"gtfs-{route_id}-{lat}-{lon}",
                mode=mode,
                route_id=route_id or "unknown",
                route_label=route_id or "Unknown route",
                status=status,
                location=GeoPoint(lat=lat, lon=lon),  # type: ignore[arg-type]
                bearing=to_number(position.get("bearing", vehicle.get("bearing"))),
                updated_at=coerce_timestamp(vehicle.get("timestamp", entity.get("timestamp"))),
            )
        )
    return vehicles


def filter_vehicles_in_region(
    vehicles: Iterable[Vehicle],
    center_lat: float,
    center_lon: float,
    radius_km: float,
) -> list[Vehicle]:
    return [
        v
        for v in vehicles
        if is_within_radius(v.location.lat, v.location.lon, center_lat, center_lon, radius_km)
    ]


def sort_vehicles(vehicles: Iterable[Vehicle]) -> list[Vehicle]:
    """Mode rank (subway, commuter rail, bus, ferry), then route label, then id."""
    return sorted(
        vehicles,
        key=lambda v: (MODE_RANK.get(v.mode, 99), v.route_label.casefold(), v.id),
    )


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

def _mode_from_informed(informed: Any) -> tuple[VehicleMode | None, str]:
    """(first mode from informed_entity route_type, first informed route_id)."""
    mode: VehicleMode | None = None
    route_id = ""
    for item in informed if isinstance(informed, list) else []:
        row = as_record(item) or {}
        mode = mode or mode_from_route_type(row.get("route_type"))
        route_id = route_id or text_or_empty(row.get("route_id")) or _label(row.get("route"))
    return mode, route_id


def alerts_from_mbta(document: Mapping[str, Any]) -> list[TransitAlert]:
    routes = _included_routes(document)
    alerts: list[TransitAlert] = []
    for row in document.get("data") or []:
        if not isinstance(row, dict) or row.get("type") != "alert" or not row.get("id"):
            continue
        attrs = as_record(row.get("attributes")) or {}

        informed_mode, informed_route = _mode_from_informed(attrs.get("informed_entity"))
        route_id = _related_id(row, "route")
        related_mode = None
        if route_id:
            related_attrs = as_record((routes.get(route_id) or {}).get("attributes")) or {}
            related_mode = mode_from_route_type(related_attrs.get("route_type"))
        mode = informed_mode or related_mode or mode_from_route_id(route_id or informed_route)
        if mode is None:
            continue

        title = (
            _label(attrs.get("header"))
            or _label(attrs.get("service_effect"))
            or _label(attrs.get("effect_name"))
            or "MBTA service alert"
        )
        alerts.append(
            TransitAlert(
                id=f"mbta-{row['id']}",
                source="mbta",
                mode=mode,
                title=title,
                description=_label(attrs.get("description")) or _label(attrs.get("short_header")),
                severity=severity_from_mbta(attrs.get("severity")),
                updated_at=coerce_timestamp(attrs.get("updated_at") or attrs.get("created_at")),
                url=sanitize_url(_label(attrs.get("url")), MBTA_ALERTS_PAGE_URL),
            )
        )
    return alerts


def alerts_from_gtfs(document: Mapping[str, Any]) -> list[TransitAlert]:
    alerts: list[TransitAlert] = []
    for index, entity_raw in enumerate(document.get("entity") or []):
        entity = as_record(entity_raw)
        alert = as_record((entity or {}).get("alert"))
        if entity is None or alert is None:
            continue

        informed_mode, route_id = _mode_from_informed(alert.get("informed_entity"))
        mode = informed_mode or mode_from_route_id(route_id)
        if mode is None:
            continue

        title = (
            gtfs_translated_text(alert.get("header_text"))
            or gtfs_translated_text(alert.get("short_header_text"))
            or "MBTA service alert"
        )
        description = gtfs_translated_text(alert.get("description_text"))
        entity_id = text_or_empty(entity.get("id")) or route_id or str(index)
        alerts.append(
            TransitAlert(
                id=f"mbta-gtfs-{entity_id}",
                source="mbta",
                mode=mode,
                title=title,
                description=description,
                severity=severity_from_headline(f"{title} {description}"),
                updated_at=coerce_timestamp(alert.get("updated_at") or alert.get("timestamp")),
                url=sanitize_url(gtfs_translated_text(alert.get("url")), MBTA_ALERTS_PAGE_URL),
            )
        )
    return alerts


def alerts_from_feed_items(items: Sequence[FeedItem]) -> list[TransitAlert]:
    alerts: list[TransitAlert] = []
    for index, item in enumerate(items):
        title = item.title or "Amtrak service alert"
        link = sanitize_url(item.link, AMTRAK_ALERTS_PAGE_URL)
        alerts.append(
            TransitAlert(
                id=f"amtrak-{index}-{link}",
                source="amtrak",
                mode="amtrak",
                title=title,
                description=item.description,
                severity=severity_from_headline(f"{title} {item.description}"),
                updated_at=coerce_timestamp(item.published),
                url=link,
            )
        )
    return alerts


def filter_alerts_by_keywords(
    alerts: Iterable[TransitAlert],
    keywords: Sequence[str],
) -> list[TransitAlert]:
    pattern = keyword_pattern(keywords)
    return [a for a in alerts if pattern.search(f"{a.title} {a.description}".lower())]


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def build_summaries(
    vehicles: Sequence[Vehicle],
    alerts: Sequence[TransitAlert],
) -> list[ModeSummary]:
    summaries: list[ModeSummary] = []
    for mode in ALL_MODES:
        vehicle_count = 0 if mode == "amtrak" else sum(1 for v in vehicles if v.mode == mode)
        mode_alerts = [a for a in alerts if a.mode == mode]
        disrupted = any(a.severity in ("severe", "major") for a in mode_alerts)

        if mode_alerts:
            count = len(mode_alerts)
            status = (
                "Major service disruption"
                if disrupted
                else f"{count} active service alert{'' if count == 1 else 's'}"
            )
        elif mode == "amtrak":
            status = "No Boston-area alert published"
        elif vehicle_count == 0:
            status = "No live vehicles reported"
        else:
            status = "Normal service"

        summaries.append(
            ModeSummary(
                mode=mode,
                label=MODE_LABELS[mode],
                vehicle_count=vehicle_count,
                alert_count=len(mode_alerts),
                status=status,
            )
        )
    return summaries
