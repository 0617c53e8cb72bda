"""
transforms/routes.py — Route metadata, authoritative shapes and synthetic lines.

Pure functions over MBTA /routes and /shapes documents; the fetching and
chunking loop lives in pipelines.transit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from citypulse_shared.constants import DEFAULT_TEXT_COLOR, VehicleMode
from citypulse_shared.geo import decode_polyline, dominant_axis, path_within_radius
from citypulse_shared.models import RouteLine, Vehicle
from citypulse_pipeline.transforms.fields import as_record, text_or_empty
from citypulse_pipeline.transforms.transit import (
    mode_color,
    mode_from_route_id,
    mode_from_route_type,
    normalize_hex_color,
)

SYNTHETIC_LINES_WARNING = "Falling back to synthetic transit lines from live vehicle positions."


@dataclass(frozen=True)
class RouteMeta:
    mode: VehicleMode
    label: str
    color: str
    text_color: str


def route_meta_from_document(document: Mapping[str, Any]) -> dict[str, RouteMeta]:
    meta: dict[str, RouteMeta] = {}
    for row in document.get("data") or []:
        if not isinstance(row, dict) or row.get("type") != "route" or not row.get("id"):
            continue
        route_id = str(row["id"])
        attrs = as_record(row.get("attributes")) or {}
        mode = mode_from_route_type(attrs.get("route_type")) or mode_from_route_id(route_id)
        if mode is None:
            continue
        meta[route_id] = RouteMeta(
            mode=mode,
            label=text_or_empty(attrs.get("short_name"))
            or text_or_empty(attrs.get("long_name"))
            or route_id,
            color=normalize_hex_color(attrs.get("color"), mode_color(mode)),
            text_color=normalize_hex_color(attrs.get("text_color"), DEFAULT_TEXT_COLOR),
        )
    return meta


def apply_route_meta(vehicles: Iterable[Vehicle], meta: Mapping[str, RouteMeta]) -> list[Vehicle]:
    """Replace route labels (and mode) with the authoritative route metadata."""
    updated: list[Vehicle] = []
    for vehicle in vehicles:
        info = meta.get(vehicle.route_id)
        if info is None:
            updated.append(vehicle)
        else:
            updated.append(vehicle.model_copy(update={"route_label": info.label, "mode": info.mode}))
    return updated


def shape_lines_from_document(
    document: Mapping[str, Any],
    meta: Mapping[str, RouteMeta],
    center: tuple[float, float],
    radius_km: float,
    best: dict[str, RouteLine] | None = None,
) -> dict[str, RouteLine]:
    """
    Fold one /shapes document into `best`, keeping the longest in-region path per route.

    Shapes with fewer than two decoded points or no point inside the
    radius are discarded. Pass the same `best` across chunks.
    """
    best = {} if best is None else best
    for row in document.get("data") or []:
        if not isinstance(row, dict) or row.get("type") != "shape":
            continue
        attrs = as_record(row.get("attributes")) or {}
        relationships = as_record(row.get("relationships")) or {}
        route_data = as_record((as_record(relationships.get("route")) or {}).get("data")) or {}
        route_id = text_or_empty(route_data.get("id")) or text_or_empty(attrs.get("route_id"))
        polyline = text_or_empty(attrs.get("polyline"))
        if not route_id or not polyline:
            continue

        path = decode_polyline(polyline)
        if len(path) < 2 or not path_within_radius(path, center[0], center[1], radius_km):
            continue

        info = meta.get(route_id)
        mode = info.mode if info else mode_from_route_id(route_id)
        if mode is None:
            continue

        existing = best.get(route_id)
        if existing is not None and len(existing.path) >= len(path):
            continue
        best[route_id] = RouteLine(
            id=f"shape-{route_id}-{row.get('id', '')}",
            mode=mode,
            route_id=route_id,
            label=info.label if info else route_id,
            stroke_color=info.color if info else mode_color(mode),
            text_color=info.text_color if info else DEFAULT_TEXT_COLOR,
            path=path,
            source="authoritative-shape",
        )
    return best


def synthetic_lines(
    vehicles: Sequence[Vehicle],
    meta: Mapping[str, RouteMeta] | None = None,
    skip_routes: Iterable[str] = (),
) -> list[RouteLine]:
    """
    Approximate one line per route from its vehicles' positions.

    Needs at least two vehicles on the route. Positions are ordered along
    the dominant axis (longitude when its spread is at least the latitude
    spread), ties broken by the other coordinate then vehicle id. Routes
    in `skip_routes` already have an authoritative shape.
    """
    meta = meta or {}
    skip = set(skip_routes)
    by_route: dict[str, list[Vehicle]] = {}
    for vehicle in vehicles:
        if vehicle.route_id and vehicle.route_id not in skip:
            by_route.setdefault(vehicle.route_id, []).append(vehicle)

    lines: list[RouteLine] = []
    for route_id, rows in by_route.items():
        if len(rows) < 2:
            continue
        points = [(v.location.lon, v.location.lat) for v in rows]
        axis = dominant_axis(points)
        ordered = sorted(
            rows,
            key=lambda v: (
                (v.location.lon, v.location.lat) if axis == 0 else (v.location.lat, v.location.lon),
                v.id,
            ),
        )
        info = meta.get(route_id)
        mode = info.mode if info else rows[0].mode
        lines.append(
            RouteLine(
                id=f"synthetic-{route_id}",
                mode=mode,
                route_id=route_id,
                label=info.label if info else (rows[0].route_label or route_id),
                stroke_color=info.color if info else mode_color(mode),
                text_color=info.text_color if info else DEFAULT_TEXT_COLOR,
                path=[(v.location.lon, v.location.lat) for v in ordered],
                source="synthetic",
            )
        )
    return lines


def assemble_lines(
    shapes: Mapping[str, RouteLine],
    vehicles: Sequence[Vehicle],
    meta: Mapping[str, RouteMeta],
    warnings: list[str],
) -> list[RouteLine]:
    """Authoritative shapes plus synthetic lines for uncovered routes, sorted by label."""
    synthetic = synthetic_lines(vehicles, meta, skip_routes=shapes.keys())
    if synthetic:
        warnings.append(SYNTHETIC_LINES_WARNING)
    lines = [*shapes.values(), *synthetic]
    return sorted(lines, key=lambda line: (line.label.casefold(), line.route_id, line.id))
