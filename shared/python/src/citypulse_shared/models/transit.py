"""
models/transit.py — Normalized transit vehicles, lines, alerts and summaries.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from citypulse_shared.constants import (
    AlertSeverity,
    AlertSource,
    LineSource,
    TransitMode,
    VehicleMode,
)
from citypulse_shared.models.incidents import GeoPoint


class Vehicle(BaseModel):
    id: str = Field(min_length=1)
    mode: VehicleMode
    route_id: str
    route_label: str
    status: str
    location: GeoPoint
    bearing: float | None = None
    updated_at: str | None = None


class RouteLine(BaseModel):
    """
    A drawable route path. `path` is ordered (lon, lat) pairs.

    source="synthetic" lines are ordered observed positions, not track
    geometry; consumers should style them differently.
    """

    id: str
    mode: VehicleMode
    route_id: str
    label: str
    stroke_color: str
    text_color: str
    path: list[tuple[float, float]]
    source: LineSource


class TransitAlert(BaseModel):
    id: str
    source: AlertSource
    mode: TransitMode
    title: str
    description: str = ""
    severity: AlertSeverity = "info"
    updated_at: str | None = None
    url: str = ""


class ModeSummary(BaseModel):
    mode: TransitMode
    label: str
    vehicle_count: int = 0
    alert_count: int = 0
    status: str
