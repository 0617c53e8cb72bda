"""
models/incidents.py — Normalized municipal incident records and GIS layers.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from citypulse_shared.constants import IncidentClass


class GeoPoint(BaseModel):
    """WGS84 point. Absent locations are None, never (0, 0)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class Incident(BaseModel):
    """
    One normalized incident (crime or fire) from a municipal feed.

    String fields use "" for unknown. occurred_at / reported_at are UTC
    ISO strings when parseable, otherwise the upstream text verbatim.
    """

    id: str = Field(min_length=1)
    classification: IncidentClass
    incident_number: str = ""
    type_code: str = ""
    source_category: str = ""
    occurred_at: str | None = None
    reported_at: str | None = None
    description: str = ""
    district: str = ""
    incident_type: str = ""
    address: str = ""
    location: GeoPoint | None = None
    raw_properties: dict[str, Any] = Field(default_factory=dict)


class FeatureCollection(BaseModel):
    """GeoJSON FeatureCollection passed through for map layers."""

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[dict[str, Any]] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)
