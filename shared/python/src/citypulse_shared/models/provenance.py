"""
models/provenance.py — Provenance envelope and cacheable refresh payloads.

Every refresh produces a fresh, frozen Provenance. Payloads are the unit
written to and read from the cache façade, always replaced wholesale.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from citypulse_shared.models.incidents import FeatureCollection, Incident
from citypulse_shared.models.transit import ModeSummary, RouteLine, TransitAlert, Vehicle

QueryValue = str | int | float | bool


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    ASSEMBLED = "assembled"
    FAILED = "failed"


class Provenance(BaseModel):
    """Audit record for one refresh: where, when, how much, and what went wrong."""

    model_config = ConfigDict(frozen=True)

    dataset_id: str
    source_url: str
    fetched_at: str
    record_count: int = Field(ge=0)
    query_params: dict[str, QueryValue] = Field(default_factory=dict)
    warnings: tuple[str, ...] = ()


class DatasetPayload(BaseModel):
    """Municipal dataset refresh result: incident records or a GIS layer."""

    incidents: list[Incident] | None = None
    layer: FeatureCollection | None = None
    provenance: Provenance

    @model_validator(mode="after")
    def _has_body(self) -> "DatasetPayload":
        if self.incidents is None and self.layer is None:
            raise ValueError("DatasetPayload needs either incidents or layer")
        return self

    @property
    def records(self) -> list[Any]:
        if self.incidents is not None:
            return list(self.incidents)
        return list(self.layer.features) if self.layer else []


class TransitPayload(BaseModel):
    vehicles: list[Vehicle] = Field(default_factory=list)
    lines: list[RouteLine] = Field(default_factory=list)
    alerts: list[TransitAlert] = Field(default_factory=list)
    summaries: list[ModeSummary] = Field(default_factory=list)
    provenance: Provenance
