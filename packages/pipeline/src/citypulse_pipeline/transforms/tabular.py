"""
transforms/tabular.py — Flatten normalized records into polars DataFrames.

Used by the CLI export command. Nested fields are flattened (location →
lat/lon); raw_properties are dropped.

Usage:
    from citypulse_pipeline.transforms.tabular import payload_to_frame

    df = payload_to_frame(payload)
    df.write_csv("crime.csv")
"""

from __future__ import annotations

from collections.abc import Sequence

import polars as pl

from citypulse_shared.models import DatasetPayload, Incident, Vehicle

# Matches citypulse_shared.time_utils.format_iso
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S%.3fZ"

INCIDENT_SCHEMA: dict[str, type[pl.DataType]] = {
    "id": pl.String,
    "classification": pl.String,
    "incident_number": pl.String,
    "type_code": pl.String,
    "incident_type": pl.String,
    "description": pl.String,
    "district": pl.String,
    "address": pl.String,
    "occurred_at": pl.String,
    "reported_at": pl.String,
    "lat": pl.Float64,
    "lon": pl.Float64,
}

VEHICLE_SCHEMA: dict[str, type[pl.DataType]] = {
    "id": pl.String,
    "mode": pl.String,
    "route_id": pl.String,
    "route_label": pl.String,
    "status": pl.String,
    "lat": pl.Float64,
    "lon": pl.Float64,
    "bearing": pl.Float64,
    "updated_at": pl.String,
}


def _parse_timestamps(df: pl.DataFrame, columns: Sequence[str]) -> pl.DataFrame:
    """Add a parsed Datetime column "<col>_ts" next to each ISO string column."""
    return df.with_columns(
        [
            pl.col(c)
            .str.to_datetime(ISO_FORMAT, time_unit="us", time_zone="UTC", strict=False)
            .alias(f"{c}_ts")
            for c in columns
            if c in df.columns
        ]
    )


def incidents_to_frame(incidents: Sequence[Incident]) -> pl.DataFrame:
    rows = [
        {
            "id": i.id,
            "classification": i.classification,
            "incident_number": i.incident_number,
            "type_code": i.type_code,
            "incident_type": i.incident_type,
            "description": i.description,
            "district": i.district,
            "address": i.address,
            "occurred_at": i.occurred_at,
            "reported_at": i.reported_at,
            "lat": i.location.lat if i.location else None,
            "lon": i.location.lon if i.location else None,
        }
        for i in incidents
    ]
    df = pl.DataFrame(rows, schema=INCIDENT_SCHEMA)
    return _parse_timestamps(df, ["occurred_at", "reported_at"])


def vehicles_to_frame(vehicles: Sequence[Vehicle]) -> pl.DataFrame:
    rows = [
        {
            "id": v.id,
            "mode": v.mode,
            "route_id": v.route_id,
            "route_label": v.route_label,
            "status": v.status,
            "lat": v.location.lat,
            "lon": v.location.lon,
            "bearing": v.bearing,
            "updated_at": v.updated_at,
        }
        for v in vehicles
    ]
    df = pl.DataFrame(rows, schema=VEHICLE_SCHEMA)
    return _parse_timestamps(df, ["updated_at"])


def layer_to_frame(payload: DatasetPayload) -> pl.DataFrame:
    """One row per feature: its properties plus point lat/lon when present."""
    rows = []
    for feature in payload.layer.features if payload.layer else []:
        row = {k: v for k, v in (feature.get("properties") or {}).items() if not isinstance(v, (dict, list))}
        geometry = feature.get("geometry") or {}
        coords = geometry.get("coordinates") if geometry.get("type") == "Point" else None
        row["lon"], row["lat"] = (coords[0], coords[1]) if coords and len(coords) >= 2 else (None, None)
        rows.append(row)
    return pl.DataFrame(rows, infer_schema_length=None)


def payload_to_frame(payload: DatasetPayload) -> pl.DataFrame:
    if payload.incidents is not None:
        return incidents_to_frame(payload.incidents)
    return layer_to_frame(payload)
