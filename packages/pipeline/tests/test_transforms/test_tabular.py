"""
tests/test_transforms/test_tabular.py — DataFrame export of cached payloads.
"""

from __future__ import annotations

import polars as pl

from citypulse_shared.models import (
    DatasetPayload,
    FeatureCollection,
    GeoPoint,
    Incident,
    Provenance,
    Vehicle,
)
from citypulse_pipeline.transforms.tabular import (
    incidents_to_frame,
    layer_to_frame,
    payload_to_frame,
    vehicles_to_frame,
)


def _provenance(dataset_id: str, count: int) -> Provenance:
    return Provenance(
        dataset_id=dataset_id,
        source_url="https://example.test/query",
        fetched_at="2024-06-10T06:13:20.000Z",
        record_count=count,
    )


class TestIncidentsFrame:
    def test_flattens_location_and_parses_timestamps(self):
        incidents = [
            Incident(
                id="I1",
                classification="crime",
                occurred_at="2024-06-10T06:13:20.000Z",
                district="B2",
                location=GeoPoint(lat=42.35, lon=-71.06),
                raw_properties={"ignored": True},
            ),
            Incident(id="I2", classification="crime", occurred_at="sometime last week"),
        ]

        df = incidents_to_frame(incidents)

        assert df.height == 2
        assert "raw_properties" not in df.columns
        assert df["lat"].to_list() == [42.35, None]
        assert df["district"].to_list() == ["B2", ""]
        assert df.schema["occurred_at_ts"] == pl.Datetime("us", "UTC")
        assert df["occurred_at_ts"].dt.hour().to_list() == [6, None]

    def test_empty_keeps_schema(self):
        df = incidents_to_frame([])
        assert df.height == 0
        assert "occurred_at" in df.columns
        assert "reported_at_ts" in df.columns


class TestVehiclesFrame:
    def test_columns(self):
        vehicle = Vehicle(
            id="y1",
            mode="subway",
            route_id="Red",
            route_label="Red Line",
            status="STOPPED_AT",
            location=GeoPoint(lat=42.35, lon=-71.06),
            updated_at="2024-06-10T06:13:20.000Z",
        )

        df = vehicles_to_frame([vehicle])

        assert df.row(0, named=True)["route_label"] == "Red Line"
        assert df["bearing"].to_list() == [None]
        assert df["updated_at_ts"].dt.minute().to_list() == [13]


class TestLayerFrame:
    def test_properties_plus_point(self):
        payload = DatasetPayload(
            layer=FeatureCollection(
                features=[
                    {
                        "type": "Feature",
                        "geometry": {"type": "Point", "coordinates": [-71.06, 42.35]},
                        "properties": {"NAME": "Engine 7", "nested": {"x": 1}},
                    },
                    {
                        "type": "Feature",
                        "geometry": {"type": "Polygon", "coordinates": [[[-71.0, 42.0]]]},
                        "properties": {"NAME": "District A"},
                    },
                ]
            ),
            provenance=_provenance("fireDepartments", 2),
        )

        df = layer_to_frame(payload)

        assert df["NAME"].to_list() == ["Engine 7", "District A"]
        assert df["lon"].to_list() == [-71.06, None]
        assert "nested" not in df.columns

    def test_payload_dispatch(self):
        payload = DatasetPayload(
            incidents=[Incident(id="F1", classification="fire")],
            provenance=_provenance("fireIncidents", 1),
        )
        assert payload_to_frame(payload)["classification"].to_list() == ["fire"]
