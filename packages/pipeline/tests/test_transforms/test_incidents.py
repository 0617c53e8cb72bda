"""
tests/test_transforms/test_incidents.py — Feature → Incident normalization.
"""

from __future__ import annotations

import pytest

from citypulse_pipeline.transforms.incidents import (
    derive_incident_id,
    feature_location,
    is_likely_fire_incident,
    normalize_incident_feature,
    normalize_incident_features,
)


class TestNormalizeIncident:
    def test_crime_feature(self, arcgis_feature):
        feature = arcgis_feature(
            7,
            INCIDENT_NUMBER="I242041234",
            OFFENSE_CODE=3115,
            OFFENSE_DESCRIPTION="INVESTIGATE PERSON",
            DISTRICT="B2",
            STREET="WASHINGTON ST",
            OCCURRED_ON_DATE=1718000000000,
        )

        incident = normalize_incident_feature(feature, "crime")

        assert incident.id == "I242041234"
        assert incident.incident_number == "I242041234"
        assert incident.type_code == "3115"
        assert incident.description == "INVESTIGATE PERSON"
        assert incident.district == "B2"
        assert incident.address == "WASHINGTON ST"
        assert incident.occurred_at == "2024-06-10T06:13:20.000Z"
        assert incident.location is not None
        assert incident.location.lon == pytest.approx(-71.06)
        assert incident.raw_properties["DISTRICT"] == "B2"

    def test_id_falls_back_to_object_id(self, arcgis_feature):
        incident = normalize_incident_feature(arcgis_feature(99, STREET="A ST"), "crime")
        assert incident.id == "99"

    def test_composite_id_is_deterministic(self):
        feature = {
            "type": "Feature",
            "geometry": None,
            "properties": {"street": "BOYLSTON ST", "incident_date": "2024-06-10", "nature_code": "FIRE"},
        }
        first = normalize_incident_feature(feature, "fire")
        second = normalize_incident_feature(dict(feature), "fire")
        assert first.id == second.id == "fire-BOYLSTON ST-2024-06-10T00:00:00.000Z-FIRE"

    def test_composite_id_placeholders(self):
        assert derive_incident_id("crime", "", "", "", None, "") == "crime--no-date-na"

    def test_description_falls_back_to_incident_type(self, arcgis_feature):
        incident = normalize_incident_feature(arcgis_feature(1, OFFENSE_CODE_GROUP="Larceny"), "crime")
        assert incident.incident_type == "Larceny"
        assert incident.description == "Larceny"

    def test_missing_properties(self):
        incident = normalize_incident_feature({"type": "Feature", "id": 5}, "crime")
        assert incident.id == "5"
        assert incident.district == ""
        assert incident.location is None


class TestFeatureLocation:
    def test_point_geometry(self, arcgis_feature):
        point = feature_location(arcgis_feature(1, lon=-71.1, lat=42.3))
        assert (point.lat, point.lon) == (pytest.approx(42.3), pytest.approx(-71.1))

    def test_property_fallback(self, arcgis_feature):
        point = feature_location(arcgis_feature(1, lon=None, lat=None, Lat="42.31", Long="-71.09"))
        assert point is not None
        assert point.lat == pytest.approx(42.31)

    @pytest.mark.parametrize(
        "geometry",
        [
            {"type": "Point", "coordinates": [None, None]},
            {"type": "Point", "coordinates": ["abc", 42.0]},
            {"type": "Point", "coordinates": [-71.0]},
            {"type": "Point", "coordinates": [-200.0, 42.0]},
            {"type": "LineString", "coordinates": [[-71.0, 42.0], [-71.1, 42.1]]},
            None,
        ],
    )
    def test_invalid_geometry_gives_none(self, geometry):
        assert feature_location({"type": "Feature", "geometry": geometry, "properties": {}}) is None


class TestFireFilter:
    @pytest.mark.parametrize(
        "props, expected",
        [
            ({"NATURE": "Building FIRE"}, True),
            ({"incident_type_description": "Smoke detector activation"}, True),
            ({"department": "Hazmat unit"}, True),
            ({"OFFENSE_DESCRIPTION": "LARCENY SHOPLIFTING"}, False),
            ({"comments": "fire"}, False),
            ({}, False),
        ],
    )
    def test_keyword_match(self, props, expected):
        assert is_likely_fire_incident(props) is expected

    def test_fire_dataset_drops_non_fire(self, arcgis_feature):
        features = [
            arcgis_feature(1, NATURE="Dumpster fire"),
            arcgis_feature(2, NATURE="Medical assist"),
            "not a feature",
        ]
        incidents = normalize_incident_features(features, "fire")
        assert [i.id for i in incidents] == ["1"]

    def test_crime_dataset_keeps_everything(self, arcgis_feature):
        features = [arcgis_feature(1, NATURE="Medical assist"), arcgis_feature(2)]
        assert len(normalize_incident_features(features, "crime")) == 2
