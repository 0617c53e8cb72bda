"""
tests/test_transforms/test_routes.py — Route metadata, shapes and synthetic lines.
"""

from __future__ import annotations

import pytest

from citypulse_shared.models import GeoPoint, Vehicle
from citypulse_pipeline.transforms.routes import (
    SYNTHETIC_LINES_WARNING,
    RouteMeta,
    apply_route_meta,
    assemble_lines,
    route_meta_from_document,
    shape_lines_from_document,
    synthetic_lines,
)

BOSTON = (42.3601, -71.0589)

RED = RouteMeta(mode="subway", label="Red Line", color="#DA291C", text_color="#FFFFFF")


def _vehicle(vid: str, route: str, lon: float, lat: float, mode: str = "bus") -> Vehicle:
    return Vehicle(
        id=vid,
        mode=mode,
        route_id=route,
        route_label=route,
        status="IN_TRANSIT_TO",
        location=GeoPoint(lat=lat, lon=lon),
    )


def _shape(shape_id: str, route: str, polyline: str) -> dict:
    return {
        "id": shape_id,
        "type": "shape",
        "attributes": {"polyline": polyline},
        "relationships": {"route": {"data": {"id": route, "type": "route"}}},
    }


class TestRouteMeta:
    def test_from_document(self, load_fixture):
        meta = route_meta_from_document(load_fixture("mbta_routes.json"))

        assert set(meta) == {"Red", "1", "Mystery"}
        assert meta["Red"] == RED
        assert meta["1"].label == "1"
        assert meta["1"].color == "#FFC72C"
        assert meta["1"].text_color == "#000000"
        # Unknown route_type falls back to the id convention
        assert meta["Mystery"].mode == "bus"
        assert meta["Mystery"].color == "#2E86DE"

    def test_apply_replaces_label_and_mode(self):
        vehicles = [_vehicle("v1", "Red", -71.06, 42.35, mode="bus"), _vehicle("v2", "39", -71.1, 42.3)]

        updated = apply_route_meta(vehicles, {"Red": RED})

        assert (updated[0].route_label, updated[0].mode) == ("Red Line", "subway")
        assert updated[1] is vehicles[1]
        assert vehicles[0].route_label == "Red"


class TestShapes:
    def test_keeps_longest_path_per_route(self, encode_polyline):
        short = encode_polyline([(-71.06, 42.35), (-71.07, 42.36)])
        long = encode_polyline([(-71.06, 42.35), (-71.07, 42.36), (-71.08, 42.37)])
        document = {"data": [_shape("s1", "Red", short), _shape("s2", "Red", long)]}

        best = shape_lines_from_document(document, {"Red": RED}, BOSTON, 45)

        line = best["Red"]
        assert line.id == "shape-Red-s2"
        assert line.source == "authoritative-shape"
        assert line.label == "Red Line"
        assert line.stroke_color == "#DA291C"
        assert len(line.path) == 3
        assert line.path[0] == pytest.approx((-71.06, 42.35))

    def test_accumulates_across_chunks(self, encode_polyline):
        best: dict = {}
        path = [(-71.06, 42.35), (-71.07, 42.36)]
        shape_lines_from_document({"data": [_shape("a", "Red", encode_polyline(path))]}, {}, BOSTON, 45, best)
        shape_lines_from_document({"data": [_shape("b", "39", encode_polyline(path))]}, {}, BOSTON, 45, best)

        assert set(best) == {"Red", "39"}
        # No metadata: id convention and mode colour
        assert best["Red"].mode == "subway"
        assert best["39"].label == "39"

    def test_discards_out_of_region_and_degenerate_shapes(self, encode_polyline):
        providence = encode_polyline([(-71.41, 41.82), (-71.40, 41.83)])
        single = encode_polyline([(-71.06, 42.35)])
        document = {
            "data": [
                _shape("far", "CR-Providence", providence),
                _shape("one", "Red", single),
                _shape("bad", "Blue", ""),
                {"id": "x", "type": "route"},
            ]
        }

        assert shape_lines_from_document(document, {}, BOSTON, 45) == {}


class TestSyntheticLines:
    def test_orders_along_dominant_axis(self):
        vehicles = [
            _vehicle("b2", "1", -71.08, 42.330),
            _vehicle("b1", "1", -71.06, 42.340),
            _vehicle("b3", "1", -71.10, 42.335),
            _vehicle("r1", "Red", -71.060, 42.40, mode="subway"),
            _vehicle("r2", "Red", -71.061, 42.30, mode="subway"),
        ]

        lines = {line.route_id: line for line in synthetic_lines(vehicles, {"Red": RED})}

        assert lines["1"].path == [(-71.10, 42.335), (-71.08, 42.330), (-71.06, 42.340)]
        assert lines["1"].id == "synthetic-1"
        assert lines["1"].source == "synthetic"
        assert lines["Red"].path == [(-71.061, 42.30), (-71.060, 42.40)]
        assert lines["Red"].label == "Red Line"

    def test_needs_two_vehicles_and_honours_skip(self):
        vehicles = [
            _vehicle("a", "39", -71.1, 42.3),
            _vehicle("b", "1", -71.06, 42.34),
            _vehicle("c", "1", -71.08, 42.33),
        ]

        assert synthetic_lines(vehicles, skip_routes={"1"}) == []

    def test_ties_broken_by_id(self):
        vehicles = [_vehicle("z", "1", -71.06, 42.34), _vehicle("a", "1", -71.06, 42.34)]
        line = synthetic_lines(vehicles)[0]
        assert len(line.path) == 2


class TestAssemble:
    def test_mixes_shapes_and_synthetic_sorted_by_label(self, encode_polyline):
        shapes = shape_lines_from_document(
            {"data": [_shape("s", "Red", encode_polyline([(-71.06, 42.35), (-71.07, 42.36)]))]},
            {"Red": RED},
            BOSTON,
            45,
        )
        vehicles = [
            _vehicle("r1", "Red", -71.06, 42.35, mode="subway"),
            _vehicle("r2", "Red", -71.07, 42.36, mode="subway"),
            _vehicle("b1", "1", -71.06, 42.34),
            _vehicle("b2", "1", -71.08, 42.33),
        ]
        warnings: list[str] = []

        lines = assemble_lines(shapes, vehicles, {"Red": RED}, warnings)

        assert [(line.route_id, line.source) for line in lines] == [
            ("1", "synthetic"),
            ("Red", "authoritative-shape"),
        ]
        assert warnings == [SYNTHETIC_LINES_WARNING]

    def test_no_warning_when_every_route_has_a_shape(self, encode_polyline):
        shapes = shape_lines_from_document(
            {"data": [_shape("s", "Red", encode_polyline([(-71.06, 42.35), (-71.07, 42.36)]))]},
            {},
            BOSTON,
            45,
        )
        warnings: list[str] = []

        lines = assemble_lines(shapes, [_vehicle("r1", "Red", -71.06, 42.35, mode="subway")], {}, warnings)

        assert len(lines) == 1
        assert warnings == []
