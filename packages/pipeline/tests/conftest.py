"""
tests/conftest.py — Shared pytest fixtures for the pipeline test suite.

Provides:
  fixture_path()   — resolves paths to tests/fixtures/
  load_fixture()   — parsed JSON from tests/fixtures/
  memory_cache     — fresh MemoryCache per test
  default_cache    — MemoryCache patched in as the process default cache
  mock_http        — configured respx router for faking HTTP responses
  arcgis_feature() — GeoJSON feature builder
  encode_polyline() — (lon, lat) points to an encoded polyline
  _fresh_inflight  — (autouse) fresh in-flight refresh registries per test
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import respx

from citypulse_pipeline.loaders.cache_store import MemoryCache
from citypulse_pipeline.pipelines import boston, transit
from citypulse_pipeline.utils.inflight import InFlightCache

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def load_fixture() -> Callable[[str], Any]:
    def _load(name: str) -> Any:
        return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))

    return _load


# ---------------------------------------------------------------------------
# Refresh registries
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _fresh_inflight(monkeypatch: pytest.MonkeyPatch) -> None:
    """Abandoned refreshes keep running; never let one leak into the next test."""
    monkeypatch.setattr(boston, "_inflight", {})
    monkeypatch.setattr(transit, "_inflight", InFlightCache(transit.CACHE_KEY))


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def default_cache(monkeypatch: pytest.MonkeyPatch, memory_cache: MemoryCache) -> MemoryCache:
    """
    Route every get_default_cache() lookup to an in-memory store.
    Yields the store so tests can inspect writes.
    """
    monkeypatch.setattr(
        "citypulse_pipeline.pipelines.boston.get_default_cache", lambda: memory_cache
    )
    monkeypatch.setattr(
        "citypulse_pipeline.pipelines.transit.get_default_cache", lambda: memory_cache
    )
    return memory_cache


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

@pytest.fixture
def arcgis_feature() -> Callable[..., dict[str, Any]]:
    """
    Build a GeoJSON point feature.

    Usage:
        arcgis_feature(1, INCIDENT_NUMBER="I241", lon=-71.06, lat=42.35)
    """

    def _build(object_id: int, *, lon: float | None = -71.06, lat: float | None = 42.35, **props: Any):
        geometry = (
            {"type": "Point", "coordinates": [lon, lat]} if lon is not None and lat is not None else None
        )
        return {
            "type": "Feature",
            "id": object_id,
            "geometry": geometry,
            "properties": {"OBJECTID": object_id, **props},
        }

    return _build


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, json={...}))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# Polyline encoding (inverse of citypulse_shared.geo.decode_polyline)
# ---------------------------------------------------------------------------

def _encode_signed(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    out = ""
    while value >= 0x20:
        out += chr((0x20 | (value & 0x1F)) + 63)
        value >>= 5
    return out + chr(value + 63)


@pytest.fixture
def encode_polyline() -> Callable[[list[tuple[float, float]]], str]:
    """Encode (lon, lat) points at precision 1e5."""

    def _encode(points: list[tuple[float, float]]) -> str:
        encoded = ""
        prev_lat = prev_lon = 0
        for lon, lat in points:
            ilat, ilon = round(lat * 1e5), round(lon * 1e5)
            encoded += _encode_signed(ilat - prev_lat) + _encode_signed(ilon - prev_lon)
            prev_lat, prev_lon = ilat, ilon
        return encoded

    return _encode
