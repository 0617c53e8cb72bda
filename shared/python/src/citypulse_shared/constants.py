"""
constants.py — shared constants used across the pipeline.

Field-name candidate lists, classification vocabularies, transit modes and
their display attributes are defined here as data so that upstream schema
drift can be absorbed by editing lists rather than code.

Candidate lists can also be extended at runtime from a JSON file, see
load_field_candidates().
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Final, Literal

# ---------------------------------------------------------------------------
# Typed literals
# ---------------------------------------------------------------------------
IncidentClass = Literal["crime", "fire"]
TransitMode = Literal["subway", "bus", "commuter_rail", "ferry", "amtrak"]
VehicleMode = Literal["subway", "bus", "commuter_rail", "ferry"]
AlertSeverity = Literal["info", "minor", "major", "severe"]
AlertSource = Literal["mbta", "amtrak"]
LineSource = Literal["authoritative-shape", "synthetic"]
FetchMode = Literal["paged-query", "single-feed", "stub"]
OutputKind = Literal["incidents", "layer"]

# ---------------------------------------------------------------------------
# Schema-tolerant field extraction: logical field -> ordered candidate keys
# ---------------------------------------------------------------------------
FIELD_CANDIDATES: Final[dict[str, list[str]]] = {
    "occurred_at": [
        "occurred_on_date",
        "incident_date",
        "dispatch_date",
        "fromdate",
        "open_dt",
        "date",
        "offense_date",
    ],
    "reported_at": [
        "occurred_on_date",
        "incident_date",
        "dispatch_date",
        "report_date",
        "open_dt",
        "date",
    ],
    "incident_type": [
        "incident_type_description",
        "incident_type",
        "offense_code_group",
        "offense_code_name",
        "nature",
        "service",
    ],
    "description": [
        "offense_description",
        "offense_code_name",
        "description",
        "nature",
        "comments",
        "incident_type_description",
    ],
    "incident_number": [
        "incident_number",
        "incidentnum",
        "case_number",
        "casenum",
    ],
    "object_id": ["objectid", "fid", "globalid"],
    "type_code": ["offense_code", "incident_type", "nature_code"],
    "district": ["district", "police_district", "reporting_area", "precinct"],
    "address": ["street", "streetname", "location", "address"],
    "latitude": ["latitude", "lat", "y"],
    "longitude": ["longitude", "lon", "lng", "long", "x"],
}

# Descriptive fields concatenated for the fire/non-fire keyword test
FIRE_HAYSTACK_FIELDS: Final[list[str]] = [
    "offense_description",
    "nature",
    "incident_type_description",
    "incident_type",
    "department",
    "agency",
]

FIRE_KEYWORDS: Final[list[str]] = ["fire", "alarm", "smoke", "burn", "hazmat", "rescue"]

# ---------------------------------------------------------------------------
# Transit
# ---------------------------------------------------------------------------
MBTA_ROUTE_TYPES: Final[str] = "0,1,2,3,4"
MBTA_ALERTS_PAGE_URL: Final[str] = "https://www.mbta.com/alerts"
AMTRAK_ALERTS_PAGE_URL: Final[str] = "https://www.amtrak.com/alert.html"

# JSON:API filter[id] batch size accepted by the upstream
MBTA_FILTER_CHUNK_SIZE: Final[int] = 40

ALL_MODES: Final[tuple[TransitMode, ...]] = ("subway", "bus", "commuter_rail", "ferry", "amtrak")

MODE_LABELS: Final[dict[str, str]] = {
    "subway": "Subway",
    "bus": "Bus",
    "commuter_rail": "Commuter Rail",
    "ferry": "Ferry",
    "amtrak": "Amtrak",
}

MODE_COLORS: Final[dict[str, str]] = {
    "subway": "#E74C3C",
    "bus": "#2E86DE",
    "commuter_rail": "#8E44AD",
    "ferry": "#16A085",
}

MODE_RANK: Final[dict[str, int]] = {
    "subway": 1,
    "commuter_rail": 2,
    "bus": 3,
    "ferry": 4,
}

DEFAULT_TEXT_COLOR: Final[str] = "#FFFFFF"

SUBWAY_ROUTE_IDS: Final[frozenset[str]] = frozenset({"RED", "ORANGE", "BLUE", "MATTAPAN"})

# Headline keyword -> severity, checked from most to least severe
SEVERITY_KEYWORDS: Final[list[tuple[AlertSeverity, list[str]]]] = [
    ("severe", ["suspend", "cancel", "severe", "emergency", "major"]),
    ("major", ["delay", "disruption", "bypass", "issue", "service change"]),
    ("minor", ["advisory", "detour", "maintenance", "track work"]),
]

AMTRAK_DEFAULT_FEEDS: Final[list[str]] = [
    "https://www.amtrak.com/content/amtrak/en-us/service-alerts/rss.xml",
    "https://www.amtrak.com/content/amtrak/en-us/service-alerts-and-notices/rss.xml",
]

AMTRAK_REGION_KEYWORDS: Final[list[str]] = [
    "boston",
    "south station",
    "back bay",
    "route 128",
    "westwood",
    "downeaster",
    "north station",
    "acela",
    "northeast regional",
    "lake shore limited",
]


def load_field_candidates(path: str | Path | None = None) -> dict[str, list[str]]:
    """
    Return the field candidate table, optionally extended from a JSON file.

    The file maps logical field names to lists of extra candidate keys.
    Extra keys are tried *before* the built-in ones so an operator can
    point a field at a renamed upstream column without a release. Unknown
    logical fields are added as-is.

    Args:
        path: JSON overrides file. None or "" returns the built-in table.

    Returns:
        A new dict; the module-level FIELD_CANDIDATES is never mutated.
    """
    table = {field: list(keys) for field, keys in FIELD_CANDIDATES.items()}
    if not path:
        return table

    overrides = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(overrides, dict):
        raise ValueError(f"Field candidates file {path} must contain a JSON object")

    for field, extra in overrides.items():
        if not isinstance(extra, list) or not all(isinstance(k, str) for k in extra):
            raise ValueError(f"Candidates for {field!r} must be a list of strings")
        existing = table.get(field, [])
        table[field] = list(dict.fromkeys([*extra, *existing]))
    return table
