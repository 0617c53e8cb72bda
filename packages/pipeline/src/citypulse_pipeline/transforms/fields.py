"""
transforms/fields.py — Heuristic field extraction from loosely-typed property maps.

Upstream layers rename and re-case attributes without notice
("OFFENSE_DESCRIPTION" vs "offense_description" vs "OffenseDescription").
Each logical field therefore has an ordered list of candidate keys
(citypulse_shared.constants.FIELD_CANDIDATES). For each candidate the
exact key is tried first, then a case-insensitive match; the first
non-empty string or finite number wins.

This is a heuristic: if an upstream reuses a candidate name for a
different meaning, the wrong value is picked.

Usage:
    from citypulse_pipeline.transforms.fields import pick_string, pick_date, candidates

    pick_string({"DISTRICT": "B2"}, candidates("district"))   # "B2"
    pick_date({"open_dt": 1718000000000}, ["open_dt"])         # "2024-06-10T06:13:20.000Z"
"""

from __future__ import annotations

import functools
import math
from collections.abc import Mapping, Sequence
from typing import Any

from citypulse_shared.config import settings
from citypulse_shared.constants import load_field_candidates
from citypulse_shared.time_utils import coerce_timestamp

_MISSING = object()


@functools.lru_cache(maxsize=4)
def _candidate_table(path: str) -> dict[str, list[str]]:
    return load_field_candidates(path or None)


def candidates(field: str) -> list[str]:
    """Candidate keys for a logical field, honouring the overrides file."""
    return list(_candidate_table(settings.field_candidates_file).get(field, []))


def lookup(properties: Mapping[str, Any], key: str) -> Any:
    """Exact key, else the first case-insensitive match, else _MISSING."""
    if key in properties:
        return properties[key]
    lowered = key.lower()
    for existing, value in properties.items():
        if isinstance(existing, str) and existing.lower() == lowered:
            return value
    return _MISSING


def _as_text(value: Any) -> str:
    """Usable text for a scalar value, or "" when the value should be skipped."""
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return str(int(value)) if value.is_integer() else repr(value)
    return ""


def pick_string(properties: Mapping[str, Any], keys: Sequence[str]) -> str:
    """
    First non-empty string or finite number among the candidate keys.

    For each candidate the exact key is consulted before any differently
    cased duplicates, so an empty "street" does not hide a filled "STREET".
    """
    for key in keys:
        text = _as_text(properties.get(key))
        if text:
            return text
        lowered = key.lower()
        for existing, value in properties.items():
            if existing != key and isinstance(existing, str) and existing.lower() == lowered:
                text = _as_text(value)
                if text:
                    return text
    return ""


def pick_number(properties: Mapping[str, Any], keys: Sequence[str]) -> float | None:
    """First candidate that converts to a finite float."""
    for key in keys:
        value = lookup(properties, key)
        if value is _MISSING or isinstance(value, bool) or value is None:
            continue
        number = to_number(value)
        if number is not None:
            return number
    return None


def pick_date(properties: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    """
    First candidate that holds a date-like value, as a UTC ISO string.

    Numeric epochs are seconds or milliseconds by magnitude. A non-empty
    string that cannot be parsed is returned verbatim rather than dropped.
    """
    for key in keys:
        value = lookup(properties, key)
        if value is _MISSING or value is None:
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            iso = coerce_timestamp(value)
            if iso is not None:
                return iso
            continue
        if isinstance(value, str) and value.strip():
            return coerce_timestamp(value, keep_unparsed=True)
    return None


def to_number(value: Any) -> float | None:
    """Finite float from a number or numeric string; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def text_or_empty(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def as_record(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None
