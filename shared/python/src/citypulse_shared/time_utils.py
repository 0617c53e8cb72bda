"""
time_utils.py — Timestamp coercion for loosely-typed upstream payloads.

Upstreams publish timestamps in several shapes:
- epoch seconds:       1718000000
- epoch milliseconds:  1718000000000
- ISO / RFC strings:   "2024-06-10T06:13:20Z", "Mon, 10 Jun 2024 06:13:20 GMT"
- naive strings:       "2024-06-10 06:13:20" (treated as UTC)

Everything is normalized to a millisecond-precision UTC ISO-8601 string,
e.g. "2024-06-10T06:13:20.000Z", so that values from different sources
sort and compare consistently.

Usage:
    from citypulse_shared.time_utils import coerce_timestamp, utc_now_iso

    coerce_timestamp(1718000000)             # "2024-06-10T06:13:20.000Z"
    coerce_timestamp("not a date")           # None
    coerce_timestamp("not a date", keep_unparsed=True)  # "not a date"
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from dateutil import parser as date_parser

# Epoch values below this are seconds, at or above are milliseconds.
EPOCH_MS_THRESHOLD = 1_000_000_000_000

# Missing components are filled from this rather than from "now" so that
# parsing is deterministic across runs.
_PARSE_DEFAULT = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_iso(dt: datetime) -> str:
    """Render an aware or naive (assumed UTC) datetime as YYYY-MM-DDTHH:MM:SS.mmmZ."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return format_iso(datetime.now(timezone.utc))


def epoch_to_iso(value: float) -> str | None:
    """Convert epoch seconds or milliseconds (detected by magnitude) to ISO."""
    if not math.isfinite(value):
        return None
    seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
    try:
        return format_iso(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp_string(text: str) -> str | None:
    """Parse a date string with dateutil; None when unparseable."""
    try:
        return format_iso(date_parser.parse(text, default=_PARSE_DEFAULT))
    except (ValueError, OverflowError):
        return None


def coerce_timestamp(value: object, *, keep_unparsed: bool = False) -> str | None:
    """
    Normalize an arbitrary upstream timestamp to a UTC ISO string.

    Args:
        value:         int/float epoch, date string, datetime, or None.
        keep_unparsed: When True a non-empty string that cannot be parsed is
                       returned stripped but otherwise verbatim instead of None.

    Returns:
        ISO string, the verbatim string (keep_unparsed), or None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, (int, float)):
        return epoch_to_iso(float(value))

    text = str(value).strip()
    if not text:
        return None
    # Epochs serialized as strings ("1718000000000")
    if text.isdigit() and len(text) >= 9:
        return epoch_to_iso(float(text))
    parsed = parse_timestamp_string(text)
    if parsed is not None:
        return parsed
    return text if keep_unparsed else None


def timestamp_sort_key(value: str | None) -> float:
    """
    Sort key for recency ordering: epoch seconds, or -inf when absent/unparseable.
    """
    if not value:
        return float("-inf")
    try:
        dt = date_parser.isoparse(value)
    except ValueError:
        return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
