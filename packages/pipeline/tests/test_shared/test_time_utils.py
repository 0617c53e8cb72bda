"""
tests/test_shared/test_time_utils.py — Timestamp coercion.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from citypulse_shared.time_utils import (
    coerce_timestamp,
    epoch_to_iso,
    format_iso,
    timestamp_sort_key,
)


class TestCoerceTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            1718000000,
            1718000000000,
            1718000000.0,
            "1718000000000",
            "2024-06-10T06:13:20Z",
            "2024-06-10 06:13:20",
            "Mon, 10 Jun 2024 06:13:20 GMT",
            "2024-06-10T02:13:20-04:00",
        ],
    )
    def test_equivalent_inputs(self, value):
        assert coerce_timestamp(value) == "2024-06-10T06:13:20.000Z"

    def test_datetime_with_offset(self):
        dt = datetime(2024, 6, 10, 2, 13, 20, 500000, tzinfo=timezone(timedelta(hours=-4)))
        assert coerce_timestamp(dt) == "2024-06-10T06:13:20.500Z"

    @pytest.mark.parametrize("value", [None, "", "   ", True, float("nan")])
    def test_missing_values(self, value):
        assert coerce_timestamp(value) is None

    def test_unparseable_string(self):
        assert coerce_timestamp("unknown") is None
        assert coerce_timestamp(" unknown ", keep_unparsed=True) == "unknown"


class TestFormatting:
    def test_format_naive_is_utc(self):
        assert format_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"

    def test_epoch_zero(self):
        assert epoch_to_iso(0) == "1970-01-01T00:00:00.000Z"


class TestSortKey:
    def test_missing_sorts_oldest(self):
        assert timestamp_sort_key(None) == float("-inf")
        assert timestamp_sort_key("garbage") == float("-inf")

    def test_ordering(self):
        older = timestamp_sort_key("2024-06-10T06:13:20.000Z")
        newer = timestamp_sort_key("2024-06-11T00:00:00.000Z")
        assert newer > older > timestamp_sort_key(None)
