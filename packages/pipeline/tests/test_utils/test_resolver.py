"""
tests/test_utils/test_resolver.py — Tier fallback and recency merge.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from citypulse_pipeline.utils.resolver import (
    Tier,
    dedupe_preserving_order,
    merge_by_recency,
    resolve_first,
)


def _returning(value):
    calls: list[int] = []

    async def fetch():
        calls.append(1)
        return value

    fetch.calls = calls  # type: ignore[attr-defined]
    return fetch


def _raising(message: str):
    async def fetch():
        raise RuntimeError(message)

    return fetch


class TestResolveFirst:
    @pytest.mark.asyncio
    async def test_first_non_empty_short_circuits(self):
        later = _returning([9])
        resolution = await resolve_first(
            [
                Tier("primary", _returning([1, 2]), source_url="https://a.test"),
                Tier("fallback", later, source_url="https://b.test"),
            ]
        )

        assert resolution.result == [1, 2]
        assert resolution.tier == "primary"
        assert resolution.source_url == "https://a.test"
        assert resolution.notes == []
        assert later.calls == []

    @pytest.mark.asyncio
    async def test_empty_then_non_empty_keeps_one_note(self):
        resolution = await resolve_first(
            [Tier("filtered", _returning([])), Tier("broad", _returning([1, 2, 3, 4]))],
            subject="vehicles",
        )

        assert resolution.resolved
        assert resolution.result == [1, 2, 3, 4]
        assert resolution.notes == ["filtered returned zero vehicles."]
        assert resolution.attempts == 2
        assert not resolution.all_failed

    @pytest.mark.asyncio
    async def test_failure_then_empty_is_unresolved(self):
        resolution = await resolve_first(
            [Tier("a", _raising("HTTP 503")), Tier("b", _returning([]))],
        )

        assert not resolution.resolved
        assert resolution.result is None
        assert resolution.notes == ["a failed (HTTP 503).", "b returned zero records."]
        assert resolution.failures == 1
        assert not resolution.all_failed

    @pytest.mark.asyncio
    async def test_all_failed(self):
        resolution = await resolve_first([Tier("a", _raising("boom")), Tier("b", _raising(""))])

        assert resolution.all_failed
        # Empty messages fall back to the exception type name
        assert resolution.notes[1] == "b failed (RuntimeError)."

    @pytest.mark.asyncio
    async def test_no_tiers(self):
        resolution = await resolve_first([])
        assert not resolution.resolved
        assert not resolution.all_failed


@dataclass
class _Item:
    name: str
    updated_at: str | None


class TestMergeByRecency:
    def test_newest_first_missing_last_stable(self):
        merged = merge_by_recency(
            [_Item("a", "2024-06-10T06:00:00.000Z"), _Item("b", None)],
            [_Item("c", "2024-06-10T08:00:00.000Z"), _Item("d", "garbage"), _Item("e", "2024-06-10T06:00:00.000Z")],
        )
        assert [i.name for i in merged] == ["c", "a", "e", "b", "d"]

    def test_custom_key(self):
        merged = merge_by_recency([{"t": "2024-01-01T00:00:00Z"}, {"t": "2025-01-01T00:00:00Z"}], key=lambda d: d["t"])
        assert merged[0]["t"].startswith("2025")


def test_dedupe_preserving_order():
    assert dedupe_preserving_order(["b", "", "a", "b", None, "a"]) == ["b", "a"]
