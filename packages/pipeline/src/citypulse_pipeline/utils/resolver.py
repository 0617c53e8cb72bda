"""
utils/resolver.py — Multi-tier source fallback.

A logical dataset can often be fetched several ways: a filtered query, a
broader query, a bulk feed on another host. resolve_first() tries them in
priority order and returns the first non-empty result. Tiers run strictly
one after another; a later tier is only attempted once every earlier one
is known to be empty or failed.

Every empty or failed attempt leaves a note, including the attempts that
preceded a successful tier, so the provenance shows how the data was
obtained.

Usage:
    tiers = [
        Tier("MBTA filtered vehicle query", lambda: fetch(filtered)),
        Tier("MBTA fallback vehicle query", lambda: fetch(broad)),
    ]
    resolution = await resolve_first(tiers, subject="Boston-area vehicles")
    vehicles = resolution.result or []
    warnings.extend(resolution.notes)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence, Sized
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from citypulse_shared.time_utils import timestamp_sort_key

log = structlog.get_logger(__name__)

R = TypeVar("R", bound=Sized)
T = TypeVar("T")


@dataclass(frozen=True)
class Tier(Generic[R]):
    """One fetch strategy. fetch() returns a sized result; len() == 0 means empty."""

    label: str
    fetch: Callable[[], Awaitable[R]]
    source_url: str = ""


@dataclass
class Resolution(Generic[R]):
    result: R | None = None
    tier: str | None = None
    source_url: str = ""
    notes: list[str] = field(default_factory=list)
    attempts: int = 0
    failures: int = 0

    @property
    def resolved(self) -> bool:
        return self.tier is not None

    @property
    def all_failed(self) -> bool:
        """True when every attempted tier raised (none merely returned empty)."""
        return self.attempts > 0 and self.failures == self.attempts


def describe_error(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


async def resolve_first(tiers: Sequence[Tier[R]], *, subject: str = "records") -> Resolution[R]:
    """
    Try each tier in order; return the first non-empty result.

    Args:
        tiers:   Strategies in priority order.
        subject: Noun used in "returned zero ..." notes.

    Returns:
        Resolution with the winning tier's result (None when nothing
        resolved) and one note per empty/failed attempt, in attempt order.
    """
    resolution: Resolution[R] = Resolution()
    for tier in tiers:
        resolution.attempts += 1
        tier_log = log.bind(tier=tier.label)
        try:
            result = await tier.fetch()
        except Exception as exc:
            resolution.failures += 1
            tier_log.warning("tier_failed", error=describe_error(exc))
            resolution.notes.append(f"{tier.label} failed ({describe_error(exc)}).")
            continue

        if len(result) > 0:
            tier_log.info("tier_resolved", records=len(result))
            resolution.result = result
            resolution.tier = tier.label
            resolution.source_url = tier.source_url
            return resolution

        tier_log.info("tier_empty")
        resolution.notes.append(f"{tier.label} returned zero {subject}.")

    return resolution


def merge_by_recency(
    *groups: Iterable[T],
    key: Callable[[T], str | None] = lambda item: getattr(item, "updated_at", None),
) -> list[T]:
    """
    Concatenate groups and sort newest first.

    Items without a parseable timestamp sort as oldest; ties keep their
    concatenation order.
    """
    merged: list[T] = [item for group in groups for item in group]
    return sorted(merged, key=lambda item: timestamp_sort_key(key(item)), reverse=True)


def dedupe_preserving_order(values: Iterable[Any]) -> list[Any]:
    return list(dict.fromkeys(v for v in values if v))
