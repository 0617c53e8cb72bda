"""
sources/rss.py — RSS/Atom advisory feeds (Amtrak service alerts).

Feeds are fetched through a same-origin proxy when settings.rss_proxy_url
is set ("{proxy}?url={quoted feed url}"), otherwise directly. Parsing is
done by feedparser, which tolerates most malformed XML; a document with
no recoverable items yields an empty list rather than an exception.

Candidate order: settings.amtrak_alerts_rss_url (if any), then the
built-in feeds, duplicates removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import feedparser

from citypulse_shared.config import settings
from citypulse_shared.constants import AMTRAK_DEFAULT_FEEDS
from citypulse_pipeline.sources.base import BaseSource
from citypulse_pipeline.utils.resolver import dedupe_preserving_order


@dataclass(frozen=True)
class FeedItem:
    title: str
    description: str
    link: str
    published: str


def _entry_text(entry: Any, *keys: str) -> str:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_feed(document: str) -> list[FeedItem]:
    """Parse RSS/Atom text into FeedItems; [] for empty or unparseable input."""
    if not document.strip():
        return []
    parsed = feedparser.parse(document)
    return [
        FeedItem(
            title=_entry_text(entry, "title"),
            description=_entry_text(entry, "summary", "description"),
            link=_entry_text(entry, "link"),
            published=_entry_text(entry, "published", "updated", "date"),
        )
        for entry in parsed.entries
    ]


class RSSFeedSource(BaseSource):
    name = "RSS"

    def __init__(
        self,
        candidates: list[str] | None = None,
        proxy_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self._proxy_url = (settings.rss_proxy_url if proxy_url is None else proxy_url).rstrip("/")
        self.candidates = candidates if candidates is not None else self.default_candidates()

    @staticmethod
    def default_candidates() -> list[str]:
        return dedupe_preserving_order([settings.amtrak_alerts_rss_url, *AMTRAK_DEFAULT_FEEDS])

    @property
    def override_configured(self) -> bool:
        return bool(settings.amtrak_alerts_rss_url)

    def request_url(self, feed_url: str) -> str:
        if not self._proxy_url:
            return feed_url
        return f"{self._proxy_url}?url={quote(feed_url, safe='')}"

    async def fetch_items(self, feed_url: str) -> list[FeedItem]:
        document = await self._get_text(self.request_url(feed_url))
        items = parse_feed(document)
        self._log.info("feed_parsed", feed_url=feed_url, items=len(items))
        return items
