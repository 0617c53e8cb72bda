"""
tests/test_sources/test_rss.py — RSS advisory feed parsing and proxying.
"""

from __future__ import annotations

import httpx
import pytest

from citypulse_pipeline.sources.base import SourceError
from citypulse_pipeline.sources.rss import RSSFeedSource, parse_feed

FEED_URL = "https://rail.example.test/alerts/rss.xml"

AMTRAK_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Service Alerts</title>
    <item>
      <title>Northeast Regional delays near Back Bay</title>
      <description>Trains 171 and 173 are delayed due to signal issues.</description>
      <link>https://www.amtrak.com/alerts/ne-regional</link>
      <pubDate>Mon, 10 Jun 2024 06:13:20 GMT</pubDate>
    </item>
    <item>
      <title>Pacific Surfliner schedule change</title>
      <description>Weekend track work between San Diego and Oceanside.</description>
      <link>https://www.amtrak.com/alerts/surfliner</link>
    </item>
  </channel>
</rss>
"""


class TestParseFeed:
    def test_items_parsed_in_order(self):
        items = parse_feed(AMTRAK_RSS)

        assert [i.title for i in items] == [
            "Northeast Regional delays near Back Bay",
            "Pacific Surfliner schedule change",
        ]
        assert items[0].link == "https://www.amtrak.com/alerts/ne-regional"
        assert "signal issues" in items[0].description
        assert items[0].published
        assert items[1].published == ""

    @pytest.mark.parametrize("document", ["", "   ", "not xml at all", "<rss><channel></channel></rss>"])
    def test_empty_or_unparseable(self, document):
        assert parse_feed(document) == []


class TestRSSFeedSource:
    def test_direct_request_without_proxy(self):
        source = RSSFeedSource(candidates=[FEED_URL], proxy_url="")
        assert source.request_url(FEED_URL) == FEED_URL

    def test_proxy_request_url_is_quoted(self):
        source = RSSFeedSource(candidates=[FEED_URL], proxy_url="https://app.example.test/api/rss-proxy/")
        assert source.request_url(FEED_URL) == (
            "https://app.example.test/api/rss-proxy"
            "?url=https%3A%2F%2Frail.example.test%2Falerts%2Frss.xml"
        )

    @pytest.mark.asyncio
    async def test_fetch_items(self, mock_http):
        mock_http.get(FEED_URL).mock(return_value=httpx.Response(200, text=AMTRAK_RSS))

        items = await RSSFeedSource(candidates=[FEED_URL], proxy_url="").fetch_items(FEED_URL)

        assert len(items) == 2

    @pytest.mark.asyncio
    async def test_http_error_raises(self, mock_http):
        mock_http.get(FEED_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(SourceError):
            await RSSFeedSource(candidates=[FEED_URL], proxy_url="").fetch_items(FEED_URL)

    def test_default_candidates_are_deduplicated(self, monkeypatch):
        from citypulse_shared.config import settings
        from citypulse_shared.constants import AMTRAK_DEFAULT_FEEDS

        monkeypatch.setattr(settings, "amtrak_alerts_rss_url", AMTRAK_DEFAULT_FEEDS[1])
        assert RSSFeedSource.default_candidates() == [AMTRAK_DEFAULT_FEEDS[1], AMTRAK_DEFAULT_FEEDS[0]]
