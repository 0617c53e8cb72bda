"""
sources/gtfs_enhanced.py — MBTA GTFS-realtime "enhanced" JSON bulk feeds.

Used only as the last tier when the JSON:API yields nothing usable. Each
feed is one large document:

  {"header": {...}, "entity": [{"id": "...", "vehicle": {...}} | {"id": "...", "alert": {...}}]}
"""

from __future__ import annotations

from typing import Any

from citypulse_shared.config import settings
from citypulse_pipeline.sources.base import BaseSource


class GTFSEnhancedSource(BaseSource):
    name = "MBTA GTFS"

    def __init__(
        self,
        vehicles_url: str | None = None,
        alerts_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self.vehicles_url = vehicles_url or settings.mbta_gtfs_vehicles_url
        self.alerts_url = alerts_url or settings.mbta_gtfs_alerts_url

    async def fetch_vehicle_positions(self) -> dict[str, Any]:
        return await self._get_json(self.vehicles_url)

    async def fetch_alerts(self) -> dict[str, Any]:
        return await self._get_json(self.alerts_url)
