"""
citypulse_pipeline.sources — upstream source adapters.

Each source wraps one upstream protocol:
  ArcGISFeatureSource — ArcGIS FeatureServer queries with bounded pagination
  MBTASource          — MBTA v3 JSON:API (vehicles, alerts, routes, shapes)
  GTFSEnhancedSource  — MBTA GTFS-realtime enhanced JSON fallback feeds
  RSSFeedSource       — RSS advisory feeds via optional proxy (Amtrak)
"""

from citypulse_pipeline.sources.arcgis import ArcGISFeatureSource, PagedResult
from citypulse_pipeline.sources.base import BaseSource, SourceError
from citypulse_pipeline.sources.gtfs_enhanced import GTFSEnhancedSource
from citypulse_pipeline.sources.mbta import MBTASource
from citypulse_pipeline.sources.rss import RSSFeedSource

__all__ = [
    "BaseSource",
    "SourceError",
    "ArcGISFeatureSource",
    "PagedResult",
    "MBTASource",
    "GTFSEnhancedSource",
    "RSSFeedSource",
]
