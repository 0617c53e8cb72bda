"""
citypulse_pipeline — ingestion workers for Boston open data and regional transit.

Architecture:
  sources/     — one module per upstream protocol (ArcGIS, MBTA v3, GTFS enhanced, RSS)
  transforms/  — schema-tolerant normalization, route lines, polars export frames
  loaders/     — cache façade (JSON files behind file locks, or in-memory)
  pipelines/   — orchestrators that wire sources -> resolver -> transforms -> cache
  utils/       — structlog configuration, retry decorator, resolver, in-flight cache

Quick start:
    import asyncio
    from citypulse_pipeline.pipelines.boston import refresh_dataset
    payload = asyncio.run(refresh_dataset("crimeIncidents"))

CLI:
    citypulse refresh all
    citypulse status

Shared code from citypulse_shared:
    from citypulse_shared.config import settings
    from citypulse_shared.models import Incident, Vehicle, Provenance
    from citypulse_shared.geo import haversine_km, decode_polyline
"""

__version__ = "0.1.0"
