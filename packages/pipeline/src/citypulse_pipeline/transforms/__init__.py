"""
citypulse_pipeline.transforms — pure normalization of upstream payloads.

  fields     — schema-tolerant key lookup
  incidents  — GeoJSON features → Incident
  transit    — MBTA/GTFS/RSS → Vehicle, TransitAlert, ModeSummary
  routes     — route metadata, shapes and synthetic lines
  tabular    — polars frames for export
"""
