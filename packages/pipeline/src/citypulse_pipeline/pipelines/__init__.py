"""
citypulse_pipeline.pipelines — refresh orchestrators.

  boston   — municipal incident and GIS layer datasets
  transit  — MBTA vehicles/lines/alerts plus Amtrak advisories
"""
