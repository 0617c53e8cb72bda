"""
config.py — pydantic-settings Settings class.

All environment variables for citypulse are declared here. Every variable
is prefixed with ``CITYPULSE_`` (e.g. ``CITYPULSE_MBTA_API_KEY``).

Usage:
    from citypulse_shared.config import settings
    print(settings.mbta_base_url)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CITYPULSE_",
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Municipal GIS (ArcGIS FeatureServer)
    # -------------------------------------------------------------------------
    arcgis_base_url: str = Field(
        default="https://services.arcgis.com/sFnw0xNflSi8J0uh/ArcGIS/rest/services"
    )

    # -------------------------------------------------------------------------
    # Transit
    # -------------------------------------------------------------------------
    mbta_base_url: str = Field(default="https://api-v3.mbta.com")
    mbta_api_key: str = Field(default="")
    mbta_gtfs_vehicles_url: str = Field(
        default="https://cdn.mbta.com/realtime/VehiclePositions_enhanced.json"
    )
    mbta_gtfs_alerts_url: str = Field(
        default="https://cdn.mbta.com/realtime/Alerts_enhanced.json"
    )
    amtrak_alerts_rss_url: str = Field(default="")
    # Empty means feeds are fetched directly rather than through a proxy
    rss_proxy_url: str = Field(default="")

    # -------------------------------------------------------------------------
    # Region of interest (defaults: downtown Boston)
    # -------------------------------------------------------------------------
    region_lat: float = Field(default=42.3601)
    region_lon: float = Field(default=-71.0589)
    region_radius_km: float = Field(default=45.0, gt=0)

    # -------------------------------------------------------------------------
    # Fetch behaviour
    # -------------------------------------------------------------------------
    http_timeout_s: float = Field(default=30.0, gt=0)
    http_retry_attempts: int = Field(default=3, ge=1)
    refresh_timeout_s: float = Field(default=90.0, gt=0)
    refresh_dedupe_ttl_s: float = Field(default=0.0, ge=0)

    # -------------------------------------------------------------------------
    # Storage / normalization
    # -------------------------------------------------------------------------
    cache_dir: str = Field(default="./data/cache")
    field_candidates_file: str = Field(default="")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("arcgis_base_url", "mbta_base_url", "rss_proxy_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    @field_validator("mbta_api_key", "amtrak_alerts_rss_url", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton: import this everywhere
# ---------------------------------------------------------------------------
settings = Settings()
