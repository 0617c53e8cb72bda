"""
citypulse_shared — shared utilities, models, and configuration for citypulse.

Usage:
    from citypulse_shared.config import settings
    from citypulse_shared.geo import haversine_km, decode_polyline
    from citypulse_shared.time_utils import coerce_timestamp
    from citypulse_shared.models import Incident, DatasetPayload, TransitPayload
    from citypulse_shared.constants import FIELD_CANDIDATES, FIRE_KEYWORDS
"""

__version__ = "0.1.0"
