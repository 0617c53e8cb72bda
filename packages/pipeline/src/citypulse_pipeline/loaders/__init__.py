"""citypulse_pipeline.loaders — persistence of refresh payloads."""

from citypulse_pipeline.loaders.cache_store import (
    CacheStore,
    JsonFileCache,
    MemoryCache,
    get_default_cache,
)

__all__ = ["CacheStore", "JsonFileCache", "MemoryCache", "get_default_cache"]
