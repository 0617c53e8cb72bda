"""
loaders/cache_store.py — Key/value store for the last good refresh payload.

Every successful refresh writes its payload here; read paths serve it
without touching the network. Writes are last-writer-wins. Entries are
stored as {"data": <payload>, "stored_at": <ISO timestamp>}.

Implementations:
  JsonFileCache — one JSON file per key under settings.cache_dir, each
                  guarded by a filelock.FileLock
  MemoryCache   — process-local dict, for tests and ephemeral runs

Usage:
    from citypulse_pipeline.loaders.cache_store import get_default_cache

    cache = get_default_cache()
    cache.write("boston-open-data:crimeIncidents", payload.model_dump(mode="json"))
    cache.read("boston-open-data:crimeIncidents")
"""

from __future__ import annotations

import copy
import json
import re
from pathlib import Path
from typing import Any, Protocol

import structlog
from filelock import FileLock, Timeout

from citypulse_shared.config import settings
from citypulse_shared.time_utils import utc_now_iso

log = structlog.get_logger(__name__)

LOCK_TIMEOUT_S = 10.0

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class CacheStore(Protocol):
    def read(self, key: str) -> dict[str, Any] | None: ...

    def read_entry(self, key: str) -> dict[str, Any] | None: ...

    def write(self, key: str, payload: dict[str, Any]) -> bool: ...


def _valid_entry(entry: Any) -> bool:
    return isinstance(entry, dict) and isinstance(entry.get("data"), dict)


class JsonFileCache:
    """One JSON document per key; unreadable or corrupt files read as a miss."""

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory or settings.cache_dir)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _lock(self, path: Path) -> FileLock:
        return FileLock(str(path) + ".lock", timeout=LOCK_TIMEOUT_S)

    def read_entry(self, key: str) -> dict[str, Any] | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with self._lock(path):
                entry = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, Timeout) as exc:
            log.warning("cache_read_failed", key=key, path=str(path), error=str(exc))
            return None
        if not _valid_entry(entry):
            log.warning("cache_entry_invalid", key=key, path=str(path))
            return None
        return entry

    def read(self, key: str) -> dict[str, Any] | None:
        entry = self.read_entry(key)
        return entry["data"] if entry else None

    def write(self, key: str, payload: dict[str, Any]) -> bool:
        path = self.path_for(key)
        entry = {"data": payload, "stored_at": utc_now_iso()}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self._lock(path):
                tmp = path.with_suffix(".json.tmp")
                tmp.write_text(json.dumps(entry), encoding="utf-8")
                tmp.replace(path)
        except (OSError, TypeError, ValueError, Timeout) as exc:
            log.warning("cache_write_failed", key=key, path=str(path), error=str(exc))
            return False
        log.debug("cache_written", key=key, path=str(path))
        return True


class MemoryCache:
    """Dict-backed store; entries are deep-copied in and out."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}

    def read_entry(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        return copy.deepcopy(entry) if entry else None

    def read(self, key: str) -> dict[str, Any] | None:
        entry = self.read_entry(key)
        return entry["data"] if entry else None

    def write(self, key: str, payload: dict[str, Any]) -> bool:
        self._entries[key] = {"data": copy.deepcopy(payload), "stored_at": utc_now_iso()}
        return True

    def keys(self) -> list[str]:
        return sorted(self._entries)


_default_cache: CacheStore | None = None


def get_default_cache() -> CacheStore:
    """Process-wide JsonFileCache rooted at settings.cache_dir."""
    global _default_cache
    if _default_cache is None:
        _default_cache = JsonFileCache()
    return _default_cache
