"""Last-known-good snapshot cache.

File-backed (single JSON document) store mapping profile name to the last
successful snapshot and its timestamp. The layout is versioned::

    {"version": 1, "clusters": {"<profile>": {"last_success": "...", "data": {...}}}}

Reads never fail the run: a missing, corrupt or version-mismatched file is
treated as an empty cache. Writes go to a temp file that is then renamed
over the cache, so readers never observe a half-written document.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from fleetwatch.models import CachedEntry, ClusterSnapshot

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


class CacheUnavailable(Exception):
    """The cache file is missing, unreadable, or written by another schema."""


@runtime_checkable
class SnapshotCache(Protocol):
    """Protocol for snapshot cache backends."""

    def get(self, profile: str) -> CachedEntry | None: ...

    def put(self, profile: str, snapshot: ClusterSnapshot, timestamp: datetime) -> None: ...


class FileSnapshotCache:
    """JSON-file snapshot cache. Thread-safe via a lock.

    With ``enabled=False`` every read returns nothing and every write is a
    no-op, which is how ``--no-cache`` bypasses the cache for a whole run.
    """

    def __init__(self, path: str | Path, *, enabled: bool = True) -> None:
        self._path = Path(path)
        self._enabled = enabled
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, profile: str) -> CachedEntry | None:
        """Return the cached entry for *profile*, or ``None``."""
        return self.get_many([profile]).get(profile)

    def get_many(self, profiles: Iterable[str] | None = None) -> dict[str, CachedEntry]:
        """Return entries for *profiles* (all cached profiles when ``None``)."""
        if not self._enabled:
            return {}
        with self._lock:
            try:
                clusters = self._read_clusters()
            except CacheUnavailable as e:
                logger.info("Snapshot cache unavailable: %s", e)
                return {}

        wanted = sorted(clusters) if profiles is None else list(profiles)
        entries: dict[str, CachedEntry] = {}
        for name in wanted:
            raw = clusters.get(name)
            if raw is None:
                continue
            entry = self._decode_entry(name, raw)
            if entry is not None:
                entries[name] = entry
        return entries

    def put(self, profile: str, snapshot: ClusterSnapshot, timestamp: datetime) -> None:
        """Record *snapshot* as the last success for *profile*.

        Failures to write are logged; they never fail collection.
        """
        if not self._enabled:
            return
        record = {
            "last_success": timestamp.isoformat(),
            "data": snapshot.model_dump(mode="json"),
        }
        with self._lock:
            try:
                clusters = self._read_clusters()
            except CacheUnavailable as e:
                logger.debug("Starting a fresh snapshot cache: %s", e)
                clusters = {}
            clusters[profile] = record
            try:
                self._write_clusters(clusters)
            except OSError as e:
                logger.warning("Failed to write snapshot cache %s: %s", self._path, e)

    def _read_clusters(self) -> dict[str, Any]:
        if not self._path.is_file():
            raise CacheUnavailable(f"no cache file at {self._path}")
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CacheUnavailable(f"cannot read {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise CacheUnavailable(f"unexpected cache content in {self._path}")
        version = data.get("version")
        if version != CACHE_VERSION:
            raise CacheUnavailable(
                f"cache version {version!r} is not supported (expected {CACHE_VERSION})"
            )
        clusters = data.get("clusters")
        if not isinstance(clusters, dict):
            raise CacheUnavailable(f"cache {self._path} has no clusters mapping")
        return clusters

    def _write_clusters(self, clusters: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": CACHE_VERSION, "clusters": clusters}

        # Atomic write: write to tmp, then rename
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self._path)

    @staticmethod
    def _decode_entry(profile: str, raw: Any) -> CachedEntry | None:
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed cache entry for %s", profile)
            return None
        try:
            return CachedEntry(
                profile=profile,
                last_success=raw["last_success"],
                snapshot=ClusterSnapshot.model_validate(raw["data"]),
            )
        except (KeyError, ValidationError) as e:
            logger.warning("Ignoring malformed cache entry for %s: %s", profile, e)
            return None
