"""Time-bounded cache of remote repository file listings.

One instance is shared by every resolver call in the process. Writes for the
same key are last-write-wins; a stale entry heals itself once its TTL lapses.
An optional directory mirrors entries to disk so listings survive restarts.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal, Mapping, Sequence

__all__ = [
    "RepoFileIndexEntry",
    "RepoIndexKey",
    "CachedIndex",
    "CacheStats",
    "RepoIndexCache",
]

LOGGER = logging.getLogger(__name__)

_CACHE_PREFIX = "mizmaster-tree-"
_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True, frozen=True)
class RepoFileIndexEntry:
    """One node of a recursive tree listing."""

    path: str
    type: Literal["blob", "tree"]
    size: int | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RepoFileIndexEntry":
        node_type = "tree" if payload.get("type") == "tree" else "blob"
        size = payload.get("size")
        return cls(path=str(payload.get("path", "")), type=node_type, size=int(size) if size is not None else None)

    def to_payload(self) -> dict[str, Any]:
        return {"path": self.path, "type": self.type, "size": self.size}


@dataclass(slots=True, frozen=True)
class RepoIndexKey:
    owner: str
    repo: str
    branch: str

    def storage_name(self) -> str:
        raw = f"{_CACHE_PREFIX}{self.owner}-{self.repo}-{self.branch}"
        return _SAFE_NAME_RE.sub("_", raw)


@dataclass(slots=True, frozen=True)
class CachedIndex:
    """Listing plus the wall-clock time (seconds) it was fetched."""

    timestamp: float
    entries: tuple[RepoFileIndexEntry, ...]

    def age(self, now: float) -> float:
        return now - self.timestamp


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    writes: int = 0
    write_failures: int = 0


@dataclass(slots=True)
class RepoIndexCache:
    """TTL-bounded store keyed by ``(owner, repo, branch)``."""

    ttl_seconds: float = 24 * 60 * 60
    cache_dir: Path | None = None
    clock: Callable[[], float] = time.time
    stats: CacheStats = field(default_factory=CacheStats)
    _entries: dict[RepoIndexKey, CachedIndex] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def get(self, key: RepoIndexKey) -> tuple[RepoFileIndexEntry, ...] | None:
        """Return a fresh listing or ``None`` when missing or expired."""

        with self._lock:
            cached = self._entries.get(key)
        if cached is None:
            cached = self._read_disk(key)
        if cached is None:
            self.stats.misses += 1
            return None
        if self._is_expired(cached):
            self.stats.expirations += 1
            self.stats.misses += 1
            LOGGER.debug("Tree cache for %s/%s@%s expired", key.owner, key.repo, key.branch)
            with self._lock:
                self._entries.pop(key, None)
            return None
        with self._lock:
            self._entries[key] = cached
        self.stats.hits += 1
        return cached.entries

    def put(self, key: RepoIndexKey, entries: Sequence[RepoFileIndexEntry]) -> CachedIndex:
        cached = CachedIndex(timestamp=self.clock(), entries=tuple(entries))
        with self._lock:
            self._entries[key] = cached
        self.stats.writes += 1
        self._write_disk(key, cached)
        return cached

    def invalidate(self, key: RepoIndexKey) -> None:
        with self._lock:
            self._entries.pop(key, None)
        path = self._disk_path(key)
        if path is not None:
            path.unlink(missing_ok=True)

    def clear(self) -> None:
        with self._lock:
            keys = list(self._entries)
            self._entries.clear()
        for key in keys:
            path = self._disk_path(key)
            if path is not None:
                path.unlink(missing_ok=True)

    def _is_expired(self, cached: CachedIndex) -> bool:
        return cached.age(self.clock()) >= self.ttl_seconds

    def _disk_path(self, key: RepoIndexKey) -> Path | None:
        if self.cache_dir is None:
            return None
        return Path(self.cache_dir) / f"{key.storage_name()}.json"

    def _read_disk(self, key: RepoIndexKey) -> CachedIndex | None:
        path = self._disk_path(key)
        if path is None or not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return CachedIndex(
                timestamp=float(payload["timestamp"]),
                entries=tuple(RepoFileIndexEntry.from_payload(item) for item in payload["tree"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Invalid tree cache %s (%s); clearing", path, exc)
            path.unlink(missing_ok=True)
            return None

    def _write_disk(self, key: RepoIndexKey, cached: CachedIndex) -> None:
        path = self._disk_path(key)
        if path is None:
            return
        body = json.dumps({"timestamp": cached.timestamp, "tree": [entry.to_payload() for entry in cached.entries]})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(body, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            self.stats.write_failures += 1
            LOGGER.warning("Failed to cache tree for %s/%s@%s: %s", key.owner, key.repo, key.branch, exc)
