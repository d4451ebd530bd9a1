"""Two-tier (memory + disk) cache of resolved formula records."""

from __future__ import annotations

import json
import os
import threading
import time
import uuid
from pathlib import Path
from urllib.parse import quote

from pour.core.config import PourConfig
from pour.core.errors import CacheError
from pour.core.logging import get_logger
from pour.models.formula import Formula

log = get_logger(__name__)

REVISION_FILE = "REVISION"
SAFE_KEY_CHARS = "@+"


class MetadataCache:
    """Formula records keyed by name.

    Every key is its own JSON file under cache/formulae/, so a large record
    never slows access to others. Entries do not expire; sync_revision()
    drops everything when the upstream revision moves.
    """

    def __init__(self, config: PourConfig):
        self.cache_path = config.cache_dir / "formulae"
        self._memory: dict[str, Formula] = {}
        self._lock = threading.RLock()

    def _file(self, key: str) -> Path:
        # Percent-encoding keeps distinct keys in distinct files
        return self.cache_path / f"{quote(key, safe=SAFE_KEY_CHARS)}.json"

    def set(self, formula: Formula) -> None:
        """Store a formula in memory and on disk."""
        key = formula.name
        f = self._file(key)
        payload = json.dumps({"_ts": int(time.time()), "key": key, "value": formula.to_dict()})

        temp = f.with_name(f".{f.name}.{uuid.uuid4().hex[:8]}.tmp")

        with self._lock:
            self._memory[key] = formula
            try:
                self.cache_path.mkdir(parents=True, exist_ok=True)
                temp.write_text(payload)
                os.replace(temp, f)
            except OSError as e:
                temp.unlink(missing_ok=True)
                log.error("cache_write_error", key=key, path=str(f), error=str(e))
                raise CacheError(
                    "Failed to write cache entry", key=key, path=str(f), operation="write"
                ) from e

        log.debug("cache_set", key=key)

    def get(self, key: str) -> Formula | None:
        """Look a formula up in memory, then on disk."""
        with self._lock:
            if key in self._memory:
                log.debug("cache_hit", key=key, tier="memory")
                return self._memory[key]

            f = self._file(key)
            if not f.exists():
                log.debug("cache_miss", key=key)
                return None

            try:
                data = json.loads(f.read_text())
                if data["key"] != key:
                    raise ValueError(f"entry belongs to {data['key']!r}")
                formula = Formula.from_dict(data["value"])
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                log.warning("cache_corrupted", key=key, path=str(f), exc_info=True)
                f.unlink(missing_ok=True)
                return None
            except OSError as e:
                raise CacheError(
                    "Failed to read cache entry", key=key, path=str(f), operation="read"
                ) from e

            self._memory[key] = formula
            log.debug("cache_hit", key=key, tier="disk")
            return formula

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._memory or self._file(key).exists()

    def remove(self, key: str) -> bool:
        """Drop one entry from both tiers. Returns True if anything was removed."""
        with self._lock:
            in_memory = self._memory.pop(key, None) is not None
            f = self._file(key)
            on_disk = f.exists()
            if on_disk:
                try:
                    f.unlink()
                except OSError as e:
                    raise CacheError(
                        "Failed to remove cache entry", key=key, path=str(f), operation="remove"
                    ) from e
            return in_memory or on_disk

    def clear(self) -> int:
        """Drop every entry. Returns the number of disk entries removed."""
        with self._lock:
            self._memory.clear()
            removed = 0
            if not self.cache_path.is_dir():
                return 0
            try:
                for f in self.cache_path.glob("*.json"):
                    f.unlink()
                    removed += 1
            except OSError as e:
                raise CacheError(
                    "Failed to clear cache", path=str(self.cache_path), operation="clear"
                ) from e
        log.info("cache_cleared", removed=removed)
        return removed

    @property
    def revision(self) -> str | None:
        f = self.cache_path / REVISION_FILE
        return f.read_text().strip() if f.exists() else None

    def sync_revision(self, revision: str) -> bool:
        """Invalidate everything if the upstream revision changed.

        Returns True when the cache was cleared.
        """
        with self._lock:
            current = self.revision
            if current == revision:
                return False

            self.clear()
            try:
                self.cache_path.mkdir(parents=True, exist_ok=True)
                (self.cache_path / REVISION_FILE).write_text(revision)
            except OSError as e:
                raise CacheError(
                    "Failed to record cache revision",
                    path=str(self.cache_path),
                    operation="write",
                ) from e

        log.info("cache_revision_changed", old=current, new=revision)
        return True

    def stats(self) -> dict:
        with self._lock:
            files = list(self.cache_path.glob("*.json")) if self.cache_path.is_dir() else []
            return {
                "memory_entries": len(self._memory),
                "disk_entries": len(files),
                "disk_bytes": sum(f.stat().st_size for f in files),
                "revision": self.revision,
                "path": str(self.cache_path),
            }
