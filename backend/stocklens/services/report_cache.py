"""
Report Cache — bounded, time-limited, thread-safe.

Entries expire ``ttl_seconds`` after insertion. When a write pushes the cache
above ``max_entries`` the oldest inserted entries are dropped.
"""
import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from stocklens.schemas.report import ReportDefinition, ReportResult

MIN_TTL_SECONDS = 60


def build_cache_key(definition: ReportDefinition) -> str:
    """SHA-256 over type, filters, columns and date range. Metadata and sorting are ignored."""
    material = {
        "type": definition.type,
        "filters": definition.filters,
        "columns": definition.columns,
        "date_range": definition.date_range.to_dict() if definition.date_range else None,
    }
    encoded = json.dumps(material, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    result: ReportResult
    inserted_at: float


class ReportCache:

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_entries: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def set_ttl(self, seconds: int) -> int:
        with self._lock:
            self._ttl = max(MIN_TTL_SECONDS, int(seconds))
            return self._ttl

    def get(self, key: str) -> Optional[ReportResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.inserted_at >= self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.result

    def put(self, key: str, result: ReportResult) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, result=result, inserted_at=self._clock())
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            return removed

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "max_entries": self._max_entries,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            }
