"""
Aggregation Cache for Health Buddy

In-process TTL cache for computed aggregates. Values are stored as UTF-8
JSON bytes so cached results never alias live objects.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0


@dataclass
class CacheEntry:
    value: bytes
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class AggregationCache:
    """
    Thread-safe key/value cache with per-entry expiry.

    Concurrent writers to the same key are last-writer-wins.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        if default_ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {default_ttl}")
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    # -- key builders ---------------------------------------------------

    @staticmethod
    def daily_key(kind, start: date, end: date) -> str:
        return f"daily_{kind}_{start.isoformat()}_{end.isoformat()}"

    @staticmethod
    def trend_key(kind, days: int, as_of: date) -> str:
        return f"trend_{kind}_{days}_{as_of.isoformat()}"

    @staticmethod
    def comparison_key(kind, window_days: int, as_of: date) -> str:
        return f"comparison_{kind}_{window_days}_{as_of.isoformat()}"

    # -- raw access -----------------------------------------------------

    def get(self, key: str) -> Optional[bytes]:
        """
        Retrieve a cached value.

        Returns:
            The stored bytes, or None if missing or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def clear_metric(self, kind) -> int:
        """Drop every entry computed for a metric. Returns the count removed."""
        marker = f"_{kind}_"
        with self._lock:
            doomed = [k for k in self._entries if marker in k]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"[CACHE] Cleared {len(doomed)} entries for {kind}")
        return len(doomed)

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- JSON helpers ---------------------------------------------------

    def get_json(self, key: str) -> Optional[Any]:
        """
        Retrieve and decode a JSON value.

        An entry that fails to decode is evicted and reported as a miss.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Cache read error for {key}: {e}")
            self.remove(key)
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.set(key, json.dumps(value).encode("utf-8"), ttl=ttl)
