"""
TTL Metrics Cache
Process-wide cache for expensive aggregation queries
"""
from typing import Any, Dict, Optional
import json
import threading
import time
import logging

from fastapi import Request

logger = logging.getLogger(__name__)


class CacheKeys:
    """Constants for cache key prefixes"""
    ORGANIZATION_STATS = "organization_stats"


class CacheTTL:
    """TTL constants in seconds"""
    ORGANIZATION_STATS = 600


class MetricsCache:
    """
    Thread-safe in-memory cache with a TTL per entry.

    One instance is created at application start-up and handed to
    consumers explicitly (see ``main.app.state.metrics_cache``). Entries are
    only expired when read, when ``cleanup()`` runs, or when invalidated.
    """

    def __init__(self, default_ttl: int = 300, clock=time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def set(self, key: str, data: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = {
                "data": data,
                "timestamp": self._clock(),
                "ttl": ttl,
            }

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                self._misses += 1
                return None

            if self._clock() - cached["timestamp"] > cached["ttl"]:
                del self._entries[key]
                self._misses += 1
                return None

            self._hits += 1
            return cached["data"]

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key containing ``pattern``; returns how many were dropped"""
        with self._lock:
            keys = [key for key in self._entries if pattern in key]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries matching '{pattern}'")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def cleanup(self) -> int:
        """Remove expired entries; returns how many were removed"""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, value in self._entries.items()
                if now - value["timestamp"] > value["ttl"]
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        valid_entries = 0
        expired_entries = 0
        total_size = 0

        with self._lock:
            for value in self._entries.values():
                if now - value["timestamp"] > value["ttl"]:
                    expired_entries += 1
                else:
                    valid_entries += 1
                    total_size += len(json.dumps(value["data"], default=str))
            lookups = self._hits + self._misses
            hit_rate = self._hits / lookups if lookups else 0.0

            return {
                "total_entries": len(self._entries),
                "valid_entries": valid_entries,
                "expired_entries": expired_entries,
                "total_size_bytes": total_size,
                "hit_rate": round(hit_rate, 4),
            }


def organization_scope(organization_id: int) -> str:
    return f"org={organization_id}/"


def organization_key(prefix: str, organization_id: int) -> str:
    return f"{organization_scope(organization_id)}{prefix}"


def get_metrics_cache(request: Request) -> MetricsCache:
    """Dependency returning the process-wide cache stored on the application"""
    return request.app.state.metrics_cache
