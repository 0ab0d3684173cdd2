"""Advisory read cache.

A key -> value map with a per-entry time-to-live. It only ever saves a
read: writers invalidate by key prefix as soon as they finish, and reads
that guard a write go straight to the backend.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


class ReadCache:
    """Thread-safe in-memory TTL cache with prefix invalidation."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if datetime.now() > expires_at:
                del self._entries[key]
                return None

        logger.debug(f"Cache hit: {key}")
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        """Store value under key. Entries that have already expired are dropped first."""
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else self.ttl
        now = datetime.now()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now > expires_at]
            for stale in expired:
                del self._entries[stale]
            self._entries[key] = (value, now + ttl)

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix. Returns the count."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]

        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries under '{prefix}'")
        return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)
