"""In-memory response cache for aggregate search results."""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from src.scraper.base.models import CacheEntry

logger = logging.getLogger(__name__)


class ResponseCache:
    """TTL-bound key/value store with a fixed capacity.

    When full, the oldest inserted entry is evicted first; reads do not
    refresh an entry's position. All access is serialized through a lock so
    the cache can be shared between the orchestrator and worker threads.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Get cached value if it exists and hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store value, evicting the oldest entries beyond capacity."""
        expires_at = self._clock() + (self.ttl_seconds if ttl is None else ttl)
        with self._lock:
            # Re-setting a key counts as a fresh insertion
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache full, evicted oldest entry: {evicted}")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
