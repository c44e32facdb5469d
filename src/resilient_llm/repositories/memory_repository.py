"""In-memory implementation of CacheStore.

Single-process, best-effort storage. Entries are kept in creation order so
the oldest-created entry is evicted first once `max_entries` is reached.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import replace

from resilient_llm.config import settings
from resilient_llm.entities import CacheEntryEntity

logger = logging.getLogger(__name__)


class InMemoryCacheRepository:
    """Dict-backed cache store with an entry cap.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed. Every method holds the lock
    only for its own map mutation.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        """Initialize the in-memory repository.

        Args:
            max_entries: Maximum number of entries kept. Defaults to settings.
        """
        self._entries: OrderedDict[str, CacheEntryEntity] = OrderedDict()
        self._max_entries = max_entries if max_entries is not None else settings.cache_max_entries
        self._evictions = 0
        self._lock = threading.Lock()

    @classmethod
    def create(cls, max_entries: int | None = None) -> "InMemoryCacheRepository":
        """Factory method to create InMemoryCacheRepository with defaults.

        Args:
            max_entries: Entry cap. If None, uses settings.

        Returns:
            Configured InMemoryCacheRepository
        """
        return cls(max_entries=max_entries)

    def get(self, key: str) -> CacheEntryEntity | None:
        with self._lock:
            entry = self._entries.get(key)
            return replace(entry) if entry is not None else None

    def put(self, entry: CacheEntryEntity) -> None:
        with self._lock:
            # Overwrites count as a new creation, so move to the back.
            self._entries.pop(entry.key, None)
            self._entries[entry.key] = replace(entry)
            while len(self._entries) > self._max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted oldest cache entry %s", evicted_key[:12])

    def increment_hits(self, key: str) -> int:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return 0
            entry.hit_count += 1
            return entry.hit_count

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def count_all(self) -> int:
        with self._lock:
            return len(self._entries)

    def list_entries(self) -> list[CacheEntryEntity]:
        with self._lock:
            return [replace(entry) for entry in self._entries.values()]

    def purge_expired(self, now_ms: float) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now_ms)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def health_check(self) -> bool:
        return True

    def set_max_entries(self, max_entries: int) -> None:
        """Change the entry cap, evicting the oldest entries if needed."""
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        with self._lock:
            self._max_entries = max_entries
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "backend": "memory",
                "total_entries": len(self._entries),
                "max_entries": self._max_entries,
                "evictions": self._evictions,
            }

    @property
    def max_entries(self) -> int:
        return self._max_entries
