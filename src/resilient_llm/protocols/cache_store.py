"""Cache storage protocol.

Defines the interface for any backend that can hold response cache entries
keyed by request fingerprint.

Implementations:
- In-memory dict with oldest-created eviction (default)
- Redis hashes with native expiry (optional durable layer)
"""

from typing import Protocol, runtime_checkable

from resilient_llm.entities import CacheEntryEntity


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for cache storage backends.

    Any type that implements these methods satisfies the protocol, no
    explicit inheritance needed. Freshness is decided by the cache service;
    stores only hold entries.
    """

    def get(self, key: str) -> CacheEntryEntity | None:
        """Fetch an entry by key.

        Args:
            key: The request fingerprint

        Returns:
            A copy of the stored entry, or None if absent
        """
        ...

    def put(self, entry: CacheEntryEntity) -> None:
        """Store an entry, replacing any entry under the same key.

        Args:
            entry: The entry to store
        """
        ...

    def increment_hits(self, key: str) -> int:
        """Increment the hit counter of an entry.

        Args:
            key: The request fingerprint

        Returns:
            The new hit count, or 0 if the key is absent
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete a specific entry by key.

        Args:
            key: The storage key to delete

        Returns:
            True if deleted, False otherwise
        """
        ...

    def clear_all(self) -> int:
        """Clear all entries.

        Returns:
            Number of entries deleted
        """
        ...

    def count_all(self) -> int:
        """Count total entries in the store."""
        ...

    def list_entries(self) -> list[CacheEntryEntity]:
        """Return copies of all stored entries (for analytics)."""
        ...

    def purge_expired(self, now_ms: float) -> int:
        """Remove entries whose expiry is at or before now_ms.

        Returns:
            Number of entries removed
        """
        ...

    def health_check(self) -> bool:
        """Check if the store is accessible."""
        ...

    def get_stats(self) -> dict:
        """Get store statistics (implementation-specific)."""
        ...
