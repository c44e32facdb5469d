"""Response cache service.

Content-addressed cache of complete model responses. Keys are SHA-256
fingerprints of the semantically relevant request fields; freshness, hit
accounting and analytics live here, storage is delegated to a CacheStore.
"""

import asyncio
import contextlib
import hashlib
import json
import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from resilient_llm.config import settings
from resilient_llm.entities import CacheEntryEntity, LLMResponse, Message, coerce_messages
from resilient_llm.protocols import CacheStore

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


def quantize_temperature(temperature: float, precision: int) -> str:
    """Render a temperature as a fixed-point string so float noise cannot change the key."""
    value = round(float(temperature), precision)
    # Normalize -0.0, which would otherwise render as "-0.00".
    return f"{value + 0.0:.{precision}f}"


def build_cache_key(
    messages: Iterable[Message | Mapping[str, Any]],
    model: str,
    temperature: float,
    system_prompt: str | None = None,
    max_tokens: int | None = None,
    precision: int = 2,
) -> str:
    """Derive the cache fingerprint for a request.

    Args:
        messages: Ordered conversation turns
        model: Model identifier
        temperature: Sampling temperature, quantized to `precision` decimals
        system_prompt: Optional system prompt
        max_tokens: Token budget; only part of the key when not None
        precision: Decimal places kept from the temperature

    Returns:
        Hex SHA-256 digest of the canonical request JSON
    """
    canonical: dict[str, Any] = {
        "messages": [[m.role, m.content] for m in coerce_messages(messages)],
        "model": model,
        "temperature": quantize_temperature(temperature, precision),
        "system": system_prompt,
    }
    if max_tokens is not None:
        canonical["max_tokens"] = int(max_tokens)
    encoded = json.dumps(canonical, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _prompt_preview(messages: list[Message]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content[:PREVIEW_LENGTH]
    return messages[-1].content[:PREVIEW_LENGTH] if messages else ""


class ResponseCache:
    """Core response cache service.

    This service depends on the CacheStore PROTOCOL, not a concrete
    implementation, so the in-memory store and the Redis store are
    interchangeable.

    Example:
        ```python
        from resilient_llm.repositories import InMemoryCacheRepository
        from resilient_llm.services import ResponseCache

        cache = ResponseCache.create(repository=InMemoryCacheRepository.create())
        cache.set(messages, response, model="claude-3-5-sonnet-20241022", temperature=0.7)
        entry = cache.get(messages, model="claude-3-5-sonnet-20241022", temperature=0.7)
        ```
    """

    def __init__(
        self,
        repository: CacheStore,
        ttl_seconds: int | None = None,
        temperature_precision: int | None = None,
        key_includes_max_tokens: bool | None = None,
        sweep_interval: float | None = None,
        enabled: bool | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the response cache.

        Args:
            repository: Cache storage backend (required).
            ttl_seconds: Default entry lifetime, 0 = never expires. Defaults to settings.
            temperature_precision: Decimals kept when hashing temperature. Defaults to settings.
            key_includes_max_tokens: Whether max_tokens is part of the key. Defaults to settings.
            sweep_interval: Seconds between background expiry sweeps. Defaults to settings.
            enabled: Master switch; a disabled cache never hits or stores. Defaults to settings.
            clock: Returns the current time in epoch milliseconds (replaced in tests).
        """
        self._repository = repository
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl
        self._precision = (
            temperature_precision if temperature_precision is not None else settings.cache_temperature_precision
        )
        self._key_includes_max_tokens = (
            key_includes_max_tokens if key_includes_max_tokens is not None else settings.cache_key_includes_max_tokens
        )
        self._sweep_interval = sweep_interval if sweep_interval is not None else settings.cache_sweep_interval
        self._enabled = enabled if enabled is not None else settings.cache_enabled
        self._clock = clock or (lambda: time.time() * 1000)

        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._tokens_saved = 0
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None

    @classmethod
    def create(
        cls,
        repository: CacheStore,
        ttl_seconds: int | None = None,
    ) -> "ResponseCache":
        """Factory method to create ResponseCache with sensible defaults.

        Args:
            repository: Cache storage backend (required).
            ttl_seconds: Default TTL. If None, uses settings.

        Returns:
            Configured ResponseCache instance
        """
        return cls(repository=repository, ttl_seconds=ttl_seconds)

    def make_key(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        model: str,
        temperature: float,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        return build_cache_key(
            messages,
            model,
            temperature,
            system_prompt=system_prompt,
            max_tokens=max_tokens if self._key_includes_max_tokens else None,
            precision=self._precision,
        )

    def get(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        model: str,
        temperature: float,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> CacheEntryEntity | None:
        """Look up a fresh entry for the request.

        Business logic:
        1. Derive the request fingerprint
        2. Treat absent or expired entries as a miss (expired ones are removed)
        3. On a hit, bump the entry's hit count and the token savings

        Args:
            messages: Ordered conversation turns
            model: Model identifier
            temperature: Sampling temperature
            system_prompt: Optional system prompt
            max_tokens: Token budget, used only if configured to affect the key

        Returns:
            A copy of the entry on a hit, None on a miss
        """
        if not self._enabled:
            return None

        key = self.make_key(messages, model, temperature, system_prompt, max_tokens)
        entry = self._repository.get(key)

        if entry is None:
            with self._lock:
                self._misses += 1
            logger.debug("Cache MISS %s", key[:12])
            return None

        if not entry.is_fresh(self._clock()):
            self._repository.delete(key)
            with self._lock:
                self._misses += 1
                self._expirations += 1
            logger.debug("Cache EXPIRED %s", key[:12])
            return None

        hit_count = self._repository.increment_hits(key)
        with self._lock:
            self._hits += 1
            self._tokens_saved += entry.tokens
        logger.debug("Cache HIT %s (hits=%d)", key[:12], hit_count)
        return replace(entry, hit_count=hit_count)

    def set(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        response: LLMResponse,
        model: str,
        temperature: float,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
        ttl_seconds: int | None = None,
    ) -> str | None:
        """Store a response, overwriting any entry under the same key.

        Args:
            messages: Ordered conversation turns
            response: The complete response to cache
            model: Model identifier
            temperature: Sampling temperature
            max_tokens: Token budget, used only if configured to affect the key
            system_prompt: Optional system prompt
            ttl_seconds: Override the default TTL for this entry (0 = never expires)

        Returns:
            The cache key, or None if the cache is disabled
        """
        if not self._enabled:
            return None

        message_list = coerce_messages(messages)
        key = self.make_key(message_list, model, temperature, system_prompt, max_tokens)
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl
        now = self._clock()

        self._repository.put(
            CacheEntryEntity(
                key=key,
                response=response,
                created_at_ms=now,
                expires_at_ms=now + ttl * 1000 if ttl > 0 else None,
                hit_count=0,
                model=model,
                prompt_preview=_prompt_preview(message_list),
            )
        )
        logger.debug("Cache SET %s (ttl=%ss)", key[:12], ttl)
        return key

    def clear(self) -> int:
        """Clear all entries and zero the hit statistics.

        Returns:
            Number of entries deleted
        """
        count = self._repository.clear_all()
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._expirations = 0
            self._tokens_saved = 0
        return count

    def purge_expired(self) -> int:
        """Remove every expired entry now.

        Returns:
            Number of entries removed
        """
        removed = self._repository.purge_expired(self._clock())
        if removed:
            with self._lock:
                self._expirations += removed
            logger.debug("Swept %d expired cache entries", removed)
        return removed

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.purge_expired()

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        with self._lock:
            lookups = self._hits + self._misses
            return self._hits / lookups if lookups else 0.0

    @property
    def total_tokens_saved(self) -> int:
        with self._lock:
            return self._tokens_saved

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with hit/miss counters, savings, size and configuration
        """
        stats = self._repository.get_stats()
        with self._lock:
            lookups = self._hits + self._misses
            stats.update(
                {
                    "enabled": self._enabled,
                    "hits": self._hits,
                    "misses": self._misses,
                    "hit_rate": self._hits / lookups if lookups else 0.0,
                    "total_tokens_saved": self._tokens_saved,
                    "expirations": self._expirations,
                    "size": stats.get("total_entries", 0),
                    "ttl_seconds": self._ttl,
                }
            )
        stats.setdefault("evictions", 0)
        stats.setdefault("max_entries", None)
        return stats

    def get_analytics(self) -> dict[str, Any]:
        """Aggregate usage analytics over the fresh entries."""
        now = self._clock()
        entries = [e for e in self._repository.list_entries() if e.is_fresh(now)]
        total_hits = sum(e.hit_count for e in entries)
        hits_by_model: Counter[str] = Counter()
        for entry in entries:
            hits_by_model[entry.model] += entry.hit_count

        return {
            "total_entries": len(entries),
            "total_hits": total_hits,
            "average_hits_per_entry": total_hits / len(entries) if entries else 0.0,
            "entries_by_model": dict(Counter(e.model for e in entries)),
            "hits_by_model": dict(hits_by_model),
            "cached_tokens": sum(e.tokens for e in entries),
            "total_tokens_saved": self.total_tokens_saved,
            "hit_rate": self.hit_rate,
            "oldest_entry_age_ms": now - min(e.created_at_ms for e in entries) if entries else 0.0,
            "newest_entry_age_ms": now - max(e.created_at_ms for e in entries) if entries else 0.0,
            "config": {
                "enabled": self._enabled,
                "ttl_seconds": self._ttl,
                "temperature_precision": self._precision,
                "key_includes_max_tokens": self._key_includes_max_tokens,
            },
        }

    def get_popular_patterns(self, limit: int = 10) -> list[dict[str, Any]]:
        """Return the most frequently hit entries.

        Args:
            limit: Maximum number of patterns to return

        Returns:
            Entries ordered by hit count (most hit first)
        """
        now = self._clock()
        entries = [e for e in self._repository.list_entries() if e.is_fresh(now) and e.hit_count > 0]
        entries.sort(key=lambda e: (e.hit_count, e.created_at_ms), reverse=True)
        return [
            {
                "key": e.key[:16],
                "prompt_preview": e.prompt_preview,
                "model": e.model,
                "hit_count": e.hit_count,
                "tokens": e.tokens,
                "tokens_saved": e.hit_count * e.tokens,
                "created_at_ms": e.created_at_ms,
            }
            for e in entries[: max(limit, 0)]
        ]

    def update_config(
        self,
        ttl_seconds: int | None = None,
        max_entries: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        """Update cache configuration at runtime.

        Args:
            ttl_seconds: New default TTL for future entries (0 = never expires)
            max_entries: New entry cap, if the store supports one
            enabled: Turn the cache on or off
        """
        if ttl_seconds is not None:
            if ttl_seconds < 0:
                raise ValueError("ttl_seconds must be >= 0")
            self._ttl = ttl_seconds
        if max_entries is not None:
            set_max = getattr(self._repository, "set_max_entries", None)
            if set_max is None:
                raise ValueError("The configured cache store does not support an entry cap")
            set_max(max_entries)
        if enabled is not None:
            self._enabled = enabled

    def is_healthy(self) -> bool:
        return self._repository.health_check()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @property
    def repository(self) -> CacheStore:
        """Get the underlying repository (for testing)."""
        return self._repository
