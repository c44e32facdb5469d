"""Redis implementation of CacheStore.

Optional durable layer: entries survive a process restart for as long as
Redis keeps them. Each entry is a hash with a JSON payload and a hit
counter; expiry is delegated to Redis via PEXPIREAT.
"""

import json
import logging
from typing import Any

import redis

from resilient_llm.config import get_redis_client, settings
from resilient_llm.entities import CacheEntryEntity, LLMResponse

logger = logging.getLogger(__name__)


class RedisCacheRepository:
    """Redis-backed cache store.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        key_prefix: str | None = None,
    ) -> None:
        """Initialize the Redis cache repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            key_prefix: Prefix for all stored keys. Defaults to settings.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = key_prefix or settings.cache_key_prefix

    @classmethod
    def create(cls, key_prefix: str | None = None) -> "RedisCacheRepository":
        """Factory method to create RedisCacheRepository with defaults.

        Args:
            key_prefix: Key prefix. If None, uses settings.

        Returns:
            Configured RedisCacheRepository
        """
        return cls(key_prefix=key_prefix)

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _scan_keys(self) -> list[Any]:
        return list(self._client.scan_iter(match=f"{self._prefix}:*"))

    @staticmethod
    def _decode(raw: dict) -> CacheEntryEntity | None:
        if not raw:
            return None
        fields = {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in raw.items()
        }
        try:
            payload = json.loads(fields["payload"])
        except (KeyError, json.JSONDecodeError):
            logger.warning("Skipping corrupt cache entry payload")
            return None
        expires_at = payload.get("expires_at_ms")
        return CacheEntryEntity(
            key=payload["key"],
            response=LLMResponse.from_dict(payload["response"]),
            created_at_ms=float(payload["created_at_ms"]),
            expires_at_ms=float(expires_at) if expires_at is not None else None,
            hit_count=int(fields.get("hit_count", 0)),
            model=payload.get("model", ""),
            prompt_preview=payload.get("prompt_preview", ""),
        )

    def get(self, key: str) -> CacheEntryEntity | None:
        raw: dict = self._client.hgetall(self._redis_key(key))  # type: ignore[assignment]
        return self._decode(raw)

    def put(self, entry: CacheEntryEntity) -> None:
        redis_key = self._redis_key(entry.key)
        payload = {
            "key": entry.key,
            "response": entry.response.to_dict(),
            "created_at_ms": entry.created_at_ms,
            "expires_at_ms": entry.expires_at_ms,
            "model": entry.model,
            "prompt_preview": entry.prompt_preview,
        }

        pipe = self._client.pipeline()
        pipe.delete(redis_key)
        pipe.hset(
            redis_key,
            mapping={
                "payload": json.dumps(payload, ensure_ascii=False),
                "hit_count": str(entry.hit_count),
            },
        )
        if entry.expires_at_ms is not None:
            pipe.pexpireat(redis_key, int(entry.expires_at_ms))
        pipe.execute()

    def increment_hits(self, key: str) -> int:
        redis_key = self._redis_key(key)
        if not self._client.exists(redis_key):
            return 0
        result: int = self._client.hincrby(redis_key, "hit_count", 1)  # type: ignore[assignment]
        return result

    def delete(self, key: str) -> bool:
        result: int = self._client.delete(self._redis_key(key))  # type: ignore[assignment]
        return result > 0

    def clear_all(self) -> int:
        keys = self._scan_keys()
        if not keys:
            return 0
        result: int = self._client.delete(*keys)  # type: ignore[assignment]
        return result

    def count_all(self) -> int:
        return len(self._scan_keys())

    def list_entries(self) -> list[CacheEntryEntity]:
        entries = []
        for redis_key in self._scan_keys():
            entry = self._decode(self._client.hgetall(redis_key))  # type: ignore[arg-type]
            if entry is not None:
                entries.append(entry)
        return entries

    def purge_expired(self, now_ms: float) -> int:
        # Redis expires keys natively.
        return 0

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def get_stats(self) -> dict:
        return {
            "backend": "redis",
            "key_prefix": self._prefix,
            "total_entries": self.count_all(),
        }

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
