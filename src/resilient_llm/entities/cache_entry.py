"""Cache entry domain entity."""

from dataclasses import dataclass

from .llm_response import LLMResponse


@dataclass
class CacheEntryEntity:
    """Domain entity for a cached request/response pair.

    Owned by the cache repository; callers of the cache service only ever
    receive copies.

    Attributes:
        key: Request fingerprint (see build_cache_key)
        response: The cached LLM response
        created_at_ms: Unix epoch milliseconds when the entry was stored
        expires_at_ms: Unix epoch milliseconds after which the entry is stale,
            or None if it never expires
        hit_count: Number of lookups served from this entry
        model: Model identifier of the request
        prompt_preview: Short preview of the last user message, for analytics
    """

    key: str
    response: LLMResponse
    created_at_ms: float
    expires_at_ms: float | None = None
    hit_count: int = 0
    model: str = ""
    prompt_preview: str = ""

    def is_fresh(self, now_ms: float) -> bool:
        """Return True while now is strictly before the expiry timestamp."""
        return self.expires_at_ms is None or now_ms < self.expires_at_ms

    @property
    def tokens(self) -> int:
        return self.response.usage.total_tokens
