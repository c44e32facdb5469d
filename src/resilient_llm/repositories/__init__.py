"""Repository layer for data access.

This layer abstracts external dependencies (in-process memory, Redis, the
upstream model API) behind protocol-based interfaces. This enables:
- Easy swapping of implementations (memory -> Redis, Anthropic -> other APIs)
- Unit testing with fake implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from resilient_llm.protocols import CacheStore, SessionContextObserver, UpstreamClient

from .anthropic_client import AnthropicUpstreamClient
from .memory_repository import InMemoryCacheRepository
from .redis_repository import RedisCacheRepository

__all__ = [
    "CacheStore",
    "SessionContextObserver",
    "UpstreamClient",
    "AnthropicUpstreamClient",
    "InMemoryCacheRepository",
    "RedisCacheRepository",
]
