"""Resilient LLM - Cached, retrying and error-classifying access to LLM APIs.

This package provides a layered architecture around an upstream model API:

Layers:
    - protocols: Interface contracts (CacheStore, UpstreamClient, SessionContextObserver)
    - repositories: Data access implementations (memory, Redis, Anthropic)
    - services: Business logic (classifier, retry, response cache, request orchestration)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from resilient_llm.repositories import AnthropicUpstreamClient
    from resilient_llm.services import LLMRequestService

    service = LLMRequestService.create(upstream=AnthropicUpstreamClient.create())
    response = await service.send_message([{"role": "user", "content": "Hello"}])
    ```

For HTTP API:
    ```python
    from resilient_llm.api.app import app
    ```
"""

from resilient_llm.config import get_redis_client, settings
from resilient_llm.dto import CacheConfigRequest, SendMessageRequest
from resilient_llm.entities import (
    CacheEntryEntity,
    ClassifiedError,
    ErrorCategory,
    ErrorContext,
    LLMResponse,
    Message,
    RequestOptions,
    StreamEvent,
    StreamEventType,
    StreamingOptions,
    TokenUsage,
)
from resilient_llm.exceptions import ResilientLLMError, ServiceNotConfiguredError, UpstreamAPIError
from resilient_llm.handlers import RequestHandler
from resilient_llm.protocols import CacheStore, SessionContextObserver, UpstreamClient
from resilient_llm.repositories import (
    AnthropicUpstreamClient,
    InMemoryCacheRepository,
    RedisCacheRepository,
)
from resilient_llm.services import (
    ErrorClassifier,
    LLMRequestService,
    MessageStream,
    ResponseCache,
    RetryController,
    build_cache_key,
)

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "CacheStore",
    "UpstreamClient",
    "SessionContextObserver",
    # Services (business logic)
    "ErrorClassifier",
    "RetryController",
    "ResponseCache",
    "LLMRequestService",
    "MessageStream",
    "build_cache_key",
    # Handlers (HTTP)
    "RequestHandler",
    # Repositories (data access)
    "InMemoryCacheRepository",
    "RedisCacheRepository",
    "AnthropicUpstreamClient",
    # Entities (domain models)
    "CacheEntryEntity",
    "ClassifiedError",
    "ErrorCategory",
    "ErrorContext",
    "LLMResponse",
    "Message",
    "RequestOptions",
    "StreamingOptions",
    "StreamEvent",
    "StreamEventType",
    "TokenUsage",
    # Exceptions
    "ResilientLLMError",
    "UpstreamAPIError",
    "ServiceNotConfiguredError",
    # DTOs (API contracts)
    "SendMessageRequest",
    "CacheConfigRequest",
]
