"""Service layer for business logic.

Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    Handler -> LLMRequestService -> ResponseCache -> Repository
                                 -> RetryController -> ErrorClassifier
                                 -> UpstreamClient

Usage:
    ```python
    from resilient_llm.repositories import AnthropicUpstreamClient
    from resilient_llm.services import LLMRequestService

    # Using factory method (recommended)
    service = LLMRequestService.create(upstream=AnthropicUpstreamClient.create())

    # Or manual creation
    classifier = ErrorClassifier()
    service = LLMRequestService(
        upstream=client,
        cache=ResponseCache(repository=repo),
        classifier=classifier,
        retry=RetryController(classifier),
    )
    ```
"""

from .error_classifier import ErrorClassifier
from .request_service import LLMRequestService, MessageStream
from .response_cache import ResponseCache, build_cache_key
from .retry import RetryConfig, RetryController

__all__ = [
    "ErrorClassifier",
    "LLMRequestService",
    "MessageStream",
    "ResponseCache",
    "build_cache_key",
    "RetryConfig",
    "RetryController",
]
