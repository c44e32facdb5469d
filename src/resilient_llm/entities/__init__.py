"""Domain entities for internal representation.

These are pure dataclasses used internally by services and repositories.
They are NOT used for API contracts - use DTOs from the dto package for that.

Entities should have:
- No JSON serialization framework logic
- No Pydantic validation
- No external dependencies
- Pure domain logic only
"""

from .cache_entry import CacheEntryEntity
from .classified_error import ClassifiedError, ErrorCategory, ErrorContext, SuggestedAction
from .llm_response import LLMResponse, Message, TokenUsage, coerce_messages
from .request_options import ModelOptions, RequestOptions, RetryOptions, StreamingOptions
from .service_stats import ServiceStats
from .stream_event import StreamEvent, StreamEventType

__all__ = [
    "CacheEntryEntity",
    "ClassifiedError",
    "ErrorCategory",
    "ErrorContext",
    "SuggestedAction",
    "LLMResponse",
    "Message",
    "TokenUsage",
    "coerce_messages",
    "ModelOptions",
    "RequestOptions",
    "RetryOptions",
    "StreamingOptions",
    "ServiceStats",
    "StreamEvent",
    "StreamEventType",
]
