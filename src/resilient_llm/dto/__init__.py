"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import CacheConfigRequest, MessageItem, SendMessageRequest
from .responses import (
    CacheClearResponse,
    ErrorStatsResponse,
    HealthCheckResponse,
    MessageResponse,
    UsageItem,
)

__all__ = [
    "MessageItem",
    "SendMessageRequest",
    "CacheConfigRequest",
    "UsageItem",
    "MessageResponse",
    "CacheClearResponse",
    "HealthCheckResponse",
    "ErrorStatsResponse",
]
