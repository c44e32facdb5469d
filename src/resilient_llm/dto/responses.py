"""Response DTOs for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from resilient_llm.entities import LLMResponse


class UsageItem(BaseModel):
    """Token usage of one response."""

    input_tokens: int = Field(..., description="Prompt tokens", ge=0)
    output_tokens: int = Field(..., description="Generated tokens", ge=0)
    cache_read_tokens: int | None = Field(None, description="Prompt tokens served from the upstream prompt cache")


class MessageResponse(BaseModel):
    """Response DTO for a completed request."""

    content: str = Field(..., description="Assembled response text")
    model: str = Field(..., description="Model that produced the response")
    usage: UsageItem = Field(..., description="Token usage")
    stop_reason: str | None = Field(None, description="Finish reason reported upstream")
    response_id: str | None = Field(None, description="Upstream message id")
    response_time_ms: float = Field(..., description="Time taken to serve the request in milliseconds")

    @classmethod
    def from_entity(cls, response: LLMResponse, response_time_ms: float) -> "MessageResponse":
        return cls(
            content=response.content,
            model=response.model,
            usage=UsageItem(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                cache_read_tokens=response.usage.cache_read_tokens,
            ),
            stop_reason=response.stop_reason,
            response_id=response.response_id,
            response_time_ms=response_time_ms,
        )


class CacheClearResponse(BaseModel):
    """Response DTO for cache clear operation."""

    success: bool = Field(..., description="Whether the operation succeeded")
    deleted_count: int = Field(..., description="Number of entries removed", ge=0)
    message: str = Field(..., description="Human-readable status message")


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Overall health: 'healthy' or 'degraded'")
    cache_healthy: bool = Field(..., description="Whether the cache store is reachable")
    cache_enabled: bool = Field(..., description="Whether the response cache is enabled")


class ErrorStatsResponse(BaseModel):
    """Response DTO for the classified error history."""

    total_errors: int = Field(..., description="Errors currently in the rolling history", ge=0)
    errors_by_type: dict[str, int] = Field(default_factory=dict, description="Error count per category")
    most_common_error: str | None = Field(None, description="Most frequent category, if any")
    recent_errors: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Most recent errors, newest first",
    )
