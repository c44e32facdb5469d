"""HTTP handlers for request, cache and error-history operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, validation, and error handling.
"""

import json
import time
from collections.abc import AsyncIterator
from typing import Any

from fastapi import HTTPException, status
from fastapi.responses import StreamingResponse

from resilient_llm.dto import (
    CacheClearResponse,
    CacheConfigRequest,
    ErrorStatsResponse,
    HealthCheckResponse,
    MessageResponse,
    SendMessageRequest,
)
from resilient_llm.entities import ClassifiedError, ErrorCategory
from resilient_llm.services import LLMRequestService

ERROR_STATUS_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.AUTH_INVALID_API_KEY: status.HTTP_401_UNAUTHORIZED,
    ErrorCategory.AUTH_PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCategory.AUTH_RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCategory.API_INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.API_MODEL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.API_CONTEXT_TOO_LONG: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorCategory.API_OVERLOADED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCategory.NETWORK_CONNECTION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCategory.NETWORK_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCategory.SDK_CONFIGURATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCategory.STORAGE_QUOTA_EXCEEDED: status.HTTP_507_INSUFFICIENT_STORAGE,
    ErrorCategory.UNKNOWN_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(error: ClassifiedError) -> HTTPException:
    """Map a ClassifiedError onto an HTTPException carrying the user payload."""
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(error.category, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error.to_user_dict(),
    )


def _sse(data: dict[str, Any], event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(data, ensure_ascii=False)}\n\n"


class RequestHandler:
    """HTTP handlers for the request service.

    This handler delegates business logic to LLMRequestService
    and handles HTTP-specific concerns like:
    - Converting DTOs to service options and entities to DTOs
    - Mapping classified errors to status codes
    - Framing streamed events as server-sent events

    Example:
        ```python
        handler = RequestHandler(request_service=service)

        @app.post("/messages", response_model=MessageResponse)
        async def send_message(request: SendMessageRequest):
            return await handler.send_message(request)
        ```
    """

    def __init__(self, request_service: LLMRequestService) -> None:
        """Initialize the request handler.

        Args:
            request_service: The request service for business logic (required).
        """
        self._service = request_service

    async def send_message(self, request: SendMessageRequest) -> MessageResponse:
        """Handle POST /messages requests.

        Args:
            request: The send message request DTO

        Returns:
            MessageResponse with content, usage and timing

        Raises:
            HTTPException: With the classified error payload as detail
        """
        start_time = time.time()
        try:
            response = await self._service.send_message(request.to_messages(), request.to_options())
        except ClassifiedError as e:
            raise to_http_exception(e) from e

        return MessageResponse.from_entity(response, (time.time() - start_time) * 1000)

    async def stream_message(self, request: SendMessageRequest) -> StreamingResponse:
        """Handle POST /messages/stream requests.

        Each StreamEvent becomes one `data:` frame; a failure becomes a
        final `event: error` frame carrying the classified error payload.
        """
        stream = self._service.send_message_stream(request.to_messages(), request.to_options(streaming=True))

        async def frames() -> AsyncIterator[str]:
            async with stream:
                try:
                    async for event in stream:
                        yield _sse(event.to_dict())
                except ClassifiedError as e:
                    yield _sse(e.to_user_dict(), event="error")

        return StreamingResponse(frames(), media_type="text/event-stream")

    async def get_stats(self) -> dict[str, Any]:
        """Handle GET /stats requests."""
        return self._service.get_stats()

    async def get_cache_analytics(self) -> dict[str, Any]:
        return self._service.get_cache_analytics()

    async def get_popular_patterns(self, limit: int) -> list[dict[str, Any]]:
        return self._service.get_popular_patterns(limit)

    async def update_cache_config(self, request: CacheConfigRequest) -> dict[str, Any]:
        """Handle PATCH /cache/config requests.

        Raises:
            HTTPException: 400 if the cache store rejects the change
        """
        try:
            self._service.update_cache_config(
                ttl_seconds=request.ttl_seconds,
                max_entries=request.max_entries,
                enabled=request.enabled,
            )
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        return {"message": "Cache configuration updated", "cache": self._service.cache.get_stats()}

    async def clear_cache(self) -> CacheClearResponse:
        """Handle DELETE /cache requests."""
        try:
            count = self._service.cache.clear()
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to clear cache: {e}",
            ) from e

        return CacheClearResponse(
            success=True,
            deleted_count=count,
            message="Cache cleared successfully",
        )

    async def reset(self) -> dict[str, str]:
        self._service.reset()
        return {"message": "Statistics and cache reset"}

    async def get_error_stats(self, recent: int = 10) -> ErrorStatsResponse:
        """Handle GET /errors/stats requests."""
        stats = self._service.classifier.get_error_stats(recent=recent)
        return ErrorStatsResponse(
            total_errors=stats["total_errors"],
            errors_by_type=stats["errors_by_type"],
            most_common_error=stats["most_common_error"],
            recent_errors=[error.to_user_dict() for error in stats["recent_errors"]],
        )

    async def clear_error_history(self) -> dict[str, str]:
        self._service.classifier.clear_history()
        return {"message": "Error history cleared"}

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests."""
        cache = self._service.cache
        is_healthy = cache.is_healthy()
        return HealthCheckResponse(
            status="healthy" if is_healthy else "degraded",
            cache_healthy=is_healthy,
            cache_enabled=cache.enabled,
        )
