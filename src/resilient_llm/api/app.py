"""FastAPI application exposing the request service over HTTP."""

from typing import Any

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from resilient_llm.api.dependencies import HandlerDep, lifespan
from resilient_llm.config import settings
from resilient_llm.dto import (
    CacheClearResponse,
    CacheConfigRequest,
    ErrorStatsResponse,
    HealthCheckResponse,
    MessageResponse,
    SendMessageRequest,
)
from resilient_llm.handlers import RequestHandler
from resilient_llm.services import LLMRequestService

API_NAME = "Resilient LLM API"
API_VERSION = "0.1.0"
API_DESCRIPTION = "Cached, retrying and error-classifying front door to an LLM API"


def create_app(request_service: LLMRequestService | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        request_service: Pre-built service to serve. If None, the lifespan
            builds one from settings.

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title=API_NAME,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=lifespan,
    )
    if request_service is not None:
        app.state.request_service = request_service
        app.state.request_handler = RequestHandler(request_service=request_service)

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": API_NAME,
            "version": API_VERSION,
            "description": API_DESCRIPTION,
            "endpoints": {
                "messages": "/messages",
                "stream": "/messages/stream",
                "stats": "/stats",
                "cache": "/cache",
                "errors": "/errors/stats",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.get("/health", response_model=HealthCheckResponse)
    async def health(handler: HandlerDep) -> HealthCheckResponse:
        return await handler.health_check()

    @app.post("/messages", response_model=MessageResponse)
    async def send_message(request: SendMessageRequest, handler: HandlerDep) -> MessageResponse:
        """Send a conversation and return the complete response."""
        return await handler.send_message(request)

    @app.post("/messages/stream")
    async def stream_message(request: SendMessageRequest, handler: HandlerDep) -> StreamingResponse:
        """Send a conversation and stream the response as server-sent events."""
        return await handler.stream_message(request)

    @app.get("/stats", response_model=dict[str, Any])
    async def get_stats(handler: HandlerDep) -> dict[str, Any]:
        """Get request, performance and cache statistics."""
        return await handler.get_stats()

    @app.get("/cache/analytics", response_model=dict[str, Any])
    async def get_cache_analytics(handler: HandlerDep) -> dict[str, Any]:
        return await handler.get_cache_analytics()

    @app.get("/cache/patterns", response_model=list[dict[str, Any]])
    async def get_popular_patterns(
        handler: HandlerDep,
        limit: int = Query(10, ge=1, le=100, description="Maximum number of patterns"),
    ) -> list[dict[str, Any]]:
        """Get the most frequently hit cache entries."""
        return await handler.get_popular_patterns(limit)

    @app.patch("/cache/config", response_model=dict[str, Any])
    async def update_cache_config(request: CacheConfigRequest, handler: HandlerDep) -> dict[str, Any]:
        return await handler.update_cache_config(request)

    @app.delete("/cache", response_model=CacheClearResponse)
    async def clear_cache(handler: HandlerDep) -> CacheClearResponse:
        """Clear all entries from the response cache."""
        return await handler.clear_cache()

    @app.post("/reset", response_model=dict[str, str])
    async def reset(handler: HandlerDep) -> dict[str, str]:
        """Clear the cache and zero all request statistics."""
        return await handler.reset()

    @app.get("/errors/stats", response_model=ErrorStatsResponse)
    async def get_error_stats(
        handler: HandlerDep,
        recent: int = Query(10, ge=0, le=100, description="Number of recent errors to include"),
    ) -> ErrorStatsResponse:
        return await handler.get_error_stats(recent)

    @app.delete("/errors/history", response_model=dict[str, str])
    async def clear_error_history(handler: HandlerDep) -> dict[str, str]:
        return await handler.clear_error_history()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "resilient_llm.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
