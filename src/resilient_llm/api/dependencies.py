"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan (or by create_app)
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from resilient_llm.config import settings
from resilient_llm.handlers import RequestHandler
from resilient_llm.protocols import CacheStore
from resilient_llm.repositories import (
    AnthropicUpstreamClient,
    InMemoryCacheRepository,
    RedisCacheRepository,
)
from resilient_llm.services import LLMRequestService, ResponseCache

logger = logging.getLogger(__name__)


def get_request_service(request: Request) -> LLMRequestService:
    """Dependency injection for LLMRequestService from app.state.

    Args:
        request: FastAPI Request object

    Returns:
        The LLMRequestService instance from app.state

    Raises:
        RuntimeError: If service is not initialized
    """
    service = getattr(request.app.state, "request_service", None)
    if service is None:
        raise RuntimeError("LLMRequestService not initialized. Check lifespan setup.")
    return service


def get_handler(request: Request) -> RequestHandler:
    """Dependency injection for RequestHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "request_handler", None)
    if handler is None:
        raise RuntimeError("RequestHandler not initialized. Check lifespan setup.")
    return handler


def build_cache_repository() -> CacheStore:
    """Select the cache store named by CACHE_BACKEND."""
    if settings.uses_redis:
        return RedisCacheRepository.create()
    return InMemoryCacheRepository.create(max_entries=settings.cache_max_entries)


def build_request_service() -> LLMRequestService:
    """Wire the request service from settings."""
    repository = build_cache_repository()
    return LLMRequestService.create(
        upstream=AnthropicUpstreamClient.create(),
        cache=ResponseCache.create(repository=repository),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores in app.state:
    1. Repository (data access) - selected by CACHE_BACKEND
    2. Service (business logic) - stored in app.state.request_service
    3. Handler (HTTP endpoints) - stored in app.state.request_handler

    A service placed on app.state beforehand (see create_app) is used
    as is and left open on shutdown.

    Args:
        app: The FastAPI application instance

    Yields:
        None
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    owned = getattr(app.state, "request_service", None) is None
    if owned:
        request_service = build_request_service()
        app.state.request_service = request_service
        app.state.request_handler = RequestHandler(request_service=request_service)
    request_service = app.state.request_service

    request_service.cache.start_sweeper()
    logger.info("Request service initialized (cache backend: %s)", settings.cache_backend)
    logger.info("Default model: %s, cache TTL: %ss", settings.default_model, request_service.cache.ttl_seconds)
    logger.info("Cache health: %s", request_service.cache.is_healthy())

    yield

    if owned:
        await request_service.close()
        del app.state.request_handler
        del app.state.request_service
    else:
        await request_service.cache.stop_sweeper()
    logger.info("Request service shut down")


# Type aliases for cleaner dependency injection
HandlerDep = Annotated[RequestHandler, Depends(get_handler)]
ServiceDep = Annotated[LLMRequestService, Depends(get_request_service)]
