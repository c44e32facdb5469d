"""
Tests for the request service (non-streaming path).
"""

import asyncio
import logging

import pytest
import redis
from conftest import MODEL, FakeUpstream, RecordingObserver

from resilient_llm.config import settings
from resilient_llm.entities import ClassifiedError, ErrorCategory, RequestOptions, RetryOptions, TokenUsage
from resilient_llm.exceptions import UpstreamAPIError
from resilient_llm.repositories import InMemoryCacheRepository
from resilient_llm.services import ErrorClassifier, LLMRequestService, ResponseCache, RetryController

MESSAGES = [{"role": "user", "content": "Summarize the design"}]
OPTIONS = RequestOptions(model=MODEL, temperature=0.7, max_tokens=1000, session_id="session-1")


@pytest.mark.asyncio
async def test_repeated_request_hits_cache(service, upstream):
    """The second identical request never reaches the upstream."""
    first = await service.send_message(MESSAGES, OPTIONS)
    second = await service.send_message(MESSAGES, OPTIONS)

    assert first == second
    assert upstream.complete_calls == 1

    stats = service.get_stats()
    assert stats["requests"] == {"total": 2, "successful": 2, "failed": 0, "cached": 1}
    assert stats["performance"]["total_tokens_processed"] == 15
    assert stats["performance"]["total_tokens_saved"] == 15
    assert stats["performance"]["cache_hit_rate"] == pytest.approx(0.5)
    assert stats["cache"]["size"] == 1


@pytest.mark.asyncio
async def test_defaults_from_settings(service):
    """Unset model options fall back to settings."""
    response = await service.send_message(MESSAGES)
    assert response.model == settings.default_model


@pytest.mark.asyncio
async def test_retries_retryable_failures(service, upstream, sleep):
    """Rate limiting is retried with exponential backoff."""
    upstream.failures = [UpstreamAPIError(429, "rate limited"), UpstreamAPIError(429, "rate limited")]

    response = await service.send_message(MESSAGES, OPTIONS)

    assert response.content == upstream.content
    assert upstream.complete_calls == 3
    assert sleep.delays == [1.0, 2.0]
    assert service.get_stats()["requests"]["failed"] == 0


@pytest.mark.asyncio
async def test_retry_options_override(service, upstream, sleep):
    """Per-request retry options replace the configured ones."""
    upstream.failures = [UpstreamAPIError(503, "unavailable") for _ in range(5)]
    options = RequestOptions(model=MODEL, retry_options=RetryOptions(max_retries=1, base_delay_ms=10))

    with pytest.raises(ClassifiedError):
        await service.send_message(MESSAGES, options)

    assert upstream.complete_calls == 2
    assert sleep.delays == [0.01]


@pytest.mark.asyncio
async def test_non_retryable_failure(service, upstream, sleep):
    """An invalid key fails at once, is counted and is not cached."""
    upstream.failures = [UpstreamAPIError(401, "invalid x-api-key")]

    with pytest.raises(ClassifiedError) as exc_info:
        await service.send_message(MESSAGES, OPTIONS)

    assert exc_info.value.code == "AUTH_INVALID_API_KEY"
    assert exc_info.value.context.operation_name == "send_message"
    assert exc_info.value.context.session_id == "session-1"
    assert upstream.complete_calls == 1
    assert sleep.delays == []
    assert service.get_stats()["requests"] == {"total": 1, "successful": 0, "failed": 1, "cached": 0}
    assert service.cache.repository.count_all() == 0
    assert service.classifier.get_error_stats()["total_errors"] == 1


@pytest.mark.asyncio
async def test_auto_retry_disabled(service, upstream):
    """Without auto retry a retryable failure is raised after one call."""
    upstream.failures = [UpstreamAPIError(503, "unavailable")]
    options = RequestOptions(model=MODEL, enable_auto_retry=False)

    with pytest.raises(ClassifiedError) as exc_info:
        await service.send_message(MESSAGES, options)

    assert exc_info.value.category is ErrorCategory.API_OVERLOADED
    assert upstream.complete_calls == 1


@pytest.mark.asyncio
async def test_cache_bypass(service, upstream):
    """use_cache=False neither reads nor writes the cache."""
    options = RequestOptions(model=MODEL, use_cache=False)

    await service.send_message(MESSAGES, options)
    await service.send_message(MESSAGES, options)

    assert upstream.complete_calls == 2
    assert service.cache.repository.count_all() == 0


@pytest.mark.asyncio
async def test_empty_response_not_cached(service, upstream):
    """Empty responses stay out of the cache unless asked otherwise."""
    upstream.content = ""

    await service.send_message(MESSAGES, OPTIONS)
    assert service.cache.repository.count_all() == 0

    await service.send_message(MESSAGES, RequestOptions(model=MODEL, cache_only_on_success=False))
    assert service.cache.repository.count_all() == 1


@pytest.mark.asyncio
async def test_observer_notified(service, observer):
    """Every success, cached or not, updates the session context."""
    await service.send_message(MESSAGES, OPTIONS)
    await service.send_message(MESSAGES, OPTIONS)
    await service.send_message(MESSAGES, RequestOptions(model=MODEL))

    assert observer.updates == [("session-1", 15), ("session-1", 15)]


@pytest.mark.asyncio
async def test_observer_failure_is_ignored(upstream, cache, classifier, sleep):
    """A failing observer never fails the request."""
    service = LLMRequestService(
        upstream=upstream,
        cache=cache,
        classifier=classifier,
        retry=RetryController(classifier, sleep=sleep),
        observer=RecordingObserver(fail=True),
    )

    response = await service.send_message(MESSAGES, OPTIONS)

    assert response.content == upstream.content
    assert service.get_stats()["requests"]["successful"] == 1


@pytest.mark.asyncio
async def test_context_overflow_hook(service, upstream):
    """A context overflow fires the recovery hook with the error."""
    upstream.failures = [UpstreamAPIError(400, "prompt is too long: 250000 tokens > 200000 maximum")]
    seen = []
    options = RequestOptions(model=MODEL, on_recoverable_context_overflow=seen.append)

    with pytest.raises(ClassifiedError) as exc_info:
        await service.send_message(MESSAGES, options)

    assert exc_info.value.category is ErrorCategory.API_CONTEXT_TOO_LONG
    assert seen == [exc_info.value]


@pytest.mark.asyncio
async def test_async_hook_failure_is_ignored(service, upstream):
    """A failing async hook does not replace the classified error."""
    upstream.failures = [UpstreamAPIError(400, "maximum context length exceeded")]

    async def broken_hook(error):
        raise RuntimeError("compaction unavailable")

    options = RequestOptions(model=MODEL, on_recoverable_context_overflow=broken_hook)

    with pytest.raises(ClassifiedError) as exc_info:
        await service.send_message(MESSAGES, options)

    assert exc_info.value.category is ErrorCategory.API_CONTEXT_TOO_LONG


@pytest.mark.asyncio
async def test_hook_not_fired_for_other_errors(service, upstream):
    """The overflow hook is specific to context overflows."""
    upstream.failures = [UpstreamAPIError(400, "messages: field required")]
    seen = []

    with pytest.raises(ClassifiedError):
        await service.send_message(MESSAGES, RequestOptions(model=MODEL, on_recoverable_context_overflow=seen.append))

    assert seen == []


@pytest.mark.asyncio
async def test_reset(service):
    """reset() empties the cache and zeroes the counters."""
    await service.send_message(MESSAGES, OPTIONS)
    await service.send_message(MESSAGES, OPTIONS)

    service.reset()

    stats = service.get_stats()
    assert stats["requests"] == {"total": 0, "successful": 0, "failed": 0, "cached": 0}
    assert stats["performance"]["total_tokens_saved"] == 0
    assert stats["cache"]["size"] == 0


@pytest.mark.asyncio
async def test_cache_introspection(service):
    """Analytics, patterns and config updates go through the cache."""
    await service.send_message(MESSAGES, OPTIONS)
    await service.send_message(MESSAGES, OPTIONS)

    assert service.get_cache_analytics()["total_hits"] == 1
    assert service.get_popular_patterns(limit=5)[0]["prompt_preview"] == "Summarize the design"

    service.update_cache_config(ttl_seconds=120, enabled=False)
    assert service.cache.ttl_seconds == 120
    assert service.cache.enabled is False


@pytest.mark.asyncio
async def test_concurrent_requests(service, upstream):
    """Concurrent requests are all counted exactly once."""
    requests = [
        service.send_message([{"role": "user", "content": f"question {i}"}], RequestOptions(model=MODEL))
        for i in range(20)
    ]

    responses = await asyncio.gather(*requests)

    assert len(responses) == 20
    assert upstream.complete_calls == 20
    stats = service.get_stats()
    assert stats["requests"]["total"] == 20
    assert stats["requests"]["successful"] == 20
    assert stats["cache"]["size"] == 20


@pytest.mark.asyncio
async def test_test_connection(service, upstream):
    """test_connection reports success and leaves statistics untouched."""
    result = await service.test_connection()

    assert result["success"] is True
    assert result["error"] is None
    assert service.get_stats()["requests"]["total"] == 0

    upstream.failures = [UpstreamAPIError(401, "invalid x-api-key")]
    result = await service.test_connection()

    assert result["success"] is False
    assert result["error"]["code"] == "AUTH_INVALID_API_KEY"


@pytest.mark.asyncio
async def test_create_factory_and_close():
    """create() wires defaults; close() closes the upstream."""
    upstream = FakeUpstream()
    upstream.usage = TokenUsage(input_tokens=1, output_tokens=1)
    service = LLMRequestService.create(
        upstream=upstream,
        cache=ResponseCache(repository=InMemoryCacheRepository(max_entries=10), enabled=True),
        classifier=ErrorClassifier(locale="en"),
    )

    await service.send_message(MESSAGES, OPTIONS)
    await service.close()

    assert upstream.closed is True
    assert isinstance(service.retry, RetryController)


class UnreachableRepository(InMemoryCacheRepository):
    """Cache store whose backend connection is down."""

    def get(self, key):
        raise redis.ConnectionError("Error 111 connecting to localhost:6379")

    def put(self, entry):
        raise redis.ConnectionError("Error 111 connecting to localhost:6379")


@pytest.mark.asyncio
async def test_cache_backend_failure_is_bypassed(upstream, classifier, sleep, caplog):
    """An unreachable cache store degrades to live requests instead of failing them."""
    service = LLMRequestService(
        upstream=upstream,
        cache=ResponseCache(repository=UnreachableRepository(), enabled=True),
        classifier=classifier,
        retry=RetryController(classifier, sleep=sleep),
    )

    with caplog.at_level(logging.WARNING, logger="resilient_llm.services.request_service"):
        response = await service.send_message(MESSAGES, OPTIONS)
        streamed = await service.send_message_stream(MESSAGES).collect()

    assert response.content == upstream.content
    assert streamed.content == upstream.content
    assert upstream.complete_calls == 1
    assert upstream.stream_calls == 1
    assert service.get_stats()["requests"] == {"total": 2, "successful": 2, "failed": 0, "cached": 0}
    assert "Cache lookup failed" in caplog.text
    assert "Cache store failed" in caplog.text
