"""Request orchestration: cache, retry, classification and statistics around one upstream."""

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from typing import Any

from resilient_llm.config import settings
from resilient_llm.entities import (
    ClassifiedError,
    ErrorCategory,
    ErrorContext,
    LLMResponse,
    Message,
    ModelOptions,
    RequestOptions,
    ServiceStats,
    StreamEvent,
    StreamEventType,
    StreamingOptions,
    TokenUsage,
    coerce_messages,
)
from resilient_llm.protocols import SessionContextObserver, UpstreamClient
from resilient_llm.repositories import InMemoryCacheRepository

from .error_classifier import ErrorClassifier
from .response_cache import ResponseCache
from .retry import RetryConfig, RetryController

logger = logging.getLogger(__name__)

_EVENT = "event"
_ERROR = "error"
_END = "end"


async def _call_hook(hook: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke an optional caller hook, sync or async. Failures are logged and ignored."""
    if hook is None:
        return
    try:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning("Request hook %r failed: %s", hook, e)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


async def _pump(
    source: AsyncIterator[StreamEvent],
    demand: asyncio.Event,
    channel: "asyncio.Queue[tuple[str, Any]]",
) -> None:
    """Pull one event from ``source`` per demand signal and pass it on."""
    try:
        while True:
            await demand.wait()
            demand.clear()
            try:
                event = await anext(source)
            except StopAsyncIteration:
                await channel.put((_END, None))
                return
            except Exception as e:
                await channel.put((_ERROR, e))
                return
            await channel.put((_EVENT, event))
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


class MessageStream:
    """Async iterator over the events of one streamed request.

    A producer task pulls the next event from the source only after the
    consumer asks for it, so nothing past the last delivered event runs
    ahead of the caller. Closing the stream (``aclose()`` or leaving
    ``async with``) cancels the producer, which closes the source. A stream
    dropped without closing cancels its producer when collected.

    Example:
        ```python
        async with service.send_message_stream(messages) as stream:
            async for event in stream:
                if event.type is StreamEventType.CONTENT:
                    print(event.content, end="")
        ```
    """

    def __init__(self, source: AsyncIterator[StreamEvent]) -> None:
        self._source = source
        self._demand = asyncio.Event()
        self._channel: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=1)
        self._producer: asyncio.Task | None = None
        self._finished = False

    def __aiter__(self) -> "MessageStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration
        if self._producer is None:
            # The producer must not reference the stream, or it would keep it alive.
            self._producer = asyncio.get_running_loop().create_task(
                _pump(self._source, self._demand, self._channel)
            )

        self._demand.set()
        kind, payload = await self._channel.get()
        if kind == _EVENT:
            return payload

        self._finished = True
        await self._producer
        if kind == _ERROR:
            raise payload
        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Abandon the stream. Nothing from an unfinished stream is cached."""
        self._finished = True
        if self._producer is None:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()
            return
        if not self._producer.done():
            self._producer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._producer

    async def collect(self) -> LLMResponse:
        """Drain the stream and return the response carried by its done event."""
        response: LLMResponse | None = None
        async for event in self:
            if event.type is StreamEventType.DONE:
                response = event.response
        if response is None:
            raise RuntimeError("Stream finished without a done event")
        return response

    @property
    def closed(self) -> bool:
        return self._finished

    async def __aenter__(self) -> "MessageStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __del__(self) -> None:
        producer = getattr(self, "_producer", None)
        if producer is not None and not producer.done() and not producer.get_loop().is_closed():
            producer.cancel()


class LLMRequestService:
    """Resilient front door to an upstream model API.

    Combines the response cache, the retry controller and the error
    classifier around a single UpstreamClient, and keeps aggregate request
    statistics. Every failure leaving this service is a ClassifiedError.

    Example:
        ```python
        service = LLMRequestService.create(upstream=AnthropicUpstreamClient.create())
        response = await service.send_message([{"role": "user", "content": "Hello"}])
        print(response.content, service.get_stats()["requests"])
        ```
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        cache: ResponseCache,
        classifier: ErrorClassifier,
        retry: RetryController,
        observer: SessionContextObserver | None = None,
        stream_chunk_size: int | None = None,
        stream_chunk_delay_ms: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the request service.

        Args:
            upstream: Client for the model API (required)
            cache: Response cache (required)
            classifier: Error classifier shared with the retry controller
            retry: Retry controller
            observer: Optional session-context observer, notified after each success
            stream_chunk_size: Characters per chunk when replaying a cached stream
            stream_chunk_delay_ms: Pause between replayed chunks
            sleep: Coroutine function taking seconds (replaced in tests)
        """
        self._upstream = upstream
        self._cache = cache
        self._classifier = classifier
        self._retry = retry
        self._observer = observer
        self._chunk_size = stream_chunk_size if stream_chunk_size is not None else settings.stream_chunk_size
        self._chunk_delay_ms = (
            stream_chunk_delay_ms if stream_chunk_delay_ms is not None else settings.stream_chunk_delay_ms
        )
        self._sleep = sleep
        self._stats = ServiceStats()

        if self._chunk_size < 1:
            raise ValueError("stream_chunk_size must be >= 1")

    @classmethod
    def create(
        cls,
        upstream: UpstreamClient,
        cache: ResponseCache | None = None,
        observer: SessionContextObserver | None = None,
        classifier: ErrorClassifier | None = None,
        retry_config: RetryConfig | None = None,
    ) -> "LLMRequestService":
        """Factory method to create the service with sensible defaults.

        Args:
            upstream: Client for the model API (required)
            cache: Response cache. If None, an in-memory cache sized from settings.
            observer: Optional session-context observer
            classifier: Error classifier. If None, one configured from settings.
            retry_config: Retry configuration. If None, uses settings.

        Returns:
            Configured LLMRequestService instance
        """
        classifier = classifier or ErrorClassifier()
        return cls(
            upstream=upstream,
            cache=cache or ResponseCache.create(repository=InMemoryCacheRepository.create()),
            classifier=classifier,
            retry=RetryController(classifier, retry_config),
            observer=observer,
        )

    def _model_options(self, options: RequestOptions) -> ModelOptions:
        return ModelOptions(
            model=options.model or settings.default_model,
            temperature=options.temperature if options.temperature is not None else settings.default_temperature,
            max_tokens=options.max_tokens if options.max_tokens is not None else settings.default_max_tokens,
            system_prompt=options.system_prompt,
        )

    def _lookup(self, messages: list[Message], model_options: ModelOptions) -> LLMResponse | None:
        try:
            entry = self._cache.get(
                messages,
                model_options.model,
                model_options.temperature,
                system_prompt=model_options.system_prompt,
                max_tokens=model_options.max_tokens,
            )
        except Exception as e:
            logger.warning("Cache lookup failed, treating as a miss: %s", e)
            return None
        return entry.response if entry else None

    def _store(
        self,
        messages: list[Message],
        model_options: ModelOptions,
        response: LLMResponse,
        options: RequestOptions,
    ) -> None:
        if not options.use_cache:
            return
        if options.cache_only_on_success and not response.content:
            return
        try:
            self._cache.set(
                messages,
                response,
                model_options.model,
                model_options.temperature,
                max_tokens=model_options.max_tokens,
                system_prompt=model_options.system_prompt,
            )
        except Exception as e:
            logger.warning("Cache store failed, response not cached: %s", e)

    async def _notify_session(self, session_id: str | None, usage: TokenUsage) -> None:
        if self._observer is None or not session_id:
            return
        try:
            await self._observer.update_session_context(session_id, usage.total_tokens)
        except Exception as e:
            logger.warning("Failed to update session context for %s: %s", session_id, e)

    async def _fail(self, error: ClassifiedError, options: RequestOptions, started: float) -> None:
        self._stats.record_failure(_elapsed_ms(started))
        if error.category is ErrorCategory.API_CONTEXT_TOO_LONG:
            await _call_hook(options.on_recoverable_context_overflow, error)

    async def send_message(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        """Send a conversation and return the complete response.

        Business logic:
        1. Serve from the cache when allowed and fresh
        2. Otherwise call the upstream, through the retry controller if enabled
        3. Cache the response, update statistics and the session context

        Args:
            messages: Ordered conversation turns
            options: Per-request options. Defaults to RequestOptions().

        Returns:
            The model response

        Raises:
            ClassifiedError: When the request fails
        """
        options = options or RequestOptions()
        message_list = coerce_messages(messages)
        model_options = self._model_options(options)
        context = ErrorContext(
            operation_name="send_message",
            model=model_options.model,
            session_id=options.session_id,
            project_path=options.project_path,
        )

        self._stats.record_request()
        started = time.perf_counter()

        if options.use_cache:
            cached = self._lookup(message_list, model_options)
            if cached is not None:
                self._stats.record_cache_hit(_elapsed_ms(started))
                await self._notify_session(options.session_id, cached.usage)
                logger.info("Served %s from cache", model_options.model)
                return cached

        async def call_upstream() -> LLMResponse:
            return await self._upstream.complete(message_list, model_options)

        try:
            if options.enable_auto_retry:
                response = await self._retry.retry_with_backoff(
                    call_upstream,
                    max_retries=options.retry_options.max_retries,
                    base_delay_ms=options.retry_options.base_delay_ms,
                    context=context,
                )
            else:
                response = await self._classifier.execute(call_upstream, context)
        except ClassifiedError as error:
            await self._fail(error, options, started)
            raise

        self._store(message_list, model_options, response, options)
        elapsed = _elapsed_ms(started)
        self._stats.record_success(elapsed, response.usage.total_tokens)
        await self._notify_session(options.session_id, response.usage)
        logger.info(
            "Completed %s in %.0fms (%d tokens)", model_options.model, elapsed, response.usage.total_tokens
        )
        return response

    def send_message_stream(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        options: StreamingOptions | None = None,
    ) -> MessageStream:
        """Send a conversation and stream the response.

        Cache hits are replayed as fixed-size chunks; misses relay the
        upstream events. Streams are not retried.

        Args:
            messages: Ordered conversation turns
            options: Per-request options and observer hooks

        Returns:
            A MessageStream yielding content, usage and done events
        """
        options = options or StreamingOptions()
        self._stats.record_request()
        return MessageStream(self._stream_events(coerce_messages(messages), options))

    async def _stream_events(
        self,
        messages: list[Message],
        options: StreamingOptions,
    ) -> AsyncIterator[StreamEvent]:
        model_options = self._model_options(options)
        started = time.perf_counter()

        if options.use_cache:
            cached = self._lookup(messages, model_options)
            if cached is not None:
                self._stats.record_cache_hit(_elapsed_ms(started))
                async for event in self._replay(cached, options):
                    yield event
                return

        context = ErrorContext(
            operation_name="send_message_stream",
            model=model_options.model,
            session_id=options.session_id,
            project_path=options.project_path,
        )
        upstream = self._upstream.stream(messages, model_options)
        parts: list[str] = []
        usage: TokenUsage | None = None
        try:
            async for event in upstream:
                if event.type is StreamEventType.CONTENT:
                    parts.append(event.content or "")
                    await _call_hook(options.on_content, event.content or "")
                    yield event
                elif event.type is StreamEventType.USAGE:
                    usage = event.usage
                    await _call_hook(options.on_usage, event.usage)
                    yield event
                else:
                    response = event.response or LLMResponse(
                        content="".join(parts), usage=usage or TokenUsage(), model=model_options.model
                    )
                    self._store(messages, model_options, response, options)
                    elapsed = _elapsed_ms(started)
                    self._stats.record_success(elapsed, response.usage.total_tokens)
                    await self._notify_session(options.session_id, response.usage)
                    await _call_hook(options.on_complete, response)
                    logger.info("Streamed %s in %.0fms", model_options.model, elapsed)
                    yield StreamEvent.done(response)
                    return
            raise ConnectionError("Network connection failed: stream ended before completion")
        except Exception as e:
            error = self._classifier.classify(e, context)
            await self._fail(error, options, started)
            await _call_hook(options.on_error, error)
            if error is e:
                raise
            raise error from e
        finally:
            aclose = getattr(upstream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _replay(self, response: LLMResponse, options: StreamingOptions) -> AsyncIterator[StreamEvent]:
        content = response.content
        for start in range(0, len(content), self._chunk_size):
            chunk = content[start : start + self._chunk_size]
            await _call_hook(options.on_content, chunk)
            yield StreamEvent.content_chunk(chunk, cached=True)
            if self._chunk_delay_ms > 0:
                await self._sleep(self._chunk_delay_ms / 1000)

        await _call_hook(options.on_usage, response.usage)
        yield StreamEvent.usage_update(response.usage, cached=True)
        await self._notify_session(options.session_id, response.usage)
        await _call_hook(options.on_complete, response)
        yield StreamEvent.done(response, cached=True)

    async def test_connection(self) -> dict[str, Any]:
        """Check that the upstream answers a minimal request.

        Bypasses the cache, retries and statistics.

        Returns:
            Dict with success, model, response_time_ms and error (user payload or None)
        """
        model_options = ModelOptions(
            model=settings.default_model,
            temperature=0.0,
            max_tokens=10,
        )
        started = time.perf_counter()

        async def ping() -> LLMResponse:
            return await self._upstream.complete([Message(role="user", content="ping")], model_options)

        response, error = await self._classifier.capture(ping, {"operation_name": "test_connection"})
        return {
            "success": error is None,
            "model": (response.model if response else None) or model_options.model,
            "response_time_ms": _elapsed_ms(started),
            "error": error.to_user_dict() if error else None,
        }

    def get_stats(self) -> dict[str, Any]:
        """Get request, performance and cache statistics."""
        stats: dict[str, Any] = self._stats.to_dict(
            total_tokens_saved=self._cache.total_tokens_saved,
            cache_hit_rate=self._cache.hit_rate,
        )
        stats["cache"] = self._cache.get_stats()
        return stats

    def get_cache_analytics(self) -> dict[str, Any]:
        return self._cache.get_analytics()

    def get_popular_patterns(self, limit: int = 10) -> list[dict[str, Any]]:
        return self._cache.get_popular_patterns(limit)

    def update_cache_config(
        self,
        ttl_seconds: int | None = None,
        max_entries: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._cache.update_config(ttl_seconds=ttl_seconds, max_entries=max_entries, enabled=enabled)

    def reset(self) -> None:
        """Clear the cache and zero every counter."""
        self._cache.clear()
        self._stats.reset()
        logger.info("Request service statistics and cache reset")

    async def close(self) -> None:
        await self._cache.stop_sweeper()
        await self._upstream.close()

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def classifier(self) -> ErrorClassifier:
        return self._classifier

    @property
    def retry(self) -> RetryController:
        return self._retry
