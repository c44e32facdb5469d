"""Shared fakes and fixtures for the test suite."""

import asyncio

import pytest

from resilient_llm.entities import LLMResponse, StreamEvent, TokenUsage
from resilient_llm.repositories import InMemoryCacheRepository
from resilient_llm.services import (
    ErrorClassifier,
    LLMRequestService,
    ResponseCache,
    RetryConfig,
    RetryController,
)

MODEL = "test-model"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeUpstream:
    """Scripted UpstreamClient.

    Raises the queued failures in order before answering. The streamed
    response is made of `chunks`; if `gate` is set, the stream waits on it
    before each chunk after the first two.
    """

    def __init__(self, content: str = "Hello from the upstream model") -> None:
        self.failures: list[BaseException] = []
        self.usage = TokenUsage(input_tokens=10, output_tokens=5)
        self.content = content
        self.chunks = [content[i : i + 7] for i in range(0, len(content), 7)]
        self.complete_calls = 0
        self.stream_calls = 0
        self.stream_closed = False
        self.gate: asyncio.Event | None = None
        self.closed = False

    def response(self, model: str = MODEL) -> LLMResponse:
        return LLMResponse(content=self.content, usage=self.usage, model=model, stop_reason="end_turn")

    async def complete(self, messages, options) -> LLMResponse:
        self.complete_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.response(options.model)

    async def stream(self, messages, options):
        self.stream_calls += 1
        try:
            if self.failures:
                raise self.failures.pop(0)
            for index, chunk in enumerate(self.chunks):
                if self.gate is not None and index >= 2:
                    await self.gate.wait()
                yield StreamEvent.content_chunk(chunk)
            yield StreamEvent.usage_update(self.usage)
            yield StreamEvent.done(self.response(options.model))
        finally:
            self.stream_closed = True

    async def close(self) -> None:
        self.closed = True


class RecordingObserver:
    """SessionContextObserver that records updates, optionally failing."""

    def __init__(self, fail: bool = False) -> None:
        self.updates: list[tuple[str, int]] = []
        self.fail = fail

    async def update_session_context(self, session_id: str, tokens: int) -> None:
        self.updates.append((session_id, tokens))
        if self.fail:
            raise RuntimeError("session store unavailable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier(history_size=100, locale="en")


@pytest.fixture
def cache(clock) -> ResponseCache:
    """Response cache over a small in-memory store with a controllable clock."""
    return ResponseCache(
        repository=InMemoryCacheRepository(max_entries=500),
        ttl_seconds=3600,
        temperature_precision=2,
        key_includes_max_tokens=False,
        sweep_interval=60,
        enabled=True,
        clock=clock,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def make_service(cache, classifier, observer, sleep):
    """Build a request service around a given upstream; no test waits on real delays."""

    def build(upstream) -> LLMRequestService:
        return LLMRequestService(
            upstream=upstream,
            cache=cache,
            classifier=classifier,
            retry=RetryController(
                classifier, RetryConfig(max_retries=3, base_delay_ms=1000, jitter_ms=0), sleep=sleep
            ),
            observer=observer,
            stream_chunk_size=10,
            stream_chunk_delay_ms=20,
            sleep=sleep,
        )

    return build


@pytest.fixture
def service(make_service, upstream) -> LLMRequestService:
    return make_service(upstream)
