#!/usr/bin/env python3
"""
Demo script for the resilient request layer.

Runs the request service against a scripted in-process upstream, so no
API key or network access is needed. Shows caching, retries, error
classification and cached stream replay.
"""

import asyncio
import time

from resilient_llm import (
    ErrorClassifier,
    InMemoryCacheRepository,
    LLMRequestService,
    LLMResponse,
    ResponseCache,
    RetryController,
    StreamEvent,
    StreamEventType,
    TokenUsage,
    UpstreamAPIError,
)
from resilient_llm.entities import ClassifiedError, RequestOptions, RetryOptions
from resilient_llm.services import RetryConfig


class ScriptedUpstream:
    """Upstream that fails with the queued errors before answering."""

    def __init__(self) -> None:
        self.failures: list[Exception] = []
        self.calls = 0

    async def complete(self, messages, options):
        self.calls += 1
        await asyncio.sleep(0.05)
        if self.failures:
            raise self.failures.pop(0)
        prompt = messages[-1].content
        return LLMResponse(
            content=f"Echo: {prompt}. Caching keeps repeated prompts cheap and fast.",
            usage=TokenUsage(input_tokens=len(prompt.split()), output_tokens=12),
            model=options.model,
            stop_reason="end_turn",
        )

    async def stream(self, messages, options):
        response = await self.complete(messages, options)
        for word in response.content.split(" "):
            yield StreamEvent.content_chunk(word + " ")
        yield StreamEvent.usage_update(response.usage)
        yield StreamEvent.done(response)

    async def close(self) -> None:
        pass


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def build_service(upstream: ScriptedUpstream) -> LLMRequestService:
    classifier = ErrorClassifier()
    return LLMRequestService(
        upstream=upstream,
        cache=ResponseCache(repository=InMemoryCacheRepository(max_entries=100)),
        classifier=classifier,
        retry=RetryController(classifier, RetryConfig(max_retries=3, base_delay_ms=100, jitter_ms=50)),
    )


async def demo_caching(service: LLMRequestService, upstream: ScriptedUpstream) -> None:
    """Demonstrate cache hits on repeated requests."""
    print_section("Response Caching")

    messages = [{"role": "user", "content": "What does a response cache do?"}]
    for attempt in range(3):
        start = time.perf_counter()
        response = await service.send_message(messages)
        elapsed_ms = (time.perf_counter() - start) * 1000
        print(f"  Request {attempt + 1}: {elapsed_ms:6.1f}ms  upstream calls={upstream.calls}")
    print(f"  Response: {response.content}")


async def demo_retry(service: LLMRequestService, upstream: ScriptedUpstream) -> None:
    """Demonstrate retries on retryable failures."""
    print_section("Retry With Backoff")

    upstream.failures = [UpstreamAPIError(503, "Overloaded"), UpstreamAPIError(429, "Rate limited")]
    calls_before = upstream.calls
    response = await service.send_message(
        [{"role": "user", "content": "Retry me"}],
        RequestOptions(use_cache=False),
    )
    print(f"  Succeeded after {upstream.calls - calls_before} upstream calls")
    print(f"  Response: {response.content}")


async def demo_classification(service: LLMRequestService, upstream: ScriptedUpstream) -> None:
    """Demonstrate classified, non-retryable failures."""
    print_section("Error Classification")

    upstream.failures = [UpstreamAPIError(401, "invalid x-api-key")]
    try:
        await service.send_message(
            [{"role": "user", "content": "This will fail"}],
            RequestOptions(retry_options=RetryOptions(max_retries=3)),
        )
    except ClassifiedError as e:
        print(f"  Code:      {e.code}")
        print(f"  Retryable: {e.retryable}")
        print(f"  Message:   {e.user_message}")
        print(f"  Actions:   {[a.label for a in e.suggested_actions]}")


async def demo_streaming(service: LLMRequestService) -> None:
    """Demonstrate live and replayed streams."""
    print_section("Streaming")

    messages = [{"role": "user", "content": "Stream this"}]
    for label in ("live", "cached"):
        chunks = 0
        async with service.send_message_stream(messages) as stream:
            async for event in stream:
                if event.type is StreamEventType.CONTENT:
                    chunks += 1
                elif event.type is StreamEventType.DONE:
                    print(f"  {label:6s}: {chunks} chunks, cached={event.cached}")


async def main() -> None:
    """Run all demos."""
    upstream = ScriptedUpstream()
    service = build_service(upstream)

    await demo_caching(service, upstream)
    await demo_retry(service, upstream)
    await demo_classification(service, upstream)
    await demo_streaming(service)

    print_section("Statistics")
    stats = service.get_stats()
    print(f"  Requests:    {stats['requests']}")
    print(f"  Performance: {stats['performance']}")
    print(f"  Errors:      {service.classifier.get_error_stats()['errors_by_type']}")


if __name__ == "__main__":
    asyncio.run(main())
