"""Per-request options accepted by the request service."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .classified_error import ClassifiedError
from .llm_response import LLMResponse, TokenUsage

# Hooks may be plain functions or coroutine functions.
ErrorHook = Callable[[ClassifiedError], Any]
ContentHook = Callable[[str], Any]
UsageHook = Callable[[TokenUsage], Any]
CompleteHook = Callable[[LLMResponse], Any]


@dataclass(frozen=True)
class ModelOptions:
    """What the upstream client needs to perform one call."""

    model: str
    temperature: float
    max_tokens: int
    system_prompt: str | None = None


@dataclass(frozen=True)
class RetryOptions:
    """Overrides for the retry controller. None falls back to settings."""

    max_retries: int | None = None
    base_delay_ms: float | None = None


@dataclass
class RequestOptions:
    """Options for a single send_message call.

    Model fields left as None are filled from settings by the service.

    Attributes:
        on_recoverable_context_overflow: Called with the ClassifiedError when
            the upstream rejects the conversation as too long, so the caller
            can trigger compaction.
    """

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    use_cache: bool = True
    cache_only_on_success: bool = True
    enable_auto_retry: bool = True
    retry_options: RetryOptions = field(default_factory=RetryOptions)
    session_id: str | None = None
    project_path: str | None = None
    on_recoverable_context_overflow: ErrorHook | None = None


@dataclass
class StreamingOptions(RequestOptions):
    """RequestOptions plus optional observer hooks for streamed calls.

    The hooks mirror the yielded events; the events remain the source of truth.
    """

    on_content: ContentHook | None = None
    on_usage: UsageHook | None = None
    on_complete: CompleteHook | None = None
    on_error: ErrorHook | None = None
