"""Retry logic with exponential backoff."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from resilient_llm.config import settings
from resilient_llm.entities import ClassifiedError, ErrorContext

from .error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay_ms: float = 1000.0
    jitter_ms: float = 1000.0

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay_ms=settings.retry_base_delay_ms,
            jitter_ms=settings.retry_jitter_ms,
        )

    def delay_for_attempt(self, attempt: int) -> float:
        """Calculate delay in milliseconds with exponential backoff and jitter."""
        return self.base_delay_ms * (2**attempt) + random.uniform(0, self.jitter_ms)


class RetryController:
    """Execute operations with classification-driven retries.

    Uses asyncio.sleep between attempts, so a waiting retry only suspends
    its own task.
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the retry controller.

        Args:
            classifier: Classifier consulted on every failure
            config: Default retry configuration. Defaults to settings.
            sleep: Coroutine function taking seconds (replaced in tests)
        """
        self._classifier = classifier
        self._config = config or RetryConfig.from_settings()
        self._sleep = sleep

    async def retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        base_delay_ms: float | None = None,
        context: ErrorContext | None = None,
        on_retry: Callable[[ClassifiedError, int, float], None] | None = None,
    ) -> T:
        """
        Execute operation with retry on retryable classifications.

        Args:
            operation: Zero-argument coroutine function, called once per attempt
            max_retries: Retries after the first attempt. Defaults to config.
            base_delay_ms: Base backoff delay. Defaults to config.
            context: Context recorded on classified errors
            on_retry: Optional callback(error, attempt, delay_ms) before each sleep

        Returns:
            Result of operation()

        Raises:
            ClassifiedError: On a non-retryable failure or once retries are exhausted
        """
        config = RetryConfig(
            max_retries=max_retries if max_retries is not None else self._config.max_retries,
            base_delay_ms=base_delay_ms if base_delay_ms is not None else self._config.base_delay_ms,
            jitter_ms=self._config.jitter_ms,
        )
        context = context or ErrorContext(operation_name=getattr(operation, "__name__", "retry_operation"))

        for attempt in range(config.max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = self._classifier.classify(e, context.with_attempt(attempt))
                if attempt == config.max_retries or not last_error.retryable:
                    if last_error is e:
                        raise
                    raise last_error from e

                delay_ms = config.delay_for_attempt(attempt)
                logger.info(
                    "Retrying %s after %s (attempt %d/%d) in %.0fms",
                    context.operation_name,
                    last_error.code,
                    attempt + 1,
                    config.max_retries,
                    delay_ms,
                )
                if on_retry:
                    on_retry(last_error, attempt, delay_ms)
                await self._sleep(delay_ms / 1000)

        raise RuntimeError("Unexpected state: retry loop exited without result")

    @property
    def config(self) -> RetryConfig:
        return self._config
