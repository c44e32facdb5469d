"""Error classification service.

Maps any failure raised below the request service (structured upstream API
errors, transport faults, arbitrary values) onto the ClassifiedError
taxonomy, and keeps a bounded history for diagnostics.
"""

import dataclasses
import logging
import threading
from collections import Counter, deque
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import httpx

from resilient_llm.config import settings
from resilient_llm.entities import ClassifiedError, ErrorCategory, ErrorContext
from resilient_llm.exceptions import UpstreamAPIError

from .error_messages import DOCUMENTATION, suggested_actions, user_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTEXT_LENGTH_INDICATORS = (
    "context_length_exceeded",
    "prompt is too long",
    "maximum context length",
    "context window",
)

# Checked in order; the first matching group wins.
MESSAGE_PATTERNS: tuple[tuple[ErrorCategory, tuple[str, ...], bool], ...] = (
    (ErrorCategory.NETWORK_CONNECTION_FAILED, ("fetch", "network", "connection", "econnrefused", "econnreset"), True),
    (ErrorCategory.NETWORK_TIMEOUT, ("timeout", "timed out", "aborted"), True),
    (ErrorCategory.STORAGE_QUOTA_EXCEEDED, ("quota", "storage", "no space left"), False),
    (ErrorCategory.SDK_CONFIGURATION_ERROR, ("config", "initialization", "not initialized"), False),
)

OVERLOADED_STATUSES = frozenset({500, 502, 503, 504})


def _status_code(failure: BaseException) -> int | None:
    """Extract an HTTP status from a structured API failure, if it has one."""
    if isinstance(failure, httpx.HTTPStatusError):
        return failure.response.status_code
    for attr in ("status_code", "status"):
        status = getattr(failure, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            return status
    return None


def _failure_message(failure: BaseException) -> str:
    if isinstance(failure, UpstreamAPIError):
        return failure.message
    return str(failure) or type(failure).__name__


class ErrorClassifier:
    """Classify failures into ClassifiedError instances.

    Each instance owns its own rolling history (oldest evicted first), so
    separate services never share diagnostics.

    Example:
        ```python
        classifier = ErrorClassifier()
        try:
            await client.complete(messages, options)
        except Exception as e:
            error = classifier.classify(e, {"operation_name": "send_message"})
            print(error.code, error.retryable)
        ```
    """

    def __init__(self, history_size: int | None = None, locale: str | None = None) -> None:
        """Initialize the classifier.

        Args:
            history_size: Capacity of the rolling error history. Defaults to settings.
            locale: Locale for user messages ("en" or "zh"). Defaults to settings.
        """
        size = history_size if history_size is not None else settings.error_history_size
        self._history: deque[ClassifiedError] = deque(maxlen=size)
        self._locale = locale or settings.error_locale
        self._lock = threading.Lock()

    def classify(
        self,
        failure: Any,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> ClassifiedError:
        """Classify a failure. Never raises.

        Args:
            failure: Any exception or raw value
            context: Full or partial error context

        Returns:
            The ClassifiedError; an already-classified input is returned as is
        """
        if isinstance(failure, ClassifiedError):
            return failure

        try:
            full_context = self._build_context(context)
            if not isinstance(failure, BaseException):
                error = self._classify_unknown_value(failure, full_context)
            elif (status := _status_code(failure)) is not None:
                error = self._classify_api_error(failure, status, full_context)
            else:
                error = self._classify_generic_error(failure, full_context)
        except Exception as internal:  # noqa: BLE001 - classification must not raise
            logger.exception("Error classification failed: %s", internal)
            error = self._build(
                "UNKNOWN_ERROR",
                ErrorCategory.UNKNOWN_ERROR,
                failure,
                repr(failure),
                retryable=not isinstance(failure, BaseException),
                context=ErrorContext(),
                message_code="UNKNOWN_VALUE",
            )

        self._record(error)
        return error

    def _build_context(self, context: ErrorContext | Mapping[str, Any] | None) -> ErrorContext:
        if context is None:
            return ErrorContext()
        if isinstance(context, ErrorContext):
            return context
        names = {field.name for field in dataclasses.fields(ErrorContext)}
        return ErrorContext(**{key: value for key, value in dict(context).items() if key in names})

    def _build(
        self,
        code: str,
        category: ErrorCategory,
        failure: Any,
        raw_message: str,
        *,
        retryable: bool,
        context: ErrorContext,
        message_code: str | None = None,
        **message_fields: object,
    ) -> ClassifiedError:
        return ClassifiedError(
            code=code,
            category=category,
            raw_message=raw_message,
            user_message=user_message(message_code or code, self._locale, **message_fields),
            recoverable=True,
            retryable=retryable,
            context=context,
            suggested_actions=suggested_actions(code, self._locale),
            cause=failure,
            documentation_url=DOCUMENTATION.get(code),
        )

    def _classify_api_error(self, failure: BaseException, status: int, context: ErrorContext) -> ClassifiedError:
        message = _failure_message(failure)

        if status == 400:
            lowered = message.lower()
            if any(indicator in lowered for indicator in CONTEXT_LENGTH_INDICATORS):
                category = ErrorCategory.API_CONTEXT_TOO_LONG
            else:
                category = ErrorCategory.API_INVALID_REQUEST
            return self._build(category.value, category, failure, message, retryable=False, context=context)

        simple = {
            401: (ErrorCategory.AUTH_INVALID_API_KEY, False),
            403: (ErrorCategory.AUTH_PERMISSION_DENIED, False),
            404: (ErrorCategory.API_MODEL_NOT_FOUND, False),
            429: (ErrorCategory.AUTH_RATE_LIMITED, True),
        }
        if status in simple:
            category, retryable = simple[status]
            return self._build(category.value, category, failure, message, retryable=retryable, context=context)

        if status in OVERLOADED_STATUSES:
            category = ErrorCategory.API_OVERLOADED
            return self._build(category.value, category, failure, message, retryable=True, context=context)

        return self._build(
            "API_UNKNOWN_ERROR",
            ErrorCategory.UNKNOWN_ERROR,
            failure,
            message,
            retryable=status >= 500,
            context=context,
            status=status,
            message=message,
        )

    def _classify_generic_error(self, failure: BaseException, context: ErrorContext) -> ClassifiedError:
        message = _failure_message(failure)
        lowered = message.lower()

        for category, terms, retryable in MESSAGE_PATTERNS:
            if any(term in lowered for term in terms):
                return self._build(category.value, category, failure, message, retryable=retryable, context=context)

        # No text match: fall back on the builtin exception type.
        if isinstance(failure, TimeoutError):
            category = ErrorCategory.NETWORK_TIMEOUT
            return self._build(category.value, category, failure, message, retryable=True, context=context)
        if isinstance(failure, ConnectionError):
            category = ErrorCategory.NETWORK_CONNECTION_FAILED
            return self._build(category.value, category, failure, message, retryable=True, context=context)

        return self._build(
            "UNKNOWN_ERROR",
            ErrorCategory.UNKNOWN_ERROR,
            failure,
            message,
            retryable=False,
            context=context,
            message=message,
        )

    def _classify_unknown_value(self, failure: Any, context: ErrorContext) -> ClassifiedError:
        # Raw non-exception values are treated as transient noise.
        return self._build(
            "UNKNOWN_ERROR",
            ErrorCategory.UNKNOWN_ERROR,
            failure,
            str(failure),
            retryable=True,
            context=context,
            message_code="UNKNOWN_VALUE",
        )

    def _record(self, error: ClassifiedError) -> None:
        with self._lock:
            self._history.append(error)
        logger.warning(
            "%s in %s (attempt %d): %s",
            error.code,
            error.context.operation_name,
            error.context.attempt_number,
            error.raw_message,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> T:
        """Run an operation, re-raising any failure as a ClassifiedError.

        Args:
            operation: Zero-argument coroutine function
            context: Context recorded on the classified error

        Returns:
            The operation's result
        """
        try:
            return await operation()
        except Exception as e:
            raise self.classify(e, context) from e

    async def capture(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> tuple[T | None, ClassifiedError | None]:
        """Run an operation and return (result, None) or (None, error)."""
        try:
            return await operation(), None
        except Exception as e:
            return None, self.classify(e, context)

    def get_error_stats(self, recent: int = 10) -> dict[str, Any]:
        """Summarize the error history.

        Args:
            recent: Number of most recent errors to include

        Returns:
            Dict with total_errors, errors_by_type, most_common_error and
            recent_errors (newest first)
        """
        with self._lock:
            history = list(self._history)

        by_type = Counter(error.category.value for error in history)
        most_common = by_type.most_common(1)
        return {
            "total_errors": len(history),
            "errors_by_type": dict(by_type),
            "most_common_error": most_common[0][0] if most_common else None,
            "recent_errors": list(reversed(history[-recent:])) if recent > 0 else [],
        }

    def clear_history(self) -> None:
        """Clear the error history."""
        with self._lock:
            self._history.clear()

    @property
    def history_size(self) -> int:
        with self._lock:
            return len(self._history)

    @property
    def locale(self) -> str:
        return self._locale
