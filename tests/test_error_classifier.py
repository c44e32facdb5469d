"""
Tests for the error classifier.
"""

import httpx
import pytest

from resilient_llm.entities import ClassifiedError, ErrorCategory, ErrorContext
from resilient_llm.exceptions import ServiceNotConfiguredError, UpstreamAPIError
from resilient_llm.services import ErrorClassifier


@pytest.mark.parametrize(
    ("status", "category", "retryable"),
    [
        (401, ErrorCategory.AUTH_INVALID_API_KEY, False),
        (403, ErrorCategory.AUTH_PERMISSION_DENIED, False),
        (404, ErrorCategory.API_MODEL_NOT_FOUND, False),
        (429, ErrorCategory.AUTH_RATE_LIMITED, True),
        (400, ErrorCategory.API_INVALID_REQUEST, False),
        (500, ErrorCategory.API_OVERLOADED, True),
        (502, ErrorCategory.API_OVERLOADED, True),
        (503, ErrorCategory.API_OVERLOADED, True),
        (504, ErrorCategory.API_OVERLOADED, True),
    ],
)
def test_status_mapping(classifier, status, category, retryable):
    """Structured API failures map by status code."""
    error = classifier.classify(UpstreamAPIError(status, "upstream said no"))
    assert error.category is category
    assert error.retryable is retryable
    assert error.raw_message == "upstream said no"


def test_context_too_long(classifier):
    """A 400 mentioning the context window is a context overflow."""
    error = classifier.classify(UpstreamAPIError(400, "prompt is too long: 210000 tokens > 200000 maximum"))
    assert error.category is ErrorCategory.API_CONTEXT_TOO_LONG
    assert error.retryable is False
    assert error.primary_action is not None
    assert error.primary_action.action == "trigger_compaction"
    assert any(a.is_destructive for a in error.suggested_actions)


def test_unmapped_status(classifier):
    """Unmapped statuses are unknown, retryable only for server errors."""
    client_error = classifier.classify(UpstreamAPIError(418, "teapot"))
    assert client_error.category is ErrorCategory.UNKNOWN_ERROR
    assert client_error.code == "API_UNKNOWN_ERROR"
    assert client_error.retryable is False
    assert "418" in client_error.user_message

    server_error = classifier.classify(UpstreamAPIError(529, "Overloaded"))
    assert server_error.category is ErrorCategory.UNKNOWN_ERROR
    assert server_error.retryable is True


def test_httpx_status_error(classifier):
    """httpx status errors are classified by their response status."""
    request = httpx.Request("POST", "https://api.example.com/v1/messages")
    response = httpx.Response(401, request=request)
    failure = httpx.HTTPStatusError("Unauthorized", request=request, response=response)

    error = classifier.classify(failure)
    assert error.category is ErrorCategory.AUTH_INVALID_API_KEY


@pytest.mark.parametrize(
    ("failure", "category", "retryable"),
    [
        (Exception("fetch failed"), ErrorCategory.NETWORK_CONNECTION_FAILED, True),
        (Exception("ECONNRESET while reading"), ErrorCategory.NETWORK_CONNECTION_FAILED, True),
        (Exception("Request timed out"), ErrorCategory.NETWORK_TIMEOUT, True),
        (Exception("storage quota exceeded"), ErrorCategory.STORAGE_QUOTA_EXCEEDED, False),
        (ServiceNotConfiguredError("ANTHROPIC_API_KEY"), ErrorCategory.SDK_CONFIGURATION_ERROR, False),
        (TimeoutError(), ErrorCategory.NETWORK_TIMEOUT, True),
        (ConnectionRefusedError(), ErrorCategory.NETWORK_CONNECTION_FAILED, True),
    ],
)
def test_message_patterns(classifier, failure, category, retryable):
    """Unstructured failures are classified by message, then by type."""
    error = classifier.classify(failure)
    assert error.category is category
    assert error.retryable is retryable


def test_unrecognized_exception(classifier):
    """An unrecognized exception is unknown and not retryable."""
    error = classifier.classify(ValueError("something odd happened"))
    assert error.category is ErrorCategory.UNKNOWN_ERROR
    assert error.retryable is False
    assert error.cause.args == ("something odd happened",)


def test_non_exception_value(classifier):
    """A raw non-exception value is unknown but retryable."""
    error = classifier.classify("boom")
    assert error.category is ErrorCategory.UNKNOWN_ERROR
    assert error.retryable is True
    assert error.raw_message == "boom"


def test_classification_is_idempotent(classifier):
    """Classifying a ClassifiedError returns it unchanged and records nothing new."""
    first = classifier.classify(UpstreamAPIError(429, "slow down"))
    second = classifier.classify(first)

    assert second is first
    assert classifier.history_size == 1


def test_context_from_mapping(classifier):
    """A partial context mapping is completed with defaults."""
    error = classifier.classify(Exception("network down"), {"operation_name": "send_message", "model": "m"})
    assert error.context.operation_name == "send_message"
    assert error.context.model == "m"
    assert error.context.attempt_number == 0


def test_context_mapping_ignores_unknown_keys(classifier):
    """Extra keys in a context mapping are dropped instead of spoiling the classification."""
    error = classifier.classify(UpstreamAPIError(429, "slow down"), {"operation_name": "op", "request_id": "abc"})
    assert error.category is ErrorCategory.AUTH_RATE_LIMITED
    assert error.retryable is True
    assert error.context.operation_name == "op"


def test_history_is_bounded():
    """The history keeps only the most recent errors."""
    classifier = ErrorClassifier(history_size=3, locale="en")
    for status in (401, 403, 404, 429, 500):
        classifier.classify(UpstreamAPIError(status, "x"))

    stats = classifier.get_error_stats()
    assert stats["total_errors"] == 3
    assert set(stats["errors_by_type"]) == {"API_MODEL_NOT_FOUND", "AUTH_RATE_LIMITED", "API_OVERLOADED"}


def test_error_stats(classifier):
    """Stats count by category and list recent errors newest first."""
    classifier.classify(UpstreamAPIError(429, "first"))
    classifier.classify(UpstreamAPIError(401, "second"))
    classifier.classify(UpstreamAPIError(429, "third"))

    stats = classifier.get_error_stats(recent=2)
    assert stats["errors_by_type"] == {"AUTH_RATE_LIMITED": 2, "AUTH_INVALID_API_KEY": 1}
    assert stats["most_common_error"] == "AUTH_RATE_LIMITED"
    assert [e.raw_message for e in stats["recent_errors"]] == ["third", "second"]


def test_clear_history(classifier):
    """Clearing the history empties the stats."""
    classifier.classify(Exception("network down"))
    classifier.clear_history()

    stats = classifier.get_error_stats()
    assert stats["total_errors"] == 0
    assert stats["most_common_error"] is None
    assert stats["recent_errors"] == []


def test_localized_messages():
    """User messages follow the classifier locale."""
    english = ErrorClassifier(locale="en").classify(UpstreamAPIError(401, "bad key"))
    chinese = ErrorClassifier(locale="zh").classify(UpstreamAPIError(401, "bad key"))

    assert english.user_message != chinese.user_message
    assert english.code == chinese.code


def test_to_user_dict(classifier):
    """The user payload carries code, message and actions."""
    error = classifier.classify(UpstreamAPIError(429, "slow down"), ErrorContext(operation_name="op"))
    payload = error.to_user_dict()

    assert payload["code"] == "AUTH_RATE_LIMITED"
    assert payload["retryable"] is True
    assert payload["actions"][0]["action"] == "retry_later"
    assert payload["documentation"]


@pytest.mark.asyncio
async def test_execute_raises_classified(classifier):
    """execute() re-raises failures as ClassifiedError chained to the cause."""

    async def operation():
        raise UpstreamAPIError(404, "model not found")

    with pytest.raises(ClassifiedError) as exc_info:
        await classifier.execute(operation, {"operation_name": "lookup"})

    assert exc_info.value.category is ErrorCategory.API_MODEL_NOT_FOUND
    assert isinstance(exc_info.value.__cause__, UpstreamAPIError)


@pytest.mark.asyncio
async def test_capture(classifier):
    """capture() returns (result, None) or (None, error)."""

    async def ok():
        return 42

    async def broken():
        raise Exception("connection refused")

    assert await classifier.capture(ok) == (42, None)

    result, error = await classifier.capture(broken)
    assert result is None
    assert error.category is ErrorCategory.NETWORK_CONNECTION_FAILED
