"""Classified error domain entity and its taxonomy."""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Stable, machine-checkable error taxonomy."""

    AUTH_INVALID_API_KEY = "AUTH_INVALID_API_KEY"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    API_INVALID_REQUEST = "API_INVALID_REQUEST"
    API_MODEL_NOT_FOUND = "API_MODEL_NOT_FOUND"
    API_CONTEXT_TOO_LONG = "API_CONTEXT_TOO_LONG"
    API_OVERLOADED = "API_OVERLOADED"
    NETWORK_CONNECTION_FAILED = "NETWORK_CONNECTION_FAILED"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    SDK_CONFIGURATION_ERROR = "SDK_CONFIGURATION_ERROR"
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class SuggestedAction:
    """A recovery action the UI may offer.

    `action` is a stable identifier (e.g. "trigger_compaction") that the
    caller maps onto its own handler.
    """

    label: str
    action: str
    is_primary: bool = False
    is_destructive: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "action": self.action,
            "is_primary": self.is_primary,
            "is_destructive": self.is_destructive,
        }


@dataclass(frozen=True)
class ErrorContext:
    """Where and when a failure happened."""

    operation_name: str = "unknown"
    model: str | None = None
    session_id: str | None = None
    project_path: str | None = None
    occurred_at_ms: float = field(default_factory=lambda: time.time() * 1000)
    attempt_number: int = 0

    def with_attempt(self, attempt_number: int) -> "ErrorContext":
        return replace(self, attempt_number=attempt_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_name": self.operation_name,
            "model": self.model,
            "session_id": self.session_id,
            "project_path": self.project_path,
            "occurred_at_ms": self.occurred_at_ms,
            "attempt_number": self.attempt_number,
        }


class ClassifiedError(Exception):
    """A failure normalized into the error taxonomy with recovery metadata.

    Constructed once per failure by the ErrorClassifier; all attributes are
    read-only afterwards.
    """

    def __init__(
        self,
        *,
        code: str,
        category: ErrorCategory,
        raw_message: str,
        user_message: str,
        recoverable: bool,
        retryable: bool,
        context: ErrorContext | None = None,
        suggested_actions: tuple[SuggestedAction, ...] = (),
        cause: Any = None,
        documentation_url: str | None = None,
    ) -> None:
        super().__init__(raw_message)
        self._code = code
        self._category = category
        self._raw_message = raw_message
        self._user_message = user_message
        self._recoverable = recoverable
        self._retryable = retryable
        self._context = context or ErrorContext()
        self._suggested_actions = tuple(suggested_actions)
        self._cause = cause
        self._documentation_url = documentation_url

    @property
    def code(self) -> str:
        return self._code

    @property
    def category(self) -> ErrorCategory:
        return self._category

    @property
    def raw_message(self) -> str:
        return self._raw_message

    @property
    def user_message(self) -> str:
        return self._user_message

    @property
    def recoverable(self) -> bool:
        return self._recoverable

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def context(self) -> ErrorContext:
        return self._context

    @property
    def suggested_actions(self) -> tuple[SuggestedAction, ...]:
        return self._suggested_actions

    @property
    def cause(self) -> Any:
        """The original failure value, unmodified."""
        return self._cause

    @property
    def documentation_url(self) -> str | None:
        return self._documentation_url

    @property
    def primary_action(self) -> SuggestedAction | None:
        return next((a for a in self._suggested_actions if a.is_primary), None)

    def to_user_dict(self) -> dict[str, Any]:
        """Render-ready payload for the UI layer."""
        return {
            "code": self._code,
            "category": self._category.value,
            "message": self._user_message,
            "recoverable": self._recoverable,
            "retryable": self._retryable,
            "actions": [a.to_dict() for a in self._suggested_actions],
            "documentation": self._documentation_url,
            "timestamp": self._context.occurred_at_ms,
        }

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(code={self._code!r}, retryable={self._retryable}, "
            f"attempt={self._context.attempt_number}, message={self._raw_message!r})"
        )
