"""Message and response domain entities."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Message:
    """A single conversation turn.

    Attributes:
        role: "user" or "assistant"
        content: Plain-text content of the turn
    """

    role: str
    content: str

    @classmethod
    def from_any(cls, value: "Message | Mapping[str, Any]") -> "Message":
        """Build a Message from an instance or a {"role", "content"} mapping."""
        if isinstance(value, Message):
            return value
        return cls(role=str(value["role"]), content=str(value["content"]))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def coerce_messages(messages: Iterable["Message | Mapping[str, Any]"]) -> list[Message]:
    """Normalize a message sequence into Message instances, preserving order."""
    return [Message.from_any(m) for m in messages]


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the upstream API."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int | None = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        data = {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}
        if self.cache_read_tokens is not None:
            data["cache_read_tokens"] = self.cache_read_tokens
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokenUsage":
        cache_read = data.get("cache_read_tokens")
        return cls(
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_read_tokens=int(cache_read) if cache_read is not None else None,
        )


@dataclass(frozen=True)
class LLMResponse:
    """A complete model response.

    Attributes:
        content: Assembled text content
        usage: Token usage for the call
        model: Model that produced the response
        stop_reason: Finish reason reported upstream (e.g. "end_turn")
        response_id: Upstream message id, if any
    """

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    stop_reason: str | None = None
    response_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "usage": self.usage.to_dict(),
            "model": self.model,
            "stop_reason": self.stop_reason,
            "response_id": self.response_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LLMResponse":
        return cls(
            content=str(data.get("content", "")),
            usage=TokenUsage.from_dict(data.get("usage") or {}),
            model=str(data.get("model", "")),
            stop_reason=data.get("stop_reason"),
            response_id=data.get("response_id"),
        )
