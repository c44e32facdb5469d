"""Streaming event entity."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .llm_response import LLMResponse, TokenUsage


class StreamEventType(str, Enum):
    CONTENT = "content"
    USAGE = "usage"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    """One event of a streamed response.

    A stream is any number of CONTENT events, at most one USAGE event
    and exactly one terminating DONE event carrying the full response.
    `cached` is True on every event of a stream replayed from the cache.
    """

    type: StreamEventType
    content: str | None = None
    usage: TokenUsage | None = None
    response: LLMResponse | None = None
    cached: bool = False

    @classmethod
    def content_chunk(cls, text: str, cached: bool = False) -> "StreamEvent":
        return cls(type=StreamEventType.CONTENT, content=text, cached=cached)

    @classmethod
    def usage_update(cls, usage: TokenUsage, cached: bool = False) -> "StreamEvent":
        return cls(type=StreamEventType.USAGE, usage=usage, cached=cached)

    @classmethod
    def done(cls, response: LLMResponse, cached: bool = False) -> "StreamEvent":
        return cls(type=StreamEventType.DONE, response=response, cached=cached)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "cached": self.cached}
        if self.content is not None:
            data["content"] = self.content
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.response is not None:
            data["response"] = self.response.to_dict()
        return data
