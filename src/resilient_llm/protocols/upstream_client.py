"""Upstream model API protocol.

The request service makes exactly one call on this protocol per attempt.
Implementations raise the structured failures the ErrorClassifier
recognizes (UpstreamAPIError, ConnectionError, TimeoutError, ...).
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from resilient_llm.entities import LLMResponse, Message, ModelOptions, StreamEvent


@runtime_checkable
class UpstreamClient(Protocol):
    """Protocol for the network/SDK layer.

    Example:
        ```python
        client: UpstreamClient = AnthropicUpstreamClient.create()
        response = await client.complete(messages, options)
        ```
    """

    async def complete(self, messages: list[Message], options: ModelOptions) -> LLMResponse:
        """Perform a non-streaming call.

        Args:
            messages: Ordered conversation turns
            options: Model, temperature, token budget and system prompt

        Returns:
            The complete response
        """
        ...

    def stream(self, messages: list[Message], options: ModelOptions) -> AsyncIterator[StreamEvent]:
        """Perform a streaming call.

        Yields CONTENT events as text arrives, optionally a USAGE event, and
        a final DONE event carrying the assembled response. Closing the
        iterator early must release the underlying connection.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
