"""Anthropic Messages API client.

Default UpstreamClient implementation over httpx. Failures are raised in
the shapes the ErrorClassifier understands:

- non-2xx responses -> UpstreamAPIError(status_code, message)
- httpx timeouts -> TimeoutError
- other transport failures -> ConnectionError
- missing API key -> ServiceNotConfiguredError
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from resilient_llm.config import settings
from resilient_llm.entities import LLMResponse, Message, ModelOptions, StreamEvent, TokenUsage
from resilient_llm.exceptions import ServiceNotConfiguredError, UpstreamAPIError

logger = logging.getLogger(__name__)


class AnthropicUpstreamClient:
    """httpx-based implementation of the UpstreamClient protocol.

    Example:
        ```python
        client = AnthropicUpstreamClient.create(api_key="sk-ant-...")
        response = await client.complete(
            [Message(role="user", content="Hi")],
            ModelOptions(model="claude-3-5-sonnet-20241022", temperature=0.7, max_tokens=256),
        )
        print(response.content)
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Anthropic API key. Defaults to settings.anthropic_api_key.
            base_url: API base URL. Defaults to settings.anthropic_base_url.
            api_version: Value of the anthropic-version header.
            timeout: Request timeout in seconds.
            http_client: Preconfigured httpx client (used by tests).
        """
        self._api_key = api_key or settings.anthropic_api_key
        self._base_url = (base_url or settings.anthropic_base_url).rstrip("/")
        self._api_version = api_version or settings.anthropic_version
        self._timeout = timeout or settings.upstream_timeout
        self._client = http_client

    @classmethod
    def create(
        cls,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> "AnthropicUpstreamClient":
        """Factory method to create AnthropicUpstreamClient with defaults.

        Args:
            api_key: API key. If None, uses settings.
            base_url: API URL. If None, uses settings.

        Returns:
            Configured AnthropicUpstreamClient
        """
        return cls(api_key=api_key, base_url=base_url)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ServiceNotConfiguredError("ANTHROPIC_API_KEY")
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self._api_version,
            "content-type": "application/json",
        }

    @staticmethod
    def _payload(messages: list[Message], options: ModelOptions, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [m.to_dict() for m in messages],
        }
        if options.system_prompt:
            payload["system"] = options.system_prompt
        if stream:
            payload["stream"] = True
        return payload

    @staticmethod
    def _raise_for_status(response: httpx.Response, body: bytes) -> None:
        if response.is_success:
            return
        data: dict = {}
        message = body.decode("utf-8", errors="replace") or response.reason_phrase
        try:
            data = json.loads(body)
            message = data.get("error", {}).get("message", message)
        except (json.JSONDecodeError, AttributeError):
            pass
        raise UpstreamAPIError(response.status_code, message, data)

    async def complete(self, messages: list[Message], options: ModelOptions) -> LLMResponse:
        url = f"{self._base_url}/v1/messages"
        headers = self._headers()
        try:
            response = await self.client.post(url, headers=headers, json=self._payload(messages, options, stream=False))
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Network connection failed: {e}") from e

        self._raise_for_status(response, response.content)
        data = response.json()
        usage = data.get("usage", {})
        return LLMResponse(
            content="".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"),
            usage=TokenUsage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
                cache_read_tokens=usage.get("cache_read_input_tokens"),
            ),
            model=data.get("model", options.model),
            stop_reason=data.get("stop_reason"),
            response_id=data.get("id"),
        )

    async def stream(self, messages: list[Message], options: ModelOptions) -> AsyncIterator[StreamEvent]:
        url = f"{self._base_url}/v1/messages"
        headers = self._headers()
        parts: list[str] = []
        input_tokens = output_tokens = 0
        cache_read: int | None = None
        model = options.model
        stop_reason: str | None = None
        response_id: str | None = None
        stopped = False

        try:
            async with self.client.stream(
                "POST", url, headers=headers, json=self._payload(messages, options, stream=True)
            ) as response:
                if not response.is_success:
                    self._raise_for_status(response, await response.aread())

                event_name = ""
                async for line in response.aiter_lines():
                    if line.startswith("event:"):
                        event_name = line[len("event:"):].strip()
                        continue
                    if not line.startswith("data:"):
                        continue
                    data = json.loads(line[len("data:"):].strip())
                    kind = data.get("type", event_name)

                    if kind == "message_start":
                        message = data.get("message", {})
                        response_id = message.get("id")
                        model = message.get("model", model)
                        usage = message.get("usage", {})
                        input_tokens = usage.get("input_tokens", 0)
                        cache_read = usage.get("cache_read_input_tokens")
                    elif kind == "content_block_delta":
                        text = data.get("delta", {}).get("text")
                        if text:
                            parts.append(text)
                            yield StreamEvent.content_chunk(text)
                    elif kind == "message_delta":
                        stop_reason = data.get("delta", {}).get("stop_reason", stop_reason)
                        output_tokens = data.get("usage", {}).get("output_tokens", output_tokens)
                    elif kind == "error":
                        error = data.get("error", {})
                        status = 503 if error.get("type") == "overloaded_error" else 500
                        raise UpstreamAPIError(status, error.get("message", "stream error"), data)
                    elif kind == "message_stop":
                        stopped = True
                        break
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Stream timeout: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Network connection failed: {e}") from e

        if not stopped:
            raise ConnectionError("Network connection failed: stream ended before message_stop")

        usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens, cache_read_tokens=cache_read)
        yield StreamEvent.usage_update(usage)
        yield StreamEvent.done(
            LLMResponse(
                content="".join(parts),
                usage=usage,
                model=model,
                stop_reason=stop_reason,
                response_id=response_id,
            )
        )

    async def is_available(self) -> bool:
        """Check that the API key is configured."""
        return bool(self._api_key)

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
