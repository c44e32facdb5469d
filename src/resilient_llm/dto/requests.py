"""Request DTOs for API endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from resilient_llm.entities import Message, RequestOptions, RetryOptions, StreamingOptions


class MessageItem(BaseModel):
    """Single conversation turn."""

    role: Literal["user", "assistant"] = Field(..., description="Who produced the turn")
    content: str = Field(..., description="Text content of the turn")


class SendMessageRequest(BaseModel):
    """Request DTO for sending a conversation.

    The handler converts this to a message list plus RequestOptions.
    Omitted model fields fall back to the server defaults.
    """

    messages: list[MessageItem] = Field(..., description="Ordered conversation turns", min_length=1)
    model: str | None = Field(None, description="Model identifier (defaults to LLM_DEFAULT_MODEL)")
    temperature: float | None = Field(None, description="Sampling temperature", ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, description="Maximum tokens to generate", gt=0)
    system_prompt: str | None = Field(None, description="Optional system prompt")
    use_cache: bool = Field(True, description="Serve from and store into the response cache")
    enable_auto_retry: bool = Field(True, description="Retry retryable failures with backoff")
    max_retries: int | None = Field(None, description="Override the retry count", ge=0)
    base_delay_ms: float | None = Field(None, description="Override the base backoff delay", ge=0.0)
    session_id: str | None = Field(None, description="Session whose context usage should be updated")
    project_path: str | None = Field(None, description="Project the session belongs to")

    def to_messages(self) -> list[Message]:
        return [Message(role=m.role, content=m.content) for m in self.messages]

    def to_options(self, streaming: bool = False) -> RequestOptions:
        """Build the service options for this request."""
        options_class = StreamingOptions if streaming else RequestOptions
        return options_class(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
            use_cache=self.use_cache,
            enable_auto_retry=self.enable_auto_retry,
            retry_options=RetryOptions(max_retries=self.max_retries, base_delay_ms=self.base_delay_ms),
            session_id=self.session_id,
            project_path=self.project_path,
        )


class CacheConfigRequest(BaseModel):
    """Request DTO for updating cache configuration. Omitted fields are unchanged."""

    ttl_seconds: int | None = Field(None, description="Default entry lifetime (0 = never expires)", ge=0)
    max_entries: int | None = Field(None, description="Maximum number of cached entries", ge=1)
    enabled: bool | None = Field(None, description="Turn the response cache on or off")
