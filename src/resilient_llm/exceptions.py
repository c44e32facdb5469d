"""Package exceptions.

`ClassifiedError` (the error every caller ultimately sees) lives in
`resilient_llm.entities`; the classes here are the raw failures raised by
adapters before classification.
"""


class ResilientLLMError(Exception):
    """Base exception for all resilient-llm errors."""


class UpstreamAPIError(ResilientLLMError):
    """Structured failure returned by the upstream model API.

    Attributes:
        status_code: HTTP status of the failed response
        message: Error message reported by the API
        body: Decoded response body, if any
    """

    def __init__(self, status_code: int, message: str, body: dict | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.body = body or {}
        super().__init__(f"{status_code}: {message}")


class ServiceNotConfiguredError(ResilientLLMError):
    """Raised when an adapter is missing required configuration."""

    def __init__(self, setting: str) -> None:
        self.setting = setting
        super().__init__(f"Invalid configuration: '{setting}' is not set")
