"""Provider error taxonomy and credential redaction."""

from __future__ import annotations

from autofix.utils.redact import REDACTED, redact

__all__ = [
    "REDACTED",
    "redact",
    "LLMError",
    "ConfigurationError",
    "AuthenticationError",
    "RateLimitError",
    "NetworkError",
    "ServerError",
    "InvalidRequestError",
    "StreamingNotSupportedError",
    "error_for_status",
]


class LLMError(Exception):
    """Base class for every provider failure surfaced to the engine."""


class ConfigurationError(LLMError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Configuration error: {message}")


class AuthenticationError(LLMError):
    def __init__(self, message: str = "invalid API key") -> None:
        super().__init__(f"Authentication failed: {message}")


class RateLimitError(LLMError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Rate limit exceeded: {message}")


class NetworkError(LLMError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Network error: {message}")


class ServerError(LLMError):
    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        detail = f": {message}" if message else ""
        super().__init__(f"Server error: status {status}{detail}")


class InvalidRequestError(LLMError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid request: {message}")


class StreamingNotSupportedError(LLMError):
    def __init__(self) -> None:
        super().__init__("Streaming not supported by this provider")


def error_for_status(status: int, message: str) -> LLMError:
    """Map an HTTP status from a vendor into the shared taxonomy.

    ``message`` must already be redacted.
    """
    if status in (401, 403):
        return AuthenticationError(message)
    if status == 429:
        return RateLimitError(message)
    if status >= 500:
        return ServerError(status, message)
    return InvalidRequestError(message)
