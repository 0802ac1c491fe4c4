"""LLM provider abstract base class."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import AsyncIterator

from autofix.config import ProviderConfig, ProviderType
from autofix.core.llm.errors import ConfigurationError, StreamingNotSupportedError
from autofix.core.llm.types import LLMRequest, LLMResponse

DEFAULT_OUTPUT_TOKENS = 1000
CHARS_PER_TOKEN = 4


def estimate_request_tokens(request: LLMRequest, include_tools: bool = True) -> int:
    """Rough pre-call token estimate: ~4 characters per token.

    Only used to gate the rate limiter; billing comes from reported usage.
    """
    char_count = len(request.system_prompt or "")
    char_count += sum(len(m.content) for m in request.messages)
    input_tokens = char_count // CHARS_PER_TOKEN

    tool_tokens = 0
    if include_tools:
        tool_tokens = sum(
            (len(t.description) + len(json.dumps(t.input_schema))) // CHARS_PER_TOKEN
            for t in request.tools
        )

    output_tokens = request.max_tokens or DEFAULT_OUTPUT_TOKENS
    return input_tokens + tool_tokens + output_tokens


def require_provider_type(config: ProviderConfig, expected: ProviderType, label: str) -> None:
    if config.provider_type != expected:
        raise ConfigurationError(f"Invalid provider type for {label} provider")


class LLMProvider(ABC):
    provider_type: ProviderType

    @classmethod
    @abstractmethod
    def validate_config(cls, config: ProviderConfig) -> None:
        """Raise ConfigurationError if ``config`` cannot be used by this provider."""

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse: ...

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        """Yield text deltas. Check ``supports_streaming()`` first."""
        raise StreamingNotSupportedError()
        yield ""  # pragma: no cover

    def estimate_tokens(self, request: LLMRequest) -> int:
        return estimate_request_tokens(request, include_tools=self.supports_tools())

    @abstractmethod
    def max_context_length(self) -> int: ...

    def supports_streaming(self) -> bool:
        return False

    def supports_tools(self) -> bool:
        return True

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
