"""LLM provider subpackage."""

from autofix.config import ProviderConfig, ProviderType
from autofix.core.llm.anthropic import ClaudeProvider
from autofix.core.llm.base import LLMProvider, estimate_request_tokens
from autofix.core.llm.errors import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
    LLMError,
    NetworkError,
    RateLimitError,
    ServerError,
    StreamingNotSupportedError,
)
from autofix.core.llm.ollama import OllamaProvider
from autofix.core.llm.openai import OpenAIProvider
from autofix.core.llm.types import (
    LLMRequest,
    LLMResponse,
    Message,
    MessageRole,
    StopReason,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "LLMRequest",
    "LLMResponse",
    "Message",
    "MessageRole",
    "StopReason",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    "LLMProvider",
    "ClaudeProvider",
    "OpenAIProvider",
    "OllamaProvider",
    "LLMError",
    "AuthenticationError",
    "ConfigurationError",
    "InvalidRequestError",
    "NetworkError",
    "RateLimitError",
    "ServerError",
    "StreamingNotSupportedError",
    "create_provider",
    "estimate_request_tokens",
]


def create_provider(config: ProviderConfig) -> LLMProvider:
    """Factory to create the appropriate LLM provider from config."""
    if config.provider_type == ProviderType.CLAUDE:
        return ClaudeProvider(config)
    if config.provider_type == ProviderType.OPENAI:
        return OpenAIProvider(config)
    if config.provider_type == ProviderType.OLLAMA:
        return OllamaProvider(config)
    raise ConfigurationError(f"Unknown provider type: {config.provider_type}")
