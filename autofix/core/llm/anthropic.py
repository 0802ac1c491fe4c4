"""Anthropic (Claude) LLM provider."""

from __future__ import annotations

from typing import Any, AsyncIterator

import anthropic
from anthropic import AsyncAnthropic

from autofix.config import ProviderConfig, ProviderType
from autofix.core.llm.base import DEFAULT_OUTPUT_TOKENS, LLMProvider, require_provider_type
from autofix.core.llm.errors import (
    ConfigurationError,
    LLMError,
    NetworkError,
    error_for_status,
    redact,
)
from autofix.core.llm.types import (
    LLMRequest,
    LLMResponse,
    MessageRole,
    StopReason,
    TokenUsage,
    ToolCall,
)
from autofix.utils.logging import get_logger

log = get_logger(__name__)

_STOP_REASONS = {
    "end_turn": StopReason.END_TURN,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
    "tool_use": StopReason.TOOL_USE,
}


class ClaudeProvider(LLMProvider):
    provider_type = ProviderType.CLAUDE

    def __init__(self, config: ProviderConfig) -> None:
        self.validate_config(config)
        self._config = config
        self._model = config.model
        self._client = AsyncAnthropic(
            api_key=config.api_key_value(),
            base_url=config.api_base,
            timeout=float(config.timeout_secs),
            max_retries=config.max_retries,
        )

    @classmethod
    def validate_config(cls, config: ProviderConfig) -> None:
        require_provider_type(config, ProviderType.CLAUDE, "Claude")
        if not config.api_key_value():
            raise ConfigurationError("API key is required for Claude provider")
        if not config.api_base.startswith("https://"):
            raise ConfigurationError("Claude API endpoint must use HTTPS")
        if not config.model.startswith("claude-"):
            raise ConfigurationError(f"Invalid Claude model: {config.model}")

    async def complete(self, request: LLMRequest) -> LLMResponse:
        kwargs = self._build_kwargs(request)
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise self._wrap_error(e) from None
        return self._parse_response(response)

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        kwargs = self._build_kwargs(request)
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as e:
            raise self._wrap_error(e) from None

    def max_context_length(self) -> int:
        model = self._model
        if "sonnet" in model or "haiku" in model or "opus" in model:
            return 200_000
        return 100_000

    def supports_streaming(self) -> bool:
        return True

    async def close(self) -> None:
        await self._client.close()

    def _build_kwargs(self, request: LLMRequest) -> dict[str, Any]:
        # Claude has no tool role; tool output travels in user turns
        api_messages = [
            {
                "role": "assistant" if msg.role == MessageRole.ASSISTANT else "user",
                "content": msg.content,
            }
            for msg in request.messages
        ]

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": api_messages,
            "max_tokens": request.max_tokens or DEFAULT_OUTPUT_TOKENS,
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.tools:
            kwargs["tools"] = [t.to_wire() for t in request.tools]
            kwargs["tool_choice"] = {"type": "auto"}
        return kwargs

    def _wrap_error(self, exc: anthropic.APIError) -> LLMError:
        message = redact(str(exc), self._config.api_key_value())
        log.warning("claude_request_failed", error_type=type(exc).__name__)
        if isinstance(exc, anthropic.APIStatusError):
            return error_for_status(exc.status_code, message)
        return NetworkError(message)

    def _parse_response(self, response: Any) -> LLMResponse:
        texts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, input=block.input))

        content = "\n".join(texts)
        return LLMResponse(
            content=content or None,
            tool_calls=tool_calls,
            stop_reason=_STOP_REASONS.get(response.stop_reason, StopReason.ERROR),
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
        )
