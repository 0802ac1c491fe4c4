"""OpenAI chat-completions LLM provider."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from autofix.config import ProviderConfig, ProviderType
from autofix.core.llm.base import LLMProvider, require_provider_type
from autofix.core.llm.errors import (
    ConfigurationError,
    InvalidRequestError,
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
    ToolDefinition,
)
from autofix.utils.logging import get_logger

log = get_logger(__name__)

# Shared with the Ollama provider, which speaks the same wire format.
FINISH_REASONS = {
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "content_filter": StopReason.ERROR,
}

_LOCAL_PREFIXES = ("http://localhost:", "http://127.0.0.1:")


def build_chat_messages(request: LLMRequest, system: str | None = None) -> list[dict[str, Any]]:
    """Flatten a request into chat-completions messages.

    The tool role is sent as ``user``: tool output is replayed as plain text
    without the ``tool_call_id`` pairing the API would require.
    """
    messages: list[dict[str, Any]] = []
    system = system if system is not None else request.system_prompt
    if system:
        messages.append({"role": "system", "content": system})
    for msg in request.messages:
        role = "assistant" if msg.role == MessageRole.ASSISTANT else "user"
        messages.append({"role": role, "content": msg.content})
    return messages


def to_function_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
        }
        for t in tools
    ]


def decode_arguments(raw: Any) -> Any:
    """Decode function-call arguments; undecodable input becomes None."""
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError:
        log.warning("tool_arguments_undecodable", length=len(raw))
        return None


class OpenAIProvider(LLMProvider):
    provider_type = ProviderType.OPENAI

    def __init__(self, config: ProviderConfig) -> None:
        self.validate_config(config)
        self._config = config
        self._model = config.model
        self._client = AsyncOpenAI(
            api_key=config.api_key_value(),
            base_url=config.api_base,
            timeout=float(config.timeout_secs),
            max_retries=config.max_retries,
        )

    @classmethod
    def validate_config(cls, config: ProviderConfig) -> None:
        require_provider_type(config, ProviderType.OPENAI, "OpenAI")
        if not config.api_key_value():
            raise ConfigurationError("API key is required for OpenAI provider")
        base = config.api_base
        if not (base.startswith("https://") or base.startswith(_LOCAL_PREFIXES)):
            raise ConfigurationError(
                "OpenAI API endpoint must use HTTPS (plain HTTP is only allowed for localhost)"
            )
        if not config.model:
            raise ConfigurationError("Model name is required for OpenAI provider")

    async def complete(self, request: LLMRequest) -> LLMResponse:
        kwargs = self._build_kwargs(request)
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise self._wrap_error(e) from None
        return self._parse_response(response)

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        kwargs = self._build_kwargs(request)
        kwargs["stream"] = True
        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
        except openai.APIError as e:
            raise self._wrap_error(e) from None

    def max_context_length(self) -> int:
        model = self._model
        if "gpt-4-turbo" in model or "gpt-4o" in model:
            return 128_000
        if "gpt-4" in model:
            return 8192
        if "gpt-3.5-turbo" in model:
            return 16385
        return 8192

    def supports_streaming(self) -> bool:
        return True

    async def close(self) -> None:
        await self._client.close()

    def _build_kwargs(self, request: LLMRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": build_chat_messages(request),
        }
        if request.tools:
            kwargs["tools"] = to_function_tools(request.tools)
            kwargs["tool_choice"] = "auto"
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        return kwargs

    def _wrap_error(self, exc: openai.APIError) -> LLMError:
        message = redact(str(exc), self._config.api_key_value())
        log.warning("openai_request_failed", error_type=type(exc).__name__)
        if isinstance(exc, openai.APIStatusError):
            return error_for_status(exc.status_code, message)
        return NetworkError(message)

    def _parse_response(self, response: Any) -> LLMResponse:
        if not response.choices:
            raise InvalidRequestError("No choices in response")
        choice = response.choices[0]
        msg = choice.message

        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                input=decode_arguments(call.function.arguments),
            )
            for call in (msg.tool_calls or [])
        ]

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )

        return LLMResponse(
            content=msg.content or None,
            tool_calls=tool_calls,
            stop_reason=FINISH_REASONS.get(choice.finish_reason, StopReason.ERROR),
            usage=usage,
        )
