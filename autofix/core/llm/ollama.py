"""Ollama (local, OpenAI-compatible) LLM provider with ReAct fallback."""

from __future__ import annotations

import asyncio
import json
import random
import re
from typing import Any, AsyncIterator
from uuid import uuid4

import httpx

from autofix.config import ProviderConfig, ProviderType
from autofix.core.llm.base import CHARS_PER_TOKEN, LLMProvider, require_provider_type
from autofix.core.llm.errors import (
    ConfigurationError,
    InvalidRequestError,
    NetworkError,
    error_for_status,
    redact,
)
from autofix.core.llm.openai import FINISH_REASONS, build_chat_messages, decode_arguments, to_function_tools
from autofix.core.llm.types import (
    LLMRequest,
    LLMResponse,
    StopReason,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from autofix.utils.logging import get_logger

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# ReAct-style tool call parsing for models without native tool support
# ---------------------------------------------------------------------------

_REACT_ACTION_RE = re.compile(r"Action:\s*(\w+)\s*\nAction Input:\s*")
_JSON_DECODER = json.JSONDecoder()


def build_react_system(system: str | None, tools: list[ToolDefinition]) -> str:
    """Build a ReAct-style system prompt for models without native tool calling."""
    parts: list[str] = []
    if system:
        parts.append(system)

    if tools:
        parts.append("\n\n## Tools\nYou have the following tools. To use one, respond with:\n")
        parts.append("Thought: <your reasoning>\nAction: <tool_name>\nAction Input: <json arguments>\n")
        parts.append("When you are done, respond normally without Action/Action Input.\n")
        for tool in tools:
            schema = json.dumps(tool.input_schema, indent=2)
            parts.append(f"### {tool.name}\n{tool.description}\nParameters: {schema}\n")

    return "\n".join(parts)


def parse_react_response(text: str) -> tuple[str, list[ToolCall]]:
    """Split ReAct-formatted text into content and at most one tool call."""
    match = _REACT_ACTION_RE.search(text)
    if not match:
        return text, []

    # Decode exactly one JSON value; models often keep writing after it
    try:
        arguments, _ = _JSON_DECODER.raw_decode(text, match.end())
    except json.JSONDecodeError:
        log.warning("react_input_undecodable", tool=match.group(1))
        arguments = None

    tool_call = ToolCall(
        id=f"react_{uuid4().hex[:12]}",
        name=match.group(1),
        input=arguments,
    )
    return text[: match.start()].strip(), [tool_call]


class OllamaProvider(LLMProvider):
    """Local model provider speaking the OpenAI chat-completions dialect."""

    provider_type = ProviderType.OLLAMA

    def __init__(self, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.validate_config(config)
        self._config = config
        self._model = config.model
        self._endpoint = config.api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=config.timeout_secs,
            base_url=self._endpoint,
            transport=transport,
        )

    @classmethod
    def validate_config(cls, config: ProviderConfig) -> None:
        require_provider_type(config, ProviderType.OLLAMA, "Ollama")
        # No API key needed for local usage
        if not config.api_base.startswith(("http://localhost:", "http://127.0.0.1:")):
            raise ConfigurationError(
                "Ollama endpoint must be localhost (http://localhost:11434/v1 or similar)"
            )
        if not config.model:
            raise ConfigurationError("Model name is required for Ollama provider")

    async def complete(self, request: LLMRequest) -> LLMResponse:
        body = self._build_body(request)
        resp = await self._post_with_retry("/chat/completions", body)
        try:
            data = resp.json()
        except json.JSONDecodeError:
            raise InvalidRequestError("Ollama returned a non-JSON body") from None
        return self._parse_response(data, react=bool(request.tools) and not self.supports_tools())

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        body = self._build_body(request)
        body["stream"] = True

        try:
            async with self._client.stream("POST", "/chat/completions", json=body) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    payload = line[6:]
                    if payload.strip() == "[DONE]":
                        break
                    try:
                        chunk = json.loads(payload)
                        text = chunk["choices"][0].get("delta", {}).get("content", "")
                    except (json.JSONDecodeError, KeyError, IndexError):
                        continue
                    if text:
                        yield text
        except httpx.HTTPStatusError as e:
            raise error_for_status(e.response.status_code, self._redact(str(e))) from None
        except httpx.TransportError as e:
            raise NetworkError(self._redact(str(e))) from None

    def max_context_length(self) -> int:
        model = self._model
        if "codellama" in model:
            return 16384
        if "mistral" in model:
            return 32768
        if "llama3" in model:
            return 8192
        if "llama2" in model:
            return 4096
        if "phi" in model:
            return 2048
        return 4096

    def supports_streaming(self) -> bool:
        return True

    def supports_tools(self) -> bool:
        # Native function calling is model-dependent; use the ReAct prompt instead
        return False

    async def close(self) -> None:
        await self._client.aclose()

    def _build_body(self, request: LLMRequest) -> dict[str, Any]:
        system = request.system_prompt
        if request.tools and not self.supports_tools():
            system = build_react_system(system, request.tools)

        body: dict[str, Any] = {
            "model": self._model,
            "messages": build_chat_messages(request, system=system),
        }
        if request.tools and self.supports_tools():
            body["tools"] = to_function_tools(request.tools)
            body["tool_choice"] = "auto"
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    def _parse_response(self, data: dict[str, Any], react: bool) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise InvalidRequestError("No choices in response")
        choice = choices[0]
        msg = choice.get("message", {})
        content = msg.get("content") or ""

        tool_calls = [
            ToolCall(
                id=tc.get("id") or f"call_{uuid4().hex[:12]}",
                name=tc.get("function", {}).get("name", ""),
                input=decode_arguments(tc.get("function", {}).get("arguments", "{}")),
            )
            for tc in msg.get("tool_calls") or []
        ]
        if not tool_calls and react:
            content, tool_calls = parse_react_response(content)

        usage_info = data.get("usage")
        if usage_info:
            usage = TokenUsage(
                input_tokens=usage_info.get("prompt_tokens", 0),
                output_tokens=usage_info.get("completion_tokens", 0),
            )
        else:
            usage = TokenUsage(input_tokens=0, output_tokens=len(content) // CHARS_PER_TOKEN)

        stop_reason = FINISH_REASONS.get(choice.get("finish_reason"), StopReason.ERROR)
        if react and tool_calls:
            stop_reason = StopReason.TOOL_USE

        return LLMResponse(
            content=content or None,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
        )

    def _redact(self, text: str) -> str:
        return redact(text, self._config.api_key_value())

    async def _post_with_retry(self, path: str, body: dict[str, Any]) -> httpx.Response:
        max_retries = self._config.max_retries
        for attempt in range(max_retries + 1):
            try:
                resp = await self._client.post(path, json=body)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if attempt == max_retries or status < 500:
                    raise error_for_status(status, self._redact(str(e))) from None
                log.warning("ollama_retry", status=status, attempt=attempt)
            except httpx.TransportError as e:
                if attempt == max_retries:
                    raise NetworkError(self._redact(str(e))) from None
                log.warning("ollama_connect_retry", attempt=attempt)
            await asyncio.sleep((2 ** attempt) + random.uniform(0, 1))
        raise RuntimeError("Unreachable")
