"""Agent loop: gated LLM calls with iterative tool execution.

One :class:`ConversationEngine` drives one repair session. Each iteration
replays the full turn history to the provider, waits on the shared rate
limiter, dispatches any tool calls the model asks for and folds their results
into the next user turn. The loop ends when the model stops calling tools,
gives up with a ``GIVING UP:`` location, or the iteration budget runs out.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence, Union

from autofix.core.llm import (
    LLMProvider,
    LLMRequest,
    LLMResponse,
    Message,
    MessageRole,
    StopReason,
    ToolCall,
)
from autofix.core.llm.base import CHARS_PER_TOKEN
from autofix.core.rate_limiter import RateLimiter
from autofix.tools.base import BaseTool, ToolResult
from autofix.utils.logging import get_logger

log = get_logger(__name__)

GIVE_UP_MARKER = "GIVING UP:"
DEFAULT_MAX_ITERATIONS = 20
# Estimation weight of a block that cannot be replayed as text (images, tool-use)
NON_TEXT_BLOCK_CHARS = 100

_IMAGE_TYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg"}


# ---------------------------------------------------------------------------
# Content blocks and history
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ImageBlock:
    path: str
    media_type: str = "image/png"


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Any


@dataclass(frozen=True)
class ToolResultBlock:
    tool_call_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True)
class Turn:
    user_content: tuple[ContentBlock, ...]
    assistant_content: tuple[ContentBlock, ...]


class Outcome(str, Enum):
    SUCCESS = "success"
    GAVE_UP = "gave_up"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass(frozen=True)
class GiveUpLocation:
    file_path: str
    line: int

    @property
    def xcode_url(self) -> str:
        return f"xed://open?file={self.file_path}&line={self.line}"

    def to_payload(self) -> dict[str, Any]:
        return {"file": self.file_path, "line": self.line, "url": self.xcode_url}


@dataclass(frozen=True)
class ConversationResult:
    outcome: Outcome
    iterations: int
    turns: tuple[Turn, ...]
    give_up: GiveUpLocation | None = None
    final_text: str | None = None


def parse_give_up(text: str) -> GiveUpLocation | None:
    """Extract the ``File:`` / ``Line:`` location from a give-up message."""
    file_path: str | None = None
    line_number: int | None = None

    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("File:"):
            file_path = line[len("File:"):].strip() or None
        elif line.startswith("Line:"):
            try:
                line_number = int(line[len("Line:"):].strip())
            except ValueError:
                line_number = None

    if file_path is None or line_number is None:
        return None
    return GiveUpLocation(file_path=file_path, line=line_number)


def image_block(path: Path) -> ImageBlock:
    return ImageBlock(path=str(path), media_type=_IMAGE_TYPES.get(path.suffix.lower(), "image/png"))


def find_latest_snapshot(directory: Path | None) -> Path | None:
    """Newest png/jpg in ``directory``, by modification time."""
    if directory is None or not directory.is_dir():
        return None
    images = [
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in _IMAGE_TYPES
    ]
    if not images:
        return None
    return max(images, key=lambda p: p.stat().st_mtime)


def _user_text(blocks: Sequence[ContentBlock]) -> tuple[str, int]:
    parts: list[str] = []
    dropped = 0
    for block in blocks:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolResultBlock):
            parts.append(block.content)
        else:
            dropped += 1
    return "\n".join(parts), dropped


def _assistant_text(blocks: Sequence[ContentBlock]) -> tuple[str, int]:
    parts: list[str] = []
    dropped = 0
    for block in blocks:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        else:
            dropped += 1
    return "\n".join(parts), dropped


def flatten_history(
    turns: Sequence[Turn], pending: Sequence[ContentBlock]
) -> tuple[list[Message], int]:
    """Replay history as plain-text messages.

    Returns the messages plus the number of non-text blocks that could not be
    replayed. Empty joins are skipped rather than sent as empty messages.
    """
    messages: list[Message] = []
    dropped = 0

    for turn in turns:
        user_text, n = _user_text(turn.user_content)
        dropped += n
        if user_text:
            messages.append(Message(role=MessageRole.USER, content=user_text))

        assistant_text, n = _assistant_text(turn.assistant_content)
        dropped += n
        if assistant_text:
            messages.append(Message(role=MessageRole.ASSISTANT, content=assistant_text))

    pending_text, n = _user_text(pending)
    dropped += n
    if pending_text:
        messages.append(Message(role=MessageRole.USER, content=pending_text))

    return messages, dropped


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ConversationEngine:
    """Runs the LLM completion + tool-use loop for one repair session."""

    def __init__(
        self,
        provider: LLMProvider,
        tools: Sequence[BaseTool],
        rate_limiter: RateLimiter,
        workspace_root: Path,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        system_prompt: str | None = None,
        max_tokens: int | None = 1024,
        temperature: float | None = 0.7,
        watched_file: Path | None = None,
        snapshot_dir: Path | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._tool_map: dict[str, BaseTool] = {t.name: t for t in tools}
        self._tool_defs = [t.to_definition() for t in tools]
        self._rate_limiter = rate_limiter
        self._workspace_root = workspace_root
        self._max_iterations = max_iterations
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._watched_file = watched_file
        self._snapshot_dir = snapshot_dir
        self._sleep = sleep
        self._turns: tuple[Turn, ...] = ()
        self._outcome: Outcome | None = None

    @property
    def finished(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    @property
    def turns(self) -> tuple[Turn, ...]:
        return self._turns

    async def run(self, initial_content: Sequence[ContentBlock]) -> ConversationResult:
        """Run until success, give-up or the iteration limit."""
        self._turns = ()
        self._outcome = None
        pending: tuple[ContentBlock, ...] = tuple(initial_content)

        if not self._provider.supports_tools():
            log.info("provider_without_native_tools", provider=self._provider.provider_type.value)

        for iteration in range(1, self._max_iterations + 1):
            log.info("conversation_iteration", iteration=iteration, max_iterations=self._max_iterations)

            request, dropped = self._build_request(pending)
            estimate = self._provider.estimate_tokens(request)
            estimate += dropped * NON_TEXT_BLOCK_CHARS // CHARS_PER_TOKEN
            if estimate > self._provider.max_context_length():
                log.warning(
                    "context_length_exceeded",
                    estimated_tokens=estimate,
                    max_context=self._provider.max_context_length(),
                )

            await self._rate_limiter.wait_for_capacity(estimate, sleep=self._sleep)
            response = await self._provider.complete(request)
            self._rate_limiter.record_usage(response.usage.total_tokens)

            log.debug(
                "model_response",
                stop_reason=response.stop_reason.value,
                tool_calls=len(response.tool_calls),
                estimated_tokens=estimate,
                actual_tokens=response.usage.total_tokens,
                content=response.content,
            )
            if response.stop_reason in (StopReason.MAX_TOKENS, StopReason.ERROR):
                log.warning("unexpected_stop_reason", stop_reason=response.stop_reason.value)

            assistant = self._assistant_blocks(response)
            text = response.content or ""

            if GIVE_UP_MARKER in text:
                self._append_turn(pending, assistant)
                location = parse_give_up(text)
                log.warning(
                    "conversation_gave_up",
                    iteration=iteration,
                    file=location.file_path if location else None,
                    line=location.line if location else None,
                )
                return self._finish(Outcome.GAVE_UP, iteration, text, location)

            if not response.tool_calls:
                self._append_turn(pending, assistant)
                log.info("conversation_finished", iteration=iteration)
                return self._finish(Outcome.SUCCESS, iteration, text)

            results: list[ContentBlock] = []
            failure: ToolResult | None = None
            for call in response.tool_calls:
                block, result = await self._dispatch(call)
                results.append(block)
                if result is not None:
                    failure = result

            self._append_turn(pending, assistant)
            pending = tuple(results)
            if failure is not None:
                pending += self._refresh_context(failure)

        log.warning("conversation_iteration_limit", max_iterations=self._max_iterations)
        return self._finish(Outcome.ITERATION_LIMIT_REACHED, self._max_iterations, None)

    def _build_request(self, pending: Sequence[ContentBlock]) -> tuple[LLMRequest, int]:
        messages, dropped = flatten_history(self._turns, pending)
        if dropped:
            log.debug("non_text_blocks_dropped", count=dropped)
        request = LLMRequest(
            messages=messages,
            system_prompt=self._system_prompt,
            tools=list(self._tool_defs),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        return request, dropped

    @staticmethod
    def _assistant_blocks(response: LLMResponse) -> tuple[ContentBlock, ...]:
        blocks: list[ContentBlock] = []
        if response.content:
            blocks.append(TextBlock(response.content))
        for call in response.tool_calls:
            blocks.append(ToolUseBlock(id=call.id, name=call.name, input=call.input))
        return tuple(blocks)

    def _append_turn(
        self, user: Sequence[ContentBlock], assistant: Sequence[ContentBlock]
    ) -> None:
        self._turns = self._turns + (Turn(tuple(user), tuple(assistant)),)

    def _finish(
        self,
        outcome: Outcome,
        iterations: int,
        text: str | None,
        location: GiveUpLocation | None = None,
    ) -> ConversationResult:
        self._outcome = outcome
        return ConversationResult(
            outcome=outcome,
            iterations=iterations,
            turns=self._turns,
            give_up=location,
            final_text=text,
        )

    async def _dispatch(self, call: ToolCall) -> tuple[ToolResultBlock, ToolResult | None]:
        """Execute one tool call.

        Returns the result block plus the tool result when it is a structured
        test failure. Unknown tools yield an error payload for the model;
        malformed input raises ToolInputError.
        """
        tool = self._tool_map.get(call.name)
        if tool is None:
            log.warning("tool_unknown", tool=call.name, call_id=call.id)
            payload = {"error": f"Unknown tool: {call.name}"}
            return ToolResultBlock(call.id, json.dumps(payload), is_error=True), None

        params = tool.parse_input(call.input)
        log.info("tool_call", tool=call.name, call_id=call.id)
        result = await tool.execute(params, self._workspace_root)
        log.info("tool_result", tool=call.name, success=result.success, message=result.message)

        block = ToolResultBlock(
            call.id,
            json.dumps(result.to_payload(), default=str),
            is_error=not result.success,
        )
        if tool.runs_tests and result.data.get("test_failed"):
            return block, result
        return block, None

    def _refresh_context(self, failure: ToolResult) -> tuple[ContentBlock, ...]:
        """Fresh file state and failure artifacts after a failed test run."""
        blocks: list[ContentBlock] = []
        parts = ["UPDATED CONTEXT after test failure:"]

        if self._watched_file is not None:
            try:
                current = self._watched_file.read_text(encoding="utf-8")
            except OSError as e:
                log.warning("watched_file_unreadable", path=str(self._watched_file), error=str(e))
            else:
                fence = self._watched_file.suffix.lstrip(".")
                parts.append(
                    f"The file {self._watched_file} may have been modified. "
                    f"Here's its current content:\n\n```{fence}\n{current}\n```"
                )

        artifact = failure.data.get("artifact_path")
        if artifact:
            parts.append(f"Result bundle from the failed run: {artifact}")

        snapshot = find_latest_snapshot(self._snapshot_dir)
        if snapshot is not None:
            parts.append("The newest snapshot of the UI state is attached below.")

        blocks.append(TextBlock("\n\n".join(parts)))
        if snapshot is not None:
            blocks.append(image_block(snapshot))

        log.info(
            "context_refreshed",
            file=str(self._watched_file) if self._watched_file else None,
            artifact=artifact,
            snapshot=str(snapshot) if snapshot else None,
        )
        return tuple(blocks)
