"""Repair session wiring: settings, provider, limiter, tools and engine."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Sequence

from autofix.config import Settings
from autofix.core.conversation import (
    ContentBlock,
    ConversationEngine,
    ConversationResult,
    TextBlock,
    find_latest_snapshot,
    image_block,
)
from autofix.core.llm import LLMProvider, create_provider
from autofix.core.prompts import (
    SYSTEM_PROMPT,
    FailingTest,
    build_analysis_prompt,
    build_autofix_prompt,
)
from autofix.core.rate_limiter import RateLimiter
from autofix.tools import BaseTool, default_tools
from autofix.utils.logging import get_logger

log = get_logger(__name__)


class RepairMode(str, Enum):
    AUTOFIX = "autofix"
    ANALYZE = "analyze"


class AutofixPipeline:
    """One repair session for one failing test."""

    def __init__(
        self,
        settings: Settings,
        workspace: Path,
        test_file: Path,
        failing_test: FailingTest,
        mode: RepairMode | str = RepairMode.AUTOFIX,
        snapshot_dir: Path | None = None,
        provider: LLMProvider | None = None,
        rate_limiter: RateLimiter | None = None,
        tools: Sequence[BaseTool] | None = None,
    ) -> None:
        self.settings = settings
        self.workspace = workspace
        self.test_file = test_file
        self.failing_test = failing_test
        self.mode = RepairMode(mode)
        self.snapshot_dir = snapshot_dir
        self._provider = provider
        self._owns_provider = provider is None
        self._rate_limiter = rate_limiter
        self._tools = tools

    def build_initial_content(self, test_file_contents: str) -> list[ContentBlock]:
        snapshot = find_latest_snapshot(self.snapshot_dir)
        builder = build_autofix_prompt if self.mode == RepairMode.AUTOFIX else build_analysis_prompt
        prompt = builder(
            self.failing_test,
            test_file_contents,
            self.workspace,
            has_snapshot=snapshot is not None,
        )
        content: list[ContentBlock] = [TextBlock(prompt)]
        if snapshot is not None:
            content.append(image_block(snapshot))
        return content

    async def run(self) -> ConversationResult:
        test_file_contents = self.test_file.read_text(encoding="utf-8")

        provider_config = self.settings.provider_config()
        provider = self._provider
        if provider is None:
            provider = create_provider(provider_config)
        rate_limiter = self._rate_limiter or RateLimiter.from_config(provider_config)
        tools = self._tools
        if tools is None:
            tools = default_tools(test_timeout=self.settings.test_timeout_secs)

        log.info(
            "repair_session_start",
            mode=self.mode.value,
            test=self.failing_test.name,
            provider=provider.provider_type.value,
            workspace=str(self.workspace),
        )

        engine = ConversationEngine(
            provider=provider,
            tools=tools,
            rate_limiter=rate_limiter,
            workspace_root=self.workspace,
            max_iterations=self.settings.max_iterations,
            system_prompt=SYSTEM_PROMPT,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            watched_file=self.test_file,
            snapshot_dir=self.snapshot_dir,
        )
        try:
            result = await engine.run(self.build_initial_content(test_file_contents))
        finally:
            if self._owns_provider:
                await provider.close()

        log.info(
            "repair_session_done",
            outcome=result.outcome.value,
            iterations=result.iterations,
        )
        return result
