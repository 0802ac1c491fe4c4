"""Tests for prompts, the repair pipeline and the CLI."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from click.testing import CliRunner

from autofix import main as cli_module
from autofix.config import ProviderType, Settings
from autofix.core import pipeline as pipeline_module
from autofix.core.conversation import (
    ConversationResult,
    GiveUpLocation,
    ImageBlock,
    Outcome,
    find_latest_snapshot,
)
from autofix.core.llm import LLMResponse, ServerError, StopReason, TokenUsage
from autofix.core.pipeline import AutofixPipeline, RepairMode
from autofix.core.prompts import (
    SYSTEM_PROMPT,
    FailingTest,
    build_analysis_prompt,
    build_autofix_prompt,
)
from autofix.core.rate_limiter import RateLimiter

TEST_ID = "test://com.apple.xcode/MyApp/MyAppUITests/LoginTests/testLogin"
TEST_SOURCE = 'func testLogin() { XCTAssert(app.buttons["Sign In"].exists) }'


def mock_provider(*responses):
    provider = MagicMock()
    provider.provider_type = ProviderType.CLAUDE
    provider.complete = AsyncMock(side_effect=list(responses))
    provider.close = AsyncMock()
    provider.estimate_tokens.return_value = 100
    provider.max_context_length.return_value = 200_000
    provider.supports_tools.return_value = True
    return provider


def done(text="Fixed"):
    return LLMResponse(content=text, stop_reason=StopReason.END_TURN, usage=TokenUsage(10, 5))


@pytest.fixture
def settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return Settings(max_iterations=3, anthropic_api_key="sk-ant-test")


@pytest.fixture
def test_file(tmp_path):
    path = tmp_path / "LoginTests.swift"
    path.write_text(TEST_SOURCE)
    return path


class TestPrompts:
    def test_failing_test_name(self):
        assert FailingTest(TEST_ID).name == "testLogin"
        assert FailingTest(TEST_ID, test_name="Login flow").name == "Login flow"

    def test_system_prompt_explains_give_up(self):
        assert "GIVING UP:" in SYSTEM_PROMPT
        assert "File:" in SYSTEM_PROMPT
        assert "Line:" in SYSTEM_PROMPT

    def test_autofix_prompt(self, tmp_path):
        prompt = build_autofix_prompt(FailingTest(TEST_ID), TEST_SOURCE, tmp_path, has_snapshot=True)
        assert "THE TEST IS THE SOURCE OF TRUTH" in prompt
        assert TEST_SOURCE in prompt
        assert TEST_ID in prompt
        assert str(tmp_path) in prompt
        assert "Simulator Snapshot" in prompt

    def test_analysis_prompt(self, tmp_path):
        prompt = build_analysis_prompt(FailingTest(TEST_ID), TEST_SOURCE, tmp_path, has_snapshot=False)
        assert "THE APPLICATION CODE IS CORRECT" in prompt
        assert "No simulator snapshot" in prompt


class TestSnapshots:
    def test_newest_image_wins(self, tmp_path):
        old = tmp_path / "old.png"
        new = tmp_path / "new.jpg"
        old.write_bytes(b"1")
        new.write_bytes(b"2")
        (tmp_path / "notes.txt").write_text("x")
        os.utime(old, (1_000, 1_000))
        os.utime(new, (2_000, 2_000))

        assert find_latest_snapshot(tmp_path) == new

    def test_missing_dir(self, tmp_path):
        assert find_latest_snapshot(tmp_path / "nope") is None
        assert find_latest_snapshot(None) is None


class TestAutofixPipeline:
    async def test_runs_engine_with_prompt(self, settings, tmp_path, test_file):
        provider = mock_provider(done())
        pipeline = AutofixPipeline(
            settings,
            workspace=tmp_path,
            test_file=test_file,
            failing_test=FailingTest(TEST_ID),
            provider=provider,
            rate_limiter=RateLimiter(None),
            tools=[],
        )

        result = await pipeline.run()

        assert result.outcome == Outcome.SUCCESS
        request = provider.complete.call_args.args[0]
        assert request.system_prompt == SYSTEM_PROMPT
        assert request.max_tokens == 1024
        assert TEST_SOURCE in request.messages[0].content
        assert "THE TEST IS THE SOURCE OF TRUTH" in request.messages[0].content
        # Injected providers are owned by the caller
        provider.close.assert_not_awaited()

    async def test_analyze_mode_with_snapshot(self, settings, tmp_path, test_file):
        snapshots = tmp_path / "snaps"
        snapshots.mkdir()
        (snapshots / "fail.png").write_bytes(b"png")
        pipeline = AutofixPipeline(
            settings,
            workspace=tmp_path,
            test_file=test_file,
            failing_test=FailingTest(TEST_ID),
            mode="analyze",
            snapshot_dir=snapshots,
        )

        content = pipeline.build_initial_content(TEST_SOURCE)

        assert pipeline.mode == RepairMode.ANALYZE
        assert "THE APPLICATION CODE IS CORRECT" in content[0].text
        assert "Simulator Snapshot" in content[0].text
        assert content[1] == ImageBlock(path=str(snapshots / "fail.png"), media_type="image/png")

    async def test_closes_provider_it_created(self, settings, tmp_path, test_file, monkeypatch):
        provider = mock_provider(ServerError(500))
        monkeypatch.setattr(pipeline_module, "create_provider", MagicMock(return_value=provider))
        pipeline = AutofixPipeline(
            settings,
            workspace=tmp_path,
            test_file=test_file,
            failing_test=FailingTest(TEST_ID),
            tools=[],
        )

        with pytest.raises(ServerError):
            await pipeline.run()

        provider.close.assert_awaited_once()

    async def test_iteration_budget_from_settings(self, settings, tmp_path, test_file):
        from autofix.core.llm import ToolCall

        responses = [
            LLMResponse(
                tool_calls=[ToolCall(id=f"tc{i}", name="missing", input={})],
                stop_reason=StopReason.TOOL_USE,
            )
            for i in range(3)
        ]
        provider = mock_provider(*responses)
        pipeline = AutofixPipeline(
            settings,
            workspace=tmp_path,
            test_file=test_file,
            failing_test=FailingTest(TEST_ID),
            provider=provider,
            rate_limiter=RateLimiter(None),
            tools=[],
        )

        result = await pipeline.run()

        assert result.outcome == Outcome.ITERATION_LIMIT_REACHED
        assert result.iterations == 3


class TestCli:
    @pytest.fixture
    def args(self, tmp_path, test_file):
        return ["--workspace", str(tmp_path), "--test-file", str(test_file), "--test-id", TEST_ID]

    def test_give_up_prints_location(self, args, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        result = ConversationResult(
            outcome=Outcome.GAVE_UP,
            iterations=4,
            turns=(),
            give_up=GiveUpLocation("/a/b/Test.swift", 42),
            final_text="GIVING UP: stuck",
        )
        monkeypatch.setattr(cli_module.AutofixPipeline, "run", AsyncMock(return_value=result))

        out = CliRunner().invoke(cli_module.cli, args)

        assert out.exit_code == 0
        assert "gave_up" in out.output
        assert '"line": 42' in out.output
        assert "xed://open?file=/a/b/Test.swift&line=42" in out.output

    def test_provider_failure_exits_nonzero(self, args, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(
            cli_module.AutofixPipeline, "run", AsyncMock(side_effect=ServerError(502, "bad gateway"))
        )

        out = CliRunner().invoke(cli_module.cli, args)

        assert out.exit_code == 1

    def test_rejects_unknown_mode(self, args):
        out = CliRunner().invoke(cli_module.cli, [*args, "--mode", "yolo"])
        assert out.exit_code != 0

    def test_console_entry_point(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["autofix", "--help"])

        with pytest.raises(SystemExit) as exc:
            cli_module.main()

        assert exc.value.code == 0
        assert "--test-id" in capsys.readouterr().out
