"""Tests for the workspace tools."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from autofix.tools import CodeEditorTool, DirectoryInspectorTool, ToolInputError, default_tools
from autofix.tools import test_runner

TEST_ID = "test://com.apple.xcode/MyApp/MyAppUITests/LoginTests/testLogin"


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "MyApp").mkdir()
    (tmp_path / "MyApp" / "LoginView.swift").write_text(
        'Button("Log In") { login() }\n.accessibilityIdentifier("login")\n'
    )
    (tmp_path / "MyApp" / "Settings.swift").write_text("let title = \"Settings\"\n")
    (tmp_path / "build").mkdir()
    (tmp_path / "build" / "Generated.swift").write_text('Button("Log In")\n')
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text('Button("Log In")\n')
    return tmp_path


class TestDefinitions:
    def test_default_tools(self):
        names = [t.name for t in default_tools()]
        assert names == ["directory_inspector", "code_editor", "test_runner"]

    def test_schema_from_input_model(self):
        definition = CodeEditorTool().to_definition()
        assert definition.name == "code_editor"
        assert set(definition.input_schema["required"]) == {"file_path", "old_content", "new_content"}

    def test_only_test_runner_runs_tests(self):
        assert test_runner.TestRunnerTool.runs_tests
        assert not CodeEditorTool.runs_tests
        assert not DirectoryInspectorTool.runs_tests

    def test_parse_input_rejects_bad_shape(self):
        with pytest.raises(ToolInputError) as exc:
            DirectoryInspectorTool().parse_input({"operation": "delete", "path": "."})
        assert exc.value.tool_name == "directory_inspector"


class TestCodeEditor:
    async def test_replaces_content(self, workspace):
        tool = CodeEditorTool()
        params = tool.parse_input({
            "file_path": "MyApp/LoginView.swift",
            "old_content": 'Button("Log In")',
            "new_content": 'Button("Sign In")',
        })

        result = await tool.execute(params, workspace)

        assert result.success
        assert "Successfully edited file" in result.message
        assert 'Button("Sign In")' in (workspace / "MyApp" / "LoginView.swift").read_text()

    async def test_missing_content_leaves_file_untouched(self, workspace):
        tool = CodeEditorTool()
        target = workspace / "MyApp" / "Settings.swift"
        before = target.read_text()

        result = await tool.execute(
            tool.parse_input({"file_path": "MyApp/Settings.swift", "old_content": "nope", "new_content": "x"}),
            workspace,
        )

        assert not result.success
        assert "not found" in result.message
        assert target.read_text() == before

    async def test_missing_file(self, workspace):
        tool = CodeEditorTool()
        result = await tool.execute(
            tool.parse_input({"file_path": "Nope.swift", "old_content": "a", "new_content": "b"}),
            workspace,
        )
        assert not result.success
        assert result.error


class TestDirectoryInspector:
    async def run(self, workspace, **kwargs):
        tool = DirectoryInspectorTool()
        return await tool.execute(tool.parse_input(kwargs), workspace)

    async def test_list(self, workspace):
        result = await self.run(workspace, operation="list", path="MyApp")
        names = [e["name"] for e in result.data["entries"]]
        assert names == ["LoginView.swift", "Settings.swift"]
        assert all(e["type"] == "file" for e in result.data["entries"])

    async def test_read(self, workspace):
        result = await self.run(workspace, operation="read", path="MyApp/Settings.swift")
        assert result.success
        assert result.data["content"] == 'let title = "Settings"\n'

    async def test_read_missing(self, workspace):
        result = await self.run(workspace, operation="read", path="MyApp/Missing.swift")
        assert not result.success

    async def test_search_skips_build_and_hidden(self, workspace):
        result = await self.run(workspace, operation="search", path=".", pattern=r"Log In")
        files = [Path(m["file"]).name for m in result.data["matches"]]
        assert files == ["LoginView.swift"]
        assert result.data["matches"][0]["line_number"] == 1

    async def test_search_requires_pattern(self, workspace):
        result = await self.run(workspace, operation="search", path=".")
        assert not result.success
        assert result.message == "Pattern is required for search operation"

    async def test_search_bad_regex(self, workspace):
        result = await self.run(workspace, operation="search", path=".", pattern="(")
        assert not result.success

    async def test_find(self, workspace):
        result = await self.run(workspace, operation="find", path="MyApp", pattern="*View.swift")
        assert [Path(f).name for f in result.data["files"]] == ["LoginView.swift"]

    async def test_find_requires_pattern(self, workspace):
        result = await self.run(workspace, operation="find", path="MyApp")
        assert result.message == "Pattern is required for find operation"


class TestIdentifierParsing:
    def test_parses_components(self):
        ident = test_runner.TestIdentifier.parse(TEST_ID)
        assert ident.scheme == "MyApp"
        assert ident.target == "MyAppUITests"
        assert ident.test_path == "MyAppUITests/LoginTests/testLogin"

    @pytest.mark.parametrize("raw", [
        "MyApp/MyAppUITests/LoginTests",
        "test://com.apple.xcode/MyApp",
        "test://com.apple.xcode//MyAppUITests/LoginTests",
    ])
    def test_rejects_malformed(self, raw):
        assert test_runner.TestIdentifier.parse(raw) is None

    def test_tail_keeps_end(self):
        text = "a" * 5000 + "END"
        tailed = test_runner._tail(text)
        assert tailed.endswith("END")
        assert "truncated" in tailed
        assert test_runner._tail("short") == "short"


def fake_process(returncode, stdout=b"", stderr=b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock()
    return proc


class TestTestRunner:
    async def test_passing_test(self, workspace, monkeypatch):
        exec_mock = AsyncMock(return_value=fake_process(0, b"** TEST SUCCEEDED **"))
        monkeypatch.setattr(asyncio, "create_subprocess_exec", exec_mock)
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": TEST_ID}), workspace)

        assert result.success
        assert "test_failed" not in result.data
        args = exec_mock.call_args.args
        assert args[0] == "xcodebuild"
        assert args[1] == "test"
        assert "-only-testing:MyAppUITests/LoginTests/testLogin" in args
        assert exec_mock.call_args.kwargs["cwd"] == str(workspace)

    async def test_failing_test_reports_artifact(self, workspace, monkeypatch):
        def spawn(*args, **kwargs):
            bundle = Path(args[args.index("-resultBundlePath") + 1])
            bundle.mkdir(parents=True)
            return fake_process(65, b"** TEST FAILED **", b"assertion failed")

        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(side_effect=spawn))
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": TEST_ID}), workspace)

        assert not result.success
        assert result.data["test_failed"] is True
        assert result.data["exit_code"] == 65
        assert result.data["stderr"] == "assertion failed"
        artifact = Path(result.data["artifact_path"])
        assert artifact.name == "result.xcresult"
        assert workspace / ".autofix" / "test-runner-tool" in artifact.parents

    async def test_build_targets_test_target(self, workspace, monkeypatch):
        exec_mock = AsyncMock(return_value=fake_process(0))
        monkeypatch.setattr(asyncio, "create_subprocess_exec", exec_mock)
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "build", "test_identifier": TEST_ID}), workspace)

        assert result.success
        args = exec_mock.call_args.args
        assert args[1] == "build"
        assert args[args.index("-target") + 1] == "MyAppUITests"

    async def test_missing_executable_is_transport_failure(self, workspace, monkeypatch):
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("xcodebuild")))
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": TEST_ID}), workspace)

        assert not result.success
        assert result.error
        assert "test_failed" not in result.data

    async def test_invalid_identifier(self, workspace, monkeypatch):
        exec_mock = AsyncMock()
        monkeypatch.setattr(asyncio, "create_subprocess_exec", exec_mock)
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": "bogus"}), workspace)

        assert not result.success
        assert "Invalid test identifier" in result.message
        exec_mock.assert_not_awaited()

    async def test_timeout(self, workspace, monkeypatch):
        proc = fake_process(None)

        async def hang():
            await asyncio.sleep(10)

        proc.communicate = hang
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(return_value=proc))
        tool = test_runner.TestRunnerTool(timeout=0.01)

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": TEST_ID}), workspace)

        assert not result.success
        assert result.error == "timeout"
        proc.kill.assert_called_once()

    async def test_unwritable_result_dir_is_transport_failure(self, workspace, monkeypatch):
        exec_mock = AsyncMock()
        monkeypatch.setattr(asyncio, "create_subprocess_exec", exec_mock)
        original_mkdir = Path.mkdir

        def mkdir(self, *args, **kwargs):
            if self.name == "test":
                raise OSError("read-only file system")
            return original_mkdir(self, *args, **kwargs)

        monkeypatch.setattr(Path, "mkdir", mkdir)
        tool = test_runner.TestRunnerTool()

        result = await tool.execute(tool.parse_input({"operation": "test", "test_identifier": TEST_ID}), workspace)

        assert not result.success
        assert result.error == "read-only file system"
        assert "test_failed" not in result.data
        exec_mock.assert_not_awaited()
