"""Autofix tools."""

from autofix.tools.base import BaseTool, ToolInputError, ToolResult
from autofix.tools.code_editor import CodeEditorTool
from autofix.tools.directory_inspector import DirectoryInspectorTool
from autofix.tools.test_runner import DEFAULT_TIMEOUT, TestRunnerTool

__all__ = [
    "BaseTool",
    "ToolInputError",
    "ToolResult",
    "CodeEditorTool",
    "DirectoryInspectorTool",
    "TestRunnerTool",
    "default_tools",
]


def default_tools(test_timeout: float = DEFAULT_TIMEOUT) -> list[BaseTool]:
    return [DirectoryInspectorTool(), CodeEditorTool(), TestRunnerTool(timeout=test_timeout)]
