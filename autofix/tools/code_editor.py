"""Exact-string file editing tool."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field

from autofix.tools.base import BaseTool, ToolResult
from autofix.utils.logging import get_logger

log = get_logger(__name__)


class CodeEditorInput(BaseModel):
    file_path: str = Field(description="Relative path to the file within the workspace")
    old_content: str = Field(description="Exact content to be replaced")
    new_content: str = Field(description="New content to replace with")


class CodeEditorTool(BaseTool):
    input_model: ClassVar[type[BaseModel]] = CodeEditorInput

    @property
    def name(self) -> str:
        return "code_editor"

    @property
    def description(self) -> str:
        return (
            "Edit a source file in the workspace by exact string replacement. "
            "Reads the file, verifies old_content occurs in it verbatim, replaces every "
            "occurrence with new_content and writes the file back. "
            "old_content must match exactly, including whitespace and indentation."
        )

    async def execute(self, params: CodeEditorInput, workspace_root: Path) -> ToolResult:
        full_path = workspace_root / params.file_path

        try:
            current = full_path.read_text(encoding="utf-8")
        except OSError as e:
            return ToolResult(
                success=False,
                message=f"Failed to read file: {full_path}",
                error=str(e),
            )

        if params.old_content not in current:
            return ToolResult(
                success=False,
                message=f"Old content not found in file: {full_path}",
                error=(
                    "The exact old_content string was not found in the file. "
                    "Make sure it matches exactly including whitespace."
                ),
            )

        updated = current.replace(params.old_content, params.new_content)
        try:
            full_path.write_text(updated, encoding="utf-8")
        except OSError as e:
            return ToolResult(
                success=False,
                message=f"Failed to write file: {full_path}",
                error=str(e),
            )

        log.info("file_edited", path=str(full_path), removed=len(params.old_content), added=len(params.new_content))
        return ToolResult(success=True, message=f"Successfully edited file: {full_path}")
