"""Workspace inspection tool: list, read, search and find."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field

from autofix.tools.base import BaseTool, ToolResult
from autofix.utils.logging import get_logger

log = get_logger(__name__)

_SKIPPED_DIRS = {"build", "DerivedData"}
_MAX_SEARCH_RESULTS = 200


class DirectoryInspectorInput(BaseModel):
    operation: Literal["list", "read", "search", "find"] = Field(
        description="The operation to perform"
    )
    path: str = Field(description="The file or directory path, relative to the workspace")
    pattern: str | None = Field(
        default=None,
        description="Optional search pattern (regex for search, glob for find)",
    )


class DirectoryInspectorTool(BaseTool):
    input_model: ClassVar[type[BaseModel]] = DirectoryInspectorInput

    @property
    def name(self) -> str:
        return "directory_inspector"

    @property
    def description(self) -> str:
        return (
            "Inspect the file system, read files and search for content.\n"
            'Operations:\n'
            '- "list": List files and directories in a path. Returns [{name, type, path}].\n'
            '- "read": Read the contents of a file. Returns {content}.\n'
            '- "search": Search for a regex in files. Returns [{file, line_number, content}].\n'
            '- "find": Find files by name pattern (glob). Returns a list of file paths.'
        )

    async def execute(self, params: DirectoryInspectorInput, workspace_root: Path) -> ToolResult:
        full_path = workspace_root / params.path
        log.debug("directory_inspect", operation=params.operation, path=str(full_path))

        if params.operation == "list":
            return self._list_directory(full_path)
        if params.operation == "read":
            return self._read_file(full_path)
        if not params.pattern:
            return ToolResult(
                success=False,
                message=f"Pattern is required for {params.operation} operation",
                error="missing pattern",
            )
        if params.operation == "search":
            return self._search_files(full_path, params.pattern)
        return self._find_files(full_path, params.pattern)

    def _list_directory(self, path: Path) -> ToolResult:
        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            return ToolResult(success=False, message="Failed to list directory", error=str(e))

        items = [
            {
                "name": entry.name,
                "type": "directory" if entry.is_dir() else "file",
                "path": str(entry),
            }
            for entry in entries
        ]
        return ToolResult(success=True, message=f"{len(items)} entries", data={"entries": items})

    def _read_file(self, path: Path) -> ToolResult:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return ToolResult(success=False, message="Failed to read file", error=str(e))
        return ToolResult(success=True, message=f"Read {path}", data={"content": content})

    def _search_files(self, path: Path, pattern: str) -> ToolResult:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return ToolResult(success=False, message="Invalid regex pattern", error=str(e))

        results: list[dict[str, Any]] = []
        try:
            self._search_in(path, regex, results)
        except OSError as e:
            return ToolResult(success=False, message="Search failed", error=str(e))

        truncated = len(results) > _MAX_SEARCH_RESULTS
        data: dict[str, Any] = {"matches": results[:_MAX_SEARCH_RESULTS]}
        if truncated:
            data["truncated"] = True
        return ToolResult(success=True, message=f"{len(results)} matches", data=data)

    def _search_in(self, path: Path, regex: re.Pattern[str], results: list[dict[str, Any]]) -> None:
        if path.is_file():
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError):
                return
            for number, line in enumerate(lines, start=1):
                if regex.search(line):
                    results.append({"file": str(path), "line_number": number, "content": line})
        elif path.is_dir():
            for entry in sorted(path.iterdir()):
                if entry.name.startswith(".") or entry.name in _SKIPPED_DIRS:
                    continue
                self._search_in(entry, regex, results)

    def _find_files(self, path: Path, pattern: str) -> ToolResult:
        if not path.is_dir():
            return ToolResult(success=False, message=f"Not a directory: {path}", error="invalid path")
        try:
            files = sorted(str(p) for p in path.rglob(pattern))
        except (OSError, ValueError) as e:
            return ToolResult(success=False, message="Glob pattern error", error=str(e))
        return ToolResult(success=True, message=f"{len(files)} files", data={"files": files})
