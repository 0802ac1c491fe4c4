"""Base tool interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from autofix.core.llm.types import ToolDefinition


@dataclass
class ToolResult:
    success: bool
    message: str = ""
    error: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready form handed back to the model."""
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.error:
            payload["error"] = self.error
        if self.data:
            payload["data"] = self.data
        return payload


class ToolInputError(Exception):
    """Model-supplied input does not match the tool's declared shape."""

    def __init__(self, tool_name: str, details: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Invalid input for tool '{tool_name}': {details}")


class BaseTool(ABC):
    input_model: ClassVar[type[BaseModel]]
    # Test-execution tools report structured failures the engine reacts to
    runs_tests: ClassVar[bool] = False

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        return self.input_model.model_json_schema()

    def parse_input(self, raw: Any) -> BaseModel:
        try:
            return self.input_model.model_validate(raw)
        except ValidationError as e:
            raise ToolInputError(self.name, str(e)) from e

    @abstractmethod
    async def execute(self, params: Any, workspace_root: Path) -> ToolResult: ...

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.parameters,
        )
