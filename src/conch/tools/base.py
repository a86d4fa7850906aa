"""Base tool class with shared logic."""

from __future__ import annotations

from abc import ABC, abstractmethod

from conch.executors.base import CommandExecutor
from conch.types.tools import SafetyLevel, ToolArguments, ToolDef, ToolResultData


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def definition(self) -> ToolDef:
        ...

    @property
    def name(self) -> str:
        return self.definition.name

    @abstractmethod
    def classify(self, args: ToolArguments) -> SafetyLevel:
        ...

    @abstractmethod
    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        ...

    def _error(self, msg: str) -> ToolResultData:
        return ToolResultData(output=msg, is_error=True)

    def _ok(self, output: str) -> ToolResultData:
        return ToolResultData(output=output)


class ReadOnlyTool(BaseTool):
    """A tool that only inspects the host and never needs confirmation."""

    def classify(self, args: ToolArguments) -> SafetyLevel:
        return SafetyLevel.SAFE
