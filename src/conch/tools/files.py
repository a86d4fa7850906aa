"""File tools — read_file, write_file, list_directory."""

from __future__ import annotations

from conch.executors.base import CommandExecutor
from conch.tools.base import BaseTool, ReadOnlyTool
from conch.tools.shell import shell_escape
from conch.types.tools import SafetyLevel, ToolArguments, ToolDef, ToolParam, ToolResultData

HEREDOC_MARKER = "CONCH_EOF"

_EXPLANATION = "A brief explanation of why you are running this tool."


class ReadFileTool(ReadOnlyTool):
    """Reads a whole file or a line range."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="read_file",
            description=(
                "Read the contents of a file on the remote server. Supports reading "
                "entire files or specific line ranges."
            ),
            parameters=(
                ToolParam(name="path", type="string", description="Absolute path to the file to read."),
                ToolParam(
                    name="start_line",
                    type="integer",
                    description="Optional 1-based start line. Reads from the beginning if omitted.",
                    required=False,
                ),
                ToolParam(
                    name="end_line",
                    type="integer",
                    description="Optional 1-based inclusive end line. Reads to the end if omitted.",
                    required=False,
                ),
                ToolParam(name="explanation", type="string", description=_EXPLANATION, required=False),
            ),
        )

    @staticmethod
    def build_command(path: str, start_line: int | None, end_line: int | None) -> str:
        quoted = shell_escape(path)
        if start_line is not None and end_line is not None:
            return f"sed -n '{start_line},{end_line}p' {quoted}"
        if start_line is not None:
            return f"tail -n +{start_line} {quoted}"
        if end_line is not None:
            return f"head -n {end_line} {quoted}"
        return f"cat {quoted}"

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        command = self.build_command(
            args.get_str("path"),
            args.optional_int("start_line"),
            args.optional_int("end_line"),
        )
        return self._ok(await executor.execute(command))


class WriteFileTool(BaseTool):
    """Writes or appends text through a quoted heredoc."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="write_file",
            description=(
                "Write content to a file on the remote server. Creates the file if it "
                "does not exist. Overwrites by default; set append to add to the end."
            ),
            parameters=(
                ToolParam(name="path", type="string", description="Absolute path to the file to write."),
                ToolParam(name="content", type="string", description="The text to write."),
                ToolParam(
                    name="append",
                    type="boolean",
                    description="Append instead of overwriting. Defaults to false.",
                    required=False,
                ),
                ToolParam(name="explanation", type="string", description=_EXPLANATION, required=False),
            ),
        )

    def classify(self, args: ToolArguments) -> SafetyLevel:
        return SafetyLevel.NEEDS_CONFIRMATION

    @staticmethod
    def build_command(path: str, content: str, append: bool) -> str:
        op = ">>" if append else ">"
        return f"cat <<'{HEREDOC_MARKER}' {op} {shell_escape(path)}\n{content}\n{HEREDOC_MARKER}"

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        path = args.get_str("path")
        append = args.get_bool("append")
        content = args.get_str("content")
        if any(line == HEREDOC_MARKER for line in content.splitlines()):
            return self._error(f"content must not contain a line equal to {HEREDOC_MARKER}")

        output = await executor.execute(self.build_command(path, content, append))
        if output.strip():
            return self._ok(output)
        verb = "Appended to" if append else "Written to"
        return self._ok(f"{verb} {path} successfully")


class ListDirectoryTool(ReadOnlyTool):
    """``ls`` with optional hidden files and long format."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="list_directory",
            description="List files and directories at the specified path on the remote server.",
            parameters=(
                ToolParam(
                    name="path",
                    type="string",
                    description="Directory to list. Defaults to the current directory.",
                    required=False,
                ),
                ToolParam(
                    name="show_hidden",
                    type="boolean",
                    description="Show dotfiles. Defaults to false.",
                    required=False,
                ),
                ToolParam(
                    name="long_format",
                    type="boolean",
                    description="Show permissions, size and date. Defaults to true.",
                    required=False,
                ),
                ToolParam(name="explanation", type="string", description=_EXPLANATION, required=False),
            ),
        )

    @staticmethod
    def build_command(path: str, show_hidden: bool, long_format: bool) -> str:
        flags = ""
        if long_format:
            flags += "l"
        if show_hidden:
            flags += "a"
        flags += "h"
        return f"ls -{flags} {shell_escape(path)}"

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        command = self.build_command(
            args.get_str("path", ".") or ".",
            args.get_bool("show_hidden"),
            args.get_bool("long_format", default=True),
        )
        return self._ok(await executor.execute(command))
