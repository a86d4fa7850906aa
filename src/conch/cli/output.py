"""Rich-powered terminal output and confirmation prompt."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from conch.permissions.approval import describe_tool_call
from conch.types.events import ApprovalDecision
from conch.types.messages import Message, MessageRole, ToolCall

# ── Palette ──────────────────────────────────────────────────────────────────

STYLE_REASONING = "dim italic #94a3b8"
STYLE_TOOL_NAME = "bold #a78bfa"
STYLE_TOOL_DETAIL = "#7c7c8a"
STYLE_OUTPUT = "#e2e8f0"
STYLE_ERROR = "bold #f87171"
STYLE_SYSTEM = "#fbbf24"
STYLE_PROMPT = "bold #fbbf24"

_MAX_OUTPUT_LINES = 20


class RichRenderer:
    """Renders loop updates: reasoning and reply stream live, commands as panels.

    Implements the ``AgentObserver`` callbacks.
    """

    def __init__(self, console: Console | None = None, stdout: Console | None = None) -> None:
        self._console = console or Console(stderr=True)
        self._stdout = stdout or Console()
        self._in_reasoning = False
        self._in_content = False

    def _end_stream(self) -> None:
        if self._in_reasoning:
            self._console.print()
            self._in_reasoning = False
        if self._in_content:
            self._stdout.print()
            self._in_content = False

    def on_reasoning(self, text: str) -> None:
        if self._in_content:
            self._end_stream()
        self._in_reasoning = True
        self._console.print(text, end="", style=STYLE_REASONING, highlight=False)

    def on_content(self, text: str) -> None:
        if self._in_reasoning:
            self._end_stream()
        self._in_content = True
        self._stdout.print(text, end="", highlight=False, markup=False)

    def on_message(self, message: Message) -> None:
        match message.role:
            case MessageRole.COMMAND:
                self._end_stream()
                self._print_command(message)
            case MessageRole.SYSTEM:
                self._end_stream()
                style = STYLE_ERROR if message.content.startswith(("ERROR", "BLOCKED")) else STYLE_SYSTEM
                self._console.print(Text(message.content, style=style))
            case MessageRole.ASSISTANT:
                # The reply was already streamed through on_content.
                self._end_stream()
            case _:
                pass

    def _print_command(self, message: Message) -> None:
        tool_call = message.tool_call
        if tool_call is None:
            return
        title = Text.assemble(
            (f" {tool_call.tool_name} ", STYLE_TOOL_NAME),
            (describe_tool_call(tool_call), STYLE_TOOL_DETAIL),
        )
        output = (message.tool_output or "").rstrip("\n")
        lines = output.splitlines()
        if len(lines) > _MAX_OUTPUT_LINES:
            hidden = len(lines) - _MAX_OUTPUT_LINES
            output = "\n".join(lines[:_MAX_OUTPUT_LINES]) + f"\n... {hidden} more lines"
        style = STYLE_ERROR if output.startswith("ERROR:") else STYLE_OUTPUT
        self._console.print(Panel(
            Text(output or "(no output)", style=style),
            title=title,
            title_align="left",
            border_style="#7c7c8a",
            expand=False,
            padding=(0, 1),
        ))


class RichConfirmationGateway:
    """Rich-formatted interactive approval prompt."""

    def __init__(
        self,
        console: Console | None = None,
        read_line: Callable[[], str] = input,
    ) -> None:
        self._console = console or Console(stderr=True)
        self._read_line = read_line

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        """Show a styled approval prompt and wait for y/n."""
        title = Text(f" ◆ {tool_call.tool_name} ", style=STYLE_PROMPT)
        body = Text(describe_tool_call(tool_call), style="#94a3b8")

        self._console.print()
        self._console.print(Panel(
            body,
            title=title,
            border_style="#fbbf24",
            expand=False,
            padding=(0, 1),
        ))

        loop = asyncio.get_running_loop()
        self._console.print(f"[{STYLE_PROMPT}]Allow?[/] [#7c7c8a](y/n)[/] › ", end="")
        try:
            answer = await loop.run_in_executor(None, self._read_line)
        except (EOFError, KeyboardInterrupt):
            self._console.print()
            return ApprovalDecision.DENIED
        if answer.strip().lower() in ("y", "yes"):
            return ApprovalDecision.APPROVED
        return ApprovalDecision.DENIED
