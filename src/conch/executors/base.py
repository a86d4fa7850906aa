"""CommandExecutor protocol + shared output formatting."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from conch.errors import CommandExecutionError

__all__ = [
    "CommandExecutionError",
    "CommandExecutor",
    "MAX_OUTPUT_CHARS",
    "format_output",
]

MAX_OUTPUT_CHARS = 30_000


@runtime_checkable
class CommandExecutor(Protocol):
    """Runs shell commands on the target host.

    Implementations raise :class:`CommandExecutionError` when a command cannot
    be run at all (connection gone, timeout).  A non-zero exit status is not
    an error: it is reported inside the returned output.
    """

    async def execute(self, command: str, timeout: float | None = None) -> str:
        """Run *command* and return its combined stdout + stderr."""
        ...

    def execute_streaming(
        self, command: str, timeout: float | None = None,
    ) -> AsyncIterator[str]:
        """Run *command* and yield output chunks as they arrive."""
        ...


def format_output(output: str, exit_code: int) -> str:
    """Truncate long output and append the exit code when it is non-zero."""
    if len(output) > MAX_OUTPUT_CHARS:
        truncated = len(output) - MAX_OUTPUT_CHARS
        output = output[:MAX_OUTPUT_CHARS] + f"\n[...{truncated} characters truncated]"
    if exit_code != 0:
        output = output.rstrip("\n") + f"\n[Exit code: {exit_code}]"
    return output
