"""Command executors for the target host."""

from conch.executors.base import CommandExecutor, format_output
from conch.executors.local import LocalCommandExecutor

__all__ = ["CommandExecutor", "LocalCommandExecutor", "format_output"]
