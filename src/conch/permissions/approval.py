"""Confirmation gateways for tool calls that need a human decision."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from conch.errors import ToolDispatchError
from conch.types.events import ApprovalDecision
from conch.types.messages import ToolCall

__all__ = [
    "ApprovalDecision",
    "AutoApproveGateway",
    "AutoDenyGateway",
    "ConfirmationGateway",
    "ScriptedGateway",
    "StdinConfirmationGateway",
    "describe_tool_call",
]


@runtime_checkable
class ConfirmationGateway(Protocol):
    """Asks a human whether a tool call may run."""

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        """Return APPROVED or DENIED. May wait indefinitely."""
        ...


def _decoded(tool_call: ToolCall) -> dict[str, Any]:
    try:
        return tool_call.decoded_arguments()
    except ToolDispatchError:
        return {}


def describe_tool_call(tool_call: ToolCall) -> str:
    """Build a human-readable one-line description of a tool call."""
    name = tool_call.tool_name
    args = _decoded(tool_call)

    if name == "execute_ssh_command" and "command" in args:
        return f"Run command: {args['command']}"
    if name == "write_file" and "path" in args:
        content = args.get("content", "")
        lines = content.count("\n") + 1 if isinstance(content, str) and content else 0
        verb = "Append to" if args.get("append") else "Write"
        return f"{verb} {args['path']} ({lines} lines)"
    if name == "read_file" and "path" in args:
        return f"Read {args['path']}"
    if name == "list_directory":
        return f"List {args.get('path', '.')}"
    if name == "manage_service" and "service" in args:
        return f"{str(args.get('action', '')).capitalize()} service {args['service']}"
    # Fallback: tool name + truncated args
    args_str = json.dumps(args, default=str)
    if len(args_str) > 80:
        args_str = args_str[:77] + "..."
    return f"{name}({args_str})"


class AutoApproveGateway:
    """Approves everything (``--yes``)."""

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        return ApprovalDecision.APPROVED


class AutoDenyGateway:
    """Denies everything; the default when no human is available."""

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        return ApprovalDecision.DENIED


class ScriptedGateway:
    """Replays a fixed sequence of decisions and records what it was asked.

    Once the script runs out every further request is denied.
    """

    def __init__(self, decisions: Iterable[ApprovalDecision] = ()) -> None:
        self._decisions = list(decisions)
        self.requests: list[ToolCall] = []

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        self.requests.append(tool_call)
        if self._decisions:
            return self._decisions.pop(0)
        return ApprovalDecision.DENIED


class StdinConfirmationGateway:
    """Plain-text approval prompt using stdin/stdout."""

    async def request_approval(self, tool_call: ToolCall) -> ApprovalDecision:
        """Prompt the user with a y/n question."""
        loop = asyncio.get_running_loop()
        prompt = f"\nAllow {tool_call.tool_name}? {describe_tool_call(tool_call)}\n[y/n] > "
        try:
            answer = await loop.run_in_executor(None, lambda: input(prompt))
        except (EOFError, KeyboardInterrupt):
            return ApprovalDecision.DENIED
        if answer.strip().lower() in ("y", "yes"):
            return ApprovalDecision.APPROVED
        return ApprovalDecision.DENIED
