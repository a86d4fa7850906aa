"""Fixed texts used by the agent loop and the backend client."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from conch.types.tools import ToolDef

SYSTEM_PROMPT = """\
You are Conch, an assistant that operates a remote server over SSH on behalf of the user.

## Your Role
- Turn the user's request into tool calls against the server
- Work step by step and read each result before deciding the next call
- Explain what you are doing in the language the user writes in
- Split multi-step tasks into one tool call at a time

## Server
{server_context}

## Tools
{tool_list}

## Rules
1. Pick the tool that fits the task
2. Prefer the dedicated read-only tools (read_file, list_directory, get_system_info, ...) for inspection
3. Fall back to execute_ssh_command only when no dedicated tool fits
4. With execute_ssh_command, set is_destructive to false only for read-only commands
5. Never run destructive commands such as "rm -rf /", "mkfs" or "dd if=/dev/zero"
6. Give every tool call a short explanation
7. Look at each tool output before choosing the next step
8. Finish with a plain-language summary, not a tool call
9. When a tool call fails, explain the error and suggest an alternative
10. Keep explanations short and useful
11. Reply in the user's language
"""

STOP_TOOLS_INSTRUCTION = (
    "You have reached the tool call limit for this request. Do not call any more "
    "tools. Summarize what you found and what is still left to do."
)

ITERATION_LIMIT_MESSAGE = "Reached maximum tool execution limit"

SUMMARY_PROMPT = (
    "Summarize the following conversation in under 200 words. Keep key facts, "
    "decisions, and command results. Write in the same language as the conversation."
)


def describe_server(host: str, username: str, os_name: str = "Linux") -> str:
    """One-line server description for the system prompt."""
    return f"Host: {host}, User: {username}, OS: {os_name}"


def format_tool_list(definitions: Iterable[ToolDef]) -> str:
    return "\n".join(f"- {d.name}: {d.description}" for d in definitions)


def build_system_prompt(server_context: str, definitions: Iterable[ToolDef]) -> str:
    """Render the system prompt for one request."""
    return SYSTEM_PROMPT.format(
        server_context=server_context or "unknown",
        tool_list=format_tool_list(definitions),
    )


def build_summary_request(messages: Sequence[dict[str, Any]]) -> str:
    """Flatten wire messages into the summarization prompt."""
    lines = []
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, str) and content:
            lines.append(f"{msg.get('role', 'unknown')}: {content}")
    return SUMMARY_PROMPT + "\n\n" + "\n".join(lines)
