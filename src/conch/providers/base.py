"""Shared client plumbing: connection-loss retry and tool schema conversion."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING, Any

import httpx

from conch.types.messages import Message
from conch.types.streaming import StreamingDelta
from conch.types.tools import ToolDef, ToolParam

if TYPE_CHECKING:
    from conch.core.session import ConversationSession

logger = logging.getLogger(__name__)

# A dropped connection before the first delta is retried once after a fixed pause.
CONNECTION_RETRY_DELAY: float = 0.5

_CONNECTION_LOST_ERRORS: tuple[type[BaseException], ...] = (
    httpx.RemoteProtocolError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.ConnectError,
)


def is_connection_lost(exc: BaseException) -> bool:
    """Return True when *exc* means the peer dropped the connection.

    Timeouts are not connection loss: the backend may still be working and a
    blind retry would double the bill.
    """
    return isinstance(exc, _CONNECTION_LOST_ERRORS)


def param_to_schema(param: ToolParam) -> dict[str, Any]:
    """Render a single :class:`ToolParam` as a JSON Schema property dict."""
    prop: dict[str, Any] = {
        "type": param.type,
        "description": param.description,
    }
    if param.enum is not None:
        prop["enum"] = list(param.enum)
    # Array types require an items schema (OpenAI enforces this).
    if param.type == "array":
        prop["items"] = {"type": "string"}
    return prop


def tool_def_to_openai(tool: ToolDef) -> dict[str, Any]:
    """Convert a :class:`ToolDef` into an OpenAI ``tools`` entry.

    Parameters
    ----------
    tool:
        Tool definition to convert.

    Returns
    -------
    dict[str, Any]
        ``{"type": "function", "function": {name, description, parameters}}``.

    Examples
    --------
    >>> entry = tool_def_to_openai(ToolDef(
    ...     name="read_file",
    ...     description="Read a file.",
    ...     parameters=(ToolParam(name="path", type="string", description="Path"),),
    ... ))
    >>> entry["function"]["parameters"]["required"]
    ['path']
    """
    properties: dict[str, Any] = {}
    required_params: list[str] = []
    for param in tool.parameters:
        properties[param.name] = param_to_schema(param)
        if param.required:
            required_params.append(param.name)

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required_params:
        schema["required"] = required_params

    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": schema,
        },
    }


def tool_defs_to_openai(tools: Iterable[ToolDef]) -> list[dict[str, Any]]:
    return [tool_def_to_openai(t) for t in tools]


class StreamingClient(ABC):
    """Abstract base for backends the agent loop can drive.

    Concrete sub-classes must implement :meth:`stream_turn`.
    """

    @abstractmethod
    def stream_turn(
        self,
        session: ConversationSession,
        history: list[Message],
        server_context: str,
        extra_instruction: str | None = None,
    ) -> AsyncIterator[StreamingDelta]:
        """Stream one model response for *history*.

        Implementations are ``async def`` generators.  The stream always ends
        with exactly one ``StreamDone`` or ``StreamError``; request-building
        and configuration failures may be raised before the first delta.

        Parameters
        ----------
        session:
            Owner of the cached compression summary.
        history:
            Conversation so far, including the new user message.
        server_context:
            One-line description of the target host for the system prompt.
        extra_instruction:
            Appended as a trailing system message (used to stop tool calls).
        """
        ...
