"""Conversation message types."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from conch.errors import InvalidArgumentsError


class MessageRole(Enum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"
    COMMAND = "command"  # A tool invocation together with its output
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function invocation requested by the model."""

    id: str
    tool_name: str
    arguments_json: str = "{}"
    explanation: str = ""

    @classmethod
    def create(cls, id: str, tool_name: str, arguments_json: str) -> ToolCall:
        """Build a ToolCall, taking the explanation from the arguments if present."""
        explanation = tool_name
        try:
            args = json.loads(arguments_json) if arguments_json else {}
        except json.JSONDecodeError:
            args = None
        if isinstance(args, dict) and isinstance(args.get("explanation"), str):
            explanation = args["explanation"]
        return cls(
            id=id,
            tool_name=tool_name,
            arguments_json=arguments_json,
            explanation=explanation,
        )

    def decoded_arguments(self) -> dict[str, Any]:
        """Decode the raw arguments into a dict.

        Raises :class:`InvalidArgumentsError` if they are not a JSON object.
        """
        raw = self.arguments_json or "{}"
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidArgumentsError(f"Arguments are not valid JSON: {exc}") from exc
        if not isinstance(value, dict):
            raise InvalidArgumentsError("Arguments must be a JSON object")
        return value

    def to_wire(self) -> dict[str, Any]:
        """OpenAI ``tool_calls`` entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.tool_name, "arguments": self.arguments_json or "{}"},
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Message:
    """A single entry in a conversation.

    ``tool_call`` and ``tool_output`` are only valid on ``command`` messages.
    """

    role: MessageRole
    content: str = ""
    tool_call: ToolCall | None = None
    tool_output: str | None = None
    reasoning: str | None = None
    timestamp: datetime = field(default_factory=_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_loading: bool = False

    def __post_init__(self) -> None:
        if self.role is not MessageRole.COMMAND and (
            self.tool_call is not None or self.tool_output is not None
        ):
            raise ValueError("tool_call/tool_output are only allowed on command messages")

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, reasoning: str | None = None) -> Message:
        return cls(role=MessageRole.ASSISTANT, content=content, reasoning=reasoning)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def command(
        cls,
        tool_call: ToolCall,
        output: str,
        reasoning: str | None = None,
    ) -> Message:
        return cls(
            role=MessageRole.COMMAND,
            content=tool_call.explanation,
            tool_call=tool_call,
            tool_output=output,
            reasoning=reasoning,
        )


@dataclass(frozen=True, slots=True)
class TextResponse:
    """The model answered with text."""

    text: str
    reasoning: str | None = None


@dataclass(frozen=True, slots=True)
class ToolCallResponse:
    """The model asked for one or more tool calls."""

    tool_calls: tuple[ToolCall, ...]
    reasoning: str | None = None


AgentResponse = TextResponse | ToolCallResponse
