"""Incremental events produced while reading a streaming response."""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass

from conch.types.messages import AgentResponse, TextResponse, ToolCall, ToolCallResponse


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    """A fragment of reasoning text."""

    text: str


@dataclass(frozen=True, slots=True)
class ContentDelta:
    """A fragment of reply text."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolCallDelta:
    """A fully accumulated tool call."""

    tool_call: ToolCall


@dataclass(frozen=True, slots=True)
class StreamDone:
    """The stream ended normally."""


@dataclass(frozen=True, slots=True)
class StreamError:
    """The stream failed. Always the last event."""

    error: Exception


StreamingDelta = ReasoningDelta | ContentDelta | ToolCallDelta | StreamDone | StreamError


class DeltaAccumulator:
    """Collapses a delta stream into a single :data:`AgentResponse`.

    Usage::

        acc = DeltaAccumulator()
        async for delta in stream:
            acc.feed(delta)   # re-raises the error carried by StreamError
        response = acc.response()
    """

    def __init__(self) -> None:
        self._reasoning: list[str] = []
        self._content: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self.finished = False

    def feed(self, delta: StreamingDelta) -> None:
        match delta:
            case ReasoningDelta(text=t):
                self._reasoning.append(t)
            case ContentDelta(text=t):
                self._content.append(t)
            case ToolCallDelta(tool_call=tc):
                self._tool_calls.append(tc)
            case StreamDone():
                self.finished = True
            case StreamError(error=err):
                self.finished = True
                raise err

    def response(self) -> AgentResponse:
        reasoning = "".join(self._reasoning) or None
        if self._tool_calls:
            return ToolCallResponse(tool_calls=tuple(self._tool_calls), reasoning=reasoning)
        return TextResponse(text="".join(self._content), reasoning=reasoning)


async def reduce_deltas(deltas: AsyncIterable[StreamingDelta]) -> AgentResponse:
    """Drain *deltas* and return the reduced response."""
    acc = DeltaAccumulator()
    async for delta in deltas:
        acc.feed(delta)
    return acc.response()
