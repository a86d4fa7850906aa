"""Events yielded by the agent loop while a turn is in progress."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from conch.types.messages import Message, ToolCall


class ApprovalDecision(Enum):
    """Answer to a confirmation request."""

    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class ReasoningUpdate:
    """Streaming reasoning fragment."""

    text: str


@dataclass(frozen=True, slots=True)
class ContentUpdate:
    """Streaming reply fragment."""

    text: str


@dataclass(frozen=True, slots=True)
class MessageAppended:
    """A message was appended to the conversation."""

    message: Message


@dataclass(slots=True)
class ApprovalRequest:
    """The loop is suspended until this request is resolved.

    Resolve it with :meth:`approve` or :meth:`deny` before pulling the next
    event from the loop.
    """

    tool_call: ToolCall
    future: asyncio.Future[ApprovalDecision] = field(repr=False)

    def resolve(self, decision: ApprovalDecision) -> None:
        if not self.future.done():
            self.future.set_result(decision)

    def approve(self) -> None:
        self.resolve(ApprovalDecision.APPROVED)

    def deny(self) -> None:
        self.resolve(ApprovalDecision.DENIED)


@dataclass(frozen=True, slots=True)
class TurnComplete:
    """Final event of a turn."""

    messages: tuple[Message, ...]
    rounds: int = 0
    hit_iteration_limit: bool = False


AgentEvent = ReasoningUpdate | ContentUpdate | MessageAppended | ApprovalRequest | TurnComplete
