"""The core agent loop — orchestrates the model, the tools and the human."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import aclosing
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from conch.core.prompts import ITERATION_LIMIT_MESSAGE, STOP_TOOLS_INSTRUCTION
from conch.core.session import ConversationSession
from conch.errors import (
    InvalidArgumentsError,
    TransportError,
    UnknownToolError,
)
from conch.executors.base import CommandExecutor
from conch.permissions.approval import ConfirmationGateway
from conch.providers.base import StreamingClient
from conch.tools.registry import ToolRegistry
from conch.types.config import SettingsProvider
from conch.types.events import (
    AgentEvent,
    ApprovalDecision,
    ApprovalRequest,
    ContentUpdate,
    MessageAppended,
    ReasoningUpdate,
    TurnComplete,
)
from conch.types.messages import Message, MessageRole, TextResponse, ToolCall
from conch.types.streaming import ContentDelta, DeltaAccumulator, ReasoningDelta
from conch.types.tools import SafetyLevel, ToolArguments

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class AgentObserver(Protocol):
    """Receives streaming updates while :meth:`AgentLoop.execute` runs."""

    def on_reasoning(self, text: str) -> None: ...

    def on_content(self, text: str) -> None: ...

    def on_message(self, message: Message) -> None: ...


class AgentLoop:
    """The core agent loop.

    Orchestrates: user message -> model -> tool calls -> model -> ... -> reply,
    bounded by ``max_iterations`` dispatch rounds.

    :meth:`run` is an async generator of :data:`AgentEvent` objects;
    :meth:`execute` drives it with an observer and a confirmation gateway.
    """

    def __init__(
        self,
        client: StreamingClient,
        registry: ToolRegistry,
        executor: CommandExecutor,
        *,
        session: ConversationSession | None = None,
        max_iterations: int | None = None,
        settings: SettingsProvider | None = None,
    ):
        self._client = client
        self._registry = registry
        self._executor = executor
        self._session = session or ConversationSession()
        self._max_iterations = max_iterations
        self._settings = settings

    @property
    def session(self) -> ConversationSession:
        return self._session

    def _resolve_max_iterations(self) -> int:
        if self._max_iterations is not None:
            return max(1, self._max_iterations)
        if self._settings is not None:
            return max(1, self._settings().max_iterations)
        return DEFAULT_MAX_ITERATIONS

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def run(
        self,
        user_message: str,
        history: list[Message],
        server_context: str,
    ) -> AsyncIterator[AgentEvent]:
        """Run one turn. Yields events; the last one is :class:`TurnComplete`.

        *history* is not modified.  The messages appended during the turn are
        returned in ``TurnComplete.messages``; the user message itself is the
        caller's to persist.
        """
        max_iterations = self._resolve_max_iterations()
        working: list[Message] = [*history, Message.user(user_message)]
        appended: list[Message] = []
        reasoning_parts: list[str] = []

        def append(msg: Message) -> MessageAppended:
            working.append(msg)
            appended.append(msg)
            return MessageAppended(msg)

        acc = DeltaAccumulator()
        async for event in self._request(working, server_context, None, acc):
            yield event
        response = acc.response()

        rounds = 0
        hit_limit = False
        while True:
            if response.reasoning:
                reasoning_parts.append(response.reasoning)

            if isinstance(response, TextResponse):
                reasoning = "\n\n".join(reasoning_parts) or None
                yield append(Message.assistant(response.text, reasoning=reasoning))
                break

            if rounds >= max_iterations:
                logger.warning("Tool call limit of %d rounds reached", max_iterations)
                hit_limit = True
                yield append(Message.system(ITERATION_LIMIT_MESSAGE))
                break

            rounds += 1
            logger.debug("Round %d: %d tool call(s)", rounds, len(response.tool_calls))

            round_reasoning = response.reasoning
            queue: deque[ToolCall] = deque(response.tool_calls)
            while queue:
                tool_call = queue.popleft()
                before = len(appended)
                async for event in self._dispatch(tool_call, round_reasoning, append):
                    yield event
                if any(m.role is MessageRole.COMMAND for m in appended[before:]):
                    round_reasoning = None

            extra = STOP_TOOLS_INSTRUCTION if rounds == max_iterations else None
            acc = DeltaAccumulator()
            async for event in self._request(working, server_context, extra, acc):
                yield event
            response = acc.response()

        self._session.record_turn()
        yield TurnComplete(messages=tuple(appended), rounds=rounds, hit_iteration_limit=hit_limit)

    async def _request(
        self,
        working: list[Message],
        server_context: str,
        extra_instruction: str | None,
        acc: DeltaAccumulator,
    ) -> AsyncIterator[AgentEvent]:
        """Stream one model response into *acc*, forwarding text deltas."""
        stream = self._client.stream_turn(
            self._session, list(working), server_context, extra_instruction,
        )
        try:
            async with aclosing(stream):
                async for delta in stream:
                    acc.feed(delta)
                    match delta:
                        case ReasoningDelta(text=t):
                            yield ReasoningUpdate(t)
                        case ContentDelta(text=t):
                            yield ContentUpdate(t)
        except TransportError:
            # The client reports a cancelled read as an error event; the
            # caller still has to see the cancellation itself.
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise asyncio.CancelledError from None
            raise
        if not acc.finished:
            raise TransportError("Stream ended without a terminal event")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        tool_call: ToolCall,
        reasoning: str | None,
        append: Callable[[Message], MessageAppended],
    ) -> AsyncIterator[AgentEvent]:
        name = tool_call.tool_name
        try:
            tool = self._registry.require(name)
        except UnknownToolError as exc:
            logger.debug("Unknown tool %r", name)
            yield append(Message.system(f"ERROR: {exc}"))
            return

        try:
            args = ToolArguments.validate(tool.definition, tool_call.decoded_arguments())
        except InvalidArgumentsError as exc:
            logger.debug("Invalid arguments for %s: %s", name, exc)
            yield append(Message.system(f"ERROR: Invalid arguments for {name}: {exc}"))
            return

        level = tool.classify(args)
        logger.debug("Tool %s classified as %s", name, level.value)

        if level is SafetyLevel.FORBIDDEN:
            yield append(Message.system(
                f"BLOCKED: This operation is forbidden for safety reasons ({name})"
            ))
            return

        if level is SafetyLevel.NEEDS_CONFIRMATION:
            future: asyncio.Future[ApprovalDecision] = asyncio.get_running_loop().create_future()
            yield ApprovalRequest(tool_call=tool_call, future=future)
            decision = await future
            if decision is not ApprovalDecision.APPROVED:
                yield append(Message.system(f"DENIED: User rejected this tool call ({name})"))
                return

        try:
            result = await tool.execute(args, self._executor)
            output = result.output
        except Exception as exc:
            logger.debug("Tool %s failed: %s", name, exc)
            output = f"ERROR: {exc}"

        yield append(Message.command(tool_call, output, reasoning=reasoning))

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def execute(
        self,
        user_message: str,
        history: list[Message],
        server_context: str,
        observer: AgentObserver | None = None,
        gateway: ConfirmationGateway | None = None,
    ) -> list[Message]:
        """Run one turn to completion and return the appended messages.

        Approval requests go to *gateway*; without one they are denied.
        """
        messages: list[Message] = []
        async for event in self.run(user_message, history, server_context):
            match event:
                case ReasoningUpdate(text=t):
                    if observer is not None:
                        observer.on_reasoning(t)
                case ContentUpdate(text=t):
                    if observer is not None:
                        observer.on_content(t)
                case MessageAppended(message=m):
                    if observer is not None:
                        observer.on_message(m)
                case ApprovalRequest():
                    event.resolve(await self._ask(gateway, event.tool_call))
                case TurnComplete(messages=msgs):
                    messages = list(msgs)
        return messages

    @staticmethod
    async def _ask(gateway: ConfirmationGateway | None, tool_call: ToolCall) -> ApprovalDecision:
        if gateway is None:
            return ApprovalDecision.DENIED
        try:
            return await gateway.request_approval(tool_call)
        except Exception as exc:
            logger.warning("Approval prompt failed, denying %s: %s", tool_call.tool_name, exc)
            return ApprovalDecision.DENIED
