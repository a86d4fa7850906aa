"""Tests for conch.core.loop — the core agent loop."""

from __future__ import annotations

import asyncio

import pytest

from conch.core.loop import AgentLoop
from conch.core.prompts import ITERATION_LIMIT_MESSAGE, STOP_TOOLS_INSTRUCTION
from conch.core.session import ConversationSession
from conch.errors import CommandExecutionError, TransportError
from conch.permissions.approval import AutoApproveGateway, ScriptedGateway
from conch.tools.registry import ToolRegistry
from conch.types.events import (
    ApprovalDecision,
    ApprovalRequest,
    ContentUpdate,
    MessageAppended,
    ReasoningUpdate,
    TurnComplete,
)
from conch.types.messages import Message, MessageRole, ToolCall
from conch.types.streaming import ContentDelta, StreamError
from tests.conftest import (
    RecordingExecutor,
    ScriptedClient,
    ScriptedTurn,
    fixed_settings,
    make_tool_call,
)

SERVER = "Host: web-1, User: deploy, OS: Linux"


def _make_loop(
    turns: list,
    executor: RecordingExecutor | None = None,
    **kwargs,
) -> tuple[AgentLoop, ScriptedClient, RecordingExecutor]:
    """Helper to create an AgentLoop with ScriptedClient."""
    client = ScriptedClient(turns=turns)
    executor = executor or RecordingExecutor()
    loop = AgentLoop(client, ToolRegistry.with_defaults(), executor, **kwargs)
    return loop, client, executor


def _disk_call(call_id: str = "c1") -> ToolCall:
    return make_tool_call(call_id, "get_system_info", category="disk", explanation="check disk")


async def _events(loop: AgentLoop, prompt: str, approve: bool | None = None) -> list:
    events = []
    async for event in loop.run(prompt, [], SERVER):
        events.append(event)
        if isinstance(event, ApprovalRequest) and approve is not None:
            if approve:
                event.approve()
            else:
                event.deny()
    return events


class HangingClient(ScriptedClient):
    """Sends one delta, then blocks until cancelled, like a stalled backend."""

    def __init__(self):
        super().__init__(turns=[])
        self.started = asyncio.Event()

    async def stream_turn(self, session, history, server_context, extra_instruction=None):
        yield ContentDelta("partial")
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            yield StreamError(TransportError("cancelled"))
            raise


class RecordingObserver:
    def __init__(self):
        self.reasoning: list[str] = []
        self.content: list[str] = []
        self.messages: list[Message] = []

    def on_reasoning(self, text: str) -> None:
        self.reasoning.append(text)

    def on_content(self, text: str) -> None:
        self.content.append(text)

    def on_message(self, message: Message) -> None:
        self.messages.append(message)


class TestTextOnly:
    @pytest.mark.asyncio
    async def test_simple_reply(self):
        loop, client, executor = _make_loop([ScriptedTurn(text="Hello! Ready.")])

        messages = await loop.execute("hi", [], SERVER)

        assert [m.role for m in messages] == [MessageRole.ASSISTANT]
        assert messages[0].content == "Hello! Ready."
        assert len(client.requests) == 1
        assert client.requests[0].server_context == SERVER
        assert client.requests[0].history[-1].content == "hi"
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_history_not_mutated(self):
        history = [Message.user("earlier"), Message.assistant("sure")]
        loop, client, _ = _make_loop([ScriptedTurn(text="ok")])

        messages = await loop.execute("now", history, SERVER)

        assert len(history) == 2
        assert [m.content for m in client.requests[0].history] == ["earlier", "sure", "now"]
        assert all(m.role is not MessageRole.USER for m in messages)

    @pytest.mark.asyncio
    async def test_records_turn(self):
        session = ConversationSession()
        loop, _, _ = _make_loop([ScriptedTurn(text="ok")], session=session)
        await loop.execute("hi", [], SERVER)
        assert session.turns == 1


class TestToolRounds:
    @pytest.mark.asyncio
    async def test_safe_tool_then_reply(self):
        executor = RecordingExecutor({"df -h": "/dev/sda1  40G  30G  10G  75% /"})
        loop, client, _ = _make_loop(
            [
                ScriptedTurn(reasoning="Check df.", tool_calls=[_disk_call()]),
                ScriptedTurn(text="You have 10G free."),
            ],
            executor,
        )

        messages = await loop.execute("how much disk is left?", [], SERVER)

        assert [m.role for m in messages] == [MessageRole.COMMAND, MessageRole.ASSISTANT]
        command, reply = messages
        assert command.tool_call.id == "c1"
        assert command.content == "check disk"
        assert command.tool_output == "/dev/sda1  40G  30G  10G  75% /"
        assert command.reasoning == "Check df."
        assert reply.content == "You have 10G free."
        assert reply.reasoning == "Check df."
        assert executor.commands == ["df -h"]

        second = client.requests[1].history
        assert [m.role for m in second] == [MessageRole.USER, MessageRole.COMMAND]

    @pytest.mark.asyncio
    async def test_call_without_explanation_runs(self):
        call = ToolCall.create("c1", "get_system_info", '{"category": "disk"}')
        executor = RecordingExecutor({"df -h": "10G free"})
        loop, _, _ = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="10G free")], executor)

        messages = await loop.execute("how much disk is left?", [], SERVER)

        assert [m.role for m in messages] == [MessageRole.COMMAND, MessageRole.ASSISTANT]
        assert messages[0].content == "get_system_info"
        assert messages[0].tool_output == "10G free"
        assert executor.commands == ["df -h"]

    @pytest.mark.asyncio
    async def test_multiple_calls_in_order(self):
        read = make_tool_call("c2", "read_file", path="/etc/hostname", explanation="read name")
        loop, _, executor = _make_loop([
            ScriptedTurn(reasoning="Two things.", tool_calls=[_disk_call(), read]),
            ScriptedTurn(text="done"),
        ])

        messages = await loop.execute("disk and hostname", [], SERVER)

        commands = [m for m in messages if m.role is MessageRole.COMMAND]
        assert [m.tool_call.id for m in commands] == ["c1", "c2"]
        assert executor.commands == ["df -h", "cat '/etc/hostname'"]
        # Reasoning rides on the first command of the round only.
        assert commands[0].reasoning == "Two things."
        assert commands[1].reasoning is None

    @pytest.mark.asyncio
    async def test_reasoning_joined_across_rounds(self):
        loop, _, _ = _make_loop([
            ScriptedTurn(reasoning="First.", tool_calls=[_disk_call()]),
            ScriptedTurn(reasoning="Second.", text="done"),
        ])
        messages = await loop.execute("disk", [], SERVER)
        assert messages[-1].reasoning == "First.\n\nSecond."


class TestSafetyGate:
    @pytest.mark.asyncio
    async def test_forbidden_never_runs(self):
        gateway = ScriptedGateway([ApprovalDecision.APPROVED])
        call = make_tool_call(
            "c1", "execute_ssh_command", command="rm -rf /", explanation="wipe", is_destructive=True,
        )
        loop, _, executor = _make_loop([
            ScriptedTurn(tool_calls=[call]),
            ScriptedTurn(text="I won't do that."),
        ])

        messages = await loop.execute("wipe the disk", [], SERVER, gateway=gateway)

        assert messages[0].role is MessageRole.SYSTEM
        assert messages[0].content == (
            "BLOCKED: This operation is forbidden for safety reasons (execute_ssh_command)"
        )
        assert executor.commands == []
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_denied_restart(self):
        call = make_tool_call("c1", "manage_service", service="nginx", action="restart", explanation="restart")
        gateway = ScriptedGateway([ApprovalDecision.DENIED])
        loop, _, executor = _make_loop([
            ScriptedTurn(tool_calls=[call]),
            ScriptedTurn(text="Okay, I left nginx alone."),
        ])

        messages = await loop.execute("restart nginx", [], SERVER, gateway=gateway)

        assert messages[0].content == "DENIED: User rejected this tool call (manage_service)"
        assert messages[1].content == "Okay, I left nginx alone."
        assert gateway.requests == [call]
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_approved_restart(self):
        call = make_tool_call("c1", "manage_service", service="nginx", action="restart", explanation="restart")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="Restarted.")])

        messages = await loop.execute("restart nginx", [], SERVER, gateway=AutoApproveGateway())

        assert messages[0].role is MessageRole.COMMAND
        assert executor.commands == ["sudo systemctl restart 'nginx'"]

    @pytest.mark.asyncio
    async def test_no_gateway_denies(self):
        call = make_tool_call("c1", "write_file", path="/tmp/x", content="y", explanation="write")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="ok")])

        messages = await loop.execute("write", [], SERVER)

        assert messages[0].content.startswith("DENIED:")
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_failing_gateway_denies(self):
        class BrokenGateway:
            async def request_approval(self, tool_call):
                raise EOFError("stdin closed")

        call = make_tool_call("c1", "write_file", path="/tmp/x", content="y", explanation="write")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="ok")])

        messages = await loop.execute("write", [], SERVER, gateway=BrokenGateway())

        assert messages[0].content.startswith("DENIED:")
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_approval_request_event(self):
        call = make_tool_call("c1", "write_file", path="/tmp/x", content="y", explanation="write")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="ok")])

        events = await _events(loop, "write", approve=True)

        requests = [e for e in events if isinstance(e, ApprovalRequest)]
        assert len(requests) == 1
        assert requests[0].tool_call == call
        assert len(executor.commands) == 1
        assert isinstance(events[-1], TurnComplete)

    @pytest.mark.asyncio
    async def test_approval_request_denied_via_event(self):
        call = make_tool_call("c1", "write_file", path="/tmp/x", content="y", explanation="write")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="ok")])

        events = await _events(loop, "write", approve=False)

        appended = [e.message for e in events if isinstance(e, MessageAppended)]
        assert appended[0].content == "DENIED: User rejected this tool call (write_file)"
        assert executor.commands == []


class TestDispatchErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        call = make_tool_call("c1", "format_disk", explanation="format")
        loop, client, _ = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="sorry")])

        messages = await loop.execute("format", [], SERVER)

        assert messages[0].role is MessageRole.SYSTEM
        assert messages[0].content == "ERROR: Unknown tool 'format_disk'"
        assert len(client.requests) == 2

    @pytest.mark.asyncio
    async def test_missing_arguments(self):
        call = make_tool_call("c1", "read_file", explanation="read")
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="sorry")])

        messages = await loop.execute("read", [], SERVER)

        assert messages[0].content == (
            "ERROR: Invalid arguments for read_file: missing required parameter 'path'"
        )
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_malformed_json_arguments(self):
        call = ToolCall.create("c1", "read_file", '{"path": "/etc/')
        loop, _, executor = _make_loop([ScriptedTurn(tool_calls=[call]), ScriptedTurn(text="sorry")])

        messages = await loop.execute("read", [], SERVER)

        assert messages[0].content.startswith("ERROR: Invalid arguments for read_file:")
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_execution_failure_becomes_output(self):
        executor = RecordingExecutor(error=CommandExecutionError("connection closed"))
        loop, _, _ = _make_loop([ScriptedTurn(tool_calls=[_disk_call()]), ScriptedTurn(text="sorry")], executor)

        messages = await loop.execute("disk", [], SERVER)

        assert messages[0].role is MessageRole.COMMAND
        assert messages[0].tool_output == "ERROR: connection closed"
        assert messages[1].content == "sorry"

    @pytest.mark.asyncio
    async def test_any_tool_exception_becomes_output(self):
        executor = RecordingExecutor(error=TransportError("backend gone"))
        loop, client, _ = _make_loop([ScriptedTurn(tool_calls=[_disk_call()]), ScriptedTurn(text="sorry")], executor)

        messages = await loop.execute("disk", [], SERVER)

        assert messages[0].role is MessageRole.COMMAND
        assert messages[0].tool_output == "ERROR: backend gone"
        assert messages[1].content == "sorry"
        assert len(client.requests) == 2


class TestStreamFailures:
    @pytest.mark.asyncio
    async def test_stream_error_ends_turn(self):
        session = ConversationSession()
        loop, _, _ = _make_loop(
            [[ContentDelta("par"), StreamError(TransportError("HTTP 500", status_code=500))]],
            session=session,
        )
        with pytest.raises(TransportError) as exc_info:
            await loop.execute("hi", [], SERVER)
        assert exc_info.value.status_code == 500
        assert session.turns == 0

    @pytest.mark.asyncio
    async def test_stream_without_terminal_event(self):
        loop, _, _ = _make_loop([[ContentDelta("cut off")]])
        with pytest.raises(TransportError, match="terminal"):
            await loop.execute("hi", [], SERVER)

    @pytest.mark.asyncio
    async def test_cancel_surfaces_as_cancellation(self):
        client = HangingClient()
        session = ConversationSession()
        loop = AgentLoop(client, ToolRegistry.with_defaults(), RecordingExecutor(), session=session)

        task = asyncio.create_task(loop.execute("hi", [], SERVER))
        await client.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
        assert session.turns == 0

    @pytest.mark.asyncio
    async def test_caller_timeout(self):
        loop = AgentLoop(HangingClient(), ToolRegistry.with_defaults(), RecordingExecutor())
        with pytest.raises(TimeoutError):
            async with asyncio.timeout(0.05):
                await loop.execute("hi", [], SERVER)


class TestIterationLimit:
    @pytest.mark.asyncio
    async def test_limit_reached(self):
        turns = [ScriptedTurn(tool_calls=[_disk_call(f"c{i}")]) for i in range(4)]
        loop, client, executor = _make_loop(turns, max_iterations=3)

        events = await _events(loop, "keep checking")

        assert client.extra_instructions == [None, None, None, STOP_TOOLS_INSTRUCTION]
        assert len(executor.commands) == 3
        done = events[-1]
        assert isinstance(done, TurnComplete)
        assert done.rounds == 3
        assert done.hit_iteration_limit
        assert done.messages[-1].role is MessageRole.SYSTEM
        assert done.messages[-1].content == ITERATION_LIMIT_MESSAGE

    @pytest.mark.asyncio
    async def test_reply_after_stop_instruction(self):
        turns = [ScriptedTurn(tool_calls=[_disk_call("c1")]), ScriptedTurn(text="Summary.")]
        loop, client, _ = _make_loop(turns, max_iterations=1)

        events = await _events(loop, "check")

        assert client.extra_instructions == [None, STOP_TOOLS_INSTRUCTION]
        done = events[-1]
        assert not done.hit_iteration_limit
        assert done.messages[-1].content == "Summary."

    @pytest.mark.asyncio
    async def test_limit_from_settings(self):
        turns = [ScriptedTurn(tool_calls=[_disk_call(f"c{i}")]) for i in range(3)]
        loop, client, _ = _make_loop(turns, settings=fixed_settings(max_iterations=2))

        await loop.execute("check", [], SERVER)

        assert client.extra_instructions == [None, None, STOP_TOOLS_INSTRUCTION]


class TestObserver:
    @pytest.mark.asyncio
    async def test_callbacks(self):
        observer = RecordingObserver()
        loop, _, _ = _make_loop([
            ScriptedTurn(reasoning="Thinking.", tool_calls=[_disk_call()]),
            ScriptedTurn(text="All good."),
        ])

        await loop.execute("disk", [], SERVER, observer=observer)

        assert observer.reasoning == ["Thinking."]
        assert observer.content == ["All good."]
        assert [m.role for m in observer.messages] == [MessageRole.COMMAND, MessageRole.ASSISTANT]

    @pytest.mark.asyncio
    async def test_event_order(self):
        loop, _, _ = _make_loop([ScriptedTurn(reasoning="Hm.", text="Hi.")])

        events = await _events(loop, "hi")

        assert [type(e) for e in events] == [ReasoningUpdate, ContentUpdate, MessageAppended, TurnComplete]
