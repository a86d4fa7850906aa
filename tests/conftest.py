"""Test fixtures including ScriptedClient for deterministic testing."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import pytest

from conch.core.session import ConversationSession
from conch.providers.base import StreamingClient
from conch.tools.registry import ToolRegistry
from conch.types.config import Settings
from conch.types.messages import Message, ToolCall
from conch.types.streaming import (
    ContentDelta,
    ReasoningDelta,
    StreamDone,
    StreamingDelta,
    ToolCallDelta,
)


def make_tool_call(call_id: str, name: str, **args: Any) -> ToolCall:
    """A ToolCall whose arguments are *args* encoded as JSON."""
    return ToolCall.create(call_id, name, json.dumps(args))


@dataclass
class ScriptedTurn:
    """A scripted model response for ScriptedClient.

    Specify either text or tool_calls (or both) for what the model should "respond" with.
    """

    text: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    def deltas(self) -> list[StreamingDelta]:
        out: list[StreamingDelta] = []
        if self.reasoning:
            out.append(ReasoningDelta(self.reasoning))
        if self.text:
            out.append(ContentDelta(self.text))
        out.extend(ToolCallDelta(tc) for tc in self.tool_calls)
        out.append(StreamDone())
        return out


@dataclass
class RecordedRequest:
    """What the loop sent on one call to ``stream_turn``."""

    history: list[Message]
    server_context: str
    extra_instruction: str | None


class ScriptedClient(StreamingClient):
    """A deterministic streaming client for testing.

    Usage:
        client = ScriptedClient(turns=[
            ScriptedTurn(tool_calls=[make_tool_call("c1", "get_system_info", category="disk",
                                                    explanation="check disk")]),
            ScriptedTurn(text="You have 10G free."),
        ])

    Turns may also be raw delta lists, for streams that end in ``StreamError``.
    """

    def __init__(self, turns: list[ScriptedTurn | list[StreamingDelta]]):
        self._turns = list(turns)
        self._turn_index = 0
        self.requests: list[RecordedRequest] = []

    async def stream_turn(
        self,
        session: ConversationSession,
        history: list[Message],
        server_context: str,
        extra_instruction: str | None = None,
    ) -> AsyncIterator[StreamingDelta]:
        """Yield the scripted deltas for the current turn."""
        self.requests.append(RecordedRequest(list(history), server_context, extra_instruction))
        if self._turn_index >= len(self._turns):
            # No more turns: end with an empty reply
            yield StreamDone()
            return

        turn = self._turns[self._turn_index]
        self._turn_index += 1
        deltas = turn.deltas() if isinstance(turn, ScriptedTurn) else turn
        for delta in deltas:
            yield delta

    @property
    def extra_instructions(self) -> list[str | None]:
        return [r.extra_instruction for r in self.requests]


class RecordingExecutor:
    """A mock command executor that returns scripted output.

    *outputs* maps a command substring to its output; unmatched commands
    return *default*.  Set *error* to make every call raise it.
    """

    def __init__(
        self,
        outputs: dict[str, str] | None = None,
        default: str = "ok",
        error: Exception | None = None,
    ) -> None:
        self._outputs = dict(outputs or {})
        self._default = default
        self._error = error
        self.commands: list[str] = []

    async def execute(self, command: str, timeout: float | None = None) -> str:
        self.commands.append(command)
        if self._error is not None:
            raise self._error
        for needle, output in self._outputs.items():
            if needle in command:
                return output
        return self._default

    async def execute_streaming(
        self, command: str, timeout: float | None = None,
    ) -> AsyncIterator[str]:
        yield await self.execute(command, timeout)


def sse_chunk(delta: dict[str, Any]) -> str:
    """One ``data:`` line carrying *delta* as ``choices[0].delta``."""
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": delta}]}) + "\n\n"


def sse_body(*deltas: dict[str, Any], done: bool = True) -> bytes:
    """A full SSE response body built from *deltas*."""
    body = "".join(sse_chunk(d) for d in deltas)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def fixed_settings(**overrides: Any):
    """A settings provider that always returns the same values."""
    base: dict[str, Any] = {"api_key": "sk-test", "base_url": "https://api.example.com/v1", "model": "test-model"}
    base.update(overrides)
    settings = Settings(**base)
    return lambda: settings


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry.with_defaults()


@pytest.fixture
def session() -> ConversationSession:
    return ConversationSession(server_context="Host: web-1, User: deploy, OS: Linux")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep real keys and config files out of every test."""
    for var in ("CONCH_API_KEY", "OPENAI_API_KEY", "CONCH_BASE_URL", "CONCH_MODEL", "CONCH_MAX_CONTEXT_K"):
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
