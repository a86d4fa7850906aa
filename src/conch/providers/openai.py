"""OpenAI-compatible streaming client.

Talks to any ``/chat/completions`` endpoint that speaks the OpenAI wire
format (OpenAI, DeepSeek, Moonshot, Groq, OpenRouter, Ollama, ...) over
server-sent events, using ``httpx`` directly so error bodies and the raw
stream stay visible.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from conch.core.context import WireMessage, compress, usage_percent
from conch.core.prompts import build_summary_request, build_system_prompt
from conch.core.session import ConversationSession
from conch.errors import ConfigurationError, ProtocolError, RequestBuildError, TransportError
from conch.providers.base import (
    CONNECTION_RETRY_DELAY,
    StreamingClient,
    is_connection_lost,
)
from conch.providers.quirks import ReasoningEcho, heal_reasoning_echo, resolve_reasoning_echo
from conch.tools.registry import ToolRegistry
from conch.types.config import Settings, SettingsProvider
from conch.types.messages import Message, MessageRole, ToolCall
from conch.types.streaming import (
    ContentDelta,
    ReasoningDelta,
    StreamDone,
    StreamError,
    StreamingDelta,
    ToolCallDelta,
)

logger = logging.getLogger(__name__)

SUMMARY_MAX_TOKENS = 300
SUMMARY_TIMEOUT = 30.0

_DATA_PREFIX = "data: "
_DONE_SENTINEL = "[DONE]"


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------


def build_messages(
    history: Iterable[Message],
    system_prompt: str,
    extra_instruction: str | None = None,
) -> list[WireMessage]:
    """Convert domain messages into OpenAI chat messages.

    Every assistant-side message carries a ``reasoning_content`` string
    (possibly empty); :func:`with_reasoning_echo` decides which ones keep it.
    """
    out: list[WireMessage] = [{"role": "system", "content": system_prompt}]

    for msg in history:
        if msg.is_loading:
            continue
        match msg.role:
            case MessageRole.USER:
                out.append({"role": "user", "content": msg.content})
            case MessageRole.ASSISTANT:
                out.append({
                    "role": "assistant",
                    "content": msg.content,
                    "reasoning_content": msg.reasoning or "",
                })
            case MessageRole.COMMAND:
                if msg.tool_call is None:
                    continue
                out.append({
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [msg.tool_call.to_wire()],
                    "reasoning_content": msg.reasoning or "",
                })
                out.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call.id,
                    "content": msg.tool_output or "",
                })
            case MessageRole.SYSTEM:
                # Most backends reject system messages after the first one.
                out.append({"role": "user", "content": f"[System: {msg.content}]"})

    if extra_instruction:
        out.append({"role": "system", "content": extra_instruction})
    return out


def with_reasoning_echo(messages: Iterable[WireMessage], policy: ReasoningEcho) -> list[WireMessage]:
    """Return copies of *messages* keeping ``reasoning_content`` only where *policy* wants it."""
    out: list[WireMessage] = []
    for msg in messages:
        if "reasoning_content" not in msg:
            out.append(msg)
            continue
        copy = dict(msg)
        if policy is ReasoningEcho.NONE:
            del copy["reasoning_content"]
        elif policy is ReasoningEcho.TOOL_CALLS and not copy.get("tool_calls"):
            del copy["reasoning_content"]
        out.append(copy)
    return out


# ---------------------------------------------------------------------------
# SSE parsing
# ---------------------------------------------------------------------------


@dataclass
class _ToolCallBuffer:
    id: str = ""
    name: str = ""
    arguments: list[str] = field(default_factory=list)

    def feed(self, fragment: dict[str, Any]) -> None:
        if not self.id and isinstance(fragment.get("id"), str):
            self.id = fragment["id"]
        function = fragment.get("function")
        if isinstance(function, dict):
            if not self.name and isinstance(function.get("name"), str):
                self.name = function["name"]
            if isinstance(function.get("arguments"), str):
                self.arguments.append(function["arguments"])

    def to_tool_call(self) -> ToolCall | None:
        if not self.id or not self.name:
            return None
        return ToolCall.create(self.id, self.name, "".join(self.arguments))


def decode_frame(payload: str) -> dict[str, Any]:
    """Decode one ``data:`` payload into its ``choices[0].delta`` dict.

    Raises :class:`ProtocolError` for anything that is not a chunk.
    """
    try:
        chunk = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(chunk, dict):
        raise ProtocolError("Frame is not a JSON object")
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise ProtocolError("Frame has no choices")
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        raise ProtocolError("Frame has no delta")
    return delta


async def parse_sse_lines(lines: AsyncIterable[str]) -> AsyncIterator[StreamingDelta]:
    """Turn SSE lines into deltas.

    Reasoning and content deltas are yielded as they arrive.  Tool calls are
    accumulated per ``index`` and yielded at the end in index order, followed
    by a single :class:`StreamDone`.  Read errors propagate to the caller.
    """
    buffers: dict[int, _ToolCallBuffer] = {}

    async for line in lines:
        if not line.startswith(_DATA_PREFIX):
            continue
        payload = line[len(_DATA_PREFIX):].strip()
        if payload == _DONE_SENTINEL:
            break

        try:
            delta = decode_frame(payload)
        except ProtocolError as exc:
            logger.debug("Skipping malformed frame: %s", exc)
            continue

        reasoning = delta.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            yield ReasoningDelta(reasoning)

        content = delta.get("content")
        if isinstance(content, str) and content:
            yield ContentDelta(content)

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            for fragment in tool_calls:
                if not isinstance(fragment, dict):
                    continue
                index = fragment.get("index", 0)
                if not isinstance(index, int):
                    continue
                buffers.setdefault(index, _ToolCallBuffer()).feed(fragment)

    for index in sorted(buffers):
        tool_call = buffers[index].to_tool_call()
        if tool_call is None:
            logger.debug("Dropping tool call at index %d without id or name", index)
            continue
        yield ToolCallDelta(tool_call)

    yield StreamDone()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class OpenAICompatibleClient(StreamingClient):
    """Streaming client for OpenAI-compatible chat completion APIs.

    Settings are read through *settings* before every request, so a changed
    key or model takes effect on the next call.  Tests pass an
    ``httpx.MockTransport`` as *transport*.

    Parameters
    ----------
    settings:
        Zero-argument callable returning the current :class:`Settings`.
    registry:
        Tools advertised to the model.
    transport:
        Optional ``httpx`` transport used for every request.
    retry_delay:
        Pause before retrying a dropped connection.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        registry: ToolRegistry,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_delay: float = CONNECTION_RETRY_DELAY,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._transport = transport
        self._retry_delay = retry_delay

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _require_settings(self) -> Settings:
        settings = self._settings()
        if not settings.api_key.strip():
            raise ConfigurationError(
                "API key is not configured (set CONCH_API_KEY or OPENAI_API_KEY)"
            )
        return settings

    @staticmethod
    def _headers(settings: Settings) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.api_key.strip()}",
            "Content-Type": "application/json",
        }

    def _http_client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    @staticmethod
    def _encode(body: dict[str, Any]) -> bytes:
        try:
            return json.dumps(body, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise RequestBuildError(f"Cannot serialize request body: {exc}") from exc

    def build_body(self, settings: Settings, messages: list[WireMessage]) -> bytes:
        return self._encode({
            "model": settings.model,
            "messages": messages,
            "tools": self._registry.definitions(),
            "stream": True,
        })

    def system_prompt(self, server_context: str) -> str:
        return build_system_prompt(server_context, self._registry.tool_defs())

    def context_usage(self, history: Iterable[Message], server_context: str) -> float:
        """Fraction of the context window the next request would use."""
        settings = self._settings()
        return usage_percent(
            history,
            self.system_prompt(server_context),
            self._registry.definitions(),
            settings.max_context_tokens,
        )

    # ------------------------------------------------------------------
    # Summarization
    # ------------------------------------------------------------------

    async def summarize(self, old_messages: list[WireMessage]) -> str:
        """Ask the backend for a short summary of *old_messages*.

        Non-2xx answers and unexpected bodies yield ``""``; network failures
        raise :class:`TransportError`.
        """
        settings = self._require_settings()
        body = self._encode({
            "model": settings.model,
            "messages": [{"role": "user", "content": build_summary_request(old_messages)}],
            "max_tokens": SUMMARY_MAX_TOKENS,
        })

        try:
            async with self._http_client(SUMMARY_TIMEOUT) as client:
                response = await client.post(
                    settings.completions_url, headers=self._headers(settings), content=body,
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"Summary request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("Summary request returned HTTP %d", response.status_code)
            return ""

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("Summary response has an unexpected shape")
            return ""
        return content if isinstance(content, str) else ""

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_turn(
        self,
        session: ConversationSession,
        history: list[Message],
        server_context: str,
        extra_instruction: str | None = None,
    ) -> AsyncIterator[StreamingDelta]:
        """Build, compress and stream one request for *history*."""
        settings = self._require_settings()
        messages = build_messages(history, self.system_prompt(server_context), extra_instruction)

        result = await compress(
            messages,
            settings.max_context_tokens,
            session.cached_summary,
            self.summarize,
        )
        session.store_summary(result.summary)

        policy = resolve_reasoning_echo(settings.resolved_base_url(), settings.model)
        async for delta in self.stream(result.messages, policy, settings=settings):
            yield delta

    async def stream(
        self,
        messages: list[WireMessage],
        policy: ReasoningEcho = ReasoningEcho.NONE,
        *,
        settings: Settings | None = None,
    ) -> AsyncIterator[StreamingDelta]:
        """Send *messages* and yield deltas until one terminal event.

        One self-healing retry is allowed for an HTTP 400 that complains
        about ``reasoning_content``; one reconnect is allowed for a dropped
        connection before any delta was yielded.
        """
        if settings is None:
            settings = self._require_settings()
        healed = False
        reconnected = False
        emitted = False

        try:
            while True:
                body = self.build_body(settings, with_reasoning_echo(messages, policy))
                try:
                    async with self._http_client(settings.request_timeout) as client:
                        async with client.stream(
                            "POST",
                            settings.completions_url,
                            headers=self._headers(settings),
                            content=body,
                        ) as response:
                            if not response.is_success:
                                error_body = (await response.aread()).decode("utf-8", errors="replace")
                                if response.status_code == 400 and not healed:
                                    healed_policy = heal_reasoning_echo(error_body)
                                    if healed_policy is not None:
                                        logger.warning(
                                            "Backend rejected reasoning fields, retrying with %s",
                                            healed_policy.value,
                                        )
                                        healed = True
                                        policy = healed_policy
                                        continue
                                yield StreamError(TransportError(
                                    f"HTTP {response.status_code} from {settings.completions_url}",
                                    status_code=response.status_code,
                                    body=error_body,
                                ))
                                return

                            async for delta in parse_sse_lines(response.aiter_lines()):
                                emitted = True
                                yield delta
                            return

                except httpx.TimeoutException as exc:
                    yield StreamError(TransportError(f"Request timed out: {exc}"))
                    return
                except httpx.HTTPError as exc:
                    if is_connection_lost(exc) and not emitted and not reconnected:
                        logger.warning(
                            "Connection lost (%s), retrying in %.1fs", type(exc).__name__,
                            self._retry_delay,
                        )
                        reconnected = True
                        await asyncio.sleep(self._retry_delay)
                        continue
                    yield StreamError(TransportError(f"Connection failed: {exc}"))
                    return
        except asyncio.CancelledError:
            logger.debug("Stream cancelled")
            yield StreamError(TransportError("cancelled"))
            raise
