"""Context management — window budgeting and summary-based compression."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from conch.core.tokens import (
    MESSAGE_OVERHEAD,
    estimate_tokens,
    estimate_wire_message_tokens,
    estimate_wire_tokens,
)
from conch.errors import ProtocolError, TransportError
from conch.types.messages import Message

logger = logging.getLogger(__name__)

# Compression triggers above this fraction of the context window
COMPRESSION_THRESHOLD = 0.95

# System prompt + recent messages must fit in this fraction after compression
RECENT_BUDGET = 0.70

# Compression is pointless with no more than this many messages
MIN_MESSAGES = 2

SUMMARY_HEADER = "[Previous conversation summary]"

# Structure overhead of a tool call beyond its name and arguments
_TOOL_CALL_OVERHEAD = 20

WireMessage = dict[str, Any]
Summarizer = Callable[[list[WireMessage]], Awaitable[str]]


@dataclass(slots=True)
class CompressionState:
    """Cached summary of the compressed-away part of a conversation."""

    summary: str | None = None

    def reset(self) -> None:
        self.summary = None


@dataclass(frozen=True, slots=True)
class CompressionResult:
    """Outcome of :func:`compress`."""

    messages: list[WireMessage]
    summary: str | None
    compressed: bool = False
    tokens_before: int = 0
    tokens_after: int = 0


def needs_compression(messages: Sequence[WireMessage], max_tokens: int) -> bool:
    """Check if the wire history is over the compression threshold."""
    if len(messages) <= MIN_MESSAGES:
        return False
    return estimate_wire_tokens(messages) > max_tokens * COMPRESSION_THRESHOLD


def find_split_index(messages: Sequence[WireMessage], max_tokens: int) -> int:
    """Return the index of the first message kept verbatim.

    ``messages[0]`` is the system prompt and is always kept.  Walks back from
    the newest message until the next one would push the kept slice past the
    recent-window budget.  A result of 1 means nothing is old.
    """
    budget = int(max_tokens * RECENT_BUDGET)
    used = estimate_wire_message_tokens(messages[0])
    split = 1

    for i in range(len(messages) - 1, 0, -1):
        cost = estimate_wire_message_tokens(messages[i])
        if used + cost > budget:
            split = i + 1
            break
        used += cost

    # Never keep a tool result without the assistant message that asked for it.
    while 1 < split < len(messages) and messages[split].get("role") == "tool":
        split -= 1

    return split


def _is_compression_fatal(exc: BaseException) -> bool:
    return not isinstance(exc, (TransportError, ProtocolError))


async def compress(
    messages: list[WireMessage],
    max_tokens: int,
    cached_summary: str | None,
    summarizer: Summarizer,
) -> CompressionResult:
    """Shrink *messages* to fit *max_tokens* by summarizing the oldest part.

    Strategy:
    1. Do nothing below the threshold or with a tiny history.
    2. Find the split between old and recent messages.
    3. Reuse *cached_summary*, or ask *summarizer* for a new one.
    4. Return ``[system, summary, *recent]``.

    A summarizer that fails with a transport or protocol error yields an
    empty summary; the recent window is still returned.  Any other error
    (request construction, missing configuration) propagates.
    """
    tokens_before = estimate_wire_tokens(messages)
    unchanged = CompressionResult(
        messages=messages,
        summary=cached_summary,
        tokens_before=tokens_before,
        tokens_after=tokens_before,
    )

    if not needs_compression(messages, max_tokens):
        return unchanged

    split = find_split_index(messages, max_tokens)
    if split <= 1:
        return unchanged

    system_message = messages[0]
    old_messages = messages[1:split]
    recent_messages = messages[split:]

    if cached_summary is not None:
        summary = cached_summary
    else:
        try:
            summary = await summarizer(old_messages)
        except Exception as exc:
            if _is_compression_fatal(exc):
                raise
            logger.warning("Summarization failed, keeping recent window only: %s", exc)
            summary = ""

    compressed: list[WireMessage] = [system_message]
    if summary:
        compressed.append({"role": "system", "content": f"{SUMMARY_HEADER}\n{summary}"})
    compressed.extend(recent_messages)

    tokens_after = estimate_wire_tokens(compressed)
    logger.info(
        "Compressed context: %d messages summarized, %d -> %d tokens",
        len(old_messages), tokens_before, tokens_after,
    )
    return CompressionResult(
        messages=compressed,
        summary=summary,
        compressed=True,
        tokens_before=tokens_before,
        tokens_after=tokens_after,
    )


def usage_percent(
    history: Iterable[Message],
    system_prompt: str,
    tool_definitions: list[dict[str, Any]],
    max_tokens: int,
) -> float:
    """Estimated fraction of the context window a request would use (may exceed 1.0)."""
    if max_tokens <= 0:
        return 0.0

    tokens = MESSAGE_OVERHEAD + estimate_tokens(system_prompt)
    tokens += estimate_tokens(json.dumps(tool_definitions, ensure_ascii=False))

    for msg in history:
        if msg.is_loading:
            continue
        tokens += MESSAGE_OVERHEAD + estimate_tokens(msg.content)
        if msg.tool_call is not None:
            tokens += estimate_tokens(msg.tool_call.arguments_json or "{}")
            tokens += estimate_tokens(msg.tool_call.tool_name)
            tokens += _TOOL_CALL_OVERHEAD
        if msg.tool_output is not None:
            tokens += estimate_tokens(msg.tool_output)

    return tokens / max_tokens
