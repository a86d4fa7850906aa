"""Heuristic token estimation for mixed CJK / Latin text.

Not a tokenizer: the numbers are only good enough for context-window
budgeting and never match a vendor's billing meter exactly.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from conch.types.messages import Message

# Per-message structural overhead (role, separators).
MESSAGE_OVERHEAD = 4

_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0x3400, 0x4DBF),  # Extension A
    (0xF900, 0xFAFF),  # Compatibility Ideographs
)


def _is_cjk(code_point: int) -> bool:
    for lo, hi in _CJK_RANGES:
        if lo <= code_point <= hi:
            return True
    return False


def estimate_tokens(text: str) -> int:
    """Estimate the token count of *text*.

    Every CJK code point costs 2 tokens; every run of other characters costs
    ``run_length // 4``.  The result is never below 1.

    >>> estimate_tokens("abcdefgh")
    2
    >>> estimate_tokens("你好")
    4
    """
    tokens = 0
    run = 0
    for ch in text:
        if _is_cjk(ord(ch)):
            tokens += run // 4
            run = 0
            tokens += 2
        else:
            run += 1
    tokens += run // 4
    return max(tokens, 1)


def estimate_message_tokens(msg: Message) -> int:
    """Estimate a single domain message."""
    total = MESSAGE_OVERHEAD + estimate_tokens(msg.content)
    if msg.tool_call is not None:
        total += estimate_tokens(json.dumps(msg.tool_call.to_wire(), ensure_ascii=False))
    if msg.reasoning:
        total += estimate_tokens(msg.reasoning)
    return total


def estimate_messages_tokens(messages: Iterable[Message]) -> int:
    """Estimate a conversation, skipping loading placeholders."""
    return sum(estimate_message_tokens(m) for m in messages if not m.is_loading)


def estimate_wire_message_tokens(msg: Mapping[str, Any]) -> int:
    """Estimate one OpenAI-shaped message dict."""
    total = MESSAGE_OVERHEAD
    content = msg.get("content")
    if isinstance(content, str):
        total += estimate_tokens(content)
    tool_calls = msg.get("tool_calls")
    if tool_calls:
        total += estimate_tokens(json.dumps(tool_calls, ensure_ascii=False))
    reasoning = msg.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        total += estimate_tokens(reasoning)
    return total


def estimate_wire_tokens(messages: Iterable[Mapping[str, Any]]) -> int:
    """Estimate a list of OpenAI-shaped message dicts."""
    return sum(estimate_wire_message_tokens(m) for m in messages)
