"""Provider quirk table: which backends want reasoning echoed back."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReasoningEcho(Enum):
    """Which historical assistant messages carry ``reasoning_content``."""

    NONE = "none"  # Never send it back
    TOOL_CALLS = "tool_calls"  # Only on assistant messages that issued tool calls
    ALL_ASSISTANT = "all_assistant"  # On every assistant message, "" when absent


@dataclass(frozen=True, slots=True)
class ProviderQuirk:
    """Matches a backend by base-URL or model substrings (case-insensitive)."""

    name: str
    reasoning_echo: ReasoningEcho
    url_patterns: tuple[str, ...] = ()
    model_patterns: tuple[str, ...] = ()

    def matches(self, base_url: str, model: str) -> bool:
        url = base_url.lower()
        mdl = model.lower()
        return any(p in url for p in self.url_patterns) or any(
            p in mdl for p in self.model_patterns
        )


# ---------------------------------------------------------------------------
# Quirk catalogue (first match wins)
# ---------------------------------------------------------------------------

QUIRKS: tuple[ProviderQuirk, ...] = (
    ProviderQuirk(
        name="deepseek",
        reasoning_echo=ReasoningEcho.TOOL_CALLS,
        url_patterns=("deepseek",),
        model_patterns=("deepseek",),
    ),
    ProviderQuirk(
        name="moonshot",
        reasoning_echo=ReasoningEcho.ALL_ASSISTANT,
        url_patterns=("moonshot",),
        model_patterns=("kimi", "moonshot"),
    ),
    ProviderQuirk(
        name="openai",
        reasoning_echo=ReasoningEcho.NONE,
        url_patterns=("api.openai.com",),
    ),
    ProviderQuirk(
        name="groq",
        reasoning_echo=ReasoningEcho.NONE,
        url_patterns=("groq.com",),
    ),
)

DEFAULT_REASONING_ECHO = ReasoningEcho.NONE


def find_quirk(base_url: str, model: str) -> ProviderQuirk | None:
    for quirk in QUIRKS:
        if quirk.matches(base_url, model):
            return quirk
    return None


def resolve_reasoning_echo(base_url: str, model: str) -> ReasoningEcho:
    """Policy for the first attempt of a request."""
    quirk = find_quirk(base_url, model)
    return quirk.reasoning_echo if quirk else DEFAULT_REASONING_ECHO


_REJECTION_MARKERS = ("not allowed", "invalid", "unexpected")


def heal_reasoning_echo(error_body: str) -> ReasoningEcho | None:
    """Pick the policy for a self-healing retry after an HTTP 400.

    Returns ``None`` when the body does not look like a reasoning-field
    complaint and the error should surface as-is.
    """
    body = error_body.lower()
    if "reasoning_content" not in body:
        return None
    if "missing" in body:
        return ReasoningEcho.ALL_ASSISTANT
    if any(marker in body for marker in _REJECTION_MARKERS):
        return ReasoningEcho.NONE
    return None
