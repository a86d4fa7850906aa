"""Backend clients for Conch.

Public surface
--------------
- :class:`StreamingClient`          — abstract base the agent loop drives
- :class:`ReasoningEcho`            — reasoning-field policy for history messages
- :func:`resolve_reasoning_echo`    — pick the policy for a base URL / model
- :data:`QUIRKS`                    — provider quirk catalogue

The OpenAI-compatible client lives in :mod:`conch.providers.openai`.
"""

from __future__ import annotations

from conch.providers.base import StreamingClient, tool_defs_to_openai
from conch.providers.quirks import QUIRKS, ProviderQuirk, ReasoningEcho, resolve_reasoning_echo

__all__ = [
    "ProviderQuirk",
    "QUIRKS",
    "ReasoningEcho",
    "StreamingClient",
    "resolve_reasoning_echo",
    "tool_defs_to_openai",
]
