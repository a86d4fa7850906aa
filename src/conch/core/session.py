"""In-memory per-conversation state."""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from conch.core.context import CompressionState
from conch.types.messages import Message


def new_session_id() -> str:
    """Generate a new session ID."""
    return uuid.uuid4().hex[:12]


class ConversationSession:
    """Messages of one conversation plus its cached compression summary.

    One turn at a time per session; nothing here is locked.
    """

    def __init__(
        self,
        session_id: str | None = None,
        server_context: str = "",
        messages: Iterable[Message] | None = None,
    ):
        self.session_id = session_id or new_session_id()
        self.server_context = server_context
        self._messages: list[Message] = list(messages or [])
        self.compression = CompressionState()
        self._turns = 0

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def turns(self) -> int:
        return self._turns

    @property
    def cached_summary(self) -> str | None:
        return self.compression.summary

    def add_message(self, msg: Message) -> None:
        self._messages.append(msg)

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    def record_turn(self) -> None:
        self._turns += 1

    def store_summary(self, summary: str | None) -> None:
        """Cache a summary; empty results never replace the cache."""
        if summary:
            self.compression.summary = summary

    def reset_summary(self) -> None:
        """Drop the cached summary, e.g. when the topic changes."""
        self.compression.reset()

    def clear(self) -> None:
        self._messages.clear()
        self.compression.reset()
        self._turns = 0
