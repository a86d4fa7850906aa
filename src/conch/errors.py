"""Exception hierarchy for Conch.

Only :class:`ConfigurationError`, :class:`RequestBuildError` and
:class:`TransportError` are allowed to escape a turn.  Everything else is
recovered locally and turned into a message the model can react to.
"""

from __future__ import annotations


class ConchError(Exception):
    """Base class for all Conch errors."""


class ConfigurationError(ConchError):
    """Required configuration (e.g. the API key) is missing or invalid."""


class RequestBuildError(ConchError):
    """An outbound request body could not be constructed."""


class TransportError(ConchError):
    """The backend could not be reached, or answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProtocolError(ConchError):
    """A single stream frame could not be decoded."""


class ToolDispatchError(ConchError):
    """A tool call could not be dispatched."""


class UnknownToolError(ToolDispatchError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool '{name}'")
        self.name = name


class InvalidArgumentsError(ToolDispatchError):
    """Tool arguments are not a JSON object or do not match the schema."""


class DuplicateToolError(ValueError):
    """Two tools were registered under the same name."""


class CommandExecutionError(ConchError):
    """A command failed to run on the target host."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
