"""Shell quoting for commands sent to the remote host."""

from __future__ import annotations


def shell_escape(value: str) -> str:
    """Wrap *value* in single quotes for a POSIX shell.

    >>> shell_escape("it's")
    "'it'\\\\''s'"
    """
    return "'" + value.replace("'", "'\\''") + "'"
