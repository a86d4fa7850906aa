"""LocalCommandExecutor — runs commands in a local shell via asyncio subprocesses.

Stands in for a remote host when the CLI is pointed at the local machine.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator

from conch.errors import CommandExecutionError
from conch.executors.base import format_output

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 120.0
_CHUNK_SIZE = 4096


class LocalCommandExecutor:
    """Executes commands with ``/bin/sh`` in *cwd*.

    Parameters
    ----------
    cwd:
        Working directory for every command (default: current directory).
    default_timeout:
        Seconds before a command is killed when no timeout is given.
    strip_env:
        Environment variables removed from the child environment.
    """

    def __init__(
        self,
        cwd: str | None = None,
        default_timeout: float = _DEFAULT_TIMEOUT,
        strip_env: tuple[str, ...] = ("CONCH_API_KEY", "OPENAI_API_KEY"),
    ) -> None:
        self._cwd = cwd
        self._default_timeout = default_timeout
        self._strip_env = strip_env

    def _env(self) -> dict[str, str]:
        return {k: v for k, v in os.environ.items() if k not in self._strip_env}

    async def _spawn(self, command: str) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self._cwd,
                env=self._env(),
            )
        except OSError as exc:
            raise CommandExecutionError(f"Failed to start process: {exc}") from exc

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        try:
            proc.kill()
            await proc.wait()
        except ProcessLookupError:
            pass

    async def execute(self, command: str, timeout: float | None = None) -> str:
        timeout_sec = timeout or self._default_timeout
        logger.debug("Running %r (timeout %.0fs)", command, timeout_sec)
        proc = await self._spawn(command)

        try:
            stdout_bytes, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout_sec)
        except TimeoutError:
            await self._kill(proc)
            raise CommandExecutionError(
                f"Command timed out after {timeout_sec}s: {command}"
            ) from None

        output = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
        exit_code = proc.returncode if proc.returncode is not None else 0
        return format_output(output, exit_code)

    async def execute_streaming(
        self, command: str, timeout: float | None = None,
    ) -> AsyncIterator[str]:
        timeout_sec = timeout or self._default_timeout
        proc = await self._spawn(command)
        assert proc.stdout is not None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_sec

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise TimeoutError
                chunk = await asyncio.wait_for(proc.stdout.read(_CHUNK_SIZE), timeout=remaining)
                if not chunk:
                    break
                yield chunk.decode("utf-8", errors="replace")
            await proc.wait()
        except TimeoutError:
            await self._kill(proc)
            raise CommandExecutionError(
                f"Command timed out after {timeout_sec}s: {command}"
            ) from None
        finally:
            if proc.returncode is None:
                await self._kill(proc)

        if proc.returncode:
            yield f"\n[Exit code: {proc.returncode}]"
