"""execute_ssh_command — general-purpose remote shell tool and its safety policy."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from conch.executors.base import CommandExecutor
from conch.tools.base import BaseTool
from conch.types.tools import SafetyLevel, ToolArguments, ToolDef, ToolParam, ToolResultData

logger = logging.getLogger(__name__)

FORBIDDEN_PATTERNS: tuple[str, ...] = (
    r"rm\s+-rf\s+/",
    r"rm\s+-fr\s+/",
    r"mkfs\b",
    r"dd\s+if=/dev/(zero|random|urandom)",
    r":\(\)\s*\{\s*:\|:\s*&\s*\}",  # fork bomb
    r">\s*/dev/sd[a-z]",
    r"chmod\s+-R\s+777\s+/",
    r"chown\s+-R\s+.*\s+/$",
    r"wget.*\|\s*sh",
    r"curl.*\|\s*sh",
    r"curl.*\|\s*bash",
)

SAFE_PREFIXES: tuple[str, ...] = (
    "ls", "ll", "la",
    "cat", "head", "tail", "less", "more",
    "pwd", "whoami", "id", "hostname", "uname",
    "ps", "top", "htop",
    "df", "du", "free",
    "uptime", "date", "cal",
    "echo", "printf",
    "grep", "find", "locate", "which", "whereis",
    "wc", "sort", "uniq", "cut", "tr",
    "file", "stat",
    "ip", "ifconfig", "netstat", "ss",
    "ping", "traceroute", "dig", "nslookup", "host",
    "env", "printenv",
    "docker ps", "docker images", "docker logs",
    "git status", "git log", "git diff", "git branch",
    "systemctl status",
    "journalctl",
)

# A safe command piped into one of these is no longer safe.
DANGEROUS_PIPE_TARGETS: frozenset[str] = frozenset({"rm", "dd", "mkfs", "sh", "bash"})

# Separators that start an unrelated command after a safe one, and command
# substitution. "2>&1" and "&>" are redirections, not separators.
_CHAIN_PATTERN = re.compile(r";|\n|\|\||(?<![&>])&(?![&>])|\$\(|`")


def base_command(command: str) -> str:
    """First word of the last ``&&`` segment.

    >>> base_command("cd /app && git status")
    'git'
    """
    last = command.split("&&")[-1].strip()
    words = last.split()
    return words[0] if words else command


def _has_prefix(command: str, prefix: str) -> bool:
    # Prefixes match whole words: "ls" matches "ls -la" but not "lsblk".
    if not command.startswith(prefix):
        return False
    rest = command[len(prefix):]
    return not rest or rest[0].isspace()


@dataclass(frozen=True)
class CommandSafetyPolicy:
    """Classifies a raw shell command.

    Order: forbidden patterns, then the safe-prefix allowlist (downgraded
    when piped into a dangerous target, chained with another command or
    flagged destructive), then
    confirmation for everything else.
    """

    forbidden_patterns: tuple[str, ...] = FORBIDDEN_PATTERNS
    safe_prefixes: tuple[str, ...] = SAFE_PREFIXES
    dangerous_pipe_targets: frozenset[str] = DANGEROUS_PIPE_TARGETS
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_compiled", tuple(re.compile(p) for p in self.forbidden_patterns),
        )

    def is_forbidden(self, command: str) -> bool:
        return any(p.search(command) for p in self._compiled)

    def matches_safe_prefix(self, command: str) -> bool:
        base = base_command(command)
        return any(_has_prefix(command, p) or base == p for p in self.safe_prefixes)

    def chains_commands(self, command: str) -> bool:
        return _CHAIN_PATTERN.search(command) is not None

    def pipes_into_danger(self, command: str) -> bool:
        if "|" not in command:
            return False
        target = command.split("|")[-1].strip()
        return base_command(target) in self.dangerous_pipe_targets

    def classify(self, command: str, is_destructive: bool = True) -> SafetyLevel:
        cmd = command.strip()

        if self.is_forbidden(cmd):
            return SafetyLevel.FORBIDDEN

        if self.matches_safe_prefix(cmd):
            if self.pipes_into_danger(cmd) or self.chains_commands(cmd):
                return SafetyLevel.NEEDS_CONFIRMATION
            if not is_destructive:
                return SafetyLevel.SAFE

        return SafetyLevel.NEEDS_CONFIRMATION


DEFAULT_POLICY = CommandSafetyPolicy()

_DEFINITION = ToolDef(
    name="execute_ssh_command",
    description=(
        "Execute a shell command on the remote server. Use this when no "
        "dedicated tool fits the task."
    ),
    parameters=(
        ToolParam(
            name="command",
            type="string",
            description="The shell command to execute on the remote server.",
        ),
        ToolParam(
            name="explanation",
            type="string",
            description="A brief explanation of what this command does, in the user's language.",
            required=False,
        ),
        ToolParam(
            name="is_destructive",
            type="boolean",
            description=(
                "Whether this command changes server state (write, delete, restart). "
                "Read-only commands like ls, cat, ps should be false."
            ),
        ),
    ),
)


class ExecuteCommandTool(BaseTool):
    """Runs an arbitrary command, gated by :class:`CommandSafetyPolicy`."""

    def __init__(self, policy: CommandSafetyPolicy | None = None) -> None:
        self._policy = policy or DEFAULT_POLICY

    @property
    def definition(self) -> ToolDef:
        return _DEFINITION

    def classify(self, args: ToolArguments) -> SafetyLevel:
        level = self._policy.classify(
            args.get_str("command"),
            is_destructive=args.get_bool("is_destructive", default=True),
        )
        logger.debug("Classified %r as %s", args.get_str("command"), level.value)
        return level

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        command = args.get_str("command")
        if not command.strip():
            return self._error("command is required.")
        return self._ok(await executor.execute(command))
