"""Tool definition types and protocols."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from conch.errors import InvalidArgumentsError

if TYPE_CHECKING:
    from conch.executors.base import CommandExecutor


class SafetyLevel(Enum):
    """Per-call gate deciding whether a tool call may run."""

    SAFE = "safe"  # Run without asking
    NEEDS_CONFIRMATION = "needs_confirmation"  # Ask a human first
    FORBIDDEN = "forbidden"  # Never run


@dataclass(frozen=True, slots=True)
class ToolParam:
    """A parameter for a tool."""

    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = True
    enum: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class ToolDef:
    """Definition of a tool exposed to the model."""

    name: str
    description: str
    parameters: tuple[ToolParam, ...] = ()

    def param(self, name: str) -> ToolParam | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None


@dataclass(slots=True)
class ToolResultData:
    """Data returned from tool execution."""

    output: str
    is_error: bool = False


_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _matches_type(value: Any, json_type: str) -> bool:
    expected = _JSON_TYPES.get(json_type)
    if expected is None:
        return True
    # bool is a subclass of int; JSON keeps them apart.
    if json_type in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, expected)


class ToolArguments(Mapping[str, Any]):
    """Schema-validated tool arguments with typed accessors.

    Build with :meth:`validate`; accessors never raise for keys the schema
    marks as required because validation has already checked them.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def validate(cls, definition: ToolDef, raw: Mapping[str, Any]) -> ToolArguments:
        """Check *raw* against *definition* and wrap it.

        Unknown keys are kept (models often add extras); missing required
        keys, wrong JSON types and out-of-enum values raise
        :class:`InvalidArgumentsError`.
        """
        problems: list[str] = []
        for param in definition.parameters:
            if param.name not in raw or raw[param.name] is None:
                if param.required:
                    problems.append(f"missing required parameter '{param.name}'")
                continue
            value = raw[param.name]
            if not _matches_type(value, param.type):
                problems.append(
                    f"parameter '{param.name}' must be {param.type}, "
                    f"got {type(value).__name__}"
                )
                continue
            if param.enum is not None and value not in param.enum:
                problems.append(
                    f"parameter '{param.name}' must be one of {list(param.enum)}"
                )
        if problems:
            raise InvalidArgumentsError("; ".join(problems))
        return cls(raw)

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ToolArguments({self._data!r})"

    # Typed accessors

    def get_str(self, key: str, default: str = "") -> str:
        value = self._data.get(key)
        return value if isinstance(value, str) else default

    def optional_str(self, key: str) -> str | None:
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.optional_int(key)
        return default if value is None else value

    def optional_int(self, key: str) -> int | None:
        value = self._data.get(key)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return None

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data.get(key)
        return value if isinstance(value, bool) else default

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)


@runtime_checkable
class Tool(Protocol):
    """Protocol that all tools must implement."""

    @property
    def definition(self) -> ToolDef:
        """Return the tool definition for the model."""
        ...

    def classify(self, args: ToolArguments) -> SafetyLevel:
        """Decide how this particular call is gated."""
        ...

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        """Run the tool against the target host."""
        ...
