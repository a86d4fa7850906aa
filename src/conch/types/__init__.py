"""Type definitions for Conch."""

from conch.types.config import Settings, SettingsProvider
from conch.types.events import (
    AgentEvent,
    ApprovalDecision,
    ApprovalRequest,
    ContentUpdate,
    MessageAppended,
    ReasoningUpdate,
    TurnComplete,
)
from conch.types.messages import (
    AgentResponse,
    Message,
    MessageRole,
    TextResponse,
    ToolCall,
    ToolCallResponse,
)
from conch.types.streaming import (
    ContentDelta,
    DeltaAccumulator,
    ReasoningDelta,
    StreamDone,
    StreamError,
    StreamingDelta,
    ToolCallDelta,
)
from conch.types.tools import (
    SafetyLevel,
    Tool,
    ToolArguments,
    ToolDef,
    ToolParam,
    ToolResultData,
)

__all__ = [
    "AgentEvent",
    "AgentResponse",
    "ApprovalDecision",
    "ApprovalRequest",
    "ContentDelta",
    "ContentUpdate",
    "DeltaAccumulator",
    "Message",
    "MessageAppended",
    "MessageRole",
    "ReasoningDelta",
    "ReasoningUpdate",
    "SafetyLevel",
    "Settings",
    "SettingsProvider",
    "StreamDone",
    "StreamError",
    "StreamingDelta",
    "TextResponse",
    "Tool",
    "ToolArguments",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallResponse",
    "ToolDef",
    "ToolParam",
    "ToolResultData",
    "TurnComplete",
]
