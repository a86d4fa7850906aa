"""Conch — natural-language operations for remote servers.

Usage:
    from conch import AgentLoop, OpenAICompatibleClient, ToolRegistry, load_settings

    registry = ToolRegistry.with_defaults()
    client = OpenAICompatibleClient(load_settings, registry)
    loop = AgentLoop(client, registry, executor)
    messages = await loop.execute("How full is the disk?", [], "Host: web1, User: ops, OS: Linux")
"""

from conch.core.config import load_settings
from conch.core.loop import AgentLoop, AgentObserver
from conch.core.session import ConversationSession
from conch.errors import (
    CommandExecutionError,
    ConchError,
    ConfigurationError,
    DuplicateToolError,
    ProtocolError,
    RequestBuildError,
    ToolDispatchError,
    TransportError,
)
from conch.permissions.approval import ConfirmationGateway
from conch.providers.openai import OpenAICompatibleClient
from conch.tools.registry import ToolRegistry
from conch.types.config import Settings
from conch.types.events import (
    AgentEvent,
    ApprovalDecision,
    ApprovalRequest,
    ContentUpdate,
    MessageAppended,
    ReasoningUpdate,
    TurnComplete,
)
from conch.types.messages import Message, MessageRole, ToolCall
from conch.types.tools import SafetyLevel, ToolDef, ToolParam, ToolResultData

__version__ = "0.1.0"

__all__ = [
    # Core API
    "AgentLoop",
    "AgentObserver",
    "ConversationSession",
    "OpenAICompatibleClient",
    "ToolRegistry",
    "load_settings",
    # Messages and events
    "AgentEvent",
    "ApprovalDecision",
    "ApprovalRequest",
    "ContentUpdate",
    "Message",
    "MessageAppended",
    "MessageRole",
    "ReasoningUpdate",
    "ToolCall",
    "TurnComplete",
    # Configuration
    "ConfirmationGateway",
    "Settings",
    # Tool types
    "SafetyLevel",
    "ToolDef",
    "ToolParam",
    "ToolResultData",
    # Errors
    "CommandExecutionError",
    "ConchError",
    "ConfigurationError",
    "DuplicateToolError",
    "ProtocolError",
    "RequestBuildError",
    "ToolDispatchError",
    "TransportError",
]
