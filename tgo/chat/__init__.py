"""
Chat engine package.

This package provides streaming chat sessions whose model can call tools
exported by MCP tool servers, with human authorization of every tool call
and cancellation of in-flight generations.
"""

# Core models and enums
from .core.models import (
    ToolServerSpec, ModelCredentials, PromptConfig, AgentPreset, EngineSettings,
    ResolvedSessionConfig, MCPTool, ToolCallRecord, ToolResult, ConnectionStatus,
    AuthorizationRequest, AuthorizationDecision, ChatMessage, SessionData,
    SessionSummary, SendResult, ABORTED_MARKER, FREE_MODE_AGENT_ID
)

from .core.enums import (
    ConnectionState, ConversationMode, MessageRole, LoopState,
    ToolErrorKind, ToolPhase, AuthorizationOutcome
)

from .core.cancellation import CancelToken
from .core.interfaces import ConfigStore, ModelBackend, PresentationSink, NullPresentation

# Exceptions
from .core.exceptions import (
    ChatEngineError, ConfigurationError, ToolServerError, LaunchFailedError,
    ToolServerProtocolError, ToolNotFoundError, BackendError, AuthError,
    RateLimitedError, BackendServerError, BackendCallError, SessionError,
    SessionNotFoundError, SessionConfigurationError
)

# Streaming
from .streaming import StreamAccumulator, TextDelta, ReasoningDelta, ToolCallDelta

# Tool servers
from .tools import ToolServerConnection, ToolCatalog, MCPToolManager, AuthorizationGate

# Coordination (imported before the session package, which depends on it)
from .coordinator import ToolCallLoop, ChatRuntime

# Sessions
from .session import ChatSession, SessionRegistry

# Storage, backends and utilities
from .memory import InMemoryConfigStore
from .llm import OpenAIModelBackend
from .utils import ConfigValidator

__all__ = [
    # Core models
    "ToolServerSpec",
    "ModelCredentials",
    "PromptConfig",
    "AgentPreset",
    "EngineSettings",
    "ResolvedSessionConfig",
    "MCPTool",
    "ToolCallRecord",
    "ToolResult",
    "ConnectionStatus",
    "AuthorizationRequest",
    "AuthorizationDecision",
    "ChatMessage",
    "SessionData",
    "SessionSummary",
    "SendResult",
    "ABORTED_MARKER",
    "FREE_MODE_AGENT_ID",

    # Enums
    "ConnectionState",
    "ConversationMode",
    "MessageRole",
    "LoopState",
    "ToolErrorKind",
    "ToolPhase",
    "AuthorizationOutcome",

    # Interfaces
    "CancelToken",
    "ConfigStore",
    "ModelBackend",
    "PresentationSink",
    "NullPresentation",

    # Exceptions
    "ChatEngineError",
    "ConfigurationError",
    "ToolServerError",
    "LaunchFailedError",
    "ToolServerProtocolError",
    "ToolNotFoundError",
    "BackendError",
    "AuthError",
    "RateLimitedError",
    "BackendServerError",
    "BackendCallError",
    "SessionError",
    "SessionNotFoundError",
    "SessionConfigurationError",

    # Components
    "StreamAccumulator",
    "TextDelta",
    "ReasoningDelta",
    "ToolCallDelta",
    "ToolServerConnection",
    "ToolCatalog",
    "MCPToolManager",
    "AuthorizationGate",
    "ToolCallLoop",
    "ChatRuntime",
    "ChatSession",
    "SessionRegistry",
    "InMemoryConfigStore",
    "OpenAIModelBackend",
    "ConfigValidator",
]
