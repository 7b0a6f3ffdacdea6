"""
Core abstractions for the chat engine.

This module provides the enums, data models, exceptions, cancellation token
and collaborator interfaces shared by every other subsystem.
"""

from .enums import (
    # Tool server lifecycle
    ConnectionState,

    # Conversation
    ConversationMode,
    MessageRole,
    LoopState,

    # Tool execution
    ToolErrorKind,
    ToolPhase,
    AuthorizationOutcome,
)

from .exceptions import (
    # Base exceptions
    ChatEngineError,
    ConfigurationError,

    # Tool server exceptions
    ToolServerError,
    LaunchFailedError,
    ToolServerProtocolError,
    ServerNotConfiguredError,
    ToolNotFoundError,

    # Backend exceptions
    BackendError,
    AuthError,
    RateLimitedError,
    BackendServerError,
    BackendCallError,

    # Session exceptions
    SessionError,
    SessionNotFoundError,
    SessionConfigurationError,
    GenerationCancelled,
)

from .models import (
    # Configuration models
    ToolServerSpec,
    ModelCredentials,
    PromptConfig,
    AgentPreset,
    EngineSettings,
    ResolvedSessionConfig,

    # Tool models
    MCPTool,
    ToolCallRecord,
    ToolResult,
    ConnectionStatus,

    # Authorization models
    AuthorizationRequest,
    AuthorizationDecision,

    # Session models
    ChatMessage,
    SessionData,
    SessionSummary,
    SendResult,
    ABORTED_MARKER,
    FREE_MODE_AGENT_ID,
    generate_session_id,
)

from .cancellation import CancelToken

from .interfaces import (
    ConfigStore,
    ModelBackend,
    PresentationSink,
    NullPresentation,
)

__all__ = [
    # Enums
    "ConnectionState",
    "ConversationMode",
    "MessageRole",
    "LoopState",
    "ToolErrorKind",
    "ToolPhase",
    "AuthorizationOutcome",

    # Exceptions
    "ChatEngineError",
    "ConfigurationError",
    "ToolServerError",
    "LaunchFailedError",
    "ToolServerProtocolError",
    "ServerNotConfiguredError",
    "ToolNotFoundError",
    "BackendError",
    "AuthError",
    "RateLimitedError",
    "BackendServerError",
    "BackendCallError",
    "SessionError",
    "SessionNotFoundError",
    "SessionConfigurationError",
    "GenerationCancelled",

    # Models
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
    "generate_session_id",

    # Cancellation
    "CancelToken",

    # Interfaces
    "ConfigStore",
    "ModelBackend",
    "PresentationSink",
    "NullPresentation",
]
