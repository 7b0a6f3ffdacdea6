"""
TGO Chat Engine

A streaming chat session engine whose models call tools exported by MCP
tool servers, with human authorization of tool calls and cancellation of
in-flight generations.

Example usage:
    from tgo.chat import ChatRuntime, InMemoryConfigStore, OpenAIModelBackend
    from tgo.chat.core.models import ModelCredentials

    # Configure
    store = InMemoryConfigStore.from_mcp_config({
        "mcpServers": {"files": {"command": "python", "args": ["file_tools_server.py"]}}
    })
    store.add_model(ModelCredentials(model_id="default", model="gpt-4o-mini",
                                     endpoint="https://api.openai.com/v1", api_key="sk-..."))

    # Run
    async with ChatRuntime(store, OpenAIModelBackend()) as runtime:
        session = runtime.sessions.create()
        session.set_model("default")
        result = await runtime.send_message(session.session_id, "List the files in /tmp")
"""

__version__ = "1.0.0"
__author__ = "TGO Team"
__email__ = "tangtaoit@githubim.com"

# Re-export main components for convenience
from .chat import (
    # Components
    ChatRuntime,
    ChatSession,
    SessionRegistry,
    MCPToolManager,
    AuthorizationGate,
    ToolCallLoop,
    StreamAccumulator,
    InMemoryConfigStore,
    OpenAIModelBackend,
    ConfigValidator,

    # Core models
    ToolServerSpec,
    ModelCredentials,
    PromptConfig,
    AgentPreset,
    EngineSettings,
    ChatMessage,
    SessionData,
    SendResult,
    ToolResult,

    # Enums
    ConnectionState,
    ConversationMode,
    MessageRole,
    ToolErrorKind,
    ToolPhase,

    # Exceptions
    ChatEngineError,
    BackendError,
    SessionNotFoundError,
)

__all__ = [
    # Components
    "ChatRuntime",
    "ChatSession",
    "SessionRegistry",
    "MCPToolManager",
    "AuthorizationGate",
    "ToolCallLoop",
    "StreamAccumulator",
    "InMemoryConfigStore",
    "OpenAIModelBackend",
    "ConfigValidator",

    # Core models
    "ToolServerSpec",
    "ModelCredentials",
    "PromptConfig",
    "AgentPreset",
    "EngineSettings",
    "ChatMessage",
    "SessionData",
    "SendResult",
    "ToolResult",

    # Enums
    "ConnectionState",
    "ConversationMode",
    "MessageRole",
    "ToolErrorKind",
    "ToolPhase",

    # Exceptions
    "ChatEngineError",
    "BackendError",
    "SessionNotFoundError",
]
