"""
Core data models for the chat engine.

This module defines the data structures shared by the tool server layer,
the authorization gate, the tool call loop and the session layer.
"""

import json
import secrets
import uuid as uuid_lib
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .enums import (
    AuthorizationOutcome, ConnectionState, ConversationMode, MessageRole,
    ToolErrorKind
)


ABORTED_MARKER = "<aborted>"
FREE_MODE_AGENT_ID = "free-mode"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """Generate a session id of the form ``session-<10 hex chars>``."""
    return "session-" + secrets.token_hex(5)


class ToolServerSpec(BaseModel):
    """Launch specification of one out-of-process tool server."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    server_id: str = Field(..., description="Opaque server identity", min_length=1)
    name: Optional[str] = Field(None, description="Display name")
    description: Optional[str] = Field(None, description="Server description")

    # Launch spec
    command: str = Field(..., description="Executable path or name searched on PATH", min_length=1)
    args: List[str] = Field(default_factory=list, description="Command line arguments")
    env: Dict[str, str] = Field(default_factory=dict, description="Environment overrides")
    cwd: Optional[str] = Field(None, description="Working directory for the process")

    # Tools the user approved permanently
    auto_approve: List[str] = Field(default_factory=list, description="Pre-authorized tool names")

    @property
    def display_name(self) -> str:
        return self.name or self.server_id

    @classmethod
    def from_mcp_config(cls, server_id: str, entry: Dict[str, Any]) -> "ToolServerSpec":
        """Build a spec from one entry of an ``mcpServers`` config section."""
        return cls(
            server_id=server_id,
            name=entry.get("name"),
            description=entry.get("description"),
            command=entry.get("command", ""),
            args=list(entry.get("args") or []),
            env=dict(entry.get("env") or entry.get("envs") or {}),
            cwd=entry.get("cwd"),
            auto_approve=list(entry.get("autoApprove") or entry.get("auto_approve") or []),
        )


class MCPTool(BaseModel):
    """Represents a tool exported by a connected tool server."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    name: str = Field(..., description="Tool name", min_length=1)
    description: str = Field(default="", description="Tool description")
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []},
        description="JSON Schema for input parameters"
    )
    server_id: str = Field(..., description="Tool server providing this tool")
    server_name: Optional[str] = Field(None, description="Display name of the server")

    discovered_at: datetime = Field(default_factory=_utc_now, description="Tool discovery time")
    last_used: Optional[datetime] = Field(None, description="Last usage time")
    usage_count: int = Field(default=0, description="Usage count", ge=0)

    @field_validator("input_schema", mode="before")
    @classmethod
    def _normalize_schema(cls, value: Any) -> Dict[str, Any]:
        schema = dict(value) if value else {}
        if not schema:
            return {"type": "object", "properties": {}, "required": []}
        schema.setdefault("type", "object")
        if not schema.get("properties"):
            schema["properties"] = {}
        return schema

    def to_openai_tool(self) -> Dict[str, Any]:
        """Tool definition in the chat-completions ``tools`` format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            }
        }


class ModelCredentials(BaseModel):
    """Endpoint and sampling parameters for one configured model."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    model_id: str = Field(..., description="Configured model identifier", min_length=1)
    model: str = Field(..., description="Model name sent to the backend", min_length=1)
    endpoint: str = Field(..., description="Base URL of the completion API")
    api_key: str = Field(default="", description="API key")
    context_size: Optional[int] = Field(None, description="Max tokens per completion", ge=1)
    temperature: Optional[float] = Field(None, description="Sampling temperature", ge=0.0, le=2.0)


class PromptConfig(BaseModel):
    """A configured role prompt."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    prompt_id: str = Field(..., description="Prompt identifier", min_length=1)
    name: Optional[str] = Field(None, description="Prompt name")
    content: str = Field(..., description="Prompt text")
    role: MessageRole = Field(default=MessageRole.SYSTEM, description="Role the prompt is sent with")


class AgentPreset(BaseModel):
    """A named bundle of model, prompt and tool servers."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    agent_id: str = Field(..., description="Agent identifier", min_length=1)
    name: Optional[str] = Field(None, description="Agent name")
    model_id: Optional[str] = Field(None, description="Model to use")
    prompt_id: Optional[str] = Field(None, description="Prompt to use")
    tool_server_ids: List[str] = Field(default_factory=list, description="Tool servers to enable")


class EngineSettings(BaseModel):
    """Tunables of the tool call loop and sessions."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    tool_timeout_seconds: float = Field(default=30.0, description="Tool invocation timeout", gt=0)
    max_tool_rounds: int = Field(default=10, description="Tool rounds allowed per user message", ge=1)
    default_temperature: float = Field(default=0.7, description="Fallback temperature", ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=4096, description="Fallback max tokens", ge=1)
    session_name_length: int = Field(default=64, description="Characters of the first message used as name", ge=1)
    aborted_marker: str = Field(default=ABORTED_MARKER, description="Content reported for aborted generations")


class ResolvedSessionConfig(BaseModel):
    """Model, prompt and tool servers in effect for one generation."""

    model_config = ConfigDict(extra='forbid')

    model_id: Optional[str] = None
    prompt_id: Optional[str] = None
    tool_server_ids: List[str] = Field(default_factory=list)


class ToolCallRecord(BaseModel):
    """A well-formed tool call emitted by the model."""

    model_config = ConfigDict(extra='forbid')

    id: str = Field(..., description="Tool call id echoed in the tool result")
    index: int = Field(default=0, description="Stream index of the call", ge=0)
    name: str = Field(..., description="Tool name", min_length=1)
    arguments: str = Field(..., description="Raw JSON arguments")

    def parsed_arguments(self) -> Dict[str, Any]:
        return json.loads(self.arguments)

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ToolResult(BaseModel):
    """Outcome of one tool call: either ``ok`` content or an ``error`` kind."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    tool_name: str = Field(..., description="Tool that was called")
    server_id: Optional[str] = Field(None, description="Server that served the call")
    text: str = Field(default="", description="Extracted text content")
    content: List[Any] = Field(default_factory=list, description="Raw result content blocks")
    error_kind: Optional[ToolErrorKind] = Field(None, description="Set when the call produced no result")
    error_message: Optional[str] = Field(None, description="Human readable error")
    execution_time_ms: Optional[int] = Field(None, description="Execution time", ge=0)

    @classmethod
    def ok(
        cls,
        tool_name: str,
        text: str,
        server_id: Optional[str] = None,
        content: Optional[List[Any]] = None,
        execution_time_ms: Optional[int] = None
    ) -> "ToolResult":
        return cls(
            tool_name=tool_name,
            server_id=server_id,
            text=text,
            content=content or [],
            execution_time_ms=execution_time_ms,
        )

    @classmethod
    def error(
        cls,
        tool_name: str,
        kind: ToolErrorKind,
        message: str,
        server_id: Optional[str] = None
    ) -> "ToolResult":
        return cls(tool_name=tool_name, server_id=server_id, error_kind=kind, error_message=message)

    @property
    def is_error(self) -> bool:
        return self.error_kind is not None

    def content_for_model(self) -> str:
        """Text placed in the tool-result message."""
        if self.error_kind is None:
            return self.text
        return f"[{self.error_kind.value}] {self.error_message}"


class ChatMessage(BaseModel):
    """One entry in a session's message log."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    id: int = Field(default=0, description="Position of the message in the session", ge=0)
    role: MessageRole = Field(..., description="Message role")
    content: str = Field(default="", description="Message text")
    name: Optional[str] = Field(None, description="Tool name for tool messages")
    tool_call_id: Optional[str] = Field(None, description="Tool call answered by a tool message")
    tool_calls: List[ToolCallRecord] = Field(default_factory=list, description="Tool calls of an assistant message")
    reasoning: Optional[str] = Field(None, description="Streamed reasoning, display only")
    is_error: bool = Field(default=False, description="Whether a tool message reports a failure")
    timestamp: datetime = Field(default_factory=_utc_now, description="Creation time")

    def to_model_message(self) -> Dict[str, Any]:
        """Message in the chat-completions wire shape."""
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.role == MessageRole.ASSISTANT and self.tool_calls:
            message["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        if self.role == MessageRole.TOOL:
            message["tool_call_id"] = self.tool_call_id
            if self.name:
                message["name"] = self.name
        return message


class SessionData(BaseModel):
    """Persistent part of a chat session."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    session_id: str = Field(default_factory=generate_session_id, description="Session id")
    name: str = Field(default="", description="Session display name")
    created_at: datetime = Field(default_factory=_utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=_utc_now, description="Last update time")

    messages: List[ChatMessage] = Field(default_factory=list, description="Message log")
    message_count: int = Field(default=0, description="Messages ever appended", ge=0)

    agent_id: Optional[str] = Field(None, description="Agent preset, 'free-mode' or None for custom")
    model_id: Optional[str] = Field(None, description="Selected model")
    prompt_id: Optional[str] = Field(None, description="Selected prompt")
    tool_server_ids: List[str] = Field(default_factory=list, description="Enabled tool servers")
    conversation_mode: ConversationMode = Field(
        default=ConversationMode.MULTI_TURN,
        description="Whether history is replayed"
    )

    def touch(self) -> None:
        self.updated_at = _utc_now()


class SessionSummary(BaseModel):
    """Listing entry for a session."""

    model_config = ConfigDict(extra='forbid')

    session_id: str
    name: str
    created_at: datetime
    updated_at: datetime
    message_count: int
    agent_id: Optional[str] = None
    model_id: Optional[str] = None
    prompt_id: Optional[str] = None
    tool_server_ids: List[str] = Field(default_factory=list)
    conversation_mode: ConversationMode = ConversationMode.MULTI_TURN
    generating: bool = False


class AuthorizationRequest(BaseModel):
    """A pending human decision for one tool call."""

    model_config = ConfigDict(extra='forbid')

    correlation_id: str = Field(
        default_factory=lambda: str(uuid_lib.uuid4()),
        description="Correlates the response with this request"
    )
    tool_name: str = Field(..., description="Tool awaiting authorization", min_length=1)
    server_id: str = Field(..., description="Server exporting the tool", min_length=1)
    server_name: Optional[str] = Field(None, description="Display name of the server")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    session_id: Optional[str] = Field(None, description="Session that issued the call")
    created_at: datetime = Field(default_factory=_utc_now, description="Request time")

    @property
    def arguments_summary(self) -> str:
        summary = json.dumps(self.arguments, ensure_ascii=False)
        if len(summary) > 200:
            summary = summary[:197] + "..."
        return summary


class AuthorizationDecision(BaseModel):
    """Terminal value of an authorization request."""

    model_config = ConfigDict(extra='forbid')

    outcome: AuthorizationOutcome
    permanent: bool = False
    correlation_id: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self.outcome == AuthorizationOutcome.GRANTED


class SendResult(BaseModel):
    """What ``send_message`` reports to its caller."""

    model_config = ConfigDict(extra='forbid')

    request_id: str = Field(..., description="Request id of the generation")
    content: str = Field(default="", description="Final assistant answer")
    aborted: bool = Field(default=False, description="Whether the generation was cancelled")


class ConnectionStatus(BaseModel):
    """Snapshot of one tool server connection for display."""

    model_config = ConfigDict(extra='forbid')

    server_id: str
    server_name: str
    state: ConnectionState
    tool_count: int = 0
    error: Optional[str] = None
