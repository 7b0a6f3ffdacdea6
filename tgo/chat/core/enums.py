"""
Enumerations for the chat engine.

This module defines the enums shared by the tool-server layer, the
authorization gate, the streaming loop and the session layer.
"""

from enum import Enum


class ConnectionState(str, Enum):
    """Lifecycle state of a tool server connection.

    - DISCONNECTED: No process running
    - CONNECTING: Process launched, discovery in progress
    - CONNECTED: Discovery finished, tools are callable
    - FAILED: Launch or discovery failed, error retained for display
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class ConversationMode(str, Enum):
    """Whether prior turns are replayed to the model."""
    SINGLE_TURN = "single-turn"
    MULTI_TURN = "multi-turn"

    def __str__(self) -> str:
        return self.value


class MessageRole(str, Enum):
    """Role of a message in the session log."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    def __str__(self) -> str:
        return self.value


class ToolErrorKind(str, Enum):
    """Why a tool call produced no result.

    Connection and execution failures are reported to the model as
    tool-result messages carrying one of these kinds.
    """
    NOT_FOUND = "not_found"
    NOT_CONNECTED = "not_connected"
    TIMED_OUT = "timed_out"
    REMOTE_ERROR = "remote_error"
    MALFORMED_ARGUMENTS = "malformed_arguments"
    DENIED = "denied"
    ABANDONED = "abandoned"

    def __str__(self) -> str:
        return self.value


class AuthorizationOutcome(str, Enum):
    """Terminal value of an authorization request."""
    GRANTED = "granted"
    DENIED = "denied"
    ABANDONED = "abandoned"

    def __str__(self) -> str:
        return self.value


class ToolPhase(str, Enum):
    """Progress of a single tool call, pushed to the presentation layer."""
    STARTED = "started"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUSED = "refused"

    def __str__(self) -> str:
        return self.value


class LoopState(str, Enum):
    """States of one tool call loop run.

    AWAITING_FIRST_RESPONSE -> NO_TOOL_CALLS -> DONE, or
    AWAITING_FIRST_RESPONSE -> HAS_TOOL_CALLS -> EXECUTING_TOOLS
        -> AWAITING_FINAL_RESPONSE -> DONE.
    CANCELLED is reachable from every non-terminal state, ERRORED on an
    unrecoverable backend failure.
    """
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    NO_TOOL_CALLS = "no_tool_calls"
    HAS_TOOL_CALLS = "has_tool_calls"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FINAL_RESPONSE = "awaiting_final_response"
    DONE = "done"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.DONE, LoopState.CANCELLED, LoopState.ERRORED)
