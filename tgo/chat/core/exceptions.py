"""
Exception classes for the chat engine.

Connection and backend failures are raised as typed exceptions. Tool
execution failures are not exceptions: they are converted into
``ToolResult`` values so the tool call loop can feed them back to the model.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ChatEngineError(Exception):
    """Base exception for all chat engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "timestamp": self.timestamp.isoformat()
        }


class ConfigurationError(ChatEngineError):
    """Raised when a configuration document fails validation."""
    pass


# Tool server connection errors
class ToolServerError(ChatEngineError):
    """Base exception for tool server connection errors."""

    def __init__(
        self,
        message: str,
        server_id: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, context)
        self.server_id = server_id


class LaunchFailedError(ToolServerError):
    """Raised when the tool server executable cannot be resolved or started."""
    pass


class ToolServerProtocolError(ToolServerError):
    """Raised when the capability discovery handshake fails."""
    pass


class ServerNotConfiguredError(ToolServerError):
    """Raised when a server id has no launch spec in the config store."""
    pass


class ToolNotFoundError(ChatEngineError):
    """Raised when no live connection exports the requested tool."""

    def __init__(self, tool_name: str, server_id: Optional[str] = None):
        super().__init__(f"No connected tool server provides tool: {tool_name}")
        self.tool_name = tool_name
        self.server_id = server_id


# Model backend errors
class BackendError(ChatEngineError):
    """Base exception for model backend call failures."""

    user_message = "The model call failed."

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, context)
        self.status_code = status_code


class AuthError(BackendError):
    """The backend rejected the credentials (HTTP 401/403)."""

    user_message = "The API key is invalid or has expired."


class RateLimitedError(BackendError):
    """The backend throttled the request (HTTP 429)."""

    user_message = "The API request limit was reached, please retry later."


class BackendServerError(BackendError):
    """The backend failed on its side (HTTP 5xx)."""

    user_message = "The model server returned an error, please retry later."


class BackendCallError(BackendError):
    """Any other backend failure."""

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"The model call failed: {self.message}"


# Session errors
class SessionError(ChatEngineError):
    """Base exception for session errors."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, context)
        self.session_id = session_id


class SessionNotFoundError(SessionError):
    """Raised when a session id is not owned by the registry."""
    pass


class SessionConfigurationError(SessionError):
    """Raised when a session's model, prompt or agent cannot be resolved."""
    pass


class GenerationCancelled(ChatEngineError):
    """Internal signal used to unwind a cancelled generation.

    Never escapes ``ChatSession.send_message``: deliberate cancellation is
    reported as an aborted ``SendResult``.
    """

    def __init__(self, message: str = "Generation was cancelled"):
        super().__init__(message)
