"""
Interfaces of the collaborators the chat engine consumes.

The configuration store, the model backend and the presentation layer live
outside the engine; the engine only talks to them through these classes.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from .cancellation import CancelToken
from .enums import ToolPhase
from .models import (
    AgentPreset, AuthorizationRequest, ConnectionStatus, ModelCredentials,
    PromptConfig, SessionData, ToolServerSpec
)
from ..streaming.fragments import Fragment


class ConfigStore(ABC):
    """Persistent configuration: servers, models, prompts, agents, sessions.

    Implementations are responsible for serializing their own writes.
    """

    @abstractmethod
    def get_tool_server(self, server_id: str) -> Optional[ToolServerSpec]:
        """Get the launch spec of a server, None if not configured."""
        pass

    @abstractmethod
    def list_tool_servers(self) -> List[ToolServerSpec]:
        """List every configured server in registration order."""
        pass

    @abstractmethod
    def get_active_tool_servers(self, session_id: Optional[str] = None) -> List[ToolServerSpec]:
        """Get the servers a session uses.

        Args:
            session_id: Session identifier, None for the servers that were
                active when the process last ran

        Returns:
            Server specs in activation order
        """
        pass

    @abstractmethod
    def set_active_tool_servers(self, server_ids: List[str]) -> None:
        """Remember the server selection used for new sessions."""
        pass

    @abstractmethod
    def get_auto_approval(self, server_id: str) -> Set[str]:
        """Get the tool names a server may run without asking."""
        pass

    @abstractmethod
    def set_auto_approval(self, server_id: str, tool_names: Set[str]) -> None:
        """Persist the auto-approval set of a server."""
        pass

    @abstractmethod
    def get_model_credentials(self, model_id: str) -> Optional[ModelCredentials]:
        """Get endpoint, key and sampling parameters of a model."""
        pass

    @abstractmethod
    def get_prompt(self, prompt_id: str) -> Optional[PromptConfig]:
        """Get a role prompt."""
        pass

    @abstractmethod
    def get_agent(self, agent_id: str) -> Optional[AgentPreset]:
        """Get an agent preset."""
        pass

    @abstractmethod
    def save_session(self, data: SessionData) -> None:
        """Persist a session and its message log."""
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> None:
        """Remove a persisted session."""
        pass

    @abstractmethod
    def load_sessions(self) -> List[SessionData]:
        """Load every persisted session."""
        pass


class ModelBackend(ABC):
    """Streaming chat-completion client."""

    @abstractmethod
    def stream_completion(
        self,
        credentials: ModelCredentials,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int,
        cancel_token: CancelToken
    ) -> AsyncIterator[Fragment]:
        """Stream one completion as fragments.

        Implementations raise ``BackendError`` subclasses on failure and
        stop producing fragments once ``cancel_token`` fires.
        """
        pass


class PresentationSink(ABC):
    """Push interface towards the presentation layer (fire-and-forget)."""

    @abstractmethod
    def on_answer_fragment(self, session_id: str, request_id: str, message_id: str, text: str) -> None:
        """A piece of answer text for the display message ``message_id``."""
        pass

    @abstractmethod
    def on_reasoning_fragment(self, session_id: str, request_id: str, message_id: str, text: str) -> None:
        """A piece of reasoning text for the display message ``message_id``."""
        pass

    @abstractmethod
    def on_tool_status(
        self,
        session_id: str,
        request_id: str,
        tool_name: str,
        phase: ToolPhase,
        detail: Optional[str] = None
    ) -> None:
        """Progress of one tool call."""
        pass

    @abstractmethod
    def on_authorization_request(self, request: AuthorizationRequest) -> None:
        """Ask the user; the answer comes back through ``submit_decision``."""
        pass

    @abstractmethod
    def on_server_status(self, status: ConnectionStatus) -> None:
        """A tool server changed connection state."""
        pass

    @abstractmethod
    def on_session_renamed(self, session_id: str, name: str) -> None:
        """A session got a new display name."""
        pass


class NullPresentation(PresentationSink):
    """Presentation sink that drops every event."""

    def on_answer_fragment(self, session_id: str, request_id: str, message_id: str, text: str) -> None:
        pass

    def on_reasoning_fragment(self, session_id: str, request_id: str, message_id: str, text: str) -> None:
        pass

    def on_tool_status(
        self,
        session_id: str,
        request_id: str,
        tool_name: str,
        phase: ToolPhase,
        detail: Optional[str] = None
    ) -> None:
        pass

    def on_authorization_request(self, request: AuthorizationRequest) -> None:
        pass

    def on_server_status(self, status: ConnectionStatus) -> None:
        pass

    def on_session_renamed(self, session_id: str, name: str) -> None:
        pass
