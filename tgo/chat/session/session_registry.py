"""
Session registry implementation.

This module owns every chat session of the process and routes user
actions (send, abort, rename, delete) to the right session.
"""

import logging
from typing import Dict, List, Optional

from ..core.exceptions import SessionNotFoundError
from ..core.interfaces import ConfigStore, ModelBackend, NullPresentation, PresentationSink
from ..core.models import EngineSettings, ResolvedSessionConfig, SendResult, SessionData, SessionSummary
from ..tools.authorization_gate import AuthorizationGate
from ..tools.mcp_tool_manager import MCPToolManager
from .chat_session import ChatSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Registry of chat sessions.

    Sessions persisted in the config store are restored on construction.
    New sessions either inherit the selection of a template session or
    start from ``defaults`` (the active tool servers when none are given).
    """

    def __init__(
        self,
        config_store: ConfigStore,
        backend: ModelBackend,
        tool_manager: MCPToolManager,
        authorization_gate: AuthorizationGate,
        presentation: Optional[PresentationSink] = None,
        settings: Optional[EngineSettings] = None,
        defaults: Optional[ResolvedSessionConfig] = None,
        load_persisted: bool = True
    ):
        self._config_store = config_store
        self._backend = backend
        self._tool_manager = tool_manager
        self._gate = authorization_gate
        self._presentation = presentation or NullPresentation()
        self._settings = settings or EngineSettings()
        self._defaults = defaults
        self._sessions: Dict[str, ChatSession] = {}

        if load_persisted:
            for data in config_store.load_sessions():
                self._sessions[data.session_id] = self._build(data)
            if self._sessions:
                logger.info(f"Restored {len(self._sessions)} persisted session(s)")

        logger.info("SessionRegistry initialized")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, template_session_id: Optional[str] = None, name: str = "") -> ChatSession:
        """
        Create a new session.

        Args:
            template_session_id: Session whose model, prompt, agent, tool
                servers and conversation mode are copied
            name: Display name; empty names are filled from the first message

        Raises:
            SessionNotFoundError: If the template session does not exist
        """
        data = SessionData(name=name)
        if template_session_id is not None:
            template = self.get(template_session_id).data
            data.agent_id = template.agent_id
            data.model_id = template.model_id
            data.prompt_id = template.prompt_id
            data.tool_server_ids = list(template.tool_server_ids)
            data.conversation_mode = template.conversation_mode
        elif self._defaults is not None:
            data.model_id = self._defaults.model_id
            data.prompt_id = self._defaults.prompt_id
            data.tool_server_ids = list(self._defaults.tool_server_ids)
        else:
            data.tool_server_ids = [spec.server_id for spec in self._config_store.get_active_tool_servers()]

        session = self._build(data)
        self._sessions[data.session_id] = session
        self._config_store.save_session(data)
        logger.info(f"Created session: {data.session_id}")
        return session

    def get(self, session_id: str) -> ChatSession:
        """Get a session by ID.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}", session_id=session_id)
        return session

    def find(self, session_id: str) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> None:
        """Abort and remove a session."""
        session = self.get(session_id)
        session.abort()
        del self._sessions[session_id]
        self._config_store.delete_session(session_id)
        logger.info(f"Deleted session: {session_id}")

    def list(self) -> List[SessionSummary]:
        """Summaries of all sessions, most recently updated first."""
        sessions = sorted(self._sessions.values(), key=lambda s: s.data.updated_at, reverse=True)
        return [session.summary() for session in sessions]

    async def send_message(self, session_id: str, text: str, request_id: Optional[str] = None) -> SendResult:
        return await self.get(session_id).send_message(text, request_id)

    def abort(self, session_id: str) -> bool:
        return self.get(session_id).abort()

    def rename(self, session_id: str, name: str) -> None:
        self.get(session_id).rename(name)

    async def shutdown(self) -> None:
        """Abort every generation in flight."""
        aborted = sum(1 for session in self._sessions.values() if session.abort())
        logger.info(f"SessionRegistry shutdown completed ({aborted} generation(s) aborted)")

    def _build(self, data: SessionData) -> ChatSession:
        return ChatSession(
            data,
            self._config_store,
            self._backend,
            self._tool_manager,
            self._gate,
            presentation=self._presentation,
            settings=self._settings,
        )
