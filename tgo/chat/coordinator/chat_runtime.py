"""
Chat runtime implementation.

This module wires the tool manager, the authorization gate and the session
registry together around one config store, model backend and presentation
sink.
"""

import logging
from typing import Iterable, List, Optional

from ..core.interfaces import ConfigStore, ModelBackend, NullPresentation, PresentationSink
from ..core.models import ConnectionStatus, EngineSettings, ResolvedSessionConfig, SendResult
from ..session.session_registry import SessionRegistry
from ..tools.authorization_gate import AuthorizationGate
from ..tools.connection import ClientFactory
from ..tools.mcp_tool_manager import MCPToolManager

logger = logging.getLogger(__name__)


class ChatRuntime:
    """Top-level owner of the chat engine.

    Usage:
        runtime = ChatRuntime(store, OpenAIModelBackend(), presentation)
        await runtime.start()
        session = runtime.sessions.create()
        result = await runtime.send_message(session.session_id, "hello")
        await runtime.shutdown()
    """

    def __init__(
        self,
        config_store: ConfigStore,
        backend: Optional[ModelBackend] = None,
        presentation: Optional[PresentationSink] = None,
        settings: Optional[EngineSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        defaults: Optional[ResolvedSessionConfig] = None
    ):
        if backend is None:
            from ..llm.openai_backend import OpenAIModelBackend
            backend = OpenAIModelBackend()

        self.config_store = config_store
        self.backend = backend
        self.presentation = presentation or NullPresentation()
        self.settings = settings or EngineSettings()

        self.tool_manager = MCPToolManager(config_store, self.presentation, client_factory)
        self.authorization_gate = AuthorizationGate(config_store, self.presentation)
        self.sessions = SessionRegistry(
            config_store,
            backend,
            self.tool_manager,
            self.authorization_gate,
            presentation=self.presentation,
            settings=self.settings,
            defaults=defaults,
        )
        self._started = False

        logger.info("ChatRuntime initialized")

    async def start(self) -> List[ConnectionStatus]:
        """Connect the tool servers that were active when the process last ran."""
        statuses = await self.tool_manager.connect_active_servers()
        self._started = True
        failed = [status.server_id for status in statuses if status.error]
        if failed:
            logger.warning(f"ChatRuntime started with unavailable tool servers: {failed}")
        else:
            logger.info(f"ChatRuntime started with {len(statuses)} tool server(s)")
        return statuses

    async def activate_servers(self, server_ids: Iterable[str]) -> List[ConnectionStatus]:
        """Connect servers and remember them as the active selection."""
        server_ids = list(server_ids)
        self.config_store.set_active_tool_servers(server_ids)
        return await self.tool_manager.activate_many(server_ids)

    async def deactivate_server(self, server_id: str) -> bool:
        return await self.tool_manager.deactivate(server_id)

    async def reconnect(self, server_id: str) -> ConnectionStatus:
        return await self.tool_manager.reconnect(server_id)

    def submit_decision(
        self,
        correlation_id: str,
        authorized: bool,
        permanent: bool = False,
        tool_name: Optional[str] = None,
        server_id: Optional[str] = None
    ) -> bool:
        return self.authorization_gate.submit_decision(
            correlation_id, authorized, permanent, tool_name=tool_name, server_id=server_id
        )

    async def send_message(self, session_id: str, text: str, request_id: Optional[str] = None) -> SendResult:
        return await self.sessions.send_message(session_id, text, request_id)

    def abort(self, session_id: str) -> bool:
        return self.sessions.abort(session_id)

    async def shutdown(self) -> None:
        """Abort all generations and disconnect every tool server."""
        await self.sessions.shutdown()
        await self.tool_manager.shutdown()
        aclose = getattr(self.backend, "aclose", None)
        if aclose is not None:
            await aclose()
        self._started = False
        logger.info("ChatRuntime shutdown completed")

    async def __aenter__(self) -> "ChatRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
