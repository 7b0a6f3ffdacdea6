"""
MCP Tool Manager for managing tool server connections and tool execution.

This module keeps exactly one connection per activated tool server, rebuilds
the tool catalog whenever a connection changes state, and routes tool calls
to the server that owns them.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.enums import ToolErrorKind
from ..core.exceptions import ServerNotConfiguredError, ToolNotFoundError, ToolServerError
from ..core.interfaces import ConfigStore, NullPresentation, PresentationSink
from ..core.models import ConnectionStatus, MCPTool, ToolResult
from .catalog import ToolCatalog, split_qualified_name
from .connection import DEFAULT_TOOL_TIMEOUT, ClientFactory, ToolServerConnection

logger = logging.getLogger(__name__)


class MCPToolManager:
    """
    Registry of tool server connections.

    This class handles:
    - Activation, deactivation and reconnection of tool servers
    - Catalog rebuilds on every connection state change
    - Tool execution routing with timeouts
    - Connection status notifications

    Usage:
        store = InMemoryConfigStore.from_mcp_config({
            "mcpServers": {
                "files": {"command": "python", "args": ["./file_server.py"]}
            }
        })
        manager = MCPToolManager(store)
        await manager.activate("files")
        result = await manager.execute("list_dir", {"path": "."})
    """

    def __init__(
        self,
        config_store: ConfigStore,
        presentation: Optional[PresentationSink] = None,
        client_factory: Optional[ClientFactory] = None
    ):
        self._config_store = config_store
        self._presentation = presentation or NullPresentation()
        self._client_factory = client_factory

        # Registration order decides catalog collisions
        self._connections: Dict[str, ToolServerConnection] = {}
        self._catalog = ToolCatalog()

        # Metrics
        self._total_requests = 0
        self._total_errors = 0

        logger.info("MCPToolManager initialized")

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def connections(self) -> List[ToolServerConnection]:
        return list(self._connections.values())

    def get_connection(self, server_id: str) -> Optional[ToolServerConnection]:
        return self._connections.get(server_id)

    def get_server_ids(self) -> List[str]:
        return list(self._connections.keys())

    def statuses(self) -> List[ConnectionStatus]:
        return [connection.status() for connection in self._connections.values()]

    async def activate(self, server_id: str) -> ToolServerConnection:
        """
        Connect a configured server unless it is already connected.

        Connection failures are recorded on the returned connection (state
        FAILED, ``error`` set) and never raised.

        Raises:
            ServerNotConfiguredError: If the config store has no spec for it
        """
        connection = self._connections.get(server_id)
        if connection is not None and connection.is_connected:
            return connection
        if connection is None:
            connection = self._create_connection(server_id)
        await self._connect(connection)
        return connection

    async def activate_many(self, server_ids: Iterable[str]) -> List[ConnectionStatus]:
        """Activate servers one after the other, in the given order."""
        statuses = []
        for server_id in server_ids:
            try:
                connection = await self.activate(server_id)
            except ServerNotConfiguredError as e:
                logger.error(str(e))
                continue
            statuses.append(connection.status())
        return statuses

    async def connect_active_servers(self, session_id: Optional[str] = None) -> List[ConnectionStatus]:
        """Activate the servers the config store lists as active."""
        specs = self._config_store.get_active_tool_servers(session_id)
        logger.info(f"Connecting active tool servers: {[spec.server_id for spec in specs]}")
        return await self.activate_many(spec.server_id for spec in specs)

    async def reconnect(self, server_id: str) -> ConnectionStatus:
        """
        Replace the connection of a server with a fresh one.

        The old process is torn down before the new one starts, so at most
        one live connection exists per server id.
        """
        old = self._connections.get(server_id)
        if old is not None:
            await old.disconnect()
        connection = self._create_connection(server_id)
        await self._connect(connection)
        return connection.status()

    async def deactivate(self, server_id: str) -> bool:
        """Disconnect a server and forget its connection."""
        connection = self._connections.pop(server_id, None)
        if connection is None:
            return False
        await connection.disconnect()
        self._rebuild_catalog()
        logger.info(f"Deactivated tool server {server_id}")
        return True

    def get_available_tools(self, server_ids: Optional[Iterable[str]] = None) -> List[MCPTool]:
        """Get catalog tools, optionally restricted to some servers."""
        return self._catalog.tools(server_ids)

    def tool_definitions(self, server_ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Get catalog tools in the chat-completions format."""
        return self._catalog.tool_definitions(server_ids)

    def resolve(self, tool_name: str, preferred_server_id: Optional[str] = None) -> str:
        """Resolve the server for a tool; see ``ToolCatalog.resolve_for_execution``."""
        return self._catalog.resolve_for_execution(tool_name, preferred_server_id)

    def get_tool(self, tool_name: str, server_id: str) -> Optional[MCPTool]:
        connection = self._connections.get(server_id)
        if connection is None:
            return None
        _, bare_name = split_qualified_name(tool_name)
        return connection.get_tool(bare_name)

    async def execute(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        preferred_server_id: Optional[str] = None,
        timeout: float = DEFAULT_TOOL_TIMEOUT
    ) -> ToolResult:
        """
        Resolve and invoke a tool.

        Returns:
            The tool result; resolution and execution failures are error results
        """
        _, bare_name = split_qualified_name(tool_name)
        try:
            server_id = self.resolve(tool_name, preferred_server_id)
        except ToolNotFoundError as e:
            self._total_errors += 1
            return ToolResult.error(bare_name, ToolErrorKind.NOT_FOUND, e.message)
        return await self.invoke(server_id, bare_name, arguments, timeout)

    async def invoke(
        self,
        server_id: str,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: float = DEFAULT_TOOL_TIMEOUT
    ) -> ToolResult:
        """Invoke a tool on a specific server."""
        self._total_requests += 1
        connection = self._connections.get(server_id)
        if connection is None:
            self._total_errors += 1
            return ToolResult.error(
                tool_name,
                ToolErrorKind.NOT_CONNECTED,
                f"Tool server {server_id} is not active, cannot run {tool_name}",
                server_id=server_id,
            )

        result = await connection.invoke(tool_name, arguments, timeout)
        if result.is_error:
            self._total_errors += 1
        logger.info(f"Tool call completed: {server_id}:{tool_name} (success: {not result.is_error})")
        return result

    def get_metrics(self) -> Dict[str, Any]:
        """Get manager metrics."""
        return {
            "total_requests": self._total_requests,
            "total_errors": self._total_errors,
            "error_rate": self._total_errors / max(self._total_requests, 1),
            "total_tools": len(self._catalog),
            "total_servers": len(self._connections),
            "connected_servers": sum(1 for c in self._connections.values() if c.is_connected),
        }

    async def shutdown(self) -> None:
        """Disconnect every server."""
        for connection in list(self._connections.values()):
            await connection.disconnect()
        self._connections.clear()
        self._rebuild_catalog()
        logger.info("MCPToolManager shutdown completed")

    def _create_connection(self, server_id: str) -> ToolServerConnection:
        spec = self._config_store.get_tool_server(server_id)
        if spec is None:
            raise ServerNotConfiguredError(f"Tool server {server_id} is not configured", server_id=server_id)
        connection = ToolServerConnection(
            spec,
            client_factory=self._client_factory,
            on_state_change=self._handle_state_change,
        )
        # Re-inserting keeps the original registration position
        self._connections[server_id] = connection
        return connection

    async def _connect(self, connection: ToolServerConnection) -> None:
        try:
            await connection.connect()
        except ToolServerError as e:
            logger.error(f"Tool server {connection.server_id} unavailable: {e.message}")

    def _handle_state_change(self, connection: ToolServerConnection) -> None:
        if self._connections.get(connection.server_id) is not connection:
            return
        self._rebuild_catalog()
        self._presentation.on_server_status(connection.status())

    def _rebuild_catalog(self) -> None:
        self._catalog.rebuild(self._connections.values())
