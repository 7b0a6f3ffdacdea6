"""
Catalog of the tools exported by all connected tool servers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.exceptions import ToolNotFoundError
from ..core.models import MCPTool
from .connection import ToolServerConnection

logger = logging.getLogger(__name__)

QUALIFIED_NAME_SEPARATOR = ":"


@dataclass(frozen=True)
class CatalogEntry:
    """Owner of one catalog name."""
    server_id: str
    tool: MCPTool


@dataclass(frozen=True)
class ToolCollision:
    """A tool name exported by more than one connected server."""
    tool_name: str
    kept_server_id: str
    dropped_server_id: str


def split_qualified_name(tool_name: str) -> Tuple[Optional[str], str]:
    """Split ``server:tool`` into ``(server, tool)``; plain names give ``(None, name)``."""
    if QUALIFIED_NAME_SEPARATOR in tool_name:
        server_id, _, bare = tool_name.partition(QUALIFIED_NAME_SEPARATOR)
        if server_id and bare:
            return server_id, bare
    return None, tool_name


class ToolCatalog:
    """
    Snapshot mapping tool name to (server id, tool schema).

    Only connected servers contribute. When two servers export the same
    name, the one registered first keeps it; the collision is logged and
    kept in ``collisions``.
    """

    def __init__(self, connections: Optional[Iterable[ToolServerConnection]] = None):
        self._connections: List[ToolServerConnection] = []
        self._entries: Dict[str, CatalogEntry] = {}
        self.collisions: List[ToolCollision] = []
        if connections is not None:
            self.rebuild(connections)

    def rebuild(self, connections: Iterable[ToolServerConnection]) -> None:
        """Recompute the mapping from ``connections`` in registration order."""
        self._connections = list(connections)
        self._entries = {}
        self.collisions = []

        for connection in self._connections:
            if not connection.is_connected:
                continue
            for tool in connection.tools:
                existing = self._entries.get(tool.name)
                if existing is not None:
                    collision = ToolCollision(tool.name, existing.server_id, connection.server_id)
                    self.collisions.append(collision)
                    logger.warning(
                        f"Tool name collision: {tool.name} exported by {existing.server_id} and "
                        f"{connection.server_id}; keeping {existing.server_id}"
                    )
                    continue
                self._entries[tool.name] = CatalogEntry(connection.server_id, tool)

        logger.debug(f"Tool catalog rebuilt with {len(self._entries)} tools")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._entries

    def entries(self) -> Dict[str, CatalogEntry]:
        return dict(self._entries)

    def get(self, tool_name: str) -> Optional[CatalogEntry]:
        return self._entries.get(tool_name)

    def tools(self, server_ids: Optional[Iterable[str]] = None) -> List[MCPTool]:
        """Catalog tools, optionally restricted to some servers."""
        allowed = set(server_ids) if server_ids is not None else None
        return [
            entry.tool for entry in self._entries.values()
            if allowed is None or entry.server_id in allowed
        ]

    def tool_definitions(self, server_ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Tools in the chat-completions ``tools`` format."""
        return [tool.to_openai_tool() for tool in self.tools(server_ids)]

    def resolve_for_execution(self, tool_name: str, preferred_server_id: Optional[str] = None) -> str:
        """
        Find the server that should run ``tool_name``.

        A preferred server (given explicitly or as a ``server:tool`` prefix)
        is used when it is connected and exports the tool. Otherwise the
        first connected server exporting the name wins.

        Raises:
            ToolNotFoundError: If no connected server exports the tool
        """
        prefix, bare_name = split_qualified_name(tool_name)
        preferred = preferred_server_id or prefix

        live = [connection for connection in self._connections if connection.is_connected]
        if preferred:
            for connection in live:
                if connection.server_id == preferred and connection.has_tool(bare_name):
                    return connection.server_id
            logger.info(f"Preferred server {preferred} cannot run {bare_name}, scanning all servers")

        for connection in live:
            if connection.has_tool(bare_name):
                return connection.server_id

        raise ToolNotFoundError(bare_name, server_id=preferred)
