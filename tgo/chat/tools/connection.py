"""
Connection to one out-of-process MCP tool server.

This module owns the lifecycle of a single stdio tool server: executable
resolution, launch, capability discovery, tool invocation with a timeout
race, and teardown.
"""

import asyncio
import logging
import os
import shutil
import time
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from fastmcp import Client
from fastmcp.client.transports import StdioTransport
from mcp.types import TextContent

from ..core.enums import ConnectionState, ToolErrorKind
from ..core.exceptions import LaunchFailedError, ToolServerError, ToolServerProtocolError
from ..core.models import ConnectionStatus, MCPTool, ToolResult, ToolServerSpec

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 60.0

ClientFactory = Callable[[ToolServerSpec, str], Any]
StateListener = Callable[["ToolServerConnection"], None]


def build_stdio_client(spec: ToolServerSpec, executable: str) -> Client:
    """Create a FastMCP client speaking stdio to ``executable``."""
    env = {**os.environ, **spec.env}
    transport = StdioTransport(
        command=executable,
        args=list(spec.args),
        env=env,
        cwd=spec.cwd,
    )
    return Client(transport)


def resolve_executable(spec: ToolServerSpec) -> str:
    """Resolve the server command to an existing executable path.

    Bare names are searched on PATH (the server's own PATH override wins).

    Raises:
        LaunchFailedError: If nothing executable is found
    """
    command = os.path.expanduser(spec.command)
    if os.path.isabs(command) or os.sep in command or (os.altsep and os.altsep in command):
        path = os.path.normpath(command)
        if os.path.isfile(path):
            return path
        raise LaunchFailedError(
            f"Tool server executable does not exist: {path}",
            server_id=spec.server_id,
        )

    search_path = spec.env.get("PATH") or os.environ.get("PATH")
    found = shutil.which(command, path=search_path)
    if found is None:
        raise LaunchFailedError(
            f"Tool server executable not found on PATH: {command}",
            server_id=spec.server_id,
        )
    logger.info(f"Resolved tool server command {command} to {found}")
    return found


def extract_text(content: List[Any]) -> str:
    """Join the text blocks of a tool result."""
    parts: List[str] = []
    for block in content:
        if isinstance(block, TextContent):
            parts.append(block.text)
        else:
            parts.append(f"[{getattr(block, 'type', 'unknown')} content]")
    return "\n".join(parts)


def protocol_fields(model: Any, exclude: Optional[Set[str]] = None) -> Dict[str, Any]:
    """Dump an MCP type under its protocol (camelCase) field names."""
    return model.model_dump(by_alias=True, exclude=exclude)


class ToolServerConnection:
    """
    Lifecycle of one tool server.

    State is one of DISCONNECTED, CONNECTING, CONNECTED, FAILED. The tool
    list is non-empty only while CONNECTED; on FAILED it is empty and
    ``error`` holds a human readable reason. The underlying client and its
    process are owned exclusively by this object.

    Usage:
        connection = ToolServerConnection(spec)
        tools = await connection.connect()
        result = await connection.invoke("list_dir", {"path": "."})
        await connection.disconnect()
    """

    def __init__(
        self,
        spec: ToolServerSpec,
        client_factory: Optional[ClientFactory] = None,
        on_state_change: Optional[StateListener] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    ):
        self.spec = spec
        self._client_factory = client_factory or build_stdio_client
        self._on_state_change = on_state_change
        self._connect_timeout = connect_timeout

        self._client: Optional[Any] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._lock = asyncio.Lock()

        self._state = ConnectionState.DISCONNECTED
        self._tools: List[MCPTool] = []
        self.error: Optional[str] = None
        self.connected_at: Optional[datetime] = None

    @property
    def server_id(self) -> str:
        return self.spec.server_id

    @property
    def server_name(self) -> str:
        return self.spec.display_name

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def tools(self) -> List[MCPTool]:
        if self._state != ConnectionState.CONNECTED:
            return []
        return list(self._tools)

    def has_tool(self, tool_name: str) -> bool:
        return any(tool.name == tool_name for tool in self.tools)

    def get_tool(self, tool_name: str) -> Optional[MCPTool]:
        for tool in self.tools:
            if tool.name == tool_name:
                return tool
        return None

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            server_id=self.server_id,
            server_name=self.server_name,
            state=self._state,
            tool_count=len(self.tools),
            error=self.error,
        )

    async def connect(self) -> List[MCPTool]:
        """
        Launch the server and discover its tools.

        Returns:
            The discovered tools

        Raises:
            LaunchFailedError: If the executable cannot be resolved or started
            ToolServerProtocolError: If the discovery handshake fails
        """
        async with self._lock:
            if self._state == ConnectionState.CONNECTED:
                return list(self._tools)

            self.error = None
            self._set_state(ConnectionState.CONNECTING)
            logger.info(f"Connecting to tool server {self.server_name} ({self.server_id})")

            try:
                executable = resolve_executable(self.spec)
                tools = await asyncio.wait_for(self._start(executable), self._connect_timeout)
            except ToolServerError as e:
                await self._fail(e)
                raise
            except asyncio.TimeoutError:
                error = ToolServerProtocolError(
                    f"Tool server {self.server_name} did not finish discovery "
                    f"within {self._connect_timeout:g}s",
                    server_id=self.server_id,
                )
                await self._fail(error)
                raise error

            self._tools = tools
            self.connected_at = datetime.now(timezone.utc)
            self._set_state(ConnectionState.CONNECTED)
            logger.info(
                f"Connected to tool server {self.server_name} with {len(tools)} tools: "
                f"{', '.join(tool.name for tool in tools)}"
            )
            return list(tools)

    async def _start(self, executable: str) -> List[MCPTool]:
        stack = AsyncExitStack()
        self._exit_stack = stack
        try:
            client = self._client_factory(self.spec, executable)
            await stack.enter_async_context(client)
        except OSError as e:
            raise LaunchFailedError(
                f"Failed to start tool server {self.server_name}: {e}",
                server_id=self.server_id,
            ) from e
        except Exception as e:
            raise ToolServerProtocolError(
                f"Handshake with tool server {self.server_name} failed: {e}",
                server_id=self.server_id,
            ) from e
        self._client = client

        try:
            listed = await client.list_tools()
        except Exception as e:
            raise ToolServerProtocolError(
                f"Tool discovery on {self.server_name} failed: {e}",
                server_id=self.server_id,
            ) from e

        return [
            MCPTool(
                name=tool.name,
                description=tool.description or "",
                input_schema=protocol_fields(tool).get("inputSchema") or {},
                server_id=self.server_id,
                server_name=self.server_name,
            )
            for tool in listed
        ]

    async def invoke(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: float = DEFAULT_TOOL_TIMEOUT
    ) -> ToolResult:
        """
        Call one tool, racing it against ``timeout``.

        Failures are returned as error results, never raised. On timeout the
        pending call is cancelled so its late result is never applied.
        """
        if self._state != ConnectionState.CONNECTED or self._client is None:
            return ToolResult.error(
                tool_name,
                ToolErrorKind.NOT_CONNECTED,
                f"Tool server {self.server_id} is not connected, cannot run {tool_name}",
                server_id=self.server_id,
            )

        logger.info(f"Calling tool {tool_name} on {self.server_name} with arguments: {arguments}")
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(self._client.call_tool_mcp(tool_name, arguments), timeout)
        except asyncio.TimeoutError:
            logger.error(f"Tool {tool_name} on {self.server_name} timed out after {timeout:g}s")
            return ToolResult.error(
                tool_name,
                ToolErrorKind.TIMED_OUT,
                f"Tool execution timed out ({timeout:g} seconds)",
                server_id=self.server_id,
            )
        except Exception as e:
            logger.error(f"Tool {tool_name} on {self.server_name} failed: {e}")
            return ToolResult.error(
                tool_name,
                ToolErrorKind.REMOTE_ERROR,
                f"Tool execution failed: {e}",
                server_id=self.server_id,
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        tool = self.get_tool(tool_name)
        if tool is not None:
            tool.usage_count += 1
            tool.last_used = datetime.now(timezone.utc)

        content = list(result.content or [])
        text = extract_text(content)
        if protocol_fields(result, exclude={"content"}).get("isError"):
            logger.error(f"Tool {tool_name} on {self.server_name} reported an error: {text}")
            return ToolResult.error(
                tool_name,
                ToolErrorKind.REMOTE_ERROR,
                text or "Tool reported an error",
                server_id=self.server_id,
            )

        logger.info(f"Tool {tool_name} on {self.server_name} completed in {elapsed_ms}ms")
        return ToolResult.ok(
            tool_name,
            text,
            server_id=self.server_id,
            content=content,
            execution_time_ms=elapsed_ms,
        )

    async def disconnect(self) -> None:
        """Tear down the server process. Safe to call repeatedly."""
        async with self._lock:
            await self._close()
            self._tools = []
            self.error = None
            if self._state != ConnectionState.DISCONNECTED:
                self._set_state(ConnectionState.DISCONNECTED)
                logger.info(f"Disconnected from tool server {self.server_name}")

    async def _close(self) -> None:
        stack, self._exit_stack = self._exit_stack, None
        self._client = None
        if stack is None:
            return
        try:
            await stack.aclose()
        except Exception as e:
            logger.error(f"Error while closing tool server {self.server_name}: {e}")

    async def _fail(self, error: ToolServerError) -> None:
        logger.error(f"Failed to connect to tool server {self.server_id}: {error.message}")
        await self._close()
        self._tools = []
        self.error = error.message
        self._set_state(ConnectionState.FAILED)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(self)
            except Exception as e:
                logger.error(f"State listener failed for {self.server_id}: {e}")
