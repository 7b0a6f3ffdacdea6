"""
Tools package for the chat engine.

This package provides MCP (Model Context Protocol) tool server connections,
the tool catalog, and the authorization gate guarding tool execution.
"""

from .connection import ToolServerConnection, resolve_executable
from .catalog import ToolCatalog, CatalogEntry, ToolCollision, split_qualified_name
from .mcp_tool_manager import MCPToolManager
from .authorization_gate import AuthorizationGate, validate_arguments

__all__ = [
    "ToolServerConnection",
    "resolve_executable",
    "ToolCatalog",
    "CatalogEntry",
    "ToolCollision",
    "split_qualified_name",
    "MCPToolManager",
    "AuthorizationGate",
    "validate_arguments",
]
