"""
In-memory config store implementation.

This module provides an in-memory implementation of the ConfigStore
interface for development and testing purposes.
"""

import logging
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.interfaces import ConfigStore
from ..core.models import AgentPreset, ModelCredentials, PromptConfig, SessionData, ToolServerSpec

logger = logging.getLogger(__name__)


class InMemoryConfigStore(ConfigStore):
    """In-memory implementation of ConfigStore.

    Nothing survives the process; saved sessions are kept as deep copies so
    later mutations of a live session do not leak into the stored snapshot.
    """

    def __init__(
        self,
        tool_servers: Optional[Iterable[ToolServerSpec]] = None,
        models: Optional[Iterable[ModelCredentials]] = None,
        prompts: Optional[Iterable[PromptConfig]] = None,
        agents: Optional[Iterable[AgentPreset]] = None,
        active_tool_server_ids: Optional[List[str]] = None
    ):
        self._lock = Lock()
        self._tool_servers: Dict[str, ToolServerSpec] = {}
        self._auto_approval: Dict[str, Set[str]] = {}
        self._models: Dict[str, ModelCredentials] = {}
        self._prompts: Dict[str, PromptConfig] = {}
        self._agents: Dict[str, AgentPreset] = {}
        self._sessions: Dict[str, SessionData] = {}
        self._active_tool_server_ids: List[str] = []
        self._session_tool_server_ids: Dict[str, List[str]] = {}

        for spec in tool_servers or []:
            self.add_tool_server(spec)
        for credentials in models or []:
            self.add_model(credentials)
        for prompt in prompts or []:
            self.add_prompt(prompt)
        for agent in agents or []:
            self.add_agent(agent)
        if active_tool_server_ids is not None:
            self.set_active_tool_servers(active_tool_server_ids)

        logger.info("InMemoryConfigStore initialized")

    @classmethod
    def from_mcp_config(cls, config: Dict[str, Any], activate: bool = True) -> "InMemoryConfigStore":
        """Build a store from a ``{"mcpServers": {...}}`` document."""
        store = cls()
        store.load_mcp_config(config, activate=activate)
        return store

    def load_mcp_config(self, config: Dict[str, Any], activate: bool = True) -> List[str]:
        """
        Register every server of an ``mcpServers`` section.

        Args:
            config: Parsed MCP client configuration
            activate: Whether the loaded servers become the active selection

        Returns:
            Loaded server ids in document order
        """
        servers = config.get("mcpServers") or {}
        loaded = []
        for server_id, entry in servers.items():
            self.add_tool_server(ToolServerSpec.from_mcp_config(server_id, entry))
            loaded.append(server_id)
        if activate:
            self.set_active_tool_servers(loaded)
        logger.info(f"Loaded {len(loaded)} tool server(s) from MCP config")
        return loaded

    def add_tool_server(self, spec: ToolServerSpec) -> None:
        with self._lock:
            self._tool_servers[spec.server_id] = spec
            self._auto_approval[spec.server_id] = set(spec.auto_approve)

    def add_model(self, credentials: ModelCredentials) -> None:
        with self._lock:
            self._models[credentials.model_id] = credentials

    def add_prompt(self, prompt: PromptConfig) -> None:
        with self._lock:
            self._prompts[prompt.prompt_id] = prompt

    def add_agent(self, agent: AgentPreset) -> None:
        with self._lock:
            self._agents[agent.agent_id] = agent

    def set_session_tool_servers(self, session_id: str, server_ids: List[str]) -> None:
        with self._lock:
            self._session_tool_server_ids[session_id] = list(server_ids)

    # ConfigStore

    def get_tool_server(self, server_id: str) -> Optional[ToolServerSpec]:
        return self._tool_servers.get(server_id)

    def list_tool_servers(self) -> List[ToolServerSpec]:
        return list(self._tool_servers.values())

    def get_active_tool_servers(self, session_id: Optional[str] = None) -> List[ToolServerSpec]:
        with self._lock:
            server_ids = self._active_tool_server_ids
            if session_id is not None:
                if session_id in self._session_tool_server_ids:
                    server_ids = self._session_tool_server_ids[session_id]
                elif session_id in self._sessions:
                    server_ids = self._sessions[session_id].tool_server_ids
            return [self._tool_servers[sid] for sid in server_ids if sid in self._tool_servers]

    def set_active_tool_servers(self, server_ids: List[str]) -> None:
        with self._lock:
            self._active_tool_server_ids = list(dict.fromkeys(server_ids))

    def get_auto_approval(self, server_id: str) -> Set[str]:
        with self._lock:
            return set(self._auto_approval.get(server_id, set()))

    def set_auto_approval(self, server_id: str, tool_names: Set[str]) -> None:
        with self._lock:
            self._auto_approval[server_id] = set(tool_names)
            spec = self._tool_servers.get(server_id)
            if spec is not None:
                spec.auto_approve = sorted(tool_names)
        logger.debug(f"Auto-approval of {server_id} set to {sorted(tool_names)}")

    def get_model_credentials(self, model_id: str) -> Optional[ModelCredentials]:
        return self._models.get(model_id)

    def get_prompt(self, prompt_id: str) -> Optional[PromptConfig]:
        return self._prompts.get(prompt_id)

    def get_agent(self, agent_id: str) -> Optional[AgentPreset]:
        return self._agents.get(agent_id)

    def save_session(self, data: SessionData) -> None:
        with self._lock:
            self._sessions[data.session_id] = data.model_copy(deep=True)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._session_tool_server_ids.pop(session_id, None)

    def load_sessions(self) -> List[SessionData]:
        with self._lock:
            return [data.model_copy(deep=True) for data in self._sessions.values()]
