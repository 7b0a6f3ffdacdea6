"""
Configuration validator for the chat engine.

This module provides validation utilities for tool server launch specs,
model credentials, prompts, agent presets and whole ``mcpServers``
documents. Validators return lists of human readable errors instead of
raising.
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..core.exceptions import ConfigurationError
from ..core.interfaces import ConfigStore
from ..core.models import (
    FREE_MODE_AGENT_ID, AgentPreset, EngineSettings, ModelCredentials, PromptConfig, ToolServerSpec
)

logger = logging.getLogger(__name__)


class ConfigValidator:
    """Validator for chat engine configurations."""

    def __init__(self, config_store: Optional[ConfigStore] = None):
        self._config_store = config_store

        # Validation rules
        self._id_pattern = re.compile(r'^[a-zA-Z0-9_.-]+$')
        self._max_name_length = 100
        self._max_prompt_length = 100000
        self._min_temperature = 0.0
        self._max_temperature = 2.0
        self._max_tool_timeout_seconds = 3600

    def validate_server_entry(self, server_id: str, entry: Any) -> List[str]:
        """Validate one raw ``mcpServers`` entry.

        Args:
            server_id: Key of the entry
            entry: Entry as parsed from the config document

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not server_id or not self._id_pattern.match(server_id):
            errors.append(
                f"Server ID {server_id!r} must contain only alphanumeric characters, dots, hyphens, and underscores"
            )

        if not isinstance(entry, dict):
            errors.append("Server entry must be a dictionary")
            return errors

        command = entry.get("command")
        if not isinstance(command, str) or not command.strip():
            errors.append("Server command is required")

        args = entry.get("args", [])
        if not isinstance(args, list) or not all(isinstance(arg, str) for arg in args):
            errors.append("Server args must be a list of strings")

        env = entry.get("env", entry.get("envs", {}))
        if env is not None and (
            not isinstance(env, dict)
            or not all(isinstance(k, str) and isinstance(v, str) for k, v in env.items())
        ):
            errors.append("Server env must map strings to strings")

        auto_approve = entry.get("autoApprove", entry.get("auto_approve", []))
        if auto_approve is not None and (
            not isinstance(auto_approve, list) or not all(isinstance(name, str) for name in auto_approve)
        ):
            errors.append("Server autoApprove must be a list of tool names")

        return errors

    def validate_server_spec(self, spec: ToolServerSpec) -> List[str]:
        """Validate a tool server launch spec."""
        errors = []

        if not self._id_pattern.match(spec.server_id):
            errors.append(
                f"Server ID {spec.server_id!r} must contain only alphanumeric characters, dots, hyphens, and underscores"
            )

        if spec.name and len(spec.name) > self._max_name_length:
            errors.append(f"Server name must be {self._max_name_length} characters or less")

        if not spec.command.strip():
            errors.append("Server command is required")

        if len(set(spec.auto_approve)) != len(spec.auto_approve):
            errors.append("Server autoApprove contains duplicate tool names")

        return errors

    def validate_mcp_config(self, config: Any) -> List[str]:
        """Validate a whole ``{"mcpServers": {...}}`` document."""
        if not isinstance(config, dict):
            return ["MCP config must be a dictionary"]

        servers = config.get("mcpServers")
        if servers is None:
            return ["MCP config is missing the 'mcpServers' section"]
        if not isinstance(servers, dict):
            return ["'mcpServers' must be a dictionary"]

        errors = []
        for server_id, entry in servers.items():
            for error in self.validate_server_entry(server_id, entry):
                errors.append(f"Server {server_id}: {error}")
        return errors

    def validate_model_credentials(self, credentials: ModelCredentials) -> List[str]:
        """Validate model endpoint and sampling parameters."""
        errors = []

        parsed = urlparse(credentials.endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Model endpoint must be an http(s) URL: {credentials.endpoint!r}")

        if not credentials.api_key:
            errors.append("Model API key is required")

        temperature = credentials.temperature
        if temperature is not None and not (self._min_temperature <= temperature <= self._max_temperature):
            errors.append(f"Temperature must be between {self._min_temperature} and {self._max_temperature}")

        if credentials.context_size is not None and credentials.context_size <= 0:
            errors.append("Context size must be positive")

        return errors

    def validate_prompt(self, prompt: PromptConfig) -> List[str]:
        """Validate a role prompt."""
        errors = []

        if not prompt.content.strip():
            errors.append("Prompt content is required")
        elif len(prompt.content) > self._max_prompt_length:
            errors.append(f"Prompt content must be {self._max_prompt_length} characters or less")

        return errors

    def validate_agent(self, agent: AgentPreset) -> List[str]:
        """Validate an agent preset against the config store, when one is given."""
        errors = []

        if agent.agent_id == FREE_MODE_AGENT_ID:
            errors.append(f"Agent ID {FREE_MODE_AGENT_ID!r} is reserved")

        if not agent.model_id:
            errors.append("Agent model is required")

        if self._config_store is not None:
            if agent.model_id and self._config_store.get_model_credentials(agent.model_id) is None:
                errors.append(f"Agent model not configured: {agent.model_id}")
            if agent.prompt_id and self._config_store.get_prompt(agent.prompt_id) is None:
                errors.append(f"Agent prompt not configured: {agent.prompt_id}")
            for server_id in agent.tool_server_ids:
                if self._config_store.get_tool_server(server_id) is None:
                    errors.append(f"Agent tool server not configured: {server_id}")

        return errors

    def validate_engine_settings(self, settings: EngineSettings) -> List[str]:
        """Validate engine tunables."""
        errors = []

        if settings.tool_timeout_seconds > self._max_tool_timeout_seconds:
            errors.append(f"Tool timeout must be {self._max_tool_timeout_seconds} seconds or less")

        if not settings.aborted_marker:
            errors.append("Aborted marker cannot be empty")

        return errors

    def validate_and_raise(self, config: Dict[str, Any]) -> None:
        """Validate an ``mcpServers`` document and raise exception if invalid.

        Raises:
            ConfigurationError: If the document is invalid
        """
        errors = self.validate_mcp_config(config)
        if errors:
            error_message = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
            logger.error(error_message)
            raise ConfigurationError(error_message, context={"errors": errors})


def validate_mcp_config(config: Dict[str, Any]) -> List[str]:
    """Validate a ``{"mcpServers": {...}}`` document with default rules."""
    return ConfigValidator().validate_mcp_config(config)
