"""
Tests for configuration validation.
"""

import pytest

from tgo.chat.core.exceptions import ConfigurationError
from tgo.chat.core.models import AgentPreset, EngineSettings, ModelCredentials, PromptConfig, ToolServerSpec
from tgo.chat.memory.in_memory_config_store import InMemoryConfigStore
from tgo.chat.utils.config_validator import ConfigValidator, validate_mcp_config


VALID_CONFIG = {
    "mcpServers": {
        "files": {
            "command": "python",
            "args": ["file_server.py"],
            "env": {"ROOT": "/tmp"},
            "autoApprove": ["read_file"],
        },
        "search": {"command": "npx", "args": ["-y", "search-server"]},
    }
}


class TestMCPConfig:
    """``mcpServers`` documents."""

    def test_valid_config(self):
        assert validate_mcp_config(VALID_CONFIG) == []

    @pytest.mark.parametrize("config, expected", [
        ([], "MCP config must be a dictionary"),
        ({}, "MCP config is missing the 'mcpServers' section"),
        ({"mcpServers": []}, "'mcpServers' must be a dictionary"),
    ])
    def test_document_shape(self, config, expected):
        assert validate_mcp_config(config) == [expected]

    def test_entry_errors_are_prefixed(self):
        errors = validate_mcp_config({
            "mcpServers": {
                "bad id": {"command": ""},
                "files": {"command": "python", "args": "x", "env": {"A": 1}, "autoApprove": "read_file"},
            }
        })

        assert "Server bad id: Server command is required" in errors
        assert any(error.startswith("Server bad id: Server ID") for error in errors)
        assert "Server files: Server args must be a list of strings" in errors
        assert "Server files: Server env must map strings to strings" in errors
        assert "Server files: Server autoApprove must be a list of tool names" in errors

    def test_non_dict_entry(self):
        assert ConfigValidator().validate_server_entry("files", "python") == ["Server entry must be a dictionary"]

    def test_validate_and_raise(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigValidator().validate_and_raise({"mcpServers": {"files": {}}})

        assert exc_info.value.context["errors"] == ["Server files: Server command is required"]

    def test_loaded_config_round_trip(self):
        store = InMemoryConfigStore.from_mcp_config(VALID_CONFIG)

        assert [spec.server_id for spec in store.get_active_tool_servers()] == ["files", "search"]
        assert store.get_tool_server("files").env == {"ROOT": "/tmp"}
        assert store.get_auto_approval("files") == {"read_file"}


class TestModelObjects:
    """Validation of configured models, prompts and agents."""

    def test_server_spec(self):
        spec = ToolServerSpec(server_id="files", command="python", auto_approve=["a", "a"])

        assert ConfigValidator().validate_server_spec(spec) == ["Server autoApprove contains duplicate tool names"]

    def test_model_credentials(self):
        credentials = ModelCredentials(model_id="m", model="gpt", endpoint="ftp://example.com")

        errors = ConfigValidator().validate_model_credentials(credentials)

        assert errors == [
            "Model endpoint must be an http(s) URL: 'ftp://example.com'",
            "Model API key is required",
        ]

    def test_prompt(self):
        assert ConfigValidator().validate_prompt(PromptConfig(prompt_id="p", content="  ")) == [
            "Prompt content is required"
        ]

    def test_agent_against_store(self, config_store):
        validator = ConfigValidator(config_store)
        agent = AgentPreset(agent_id="a", model_id="missing", prompt_id="assistant", tool_server_ids=["files", "x"])

        assert validator.validate_agent(agent) == [
            "Agent model not configured: missing",
            "Agent tool server not configured: x",
        ]

    def test_free_mode_is_reserved(self):
        agent = AgentPreset(agent_id="free-mode", model_id="m")

        assert ConfigValidator().validate_agent(agent) == ["Agent ID 'free-mode' is reserved"]

    def test_engine_settings(self):
        settings = EngineSettings(tool_timeout_seconds=7200)

        assert ConfigValidator().validate_engine_settings(settings) == [
            "Tool timeout must be 3600 seconds or less"
        ]
