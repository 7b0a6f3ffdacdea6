"""
Integration tests against a real stdio tool server.

These tests launch ``tests/servers/file_tools_server.py`` as a subprocess
through the FastMCP client.
"""

import sys
from pathlib import Path

import pytest

from tgo.chat.coordinator.chat_runtime import ChatRuntime
from tgo.chat.core.enums import ConnectionState, ToolErrorKind
from tgo.chat.core.exceptions import LaunchFailedError
from tgo.chat.core.models import ToolServerSpec
from tgo.chat.streaming.fragments import TextDelta, ToolCallDelta
from tgo.chat.tools.connection import ToolServerConnection

from conftest import ScriptedBackend

SERVER_SCRIPT = Path(__file__).parent / "servers" / "file_tools_server.py"

pytestmark = pytest.mark.integration


@pytest.fixture
def file_tools_spec(tmp_path):
    (tmp_path / "notes.txt").write_text("remember the milk", encoding="utf-8")
    return ToolServerSpec(
        server_id="files",
        name="File tools",
        command=sys.executable,
        args=[str(SERVER_SCRIPT)],
        env={"FILE_TOOLS_ROOT": str(tmp_path)},
        auto_approve=["read_file", "list_dir"],
    )


class TestStdioServer:
    """Connection lifecycle against a real process."""

    @pytest.mark.asyncio
    async def test_discover_and_invoke(self, file_tools_spec, tmp_path):
        connection = ToolServerConnection(file_tools_spec)
        try:
            tools = await connection.connect()

            assert {tool.name for tool in tools} == {"read_file", "write_file", "list_dir"}
            assert connection.get_tool("write_file").input_schema["required"] == ["path", "content"]

            written = await connection.invoke("write_file", {"path": "out.txt", "content": "hello"})
            assert not written.is_error
            assert (tmp_path / "out.txt").read_text(encoding="utf-8") == "hello"

            listing = await connection.invoke("list_dir", {})
            assert listing.text.splitlines() == ["notes.txt", "out.txt"]

            failed = await connection.invoke("read_file", {"path": "../outside.txt"})
            assert failed.error_kind == ToolErrorKind.REMOTE_ERROR
        finally:
            await connection.disconnect()

        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_missing_executable(self, file_tools_spec, tmp_path):
        spec = file_tools_spec.model_copy(update={"command": str(tmp_path / "no-such-python")})
        connection = ToolServerConnection(spec)

        with pytest.raises(LaunchFailedError):
            await connection.connect()

        assert connection.state == ConnectionState.FAILED
        assert "does not exist" in connection.error


class TestEndToEnd:
    """A full generation with a real tool server."""

    @pytest.mark.asyncio
    async def test_generation_reads_file(self, file_tools_spec, config_store, presentation):
        config_store.add_tool_server(file_tools_spec)
        backend = ScriptedBackend(
            [ToolCallDelta(index=0, id="c1", name="read_file", arguments='{"path": "notes.txt"}')],
            [TextDelta("You wanted to remember the milk.")],
        )

        async with ChatRuntime(config_store, backend, presentation) as runtime:
            session = runtime.sessions.create()
            session.set_model("test-model")

            result = await runtime.send_message(session.session_id, "What is in notes.txt?")

        assert result.content == "You wanted to remember the milk."
        assert backend.calls[1]["messages"][-1]["content"] == "remember the milk"
