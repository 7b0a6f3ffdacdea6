"""
Pytest configuration and shared fixtures.

This module provides fake tool server clients, a scripted model backend, a
recording presentation sink and the wired-up engine components used by
the tests.
"""

import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from mcp.types import CallToolResult, TextContent, Tool

from tgo.chat.core.enums import ToolPhase
from tgo.chat.core.interfaces import ModelBackend, PresentationSink
from tgo.chat.core.models import (
    AgentPreset, AuthorizationRequest, ConnectionStatus, EngineSettings,
    ModelCredentials, PromptConfig, SessionData, ToolServerSpec
)
from tgo.chat.memory.in_memory_config_store import InMemoryConfigStore
from tgo.chat.session.chat_session import ChatSession
from tgo.chat.tools.authorization_gate import AuthorizationGate
from tgo.chat.tools.mcp_tool_manager import MCPToolManager


# Fake tool server client

ToolHandler = Callable[[Dict[str, Any]], Any]


class FakeMCPClient:
    """Stands in for a fastmcp ``Client``: async context manager plus tool calls."""

    def __init__(
        self,
        tools: Optional[List[Tool]] = None,
        handlers: Optional[Dict[str, ToolHandler]] = None,
        enter_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None
    ):
        self.tools = tools or []
        self.handlers = handlers or {}
        self.enter_error = enter_error
        self.list_error = list_error
        self.entered = 0
        self.exited = 0
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.cancelled_calls: List[str] = []

    async def __aenter__(self) -> "FakeMCPClient":
        if self.enter_error is not None:
            raise self.enter_error
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.exited += 1

    async def list_tools(self) -> List[Tool]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    async def call_tool_mcp(self, name: str, arguments: Dict[str, Any]) -> CallToolResult:
        self.calls.append((name, arguments))
        handler = self.handlers.get(name)
        if handler is None:
            return CallToolResult(content=[TextContent(type="text", text=f"Unknown tool: {name}")], isError=True)
        try:
            value = handler(arguments)
            if asyncio.iscoroutine(value):
                value = await value
        except asyncio.CancelledError:
            self.cancelled_calls.append(name)
            raise
        if isinstance(value, CallToolResult):
            return value
        return CallToolResult(content=[TextContent(type="text", text=str(value))], isError=False)


class FakeClientFactory:
    """Client factory handing out a fresh fake client per connection attempt."""

    def __init__(self, builders: Dict[str, Callable[[], FakeMCPClient]]):
        self.builders = builders
        self.created: Dict[str, List[FakeMCPClient]] = {}

    def __call__(self, spec: ToolServerSpec, executable: str) -> FakeMCPClient:
        client = self.builders[spec.server_id]()
        self.created.setdefault(spec.server_id, []).append(client)
        return client

    def last(self, server_id: str) -> FakeMCPClient:
        return self.created[server_id][-1]


def make_tool(name: str, properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> Tool:
    """Create an MCP tool definition."""
    return Tool(
        name=name,
        description=f"{name} tool",
        inputSchema={
            "type": "object",
            "properties": properties or {},
            "required": required or [],
        },
    )


def make_spec(server_id: str, auto_approve: Optional[List[str]] = None) -> ToolServerSpec:
    """Launch spec whose command always resolves."""
    return ToolServerSpec(
        server_id=server_id,
        name=f"{server_id} server",
        command=sys.executable,
        args=["-c", "pass"],
        auto_approve=auto_approve or [],
    )


def make_files_client() -> FakeMCPClient:
    """Fake client exporting ``read_file`` and ``write_file``."""
    written: Dict[str, str] = {}

    def read_file(arguments: Dict[str, Any]) -> str:
        return f"contents of {arguments['path']}"

    def write_file(arguments: Dict[str, Any]) -> str:
        written[arguments["path"]] = arguments["content"]
        return f"wrote {arguments['path']}"

    client = FakeMCPClient(
        tools=[
            make_tool("read_file", {"path": {"type": "string"}}, ["path"]),
            make_tool("write_file", {"path": {"type": "string"}, "content": {"type": "string"}}, ["path", "content"]),
        ],
        handlers={"read_file": read_file, "write_file": write_file},
    )
    client.written = written
    return client


# Scripted model backend

@dataclass
class Pause:
    """Marker inside a backend script: signal ``reached`` and wait for ``release``."""
    reached: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)


class ScriptedBackend(ModelBackend):
    """Model backend replaying one fragment script per call."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def stream_completion(self, credentials, messages, tools, temperature, max_tokens, cancel_token):
        index = len(self.calls)
        self.calls.append({
            "messages": [dict(message) for message in messages],
            "tools": tools,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": credentials.model,
        })
        script = self.responses[index] if index < len(self.responses) else []
        if isinstance(script, Exception):
            raise script
        for fragment in script:
            if isinstance(fragment, Pause):
                fragment.reached.set()
                await fragment.release.wait()
                continue
            yield fragment


# Presentation

class RecordingPresentation(PresentationSink):
    """Presentation sink that records every push.

    When ``auto_decision`` is set to ``(authorized, permanent)`` every
    authorization request is answered through ``gate``.
    """

    def __init__(self):
        self.answer_fragments: List[Tuple[str, str, str, str]] = []
        self.reasoning_fragments: List[Tuple[str, str, str, str]] = []
        self.tool_statuses: List[Tuple[str, ToolPhase, Optional[str]]] = []
        self.authorization_requests: List[AuthorizationRequest] = []
        self.server_statuses: List[ConnectionStatus] = []
        self.renames: List[Tuple[str, str]] = []
        self.gate: Optional[AuthorizationGate] = None
        self.auto_decision: Optional[Tuple[bool, bool]] = None

    def on_answer_fragment(self, session_id, request_id, message_id, text):
        self.answer_fragments.append((session_id, request_id, message_id, text))

    def on_reasoning_fragment(self, session_id, request_id, message_id, text):
        self.reasoning_fragments.append((session_id, request_id, message_id, text))

    def on_tool_status(self, session_id, request_id, tool_name, phase, detail=None):
        self.tool_statuses.append((tool_name, phase, detail))

    def on_authorization_request(self, request):
        self.authorization_requests.append(request)
        if self.auto_decision is not None and self.gate is not None:
            authorized, permanent = self.auto_decision
            asyncio.get_running_loop().call_soon(
                self.gate.submit_decision, request.correlation_id, authorized, permanent
            )

    def on_server_status(self, status):
        self.server_statuses.append(status)

    def on_session_renamed(self, session_id, name):
        self.renames.append((session_id, name))

    @property
    def answer_text(self) -> str:
        return "".join(fragment[3] for fragment in self.answer_fragments)

    def phases(self, tool_name: str) -> List[ToolPhase]:
        return [phase for name, phase, _ in self.tool_statuses if name == tool_name]


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition not reached")


# Fixtures

@pytest.fixture
def model_credentials() -> ModelCredentials:
    return ModelCredentials(
        model_id="test-model",
        model="gpt-test",
        endpoint="https://api.example.com/v1",
        api_key="sk-test",
        context_size=2048,
        temperature=0.3,
    )


@pytest.fixture
def config_store(model_credentials) -> InMemoryConfigStore:
    """Config store with one model, two prompts, one agent and the ``files`` server."""
    return InMemoryConfigStore(
        tool_servers=[make_spec("files", auto_approve=["read_file"])],
        models=[model_credentials],
        prompts=[
            PromptConfig(prompt_id="assistant", content="You are a helpful assistant."),
            PromptConfig(prompt_id="as-user", content="Answer briefly.", role="user"),
        ],
        agents=[
            AgentPreset(agent_id="helper", model_id="test-model", prompt_id="assistant", tool_server_ids=[]),
        ],
        active_tool_server_ids=["files"],
    )


@pytest.fixture
def presentation() -> RecordingPresentation:
    return RecordingPresentation()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory({"files": make_files_client})


@pytest_asyncio.fixture
async def tool_manager(config_store, presentation, client_factory):
    """Tool manager with the ``files`` server connected."""
    manager = MCPToolManager(config_store, presentation, client_factory=client_factory)
    await manager.activate("files")
    yield manager
    await manager.shutdown()


@pytest.fixture
def gate(config_store, presentation) -> AuthorizationGate:
    gate = AuthorizationGate(config_store, presentation)
    presentation.gate = gate
    return gate


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def session(config_store, backend, tool_manager, gate, presentation, settings) -> ChatSession:
    """Multi-turn session on ``test-model`` with the ``files`` server enabled."""
    data = SessionData(model_id="test-model", tool_server_ids=["files"])
    return ChatSession(data, config_store, backend, tool_manager, gate, presentation, settings)
