"""
Tests for the authorization gate.
"""

import asyncio

import pytest

from tgo.chat.core.cancellation import CancelToken
from tgo.chat.core.enums import AuthorizationOutcome
from tgo.chat.tools.authorization_gate import AUDIT_LOG_LIMIT, validate_arguments

from conftest import wait_until


async def start_request(gate, token, tool_name="write_file", server_id="files"):
    task = asyncio.create_task(gate.request_authorization(
        tool_name, server_id, {"path": "a.txt", "content": "x"}, token, session_id="session-1"
    ))
    await wait_until(lambda: len(gate.pending_requests()) == 1)
    return task, gate.pending_requests()[0]


class TestPreAuthorization:
    """Auto-approved tools."""

    def test_pre_authorized_tool_is_granted_without_suspending(self, gate, presentation):
        coro = gate.request_authorization("read_file", "files", {"path": "a"}, CancelToken())

        with pytest.raises(StopIteration) as exc_info:
            coro.send(None)

        decision = exc_info.value.value
        assert decision.outcome == AuthorizationOutcome.GRANTED
        assert decision.permanent is True
        assert presentation.authorization_requests == []

    def test_approval_is_per_server(self, gate, config_store):
        config_store.set_auto_approval("other", {"write_file"})

        assert gate.is_pre_authorized("read_file", "files") is True
        assert gate.is_pre_authorized("write_file", "files") is False
        assert gate.is_pre_authorized("write_file", "other") is True


class TestDecisions:
    """Human decisions."""

    @pytest.mark.asyncio
    async def test_request_is_pushed_to_presentation(self, gate, presentation):
        task, request = await start_request(gate, CancelToken())

        assert presentation.authorization_requests == [request]
        assert request.tool_name == "write_file"
        assert request.server_id == "files"
        assert request.session_id == "session-1"

        gate.submit_decision(request.correlation_id, False)
        await task

    @pytest.mark.asyncio
    async def test_grant_once(self, gate, config_store):
        task, request = await start_request(gate, CancelToken())

        assert gate.submit_decision(request.correlation_id, True) is True
        decision = await task

        assert decision.outcome == AuthorizationOutcome.GRANTED
        assert decision.permanent is False
        assert "write_file" not in config_store.get_auto_approval("files")
        assert gate.pending_requests() == []

    @pytest.mark.asyncio
    async def test_permanent_grant_is_recorded(self, gate, config_store):
        task, request = await start_request(gate, CancelToken())

        gate.submit_decision(request.correlation_id, True, permanent=True)
        decision = await task

        assert decision.permanent is True
        assert config_store.get_auto_approval("files") == {"read_file", "write_file"}
        assert gate.is_pre_authorized("write_file", "files")

    @pytest.mark.asyncio
    async def test_deny(self, gate, config_store):
        task, request = await start_request(gate, CancelToken())

        gate.submit_decision(request.correlation_id, False, permanent=True)
        decision = await task

        assert decision.outcome == AuthorizationOutcome.DENIED
        assert decision.permanent is False
        assert "write_file" not in config_store.get_auto_approval("files")

    @pytest.mark.asyncio
    async def test_mismatched_tool_is_ignored(self, gate):
        task, request = await start_request(gate, CancelToken())

        assert gate.submit_decision(request.correlation_id, True, tool_name="read_file") is False
        assert gate.submit_decision(request.correlation_id, True, server_id="other") is False
        assert not task.done()

        assert gate.submit_decision(
            request.correlation_id, True, tool_name="write_file", server_id="files"
        ) is True
        assert (await task).authorized

    @pytest.mark.asyncio
    async def test_failing_presentation_leaves_request_pending(self, gate, presentation):
        def broken(request):
            raise RuntimeError("renderer gone")

        presentation.on_authorization_request = broken
        task, request = await start_request(gate, CancelToken())

        assert gate.submit_decision(request.correlation_id, True) is True
        assert (await task).authorized

    def test_unknown_correlation_id(self, gate):
        assert gate.submit_decision("missing", True) is False


class TestAbandonment:
    """Cancellation while waiting."""

    @pytest.mark.asyncio
    async def test_cancel_abandons_pending_request(self, gate):
        token = CancelToken()
        task, request = await start_request(gate, token)

        token.cancel()
        decision = await task

        assert decision.outcome == AuthorizationOutcome.ABANDONED
        assert gate.pending_requests() == []
        assert gate.submit_decision(request.correlation_id, True) is False

    @pytest.mark.asyncio
    async def test_cancelled_token_abandons_immediately(self, gate, presentation):
        token = CancelToken()
        token.cancel()

        decision = await gate.request_authorization("write_file", "files", {}, token)

        assert decision.outcome == AuthorizationOutcome.ABANDONED
        assert presentation.authorization_requests == []

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(self, gate):
        token = CancelToken()
        task, _ = await start_request(gate, token)

        await asyncio.get_running_loop().run_in_executor(None, token.cancel)

        assert (await task).outcome == AuthorizationOutcome.ABANDONED


class TestAuditLog:
    """Audit entries."""

    @pytest.mark.asyncio
    async def test_entries_are_recorded(self, gate):
        await gate.request_authorization("read_file", "files", {}, CancelToken(), session_id="s")

        entry = gate.get_audit_log()[-1]
        assert entry["event_type"] == "pre_authorized"
        assert entry["tool_name"] == "read_file"
        assert entry["session_id"] == "s"

    @pytest.mark.asyncio
    async def test_log_is_capped(self, gate):
        for _ in range(AUDIT_LOG_LIMIT + 5):
            await gate.request_authorization("read_file", "files", {}, CancelToken())

        assert len(gate.get_audit_log(limit=AUDIT_LOG_LIMIT * 2)) == AUDIT_LOG_LIMIT


class TestValidateArguments:
    """Argument checks against the input schema."""

    SCHEMA = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "count": {"type": "integer"},
            "ratio": {"type": "number"},
            "tags": {"type": "array"},
            "note": {"type": ["string", "null"]},
        },
        "required": ["path"],
    }

    def test_valid_arguments(self):
        assert validate_arguments({"path": "a", "count": 2, "ratio": 0.5, "note": None}, self.SCHEMA) is None

    def test_unknown_properties_are_allowed(self):
        assert validate_arguments({"path": "a", "extra": object()}, self.SCHEMA) is None

    def test_missing_required(self):
        assert validate_arguments({}, self.SCHEMA) == "missing required argument: path"

    @pytest.mark.parametrize("arguments", [
        {"path": 1},
        {"path": "a", "count": "2"},
        {"path": "a", "count": True},
        {"path": "a", "ratio": False},
        {"path": "a", "tags": "x"},
        {"path": "a", "note": 3},
    ])
    def test_wrong_types(self, arguments):
        assert "should be of type" in validate_arguments(arguments, self.SCHEMA)

    def test_arguments_must_be_object(self):
        assert validate_arguments(["a"], self.SCHEMA) == "arguments must be a JSON object"

    @pytest.mark.parametrize("arguments", [
        {"path": "a", "anything": 3},
        {"path": "a", "anything": None},
        {"path": "a", "nothing": "x"},
    ])
    def test_boolean_subschemas_are_skipped(self, arguments):
        schema = {
            "type": "object",
            "properties": {"path": {"type": "string"}, "anything": True, "nothing": False},
            "required": ["path"],
        }

        assert validate_arguments(arguments, schema) is None
