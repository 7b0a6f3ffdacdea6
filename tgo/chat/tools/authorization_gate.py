"""
Authorization gate for tool calls.

This module decides whether a tool call may run:
- Pre-authorization through the per-server auto-approval set
- Human decisions requested through the presentation layer
- Abandonment when the generation is cancelled while waiting
- Argument validation against the tool's input schema
- Audit logging
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..core.cancellation import CancelToken
from ..core.enums import AuthorizationOutcome
from ..core.interfaces import ConfigStore, NullPresentation, PresentationSink
from ..core.models import AuthorizationDecision, AuthorizationRequest

logger = logging.getLogger(__name__)

AUDIT_LOG_LIMIT = 1000


def validate_arguments(arguments: Dict[str, Any], schema: Dict[str, Any]) -> Optional[str]:
    """
    Check tool arguments against the tool's JSON schema.

    Only required fields and top-level property types are checked.

    Returns:
        None when the arguments fit, otherwise a description of the problem
    """
    if not isinstance(arguments, dict):
        return "arguments must be a JSON object"

    properties = schema.get("properties") or {}
    for field_name in schema.get("required") or []:
        if field_name not in arguments:
            return f"missing required argument: {field_name}"

    for field_name, value in arguments.items():
        if field_name not in properties:
            continue
        subschema = properties[field_name]
        if not isinstance(subschema, dict):
            continue
        expected_type = subschema.get("type")
        if expected_type and not _check_type(value, expected_type):
            return f"argument {field_name} should be of type {expected_type}"

    return None


def _check_type(value: Any, expected_type: Any) -> bool:
    """Check if value matches expected type."""
    if isinstance(expected_type, list):
        return any(_check_type(value, candidate) for candidate in expected_type)

    type_mapping = {
        "string": str,
        "number": (int, float),
        "integer": int,
        "boolean": bool,
        "array": list,
        "object": dict,
        "null": type(None),
    }

    expected_python_type = type_mapping.get(expected_type)
    if expected_python_type is None:
        return True  # Unknown type, allow it
    if expected_type in ("number", "integer") and isinstance(value, bool):
        return False
    return isinstance(value, expected_python_type)


@dataclass
class _PendingAuthorization:
    request: AuthorizationRequest
    future: asyncio.Future


class AuthorizationGate:
    """
    Gate between a requested tool call and its execution.

    A request is PENDING until ``submit_decision`` resolves it or the
    generation's cancel token abandons it. Denied and abandoned requests are
    values, never exceptions.

    Usage:
        gate = AuthorizationGate(config_store, presentation)
        decision = await gate.request_authorization("write_file", "files", args, token)
        if decision.authorized:
            ...
    """

    def __init__(self, config_store: ConfigStore, presentation: Optional[PresentationSink] = None):
        self._config_store = config_store
        self._presentation = presentation or NullPresentation()
        self._pending: Dict[str, _PendingAuthorization] = {}
        self._audit_log: List[Dict[str, Any]] = []

        logger.info("AuthorizationGate initialized")

    def is_pre_authorized(self, tool_name: str, server_id: str) -> bool:
        """Whether the user already approved ``tool_name`` on ``server_id`` permanently."""
        return tool_name in self._config_store.get_auto_approval(server_id)

    def pending_requests(self) -> List[AuthorizationRequest]:
        """Requests still waiting for a decision."""
        return [pending.request for pending in self._pending.values()]

    async def request_authorization(
        self,
        tool_name: str,
        server_id: str,
        arguments: Dict[str, Any],
        cancel_token: CancelToken,
        session_id: Optional[str] = None,
        server_name: Optional[str] = None
    ) -> AuthorizationDecision:
        """
        Obtain a decision for one tool call.

        Pre-authorized calls are granted without asking. Otherwise the
        request is pushed to the presentation layer and this coroutine
        suspends until the user answers or ``cancel_token`` fires.

        Returns:
            GRANTED, DENIED or ABANDONED decision
        """
        if self.is_pre_authorized(tool_name, server_id):
            self._audit_log_entry("pre_authorized", tool_name, server_id, session_id, "Tool is auto-approved")
            return AuthorizationDecision(outcome=AuthorizationOutcome.GRANTED, permanent=True)

        if cancel_token.is_cancelled:
            self._audit_log_entry("abandoned", tool_name, server_id, session_id, "Generation already cancelled")
            return AuthorizationDecision(outcome=AuthorizationOutcome.ABANDONED)

        request = AuthorizationRequest(
            tool_name=tool_name,
            server_id=server_id,
            server_name=server_name,
            arguments=arguments,
            session_id=session_id,
        )
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending[request.correlation_id] = _PendingAuthorization(request, future)

        def _abandon() -> None:
            if not future.done():
                future.set_result(AuthorizationDecision(
                    outcome=AuthorizationOutcome.ABANDONED,
                    correlation_id=request.correlation_id,
                ))

        unregister: Callable[[], None] = cancel_token.on_cancel(
            lambda: loop.call_soon_threadsafe(_abandon)
        )
        try:
            self._audit_log_entry(
                "authorization_requested", tool_name, server_id, session_id,
                f"Arguments: {request.arguments_summary}"
            )
            logger.info(f"Waiting for authorization of {server_id}:{tool_name} ({request.correlation_id})")
            try:
                self._presentation.on_authorization_request(request)
            except Exception as e:
                logger.error(f"Authorization request push failed for {request.correlation_id}: {e}")
            decision: AuthorizationDecision = await future
        finally:
            unregister()
            self._pending.pop(request.correlation_id, None)

        if decision.outcome == AuthorizationOutcome.ABANDONED:
            self._audit_log_entry("abandoned", tool_name, server_id, session_id, "Generation cancelled while waiting")
            logger.info(f"Authorization of {server_id}:{tool_name} abandoned")
            return decision

        if decision.authorized and decision.permanent:
            self.record_permanent_grant(tool_name, server_id)

        event_type = "granted" if decision.authorized else "denied"
        self._audit_log_entry(
            event_type, tool_name, server_id, session_id,
            "Permanent grant" if decision.permanent and decision.authorized else "One-time decision"
        )
        logger.info(f"Authorization of {server_id}:{tool_name} {event_type}")
        return decision

    def submit_decision(
        self,
        correlation_id: str,
        authorized: bool,
        permanent: bool = False,
        tool_name: Optional[str] = None,
        server_id: Optional[str] = None
    ) -> bool:
        """
        Resolve a pending request.

        Returns:
            False when the correlation id is unknown, does not match the
            given tool/server, or the request is already settled
        """
        pending = self._pending.get(correlation_id)
        if pending is None:
            logger.warning(f"Ignoring decision for unknown authorization request {correlation_id}")
            return False

        request = pending.request
        if (tool_name is not None and tool_name != request.tool_name) or \
                (server_id is not None and server_id != request.server_id):
            logger.warning(
                f"Ignoring decision for {correlation_id}: expected {request.server_id}:{request.tool_name}, "
                f"got {server_id}:{tool_name}"
            )
            return False

        if pending.future.done():
            return False

        outcome = AuthorizationOutcome.GRANTED if authorized else AuthorizationOutcome.DENIED
        pending.future.set_result(AuthorizationDecision(
            outcome=outcome,
            permanent=permanent and authorized,
            correlation_id=correlation_id,
        ))
        return True

    def record_permanent_grant(self, tool_name: str, server_id: str) -> None:
        """Add ``tool_name`` to the auto-approval set of ``server_id``."""
        approved = set(self._config_store.get_auto_approval(server_id))
        if tool_name in approved:
            return
        approved.add(tool_name)
        self._config_store.set_auto_approval(server_id, approved)
        logger.info(f"Tool {tool_name} on {server_id} approved permanently")

    def _audit_log_entry(
        self,
        event_type: str,
        tool_name: str,
        server_id: str,
        session_id: Optional[str],
        message: str
    ) -> None:
        """Add entry to audit log."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "tool_name": tool_name,
            "server_id": server_id,
            "session_id": session_id,
            "message": message,
        }

        self._audit_log.append(entry)

        if len(self._audit_log) > AUDIT_LOG_LIMIT:
            self._audit_log = self._audit_log[-AUDIT_LOG_LIMIT:]

        logger.debug(f"Audit log entry: {event_type} - {message}")

    def get_audit_log(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get recent audit log entries."""
        return self._audit_log[-limit:]
