"""
Tool call loop implementation.

This module drives one generation: it streams a completion, executes the
tool calls the model asks for, feeds the results back and streams the
follow-up answer, while honoring the generation's cancel token at every
suspension point.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core.cancellation import CancelToken
from ..core.enums import AuthorizationOutcome, LoopState, MessageRole, ToolErrorKind, ToolPhase
from ..core.exceptions import BackendError, GenerationCancelled, ToolNotFoundError
from ..core.interfaces import ModelBackend, NullPresentation, PresentationSink
from ..core.models import ChatMessage, EngineSettings, ModelCredentials, ToolCallRecord, ToolResult
from ..streaming.accumulator import AccumulatedResponse, StreamAccumulator
from ..tools.authorization_gate import AuthorizationGate, validate_arguments
from ..tools.catalog import split_qualified_name
from ..tools.mcp_tool_manager import MCPToolManager

logger = logging.getLogger(__name__)

MessageSink = Callable[[ChatMessage], ChatMessage]


async def _next_fragment(iterator: Any) -> Any:
    return await iterator.__anext__()


@dataclass
class GenerationRequest:
    """Everything one generation needs besides the shared collaborators."""
    session_id: str
    request_id: str
    credentials: ModelCredentials
    messages: List[Dict[str, Any]]
    cancel_token: CancelToken
    tool_server_ids: List[str] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 4096


_TRANSITIONS = {
    LoopState.AWAITING_FIRST_RESPONSE: {LoopState.NO_TOOL_CALLS, LoopState.HAS_TOOL_CALLS},
    LoopState.NO_TOOL_CALLS: {LoopState.DONE},
    LoopState.HAS_TOOL_CALLS: {LoopState.EXECUTING_TOOLS},
    LoopState.EXECUTING_TOOLS: {LoopState.AWAITING_FINAL_RESPONSE},
    LoopState.AWAITING_FINAL_RESPONSE: {LoopState.DONE, LoopState.HAS_TOOL_CALLS},
}


class ToolCallLoop:
    """
    State machine of one generation.

    AWAITING_FIRST_RESPONSE -> NO_TOOL_CALLS -> DONE, or
    AWAITING_FIRST_RESPONSE -> HAS_TOOL_CALLS -> EXECUTING_TOOLS ->
    AWAITING_FINAL_RESPONSE -> DONE. A follow-up that asks for tools again
    starts another round, up to ``max_tool_rounds``; the last allowed
    follow-up is sent without tools. CANCELLED and ERRORED are reachable
    from every non-terminal state.

    Messages produced by the generation go to ``append_message`` (the
    session log) and to the outgoing message list in the same order.
    """

    def __init__(
        self,
        request: GenerationRequest,
        backend: ModelBackend,
        tool_manager: MCPToolManager,
        authorization_gate: AuthorizationGate,
        append_message: MessageSink,
        presentation: Optional[PresentationSink] = None,
        settings: Optional[EngineSettings] = None
    ):
        self._request = request
        self._backend = backend
        self._tools = tool_manager
        self._gate = authorization_gate
        self._append_message = append_message
        self._presentation = presentation or NullPresentation()
        self._settings = settings or EngineSettings()

        self._token = request.cancel_token
        self._outgoing: List[Dict[str, Any]] = list(request.messages)
        self.state = LoopState.AWAITING_FIRST_RESPONSE
        self.history: List[LoopState] = [self.state]
        self.model_calls = 0
        self.tool_results: List[ToolResult] = []

    @property
    def outgoing_messages(self) -> List[Dict[str, Any]]:
        return list(self._outgoing)

    async def run(self) -> str:
        """
        Run the generation to completion.

        Returns:
            The final assistant answer

        Raises:
            GenerationCancelled: If the cancel token fired
            BackendError: If a model call failed
        """
        logger.info(f"Generation {self._request.request_id} started for session {self._request.session_id}")
        try:
            content = await self._run()
        except GenerationCancelled:
            self._enter(LoopState.CANCELLED)
            logger.info(f"Generation {self._request.request_id} cancelled")
            raise
        except BackendError as e:
            self._enter(LoopState.ERRORED)
            logger.error(f"Generation {self._request.request_id} failed: {e}")
            raise
        logger.info(
            f"Generation {self._request.request_id} completed after {self.model_calls} model call(s) "
            f"and {len(self.tool_results)} tool call(s)"
        )
        return content

    async def _run(self) -> str:
        definitions = self._tools.tool_definitions(self._request.tool_server_ids)
        max_rounds = self._settings.max_tool_rounds
        rounds = 0

        while True:
            tools_allowed = rounds < max_rounds
            response = await self._stream(definitions if tools_allowed else None)

            if response.has_tool_calls and not tools_allowed:
                logger.warning(
                    f"Ignoring {len(response.tool_calls)} tool call(s) after {max_rounds} tool round(s)"
                )

            if not response.has_tool_calls or not tools_allowed:
                if self.state == LoopState.AWAITING_FIRST_RESPONSE:
                    self._enter(LoopState.NO_TOOL_CALLS)
                self._emit(ChatMessage(
                    role=MessageRole.ASSISTANT,
                    content=response.text,
                    reasoning=response.reasoning or None,
                ))
                self._enter(LoopState.DONE)
                return response.text

            self._enter(LoopState.HAS_TOOL_CALLS)
            self._emit(ChatMessage(
                role=MessageRole.ASSISTANT,
                content=response.text,
                tool_calls=response.tool_calls,
                reasoning=response.reasoning or None,
            ))

            self._enter(LoopState.EXECUTING_TOOLS)
            for call in response.tool_calls:
                result = await self._execute(call)
                self.tool_results.append(result)
                self._emit(ChatMessage(
                    role=MessageRole.TOOL,
                    content=result.content_for_model(),
                    name=call.name,
                    tool_call_id=call.id,
                    is_error=result.is_error,
                ))

            rounds += 1
            self._enter(LoopState.AWAITING_FINAL_RESPONSE)

    async def _stream(self, tools: Optional[List[Dict[str, Any]]]) -> AccumulatedResponse:
        """Stream one model call into a fresh accumulator."""
        self._token.raise_if_cancelled()
        self.model_calls += 1
        request = self._request
        accumulator = StreamAccumulator(on_text=self._push_answer, on_reasoning=self._push_reasoning)

        stream = self._backend.stream_completion(
            request.credentials,
            list(self._outgoing),
            tools or None,
            request.temperature,
            request.max_tokens,
            self._token,
        )
        iterator = stream.__aiter__()
        try:
            while True:
                try:
                    fragment = await self._token.race(_next_fragment(iterator))
                except StopAsyncIteration:
                    break
                self._token.raise_if_cancelled()
                accumulator.on_fragment(fragment)
        finally:
            await self._close_iterator(iterator)

        self._token.raise_if_cancelled()
        response = accumulator.finalize()
        logger.debug(
            f"Model call {self.model_calls} of {request.request_id}: {accumulator.fragment_count} fragment(s), "
            f"{len(response.tool_calls)} tool call(s)"
        )
        return response

    async def _execute(self, call: ToolCallRecord) -> ToolResult:
        """
        Run one tool call: resolve, validate, authorize, invoke.

        Every failure becomes an error result; only cancellation raises.
        """
        self._token.raise_if_cancelled()
        _, tool_name = split_qualified_name(call.name)
        self._push_tool_status(call.name, ToolPhase.STARTED)

        try:
            server_id = self._tools.resolve(call.name)
        except ToolNotFoundError as e:
            return self._failed(call.name, ToolResult.error(tool_name, ToolErrorKind.NOT_FOUND, e.message))

        # Validate against the schema of the server the call routes to
        arguments = call.parsed_arguments()
        tool = self._tools.get_tool(call.name, server_id)
        if tool is not None:
            problem = validate_arguments(arguments, tool.input_schema)
            if problem:
                return self._failed(call.name, ToolResult.error(
                    tool_name, ToolErrorKind.MALFORMED_ARGUMENTS,
                    f"Invalid arguments for {tool_name}: {problem}",
                    server_id=server_id,
                ))

        if not self._gate.is_pre_authorized(tool_name, server_id):
            self._push_tool_status(call.name, ToolPhase.AWAITING_AUTHORIZATION)
        connection = self._tools.get_connection(server_id)
        decision = await self._gate.request_authorization(
            tool_name,
            server_id,
            arguments,
            self._token,
            session_id=self._request.session_id,
            server_name=connection.server_name if connection else None,
        )
        self._token.raise_if_cancelled()

        if decision.outcome == AuthorizationOutcome.DENIED:
            result = ToolResult.error(
                tool_name, ToolErrorKind.DENIED,
                f"The user denied the execution of tool {tool_name}",
                server_id=server_id,
            )
            self._push_tool_status(call.name, ToolPhase.REFUSED, result.error_message)
            return result
        if decision.outcome == AuthorizationOutcome.ABANDONED:
            result = ToolResult.error(
                tool_name, ToolErrorKind.ABANDONED,
                f"Authorization of tool {tool_name} was abandoned",
                server_id=server_id,
            )
            self._push_tool_status(call.name, ToolPhase.REFUSED, result.error_message)
            return result

        self._push_tool_status(call.name, ToolPhase.RUNNING)
        result = await self._token.race(self._tools.invoke(
            server_id, tool_name, arguments, timeout=self._settings.tool_timeout_seconds
        ))
        self._token.raise_if_cancelled()

        if result.is_error:
            return self._failed(call.name, result)
        self._push_tool_status(call.name, ToolPhase.COMPLETED)
        return result

    def _failed(self, display_name: str, result: ToolResult) -> ToolResult:
        logger.warning(f"Tool call {display_name} failed: {result.content_for_model()}")
        self._push_tool_status(display_name, ToolPhase.FAILED, result.error_message)
        return result

    def _emit(self, message: ChatMessage) -> None:
        self._token.raise_if_cancelled()
        stored = self._append_message(message)
        self._outgoing.append(stored.to_model_message())

    def _enter(self, state: LoopState) -> None:
        if self.state.is_terminal:
            return
        if state not in (LoopState.CANCELLED, LoopState.ERRORED) and state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Invalid loop transition {self.state} -> {state}")
        logger.debug(f"Generation {self._request.request_id}: {self.state} -> {state}")
        self.state = state
        self.history.append(state)

    def _notify(self, push: Callable[..., None], *args: Any) -> None:
        if self._token.is_cancelled:
            return
        request = self._request
        try:
            push(request.session_id, request.request_id, *args)
        except Exception as e:
            logger.error(f"Presentation push failed for {request.request_id}: {e}")

    def _push_answer(self, message_id: str, text: str) -> None:
        self._notify(self._presentation.on_answer_fragment, message_id, text)

    def _push_reasoning(self, message_id: str, text: str) -> None:
        self._notify(self._presentation.on_reasoning_fragment, message_id, text)

    def _push_tool_status(self, tool_name: str, phase: ToolPhase, detail: Optional[str] = None) -> None:
        self._notify(self._presentation.on_tool_status, tool_name, phase, detail)

    @staticmethod
    async def _close_iterator(iterator: Any) -> None:
        aclose = getattr(iterator, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug(f"Closing model stream failed: {e}")
