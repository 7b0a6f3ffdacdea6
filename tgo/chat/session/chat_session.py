"""
Chat session implementation.

A chat session owns its message log and runs at most one generation at a
time. Sending a new message cancels the generation in flight first.
"""

import asyncio
import logging
import uuid as uuid_lib
from typing import Any, Dict, List, Optional

from ..coordinator.tool_call_loop import GenerationRequest, ToolCallLoop
from ..core.cancellation import CancelToken
from ..core.enums import ConversationMode, MessageRole
from ..core.exceptions import GenerationCancelled, SessionConfigurationError
from ..core.interfaces import ConfigStore, ModelBackend, NullPresentation, PresentationSink
from ..core.models import (
    FREE_MODE_AGENT_ID, ChatMessage, EngineSettings, ModelCredentials, ResolvedSessionConfig, SendResult,
    SessionData, SessionSummary
)
from ..tools.authorization_gate import AuthorizationGate
from ..tools.mcp_tool_manager import MCPToolManager

logger = logging.getLogger(__name__)


class ChatSession:
    """
    One conversation with its model, prompt and tool server selection.

    The message log only grows: messages are appended by the user turn and
    by the tool call loop, and every mutation is persisted through the
    config store. A cancelled generation keeps whatever was appended before
    the cancel and never appends afterwards.

    Usage:
        session = ChatSession(SessionData(model_id="gpt"), store, backend, tools, gate)
        result = await session.send_message("What files are in /tmp?")
        if result.aborted:
            ...
    """

    def __init__(
        self,
        data: SessionData,
        config_store: ConfigStore,
        backend: ModelBackend,
        tool_manager: MCPToolManager,
        authorization_gate: AuthorizationGate,
        presentation: Optional[PresentationSink] = None,
        settings: Optional[EngineSettings] = None
    ):
        self.data = data
        self._config_store = config_store
        self._backend = backend
        self._tool_manager = tool_manager
        self._gate = authorization_gate
        self._presentation = presentation or NullPresentation()
        self._settings = settings or EngineSettings()

        self._generation_lock = asyncio.Lock()
        self._cancel_token: Optional[CancelToken] = None
        self._request_id: Optional[str] = None
        self.last_loop: Optional[ToolCallLoop] = None

    @property
    def session_id(self) -> str:
        return self.data.session_id

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self.data.messages)

    @property
    def is_generating(self) -> bool:
        return self._cancel_token is not None and not self._cancel_token.is_cancelled

    @property
    def current_request_id(self) -> Optional[str]:
        return self._request_id if self.is_generating else None

    def summary(self) -> SessionSummary:
        data = self.data
        return SessionSummary(
            session_id=data.session_id,
            name=data.name,
            created_at=data.created_at,
            updated_at=data.updated_at,
            message_count=data.message_count,
            agent_id=data.agent_id,
            model_id=data.model_id,
            prompt_id=data.prompt_id,
            tool_server_ids=list(data.tool_server_ids),
            conversation_mode=data.conversation_mode,
            generating=self.is_generating,
        )

    # Configuration

    def set_model(self, model_id: Optional[str]) -> None:
        self.data.model_id = model_id
        self._persist()

    def set_prompt(self, prompt_id: Optional[str]) -> None:
        self.data.prompt_id = prompt_id
        self._persist()

    def set_agent(self, agent_id: Optional[str]) -> None:
        """Select an agent preset, ``free-mode`` or None for custom settings."""
        if agent_id and agent_id != FREE_MODE_AGENT_ID and self._config_store.get_agent(agent_id) is None:
            raise SessionConfigurationError(f"Unknown agent: {agent_id}", session_id=self.session_id)
        self.data.agent_id = agent_id
        self._persist()

    def set_tool_servers(self, server_ids: List[str]) -> None:
        self.data.tool_server_ids = list(dict.fromkeys(server_ids))
        self._persist()

    def set_conversation_mode(self, mode: ConversationMode) -> None:
        self.data.conversation_mode = ConversationMode(mode)
        self._persist()

    def rename(self, name: str) -> None:
        self.data.name = name
        self._persist()
        try:
            self._presentation.on_session_renamed(self.session_id, self.data.name)
        except Exception as e:
            logger.error(f"Rename push failed for session {self.session_id}: {e}")
        logger.info(f"Session {self.session_id} renamed to {self.data.name!r}")

    def resolve_config(self) -> ResolvedSessionConfig:
        """
        Model, prompt and tool servers in effect.

        An agent preset (any agent id except ``free-mode``) overrides the
        session's own selection.

        Raises:
            SessionConfigurationError: If the agent preset does not exist
        """
        data = self.data
        if data.agent_id and data.agent_id != FREE_MODE_AGENT_ID:
            agent = self._config_store.get_agent(data.agent_id)
            if agent is None:
                raise SessionConfigurationError(
                    f"Unknown agent: {data.agent_id}", session_id=self.session_id
                )
            return ResolvedSessionConfig(
                model_id=agent.model_id,
                prompt_id=agent.prompt_id,
                tool_server_ids=list(agent.tool_server_ids),
            )
        return ResolvedSessionConfig(
            model_id=data.model_id,
            prompt_id=data.prompt_id,
            tool_server_ids=list(data.tool_server_ids),
        )

    def messages_for_model(self, text: str, config: Optional[ResolvedSessionConfig] = None) -> List[Dict[str, Any]]:
        """
        Outgoing messages for a new user turn.

        Prompt message first, then (multi-turn only) the user and assistant
        messages of the log with non-empty content, then the new user text.
        """
        config = config or self.resolve_config()
        messages: List[Dict[str, Any]] = []

        if config.prompt_id:
            prompt = self._config_store.get_prompt(config.prompt_id)
            if prompt is None:
                logger.warning(f"Prompt {config.prompt_id} of session {self.session_id} not found")
            elif prompt.content:
                messages.append({"role": prompt.role.value, "content": prompt.content})

        if self.data.conversation_mode == ConversationMode.MULTI_TURN:
            for message in self.data.messages:
                if message.role in (MessageRole.USER, MessageRole.ASSISTANT) and message.content:
                    messages.append({"role": message.role.value, "content": message.content})

        messages.append({"role": MessageRole.USER.value, "content": text})
        return messages

    # Generation

    async def send_message(self, text: str, request_id: Optional[str] = None) -> SendResult:
        """
        Send a user message and run the generation.

        Any generation in flight is cancelled first. Deliberate cancellation
        is reported as ``aborted``; backend failures raise.

        Raises:
            SessionConfigurationError: If no usable model is configured
            BackendError: If a model call failed
        """
        request_id = request_id or str(uuid_lib.uuid4())
        self.abort()
        token = CancelToken()
        self._cancel_token = token
        self._request_id = request_id

        try:
            async with self._generation_lock:
                token.raise_if_cancelled()
                config = self.resolve_config()
                credentials = self._resolve_credentials(config)
                outgoing = self.messages_for_model(text, config)

                self._append_user_message(text)
                token.raise_if_cancelled()

                loop = ToolCallLoop(
                    GenerationRequest(
                        session_id=self.session_id,
                        request_id=request_id,
                        credentials=credentials,
                        messages=outgoing,
                        cancel_token=token,
                        tool_server_ids=config.tool_server_ids,
                        temperature=self._sampling_temperature(credentials),
                        max_tokens=self._max_tokens(credentials),
                    ),
                    self._backend,
                    self._tool_manager,
                    self._gate,
                    append_message=self._append_message,
                    presentation=self._presentation,
                    settings=self._settings,
                )
                self.last_loop = loop
                content = await loop.run()
                return SendResult(request_id=request_id, content=content)
        except GenerationCancelled:
            logger.info(f"Generation {request_id} of session {self.session_id} aborted")
            return SendResult(request_id=request_id, content=self._settings.aborted_marker, aborted=True)
        finally:
            if self._cancel_token is token:
                self._cancel_token = None
                self._request_id = None

    def abort(self) -> bool:
        """Cancel the generation in flight. Returns False when there is none."""
        token = self._cancel_token
        if token is None or token.is_cancelled:
            return False
        token.cancel()
        logger.info(f"Abort requested for generation {self._request_id} of session {self.session_id}")
        return True

    def _resolve_credentials(self, config: ResolvedSessionConfig) -> ModelCredentials:
        if not config.model_id:
            raise SessionConfigurationError("No model selected", session_id=self.session_id)
        credentials = self._config_store.get_model_credentials(config.model_id)
        if credentials is None:
            raise SessionConfigurationError(
                f"Model {config.model_id} is not configured", session_id=self.session_id
            )
        return credentials

    def _sampling_temperature(self, credentials: ModelCredentials) -> float:
        if credentials.temperature is None:
            return self._settings.default_temperature
        return credentials.temperature

    def _max_tokens(self, credentials: ModelCredentials) -> int:
        if credentials.context_size is None:
            return self._settings.default_max_tokens
        return credentials.context_size

    def _append_user_message(self, text: str) -> None:
        first_message = self.data.message_count == 0
        self._append_message(ChatMessage(role=MessageRole.USER, content=text))
        if first_message and not self.data.name:
            name = " ".join(text.split())[:self._settings.session_name_length]
            if name:
                self.rename(name)

    def _append_message(self, message: ChatMessage) -> ChatMessage:
        message.id = self.data.message_count
        self.data.messages.append(message)
        self.data.message_count += 1
        self._persist()
        return message

    def _persist(self) -> None:
        self.data.touch()
        self._config_store.save_session(self.data)
