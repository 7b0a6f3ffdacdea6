"""
Streaming chat-completion backend for OpenAI-compatible endpoints.

This module turns a streamed ``chat.completions`` response into the
fragment types understood by the stream accumulator and maps transport and
HTTP failures onto the backend exception hierarchy.
"""

import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import httpx
from openai import (
    APIConnectionError, APIStatusError, AsyncOpenAI, AuthenticationError,
    InternalServerError, PermissionDeniedError, RateLimitError
)
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.cancellation import CancelToken
from ..core.exceptions import (
    AuthError, BackendCallError, BackendError, BackendServerError, RateLimitedError
)
from ..core.interfaces import ModelBackend
from ..core.models import ModelCredentials
from ..streaming.fragments import Fragment, ReasoningDelta, TextDelta, ToolCallDelta

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ModelCredentials], AsyncOpenAI]


def map_backend_error(error: Exception) -> BackendError:
    """
    Convert an exception raised by the OpenAI client into a ``BackendError``.

    401/403 map to ``AuthError``, 429 to ``RateLimitedError``, 5xx to
    ``BackendServerError``; everything else is a ``BackendCallError``.
    """
    if isinstance(error, BackendError):
        return error

    status_code = getattr(error, "status_code", None)
    message = getattr(error, "message", None) or str(error) or error.__class__.__name__
    context = {"error_type": error.__class__.__name__}

    if isinstance(error, (AuthenticationError, PermissionDeniedError)) or status_code in (401, 403):
        return AuthError(message, status_code=status_code, error_code="AUTH_FAILED", context=context)
    if isinstance(error, RateLimitError) or status_code == 429:
        return RateLimitedError(message, status_code=status_code, error_code="RATE_LIMITED", context=context)
    if isinstance(error, InternalServerError) or (isinstance(status_code, int) and status_code >= 500):
        return BackendServerError(message, status_code=status_code, error_code="SERVER_ERROR", context=context)
    if isinstance(error, (APIConnectionError, httpx.HTTPError)):
        return BackendCallError(message, error_code="CONNECTION_FAILED", context=context)
    return BackendCallError(message, status_code=status_code, context=context)


def build_openai_client(credentials: ModelCredentials, request_timeout: Optional[float] = 90.0) -> AsyncOpenAI:
    """Create an ``AsyncOpenAI`` client for one configured model."""
    return AsyncOpenAI(
        api_key=credentials.api_key or "not-needed",
        base_url=credentials.endpoint,
        timeout=request_timeout,
        # Retries are handled by tenacity around stream opening
        max_retries=0,
    )


class OpenAIModelBackend(ModelBackend):
    """
    Model backend speaking the OpenAI chat-completions streaming protocol.

    Opening the stream is attempted once plus up to ``max_retries`` more times
    on connection and timeout errors.

    Usage:
        backend = OpenAIModelBackend()
        async for fragment in backend.stream_completion(creds, messages, tools, 0.7, 4096, token):
            ...
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        max_retries: int = 3,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 6.0,
        request_timeout: Optional[float] = 90.0
    ):
        self._client_factory = client_factory or (
            lambda credentials: build_openai_client(credentials, request_timeout)
        )
        self._max_retries = max_retries
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds
        self._clients: Dict[Tuple[str, str], AsyncOpenAI] = {}

    def _get_client(self, credentials: ModelCredentials) -> AsyncOpenAI:
        key = (credentials.endpoint, credentials.api_key)
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(credentials)
            self._clients[key] = client
        return client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(0, self._max_retries) + 1),
            wait=wait_exponential(
                multiplier=self._retry_min_seconds,
                max=self._retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIConnectionError,
                    httpx.TimeoutException,
                )
            ),
        )

    @staticmethod
    def build_payload(
        credentials: ModelCredentials,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int
    ) -> Dict[str, Any]:
        """Request body of one streamed completion."""
        payload: Dict[str, Any] = {
            "model": credentials.model,
            "messages": list(messages),
            "stream": True,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        return payload

    async def stream_completion(
        self,
        credentials: ModelCredentials,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        temperature: float,
        max_tokens: int,
        cancel_token: CancelToken
    ) -> AsyncIterator[Fragment]:
        payload = self.build_payload(credentials, messages, tools, temperature, max_tokens)
        client = self._get_client(credentials)
        logger.debug(
            f"Starting streamed chat completion via {credentials.model} with "
            f"{len(payload['messages'])} message(s) and {len(payload.get('tools', []))} tool(s)"
        )

        try:
            stream = None
            async for attempt in self._retrying():
                with attempt:
                    stream = await client.chat.completions.create(**payload)
        except Exception as e:
            error = map_backend_error(e)
            logger.error(f"Opening completion stream failed: {error}")
            raise error from e

        try:
            async for chunk in stream:
                if cancel_token.is_cancelled:
                    logger.debug("Completion stream stopped by cancellation")
                    return
                for fragment in self._chunk_fragments(chunk):
                    yield fragment
        except BackendError:
            raise
        except Exception as e:
            error = map_backend_error(e)
            logger.error(f"Completion stream failed: {error}")
            raise error from e
        finally:
            await self._close_stream(stream)

    @staticmethod
    def _chunk_fragments(chunk: Any) -> List[Fragment]:
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return []
        delta = getattr(choices[0], "delta", None)
        if delta is None:
            return []

        fragments: List[Fragment] = []
        reasoning = getattr(delta, "reasoning_content", None)
        if reasoning:
            fragments.append(ReasoningDelta(reasoning))
        content = getattr(delta, "content", None)
        if content:
            fragments.append(TextDelta(content))
        for call in getattr(delta, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            fragments.append(ToolCallDelta(
                index=call.index or 0,
                id=getattr(call, "id", None),
                name=getattr(function, "name", None) if function is not None else None,
                arguments=getattr(function, "arguments", None) if function is not None else None,
            ))
        return fragments

    @staticmethod
    async def _close_stream(stream: Any) -> None:
        close = getattr(stream, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.debug(f"Closing completion stream failed: {e}")

    async def aclose(self) -> None:
        """Close every cached client."""
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.close()
