"""
Base Streaming Chat Client

Provider-agnostic half of the model client: conversation history with FIFO
trimming, the HTTP round-trip over an httpx streaming response, the single
credential-refresh retry on 401 and the mapping of status codes to errors.

Provider subclasses only shape the request and interpret stream events.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from agentdb.auth.base import AuthProvider
from agentdb.llm.models import ChatResponse, LLMMessage, TokenUsage
from agentdb.llm.sse import SSEDecoder

logger = logging.getLogger(__name__)

ERROR_BODY_LIMIT = 8192
RAW_ERROR_LIMIT = 500

DeltaCallback = Callable[[str], None]


# ============================================================================
# Errors
# ============================================================================


class LLMError(Exception):
    """Base exception for model client failures."""

    pass


class AuthorizationError(LLMError):
    """The provider rejected the credential again after a refresh."""

    pass


class RateLimitError(LLMError):
    """HTTP 429. Not retried automatically."""

    pass


class TransientServiceError(LLMError):
    """HTTP 5xx from the provider."""

    pass


class ProviderError(LLMError):
    """Any other non-200 status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(LLMError):
    """The stream finished without any assistant text."""

    pass


class LLMTimeoutError(LLMError):
    """No data arrived within the configured window."""

    pass


class LLMTransportError(LLMError):
    """Network failure talking to the provider."""

    pass


# ============================================================================
# Stream state
# ============================================================================


@dataclass
class StreamState:
    """Accumulator for one streamed response."""

    content: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    final_content: str | None = None


@dataclass
class ProviderRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


# ============================================================================
# Base client
# ============================================================================


class BaseChatClient(ABC):
    """
    Streaming chat client with bounded history.

    Attributes:
        provider_name: "openai" or "anthropic"
        max_history: History bound; the oldest messages go first
        total_tokens: Tokens used across all calls of this client

    Usage:
        client = create_chat_client(auth, settings.llm)
        client.set_system_prompt(prompt)
        response = await client.chat("How many orders shipped last week?")
        print(response.content)
    """

    provider_name: str = ""

    def __init__(
        self,
        auth: AuthProvider,
        default_model: str,
        http_client: httpx.AsyncClient | None = None,
        max_history: int = 20,
        timeout: int = 120,
        max_tokens: int = 4096,
    ):
        self.auth = auth
        self.default_model = default_model
        self.max_history = max_history
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.total_tokens = 0

        self._http_client = http_client
        self._system_prompt = ""
        self._history: list[LLMMessage] = []
        self._model_override: str | None = None

        logger.info(
            f"Initialized {self.provider_name} chat client",
            extra={"provider": self.provider_name, "max_history": max_history, "timeout": timeout},
        )

    # ------------------------------------------------------------------
    # Conversation state
    # ------------------------------------------------------------------

    def set_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def clear_history(self) -> None:
        self._history = []

    def get_history(self) -> list[LLMMessage]:
        """Copy of the history; changing it does not affect the client."""
        return [message.model_copy() for message in self._history]

    def add_to_history(self, message: LLMMessage) -> None:
        self._history.append(message)
        self._trim_history()

    def _trim_history(self) -> None:
        excess = len(self._history) - self.max_history
        if excess > 0:
            del self._history[:excess]

    def set_model(self, model: str | None) -> None:
        self._model_override = model or None

    @property
    def model_override(self) -> str | None:
        return self._model_override

    def get_model(self) -> str:
        """Override, else the model stored with the credential, else the default."""
        return self.normalize_model(
            self._model_override or self.auth.preferred_model or self.default_model
        )

    def normalize_model(self, model: str) -> str:
        return model

    # ------------------------------------------------------------------
    # Round-trip
    # ------------------------------------------------------------------

    async def chat(self, user_text: str, on_delta: DeltaCallback | None = None) -> ChatResponse:
        """
        Send one user message and return the assistant's final answer.

        Args:
            user_text: Message appended to the history before sending
            on_delta: Optional callback for provisional text deltas

        Raises:
            AuthorizationError: 401 after one refresh
            RateLimitError: 429
            TransientServiceError: 5xx
            ProviderError: Any other non-200 status
            EmptyResponseError: No assistant text in a 200 response
            LLMTimeoutError / LLMTransportError: Network failures
        """
        self.add_to_history(LLMMessage(role="user", content=user_text))

        client = self._http_client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        try:
            state = await self._round_trip(client, on_delta)
        finally:
            if self._http_client is None:
                await client.aclose()

        content = state.final_content if state.final_content is not None else state.content
        if not content:
            raise EmptyResponseError(f"Empty response from {self.provider_name}. Try again.")

        self.add_to_history(LLMMessage(role="assistant", content=content))
        self.total_tokens += state.usage.total_tokens

        model = self.get_model()
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": model,
                "prompt_tokens": state.usage.prompt_tokens,
                "completion_tokens": state.usage.completion_tokens,
                "total_tokens": state.usage.total_tokens,
            },
        )
        return ChatResponse(
            content=content,
            tokens_used=state.usage,
            model=model,
            provider=self.provider_name,
        )

    async def _round_trip(
        self, client: httpx.AsyncClient, on_delta: DeltaCallback | None
    ) -> StreamState:
        for attempt in range(2):
            token = await self.auth.get_access_token()
            request = self.build_request(token)
            logger.debug(
                f"{self.provider_name} request",
                extra={
                    "provider": self.provider_name,
                    "message_count": len(self._history),
                    "attempt": attempt + 1,
                },
            )

            try:
                async with client.stream(
                    "POST", request.url, headers=request.headers, json=request.body
                ) as response:
                    if response.status_code == 401:
                        await response.aclose()
                        if attempt == 0:
                            logger.info("Provider returned 401, refreshing credential")
                            await self.auth.refresh()
                            continue
                        raise AuthorizationError(
                            "Access token invalid or expired. Log in again."
                        )

                    if response.status_code != 200:
                        await self._raise_for_status(response)

                    return await self._consume(response, on_delta)

            except httpx.TimeoutException as e:
                raise LLMTimeoutError(
                    f"Model call timed out ({self.timeout}s without data)"
                ) from e
            except httpx.HTTPError as e:
                raise LLMTransportError(f"Model request failed: {e}") from e

        raise AuthorizationError("Access token invalid or expired. Log in again.")  # pragma: no cover

    async def _consume(
        self, response: httpx.Response, on_delta: DeltaCallback | None
    ) -> StreamState:
        state = StreamState()
        decoder = SSEDecoder()
        async for chunk in response.aiter_bytes():
            for event in decoder.feed(chunk):
                self.handle_event(event, state, on_delta)
        for event in decoder.flush():
            self.handle_event(event, state, on_delta)
        self.finish_stream(state, decoder.raw)
        return state

    async def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 429:
            raise RateLimitError("Rate limit reached. Wait a moment and try again.")
        if status >= 500:
            raise TransientServiceError("Service unavailable. Try again in a few moments.")

        body = await self._read_error_body(response)
        raise ProviderError(self._error_message(status, body), status_code=status)

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> str:
        collected = bytearray()
        async for chunk in response.aiter_bytes():
            collected.extend(chunk)
            if len(collected) >= ERROR_BODY_LIMIT:
                break
        return bytes(collected[:ERROR_BODY_LIMIT]).decode("utf-8", errors="replace")

    def _error_message(self, status: int, body: str) -> str:
        message = f"{self.provider_name} API error (HTTP {status})"
        try:
            data = json.loads(body)
        except ValueError:
            data = None

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return f"{message}: {error['message']}"
            if data.get("detail"):
                return f"{message}: {data['detail']}"
        if body.strip():
            message += f": {body[:RAW_ERROR_LIMIT]}"
        return message

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def build_request(self, access_token: str) -> ProviderRequest:
        """Shape the HTTP request for the current history."""
        pass  # pragma: no cover - abstract method

    @abstractmethod
    def handle_event(
        self, event: dict[str, Any], state: StreamState, on_delta: DeltaCallback | None
    ) -> None:
        """Fold one decoded stream event into the state."""
        pass  # pragma: no cover - abstract method

    def finish_stream(self, state: StreamState, raw_body: str) -> None:
        """Last chance to fill the state once the stream has ended."""
        return None
