"""
Anthropic Messages Client

Streams answers from the Anthropic Messages API.

Text is the concatenation of ``content_block_delta`` text deltas. Input
tokens are reported in ``message_start`` and output tokens in
``message_delta``. If the body turns out not to be a stream at all, the
whole body is parsed as a regular Messages response.
"""

import json
import logging
from typing import Any

from agentdb.llm.base import BaseChatClient, DeltaCallback, ProviderRequest, StreamState
from agentdb.llm.models import LLMMessage, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
OAUTH_BETA = "oauth-2025-04-20"


def to_messages(history: list[LLMMessage]) -> list[dict[str, str]]:
    """
    Convert history to Messages API turns.

    The API requires the first turn to come from the user, so any leading
    assistant messages (left behind by history trimming) are dropped.
    """
    messages = [
        {"role": message.role, "content": message.content}
        for message in history
        if message.role != "system"
    ]
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class AnthropicMessagesClient(BaseChatClient):
    """Chat client for Anthropic accounts (Messages API, SSE)."""

    provider_name = "anthropic"

    def __init__(
        self,
        *args,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        **kwargs,
    ):
        kwargs.setdefault("default_model", DEFAULT_MODEL)
        super().__init__(*args, **kwargs)
        self.url = f"{base_url.rstrip('/')}/v1/messages"
        self.api_version = api_version

    def build_request(self, access_token: str) -> ProviderRequest:
        body: dict[str, Any] = {
            "model": self.get_model(),
            "max_tokens": self.max_tokens,
            "stream": True,
            "messages": to_messages(self._history),
        }
        if self._system_prompt:
            body["system"] = self._system_prompt

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "accept": "text/event-stream",
            "anthropic-version": self.api_version,
            "anthropic-beta": OAUTH_BETA,
        }
        return ProviderRequest(url=self.url, headers=headers, body=body)

    def handle_event(
        self, event: dict[str, Any], state: StreamState, on_delta: DeltaCallback | None
    ) -> None:
        event_type = event.get("type")

        if event_type == "message_start":
            usage = _as_dict(_as_dict(event.get("message")).get("usage"))
            self._set_usage(state, prompt=usage.get("input_tokens"))
        elif event_type == "content_block_delta":
            text = _as_dict(event.get("delta")).get("text")
            if isinstance(text, str):
                state.content += text
                if on_delta:
                    on_delta(text)
        elif event_type == "message_delta":
            usage = _as_dict(event.get("usage"))
            self._set_usage(state, completion=usage.get("output_tokens"))

    def finish_stream(self, state: StreamState, raw_body: str) -> None:
        if state.content:
            return
        try:
            data = json.loads(raw_body)
        except ValueError:
            return
        if not isinstance(data, dict):
            return

        blocks = data.get("content")
        if not isinstance(blocks, list):
            blocks = []
        state.content = "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        )
        usage = _as_dict(data.get("usage"))
        self._set_usage(
            state,
            prompt=usage.get("input_tokens"),
            completion=usage.get("output_tokens"),
        )

    @staticmethod
    def _set_usage(
        state: StreamState, prompt: int | None = None, completion: int | None = None
    ) -> None:
        prompt_tokens = prompt if isinstance(prompt, int) else state.usage.prompt_tokens
        completion_tokens = (
            completion if isinstance(completion, int) else state.usage.completion_tokens
        )
        state.usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
