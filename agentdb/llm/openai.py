"""
OpenAI Responses Client

Streams answers from the ChatGPT backend Responses endpoint.

Text arrives as ``response.output_text.delta`` events. Those deltas are
provisional: the single ``response.completed`` (or ``response.done``) event
carries the full assistant message, which replaces whatever was
accumulated, plus the token usage.
"""

import logging
from typing import Any

from agentdb.llm.base import BaseChatClient, DeltaCallback, ProviderRequest, StreamState
from agentdb.llm.models import LLMMessage, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5-codex"

# Names the backend does not accept, mapped to the default
_MODEL_ALIASES = {"gpt-5.3-codex": DEFAULT_MODEL}

_COMPLETED_EVENTS = {"response.completed", "response.done"}


def to_responses_input(messages: list[LLMMessage]) -> list[dict[str, Any]]:
    """Convert history to Responses ``input`` items (system messages are skipped)."""
    items = []
    for message in messages:
        if message.role == "system":
            continue
        items.append(
            {
                "type": "message",
                "role": message.role,
                "content": [
                    {
                        "type": "output_text" if message.role == "assistant" else "input_text",
                        "text": message.content,
                    }
                ],
            }
        )
    return items


def _count(value: Any) -> int:
    return value if isinstance(value, int) else 0


class OpenAIResponsesClient(BaseChatClient):
    """Chat client for ChatGPT accounts (Responses API, SSE)."""

    provider_name = "openai"

    def __init__(
        self,
        *args,
        base_url: str = "https://chatgpt.com/backend-api",
        responses_path: str = "/codex/responses",
        reasoning_effort: str = "medium",
        **kwargs,
    ):
        kwargs.setdefault("default_model", DEFAULT_MODEL)
        super().__init__(*args, **kwargs)
        self.url = f"{base_url.rstrip('/')}{responses_path}"
        self.reasoning_effort = reasoning_effort

    def normalize_model(self, model: str) -> str:
        return _MODEL_ALIASES.get(model, model)

    def build_request(self, access_token: str) -> ProviderRequest:
        body: dict[str, Any] = {
            "model": self.get_model(),
            "store": False,
            "stream": True,
            "input": to_responses_input(self._history),
            "reasoning": {"effort": self.reasoning_effort, "summary": "auto"},
        }
        if self._system_prompt:
            body["instructions"] = self._system_prompt

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "accept": "text/event-stream",
            "OpenAI-Beta": "responses=experimental",
            "originator": "codex_cli_rs",
        }
        account_id = getattr(self.auth, "chatgpt_account_id", None)
        if account_id:
            headers["chatgpt-account-id"] = account_id

        return ProviderRequest(url=self.url, headers=headers, body=body)

    def handle_event(
        self, event: dict[str, Any], state: StreamState, on_delta: DeltaCallback | None
    ) -> None:
        event_type = event.get("type")

        if event_type == "response.output_text.delta":
            delta = event.get("delta")
            if isinstance(delta, str):
                state.content += delta
                if on_delta:
                    on_delta(delta)
            return

        if event_type not in _COMPLETED_EVENTS:
            return

        response = event.get("response")
        if not isinstance(response, dict):
            return

        output = response.get("output")
        for item in output if isinstance(output, list) else []:
            if not isinstance(item, dict):
                continue
            if item.get("type") != "message" or item.get("role") != "assistant":
                continue
            content = item.get("content")
            for part in content if isinstance(content, list) else []:
                if (
                    isinstance(part, dict)
                    and part.get("type") == "output_text"
                    and isinstance(part.get("text"), str)
                ):
                    state.final_content = part["text"]

        usage = response.get("usage")
        if isinstance(usage, dict):
            prompt = _count(usage.get("input_tokens"))
            completion = _count(usage.get("output_tokens"))
            state.usage = TokenUsage(
                prompt_tokens=prompt,
                completion_tokens=completion,
                total_tokens=_count(usage.get("total_tokens")) or prompt + completion,
            )
