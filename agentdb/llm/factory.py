"""
Chat Client Factory

Selects the streaming client implementation from the credential's declared
provider.
"""

import logging

import httpx

from agentdb.auth.base import AuthProvider
from agentdb.config import LLMSettings
from agentdb.llm.anthropic import AnthropicMessagesClient
from agentdb.llm.base import BaseChatClient
from agentdb.llm.openai import OpenAIResponsesClient

logger = logging.getLogger(__name__)


class ChatClientFactory:
    """Factory for chat client instances keyed by provider name."""

    PROVIDERS = {
        "openai": OpenAIResponsesClient,
        "anthropic": AnthropicMessagesClient,
    }

    @staticmethod
    def create_client(
        auth: AuthProvider,
        config: LLMSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> BaseChatClient:
        """
        Create the chat client matching ``auth.provider``.

        Raises:
            ValueError: If the provider is unknown
        """
        provider = auth.provider
        if provider not in ChatClientFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider}. "
                f"Available providers: {list(ChatClientFactory.PROVIDERS.keys())}"
            )

        logger.info(f"Creating {provider} chat client", extra={"provider": provider})

        common = {
            "http_client": http_client,
            "max_history": config.max_history,
            "timeout": config.timeout,
            "max_tokens": config.max_tokens,
        }
        if provider == "openai":
            return OpenAIResponsesClient(
                auth,
                default_model=config.default_model_openai,
                base_url=config.openai_base_url,
                responses_path=config.openai_responses_path,
                reasoning_effort=config.reasoning_effort,
                **common,
            )
        return AnthropicMessagesClient(
            auth,
            default_model=config.default_model_anthropic,
            base_url=config.anthropic_base_url,
            api_version=config.anthropic_version,
            **common,
        )


def create_chat_client(
    auth: AuthProvider,
    config: LLMSettings,
    http_client: httpx.AsyncClient | None = None,
) -> BaseChatClient:
    """Convenience wrapper around ChatClientFactory.create_client."""
    return ChatClientFactory.create_client(auth, config, http_client=http_client)
