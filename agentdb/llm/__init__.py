"""
LLM Client Module

Streaming chat clients for the two supported providers behind one
``chat()`` contract.

Usage:
    from agentdb.llm import create_chat_client
    from agentdb.config import get_settings

    client = create_chat_client(auth, get_settings().llm)
    client.set_system_prompt(prompt)
    response = await client.chat("Which tables reference customers?")
"""

from agentdb.llm.anthropic import AnthropicMessagesClient
from agentdb.llm.base import (
    AuthorizationError,
    BaseChatClient,
    EmptyResponseError,
    LLMError,
    LLMTimeoutError,
    LLMTransportError,
    ProviderError,
    RateLimitError,
    TransientServiceError,
)
from agentdb.llm.factory import ChatClientFactory, create_chat_client
from agentdb.llm.models import ChatResponse, LLMMessage, TokenUsage
from agentdb.llm.openai import OpenAIResponsesClient
from agentdb.llm.sse import SSEDecoder

__all__ = [
    # Base classes
    "BaseChatClient",
    # Models
    "ChatResponse",
    "LLMMessage",
    "TokenUsage",
    # Factory
    "ChatClientFactory",
    "create_chat_client",
    # Clients
    "OpenAIResponsesClient",
    "AnthropicMessagesClient",
    "SSEDecoder",
    # Errors
    "LLMError",
    "AuthorizationError",
    "RateLimitError",
    "TransientServiceError",
    "ProviderError",
    "EmptyResponseError",
    "LLMTimeoutError",
    "LLMTransportError",
]
