"""
LLM Conversation Models

Pydantic models shared by both streaming chat clients.
"""

from typing import Literal

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    """Single message in the conversation history."""

    role: Literal["system", "user", "assistant"] = Field(
        ...,
        description="Message role"
    )
    content: str = Field(
        ...,
        description="Message content"
    )


class TokenUsage(BaseModel):
    """Token counters reported by the provider for one round-trip."""

    prompt_tokens: int = Field(
        default=0,
        ge=0,
        description="Input tokens"
    )
    completion_tokens: int = Field(
        default=0,
        ge=0,
        description="Output tokens"
    )
    total_tokens: int = Field(
        default=0,
        ge=0,
        description="Total tokens (provider value, else prompt + completion)"
    )


class ChatResponse(BaseModel):
    """Final answer of one chat() call."""

    content: str = Field(
        ...,
        description="Accumulated assistant text"
    )
    tokens_used: TokenUsage = Field(
        default_factory=TokenUsage,
        description="Token usage for this call"
    )
    model: str = Field(
        ...,
        description="Model that produced the answer"
    )
    provider: Literal["openai", "anthropic"] = Field(
        ...,
        description="Provider that handled the request"
    )
