"""Credential collaborators for the model clients."""

from agentdb.auth.base import AuthError, AuthProvider
from agentdb.auth.tokens import (
    AnthropicAuth,
    OAuthTokenAuth,
    OpenAIAuth,
    TokenData,
    decode_jwt_claims,
    load_auth,
)

__all__ = [
    "AuthError",
    "AuthProvider",
    "OAuthTokenAuth",
    "OpenAIAuth",
    "AnthropicAuth",
    "TokenData",
    "decode_jwt_claims",
    "load_auth",
]
