"""
Base Auth Provider

Abstract interface for the credential collaborator consumed by the chat
clients: a bearer token getter that refreshes when needed and the identity
of the provider the token belongs to.
"""

from abc import ABC, abstractmethod
from typing import Literal

ProviderName = Literal["openai", "anthropic"]


class AuthError(Exception):
    """No usable credential, or the refresh grant was rejected."""

    pass


class AuthProvider(ABC):
    """
    Source of access tokens for one model provider.

    Implementations keep the token fresh on their own: get_access_token()
    refreshes when the token is close to expiry, refresh() forces a new
    token (used after an HTTP 401).
    """

    provider: ProviderName

    @abstractmethod
    async def get_access_token(self) -> str:
        """
        Return a bearer token, refreshing first if it is about to expire.

        Raises:
            AuthError: If no credential is stored or refresh fails
        """
        pass

    @abstractmethod
    async def refresh(self) -> str:
        """
        Force a refresh-token grant and return the new access token.

        Raises:
            AuthError: If the grant fails
        """
        pass

    @property
    def account_id(self) -> str | None:
        return None

    @property
    def preferred_model(self) -> str | None:
        """Model stored alongside the credential, if any."""
        return None
