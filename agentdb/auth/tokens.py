"""
OAuth token consumers.

Loads the stored auth blob, hands out access tokens and performs the
refresh-token grant for the two supported providers. Browser login flows
live elsewhere; this module only consumes their result.

Usage:
    auth = load_auth()
    token = await auth.get_access_token()
"""

from __future__ import annotations

import base64
import json
import logging
from abc import abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, Field

from agentdb import settings_store
from agentdb.auth.base import AuthError, AuthProvider, ProviderName

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)


class TokenData(BaseModel):
    """Stored OAuth credential."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(default="")
    expires_at: datetime = Field(default_factory=lambda: datetime.fromtimestamp(0, UTC))
    account_id: str | None = None
    chatgpt_account_id: str | None = None
    model: str | None = None

    def expires_soon(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return current >= expires_at - REFRESH_MARGIN

    @classmethod
    def from_blob(cls, blob: dict[str, Any]) -> "TokenData":
        expires = blob.get("token_expires")
        return cls(
            access_token=blob["access_token"],
            refresh_token=blob.get("refresh_token") or "",
            expires_at=expires or datetime.fromtimestamp(0, UTC),
            account_id=blob.get("account_id"),
            chatgpt_account_id=blob.get("chatgpt_account_id"),
            model=blob.get("model"),
        )


def decode_jwt_claims(token: str) -> dict[str, Any]:
    """Read the payload of a JWT without verifying it."""
    try:
        payload = token.split(".")[1]
        padded = payload + "=" * (-len(payload) % 4)
        return json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError):
        return {}


class OAuthTokenAuth(AuthProvider):
    """
    Token holder shared by both providers.

    Subclasses set the token endpoint, client id and how the grant body is
    encoded.
    """

    token_url: str
    client_id: str

    def __init__(
        self,
        tokens: TokenData,
        http_client: httpx.AsyncClient | None = None,
        persist: bool = True,
    ):
        self.tokens = tokens
        self._http_client = http_client
        self._persist = persist

    async def get_access_token(self) -> str:
        if self.tokens.expires_soon():
            return await self.refresh()
        return self.tokens.access_token

    async def refresh(self) -> str:
        if not self.tokens.refresh_token:
            raise AuthError(f"No {self.provider} refresh token stored. Log in again.")

        logger.info(f"Refreshing {self.provider} access token")
        try:
            if self._http_client is not None:
                response = await self._post_grant(self._http_client)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await self._post_grant(client)
        except httpx.HTTPError as e:
            raise AuthError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            raise AuthError(
                f"Token refresh failed (HTTP {response.status_code}). Log in again."
            )

        result = response.json()
        self.tokens.access_token = result["access_token"]
        self.tokens.refresh_token = result.get("refresh_token") or self.tokens.refresh_token
        self.tokens.expires_at = datetime.now(UTC) + timedelta(
            seconds=int(result.get("expires_in", 3600))
        )
        self._after_refresh()
        self.save()
        return self.tokens.access_token

    @abstractmethod
    async def _post_grant(self, client: httpx.AsyncClient) -> httpx.Response:
        """Send the refresh-token grant in the provider's encoding."""
        pass

    def _grant(self) -> dict[str, str]:
        return {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "refresh_token": self.tokens.refresh_token,
        }

    def _after_refresh(self) -> None:
        pass

    def save(self) -> None:
        if not self._persist:
            return
        settings_store.save_auth(
            {
                "provider": self.provider,
                "access_token": self.tokens.access_token,
                "refresh_token": self.tokens.refresh_token,
                "token_expires": self.tokens.expires_at.isoformat(),
                "account_id": self.tokens.account_id,
                "chatgpt_account_id": self.tokens.chatgpt_account_id,
                "model": self.tokens.model,
            }
        )

    @property
    def account_id(self) -> str | None:
        return self.tokens.account_id

    @property
    def preferred_model(self) -> str | None:
        return self.tokens.model


class OpenAIAuth(OAuthTokenAuth):
    """ChatGPT account credential (form-encoded refresh grant)."""

    provider: ProviderName = "openai"
    token_url = "https://auth.openai.com/oauth/token"
    client_id = "app_EMoamEEZ73f0CkXaXp7hrann"

    def __init__(self, tokens: TokenData, **kwargs):
        super().__init__(tokens, **kwargs)
        if not tokens.chatgpt_account_id:
            self._after_refresh()

    async def _post_grant(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(self.token_url, data=self._grant())

    def _after_refresh(self) -> None:
        claims = decode_jwt_claims(self.tokens.access_token)
        auth_claim = claims.get("https://api.openai.com/auth") or {}
        if auth_claim.get("chatgpt_account_id"):
            self.tokens.chatgpt_account_id = auth_claim["chatgpt_account_id"]
        if claims.get("sub") or claims.get("account_id"):
            self.tokens.account_id = claims.get("sub") or claims.get("account_id")

    @property
    def chatgpt_account_id(self) -> str | None:
        return self.tokens.chatgpt_account_id


class AnthropicAuth(OAuthTokenAuth):
    """Anthropic console credential (JSON refresh grant)."""

    provider: ProviderName = "anthropic"
    token_url = "https://console.anthropic.com/v1/oauth/token"
    client_id = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"

    async def _post_grant(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(self.token_url, json=self._grant())


def load_auth(blob: dict[str, Any] | None = None) -> OAuthTokenAuth:
    """
    Build the auth provider for the stored credential.

    Raises:
        AuthError: If nothing usable is stored
    """
    blob = blob if blob is not None else settings_store.get_auth()
    if not blob or not blob.get("access_token"):
        raise AuthError("Not authenticated. Log in with a model provider first.")

    tokens = TokenData.from_blob(blob)
    provider = blob.get("provider")
    if provider == "anthropic":
        return AnthropicAuth(tokens)
    if provider == "openai":
        return OpenAIAuth(tokens)
    raise AuthError(f"Unknown auth provider: {provider}")
