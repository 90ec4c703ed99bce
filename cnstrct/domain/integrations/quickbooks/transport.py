"""
Token transports

Trades authorization codes and refresh tokens for token pairs. One
strategy is selected from configuration:

- DirectTokenTransport talks to Intuit's token endpoint with HTTP Basic
  auth, using the client secret held by this server.
- ProxiedTokenTransport hands the secret-holding step to a trusted
  intermediary (a serverless function) that speaks the same JSON contract.
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from ....config import QBO_HTTP_TIMEOUT
from .config import TRANSPORT_PROXIED, QBOConfig
from .errors import QBOConfigError, ReauthenticationRequired, TokenExchangeError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600  # 1 hour
DEFAULT_REFRESH_EXPIRES_IN = 8726400  # 101 days


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str
    expires_in: int = DEFAULT_EXPIRES_IN
    refresh_expires_in: int = DEFAULT_REFRESH_EXPIRES_IN
    realm_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict, realm_id: Optional[str] = None) -> "TokenResponse":
        """Build from an Intuit token body; raises if no access token came back"""
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenExchangeError("Invalid token response from QuickBooks: missing access_token")
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or "",
            expires_in=int(payload.get("expires_in") or DEFAULT_EXPIRES_IN),
            refresh_expires_in=int(
                payload.get("x_refresh_token_expires_in") or DEFAULT_REFRESH_EXPIRES_IN
            ),
            realm_id=payload.get("realmId") or realm_id,
        )


def _error_description(response: httpx.Response) -> str:
    """Pull the provider's error description out of a failed response"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return (
            body.get("error_description")
            or body.get("error")
            or body.get("message")
            or f"HTTP {response.status_code}"
        )
    return f"HTTP {response.status_code}"


def _is_invalid_grant(response: httpx.Response) -> bool:
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error") == "invalid_grant"


class TokenTransport(ABC):
    """Exchanges OAuth grants for tokens"""

    def __init__(
        self,
        config: QBOConfig,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = QBO_HTTP_TIMEOUT,
    ):
        self.config = config
        self.http_transport = http_transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.http_transport)

    @abstractmethod
    async def exchange_code(
        self, code: str, redirect_uri: str, realm_id: Optional[str] = None
    ) -> TokenResponse:
        ...

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenResponse:
        ...

    @abstractmethod
    async def revoke(self, token: str) -> None:
        ...

    async def _post_for_tokens(
        self,
        url: str,
        label: str,
        realm_id: Optional[str] = None,
        invalid_grant_requires_reauth: bool = False,
        **kwargs,
    ) -> TokenResponse:
        async with self._client() as client:
            response = await self.retry_policy.send(client, "POST", url, label=label, **kwargs)

        if response.status_code != 200:
            description = _error_description(response)
            logger.error(f"❌ QuickBooks {label} failed ({response.status_code}): {description}")
            if invalid_grant_requires_reauth and _is_invalid_grant(response):
                raise ReauthenticationRequired(
                    f"QuickBooks re-authentication required: {description}"
                )
            raise TokenExchangeError(f"QuickBooks {label} failed: {description}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"QuickBooks {label} returned a non-JSON body") from e

        return TokenResponse.from_payload(payload, realm_id=realm_id)


class DirectTokenTransport(TokenTransport):
    """Calls Intuit's token endpoint with this server's client credentials"""

    def _basic_auth_header(self) -> str:
        if not self.config.client_id or not self.config.client_secret:
            raise QBOConfigError("QuickBooks client credentials are not configured")
        credentials = f"{self.config.client_id}:{self.config.client_secret}"
        return base64.b64encode(credentials.encode()).decode()

    def _headers(self, content_type: str = "application/x-www-form-urlencoded") -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": content_type,
            "Authorization": f"Basic {self._basic_auth_header()}",
        }

    async def exchange_code(
        self, code: str, redirect_uri: str, realm_id: Optional[str] = None
    ) -> TokenResponse:
        return await self._post_for_tokens(
            self.config.token_endpoint,
            "token exchange",
            realm_id=realm_id,
            headers=self._headers(),
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._post_for_tokens(
            self.config.token_endpoint,
            "token refresh",
            invalid_grant_requires_reauth=True,
            headers=self._headers(),
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    async def revoke(self, token: str) -> None:
        async with self._client() as client:
            response = await self.retry_policy.send(
                client,
                "POST",
                self.config.revoke_endpoint,
                label="token revoke",
                headers=self._headers("application/json"),
                json={"token": token},
            )
        if response.status_code != 200:
            raise TokenExchangeError(f"QuickBooks token revoke failed: {_error_description(response)}")


class ProxiedTokenTransport(TokenTransport):
    """Delegates token calls to an intermediary that holds the client secret"""

    def _url(self, path: str) -> str:
        if not self.config.token_proxy_url:
            raise QBOConfigError("QBO_TOKEN_PROXY_URL is required for the proxied token transport")
        return f"{self.config.token_proxy_url}/{path}"

    async def exchange_code(
        self, code: str, redirect_uri: str, realm_id: Optional[str] = None
    ) -> TokenResponse:
        return await self._post_for_tokens(
            self._url("token"),
            "token exchange",
            realm_id=realm_id,
            json={"code": code, "redirectUri": redirect_uri},
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._post_for_tokens(
            self._url("refresh"),
            "token refresh",
            invalid_grant_requires_reauth=True,
            json={"refreshToken": refresh_token},
        )

    async def revoke(self, token: str) -> None:
        async with self._client() as client:
            response = await self.retry_policy.send(
                client, "POST", self._url("revoke"), label="token revoke", json={"token": token}
            )
        if response.status_code != 200:
            raise TokenExchangeError(f"QuickBooks token revoke failed: {_error_description(response)}")


def build_token_transport(
    config: QBOConfig,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> TokenTransport:
    """Pick the token transport named by the configuration"""
    if config.transport == TRANSPORT_PROXIED:
        return ProxiedTokenTransport(config, http_transport, retry_policy)
    return DirectTokenTransport(config, http_transport, retry_policy)
