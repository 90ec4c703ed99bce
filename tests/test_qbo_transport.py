import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest

from cnstrct.domain.integrations.quickbooks.config import resolve_qbo_config
from cnstrct.domain.integrations.quickbooks.errors import (
    QBOConfigError,
    ReauthenticationRequired,
    TokenExchangeError,
)
from cnstrct.domain.integrations.quickbooks.transport import (
    DirectTokenTransport,
    ProxiedTokenTransport,
    TokenResponse,
    build_token_transport,
)

from conftest import token_payload


def _proxied_config():
    return resolve_qbo_config("localhost", transport="proxied", token_proxy_url="https://proxy.example.com/api")


def test_token_response_defaults():
    token = TokenResponse.from_payload({"access_token": "a", "refresh_token": "r"}, realm_id="123")

    assert token.expires_in == 3600
    assert token.refresh_expires_in == 8726400
    assert token.realm_id == "123"


def test_token_response_without_access_token_is_an_error():
    with pytest.raises(TokenExchangeError):
        TokenResponse.from_payload({"refresh_token": "r"})


def test_build_token_transport_selects_strategy(qbo_config):
    assert isinstance(build_token_transport(qbo_config), DirectTokenTransport)
    assert isinstance(build_token_transport(_proxied_config()), ProxiedTokenTransport)


@pytest.mark.asyncio
async def test_direct_exchange_uses_basic_auth_and_form_body(qbo_config, fast_retry):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=token_payload(access="acc", refresh="ref"))

    transport = DirectTokenTransport(qbo_config, httpx.MockTransport(handler), fast_retry)
    token = await transport.exchange_code("auth-code", qbo_config.redirect_uri, realm_id="9130")

    assert token.access_token == "acc"
    assert token.refresh_token == "ref"
    assert token.realm_id == "9130"

    request = seen[0]
    assert str(request.url) == qbo_config.token_endpoint
    expected = base64.b64encode(b"sandbox-client-id:sandbox-client-secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    form = parse_qs(request.content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["auth-code"]
    assert form["redirect_uri"] == [qbo_config.redirect_uri]


@pytest.mark.asyncio
async def test_direct_exchange_reports_provider_error(qbo_config, fast_retry):
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Code expired"})

    transport = DirectTokenTransport(qbo_config, httpx.MockTransport(handler), fast_retry)

    with pytest.raises(TokenExchangeError) as exc_info:
        await transport.exchange_code("stale", qbo_config.redirect_uri)

    assert "Code expired" in exc_info.value.message


@pytest.mark.asyncio
async def test_direct_refresh_invalid_grant_requires_reauthentication(qbo_config, fast_retry):
    def handler(request):
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["old-refresh"]
        return httpx.Response(400, json={"error": "invalid_grant"})

    transport = DirectTokenTransport(qbo_config, httpx.MockTransport(handler), fast_retry)

    with pytest.raises(ReauthenticationRequired):
        await transport.refresh("old-refresh")


@pytest.mark.asyncio
async def test_direct_transport_without_credentials_is_a_config_error(fast_retry):
    config = resolve_qbo_config("localhost", transport="proxied", token_proxy_url="")
    transport = DirectTokenTransport(config, httpx.MockTransport(lambda r: httpx.Response(200)), fast_retry)

    with pytest.raises(QBOConfigError):
        await transport.exchange_code("code", config.redirect_uri)


@pytest.mark.asyncio
async def test_direct_revoke_posts_token(qbo_config, fast_retry):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    transport = DirectTokenTransport(qbo_config, httpx.MockTransport(handler), fast_retry)
    await transport.revoke("refresh-token")

    assert str(seen[0].url) == qbo_config.revoke_endpoint
    assert json.loads(seen[0].content) == {"token": "refresh-token"}


@pytest.mark.asyncio
async def test_proxied_exchange_and_refresh_use_json_contract(fast_retry):
    config = _proxied_config()
    seen = []

    def handler(request):
        seen.append((str(request.url), json.loads(request.content)))
        assert "Authorization" not in request.headers
        return httpx.Response(200, json=token_payload())

    transport = ProxiedTokenTransport(config, httpx.MockTransport(handler), fast_retry)
    await transport.exchange_code("auth-code", config.redirect_uri)
    await transport.refresh("refresh-1")

    assert seen[0] == (
        "https://proxy.example.com/api/token",
        {"code": "auth-code", "redirectUri": config.redirect_uri},
    )
    assert seen[1] == ("https://proxy.example.com/api/refresh", {"refreshToken": "refresh-1"})


@pytest.mark.asyncio
async def test_proxied_refresh_invalid_grant_requires_reauthentication(fast_retry):
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token revoked"})

    transport = ProxiedTokenTransport(_proxied_config(), httpx.MockTransport(handler), fast_retry)

    with pytest.raises(ReauthenticationRequired):
        await transport.refresh("refresh-1")


@pytest.mark.asyncio
async def test_proxied_transport_requires_proxy_url(fast_retry):
    config = resolve_qbo_config("localhost", transport="proxied", token_proxy_url="")
    transport = ProxiedTokenTransport(config, httpx.MockTransport(lambda r: httpx.Response(200)), fast_retry)

    with pytest.raises(QBOConfigError):
        await transport.exchange_code("code", config.redirect_uri)
