"""
QuickBooks configuration provider

Resolves client credentials, redirect URI and Intuit endpoints from the
hostname the frontend is served on. Resolved once at startup and injected
into the routes; nothing re-derives it per request.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from ....config import (
    QBO_CLIENT_ID,
    QBO_CLIENT_SECRET,
    QBO_HOST_PROFILES,
    QBO_SANDBOX_CLIENT_ID,
    QBO_SANDBOX_CLIENT_SECRET,
    QBO_TOKEN_PROXY_URL,
    QBO_TOKEN_TRANSPORT,
)

logger = logging.getLogger(__name__)

AUTH_ENDPOINT = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_ENDPOINT = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
REVOKE_ENDPOINT = "https://developer.api.intuit.com/v2/oauth2/tokens/revoke"
PRODUCTION_API_BASE_URL = "https://quickbooks.api.intuit.com/v3"
SANDBOX_API_BASE_URL = "https://sandbox-quickbooks.api.intuit.com/v3"

DEFAULT_SCOPES = ("com.intuit.quickbooks.accounting",)

CALLBACK_PATH = "/qbo/callback"

# Redirect URIs must match what is registered in the Intuit Developer Portal exactly
HOST_PROFILES = {
    "cnstrct-2.lovable.app": {
        "redirect_uri": "https://cnstrct-2.lovable.app/qbo/callback",
        "production": True,
    },
    "cnstrctnetwork.vercel.app": {
        "redirect_uri": "https://cnstrctnetwork.vercel.app/qbo/callback",
        "production": True,
    },
    "www.cnstrctnetwork.com": {
        "redirect_uri": "https://www.cnstrctnetwork.com/qbo/callback",
        "production": True,
    },
    "localhost": {
        "redirect_uri": "http://localhost:8081/qbo/callback",
        "production": False,
    },
    "127.0.0.1": {
        "redirect_uri": "http://127.0.0.1:8081/qbo/callback",
        "production": False,
    },
}

TRANSPORT_DIRECT = "direct"
TRANSPORT_PROXIED = "proxied"


@dataclass(frozen=True)
class QBOConfig:
    client_id: str
    client_secret: str
    redirect_uri: str
    auth_endpoint: str
    token_endpoint: str
    revoke_endpoint: str
    api_base_url: str
    scopes: tuple
    is_production: bool
    transport: str = TRANSPORT_DIRECT
    token_proxy_url: str = ""

    @property
    def environment(self) -> str:
        return "production" if self.is_production else "sandbox"

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


def _load_host_profiles(raw: str = QBO_HOST_PROFILES) -> dict:
    """Built-in profiles plus any supplied through QBO_HOST_PROFILES"""
    profiles = dict(HOST_PROFILES)
    if not raw:
        return profiles
    try:
        extra = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("⚠️ QBO_HOST_PROFILES is not valid JSON, ignoring it")
        return profiles
    if isinstance(extra, dict):
        profiles.update({host.lower(): profile for host, profile in extra.items()})
    return profiles


def normalize_hostname(hostname: str) -> str:
    """Lowercase, drop any port, and strip the preview-deployment prefix"""
    host = (hostname or "").strip().lower()
    host = host.split(":", 1)[0]
    if host.startswith("preview--"):
        host = host[len("preview--"):]
    return host


def resolve_qbo_config(
    hostname: str,
    origin: Optional[str] = None,
    transport: str = QBO_TOKEN_TRANSPORT,
    token_proxy_url: str = QBO_TOKEN_PROXY_URL,
    host_profiles: Optional[dict] = None,
) -> QBOConfig:
    """
    Build the QBO configuration for a deployment hostname.

    Unknown hostnames fall back to {origin}/qbo/callback and silently use
    the sandbox app keys and endpoints.
    """
    profiles = host_profiles if host_profiles is not None else _load_host_profiles()
    host = normalize_hostname(hostname)
    profile = profiles.get(host)

    if profile:
        redirect_uri = profile["redirect_uri"]
        is_production = bool(profile.get("production", False))
    else:
        base = (origin or f"https://{host}").rstrip("/").replace("preview--", "")
        redirect_uri = f"{base}{CALLBACK_PATH}"
        is_production = False

    if is_production:
        client_id, client_secret = QBO_CLIENT_ID, QBO_CLIENT_SECRET
    else:
        client_id, client_secret = QBO_SANDBOX_CLIENT_ID, QBO_SANDBOX_CLIENT_SECRET

    transport = (transport or TRANSPORT_DIRECT).lower()
    if transport == TRANSPORT_PROXIED:
        # The intermediary holds the secret; it never lives in this config
        client_secret = ""

    return QBOConfig(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        auth_endpoint=AUTH_ENDPOINT,
        token_endpoint=TOKEN_ENDPOINT,
        revoke_endpoint=REVOKE_ENDPOINT,
        api_base_url=PRODUCTION_API_BASE_URL if is_production else SANDBOX_API_BASE_URL,
        scopes=DEFAULT_SCOPES,
        is_production=is_production,
        transport=transport,
        token_proxy_url=token_proxy_url.rstrip("/") if token_proxy_url else "",
    )
