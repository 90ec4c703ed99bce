"""QuickBooks connection service - OAuth lifecycle for a user's QBO company"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ....encryption import decrypt_token
from ....models import User
from ....models_quickbooks import QBOConnection
from ....shared.clock import Clock, utcnow
from .client import QBOClient
from .config import QBOConfig
from .errors import ConnectionNotFoundError, QBOConfigError, QBOError, TokenExchangeError
from .repository import QBOConnectionRepository, SyncLogRepository
from .retry import RetryPolicy
from .state import AuthStateService
from .tokens import TokenManager
from .transport import build_token_transport

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = "QuickBooks Company"


class QuickBooksConnectionService:
    """Connect, inspect, refresh and disconnect a user's QuickBooks company"""

    def __init__(
        self,
        db: Session,
        config: QBOConfig,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.config = config
        self.clock = clock
        self.states = AuthStateService(db, clock)
        self.token_transport = build_token_transport(config, http_transport, retry_policy)
        self.tokens = TokenManager(db, config, self.token_transport, clock)
        self.client = QBOClient(db, config, self.tokens, http_transport, retry_policy)

    def require_connection(self, user_id: int) -> QBOConnection:
        connection = QBOConnectionRepository.get_connection(self.db, user_id)
        if connection is None:
            raise ConnectionNotFoundError("QuickBooks not connected")
        return connection

    def initiate_authorization(self, user: User) -> dict:
        """Issue a state bound to the user and build Intuit's consent URL"""
        if not self.config.client_id:
            raise QBOConfigError("QuickBooks not configured")

        state = self.states.generate_state()
        self.states.store_state(state, user.id)

        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "scope": self.config.scope,
            "redirect_uri": self.config.redirect_uri,
            "state": state,
        }
        auth_url = f"{self.config.auth_endpoint}?{urlencode(params)}"

        logger.info(f"QuickBooks OAuth initiated for user: {user.email} ({self.config.environment})")
        return {"auth_url": auth_url, "state": state}

    async def complete_authorization(
        self,
        code: Optional[str],
        state: Optional[str],
        realm_id: Optional[str],
        user_id: Optional[int] = None,
    ) -> dict:
        """
        Finish the OAuth flow for the user the state was issued to.

        When user_id is given (frontend-relayed callback) the state must
        belong to that user. The state is consumed before anything else.
        """
        owner_id = self.states.validate_state(state, user_id)

        if not code or not realm_id:
            SyncLogRepository.log_action(
                self.db, owner_id, "oauth-callback", error="Missing code or realmId"
            )
            raise TokenExchangeError("Missing authorization code or realmId")

        logger.info(f"QuickBooks OAuth callback for user {owner_id}, realm {realm_id}")

        try:
            token_data = await self.token_transport.exchange_code(
                code, self.config.redirect_uri, realm_id
            )
        except QBOError as e:
            SyncLogRepository.log_action(self.db, owner_id, "oauth-callback", error=e.message)
            raise

        company_id = token_data.realm_id or realm_id
        company_name = DEFAULT_COMPANY_NAME
        try:
            company_info = await self.client.get_company_info(token_data.access_token, company_id)
            company_name = company_info.get("CompanyName") or DEFAULT_COMPANY_NAME
        except QBOError as e:
            logger.warning(f"Failed to fetch company info: {e}")

        connection = QBOConnectionRepository.upsert_connection(
            self.db,
            owner_id,
            token_data,
            {"company_id": company_id, "company_name": company_name},
            self.config.environment,
            now=self.clock(),
        )
        SyncLogRepository.log_action(
            self.db,
            owner_id,
            "oauth-callback",
            payload={"company_id": company_id, "company_name": company_name},
        )

        logger.info(f"✅ QuickBooks connected for user {owner_id}: {company_name}")
        return {
            "success": True,
            "user_id": owner_id,
            "company_id": connection.company_id,
            "company_name": connection.company_name,
        }

    def get_status(self, user: User) -> dict:
        connection = QBOConnectionRepository.get_connection(self.db, user.id)
        if connection is None:
            return {"connected": False}
        return {
            "connected": True,
            "company_id": connection.company_id,
            "company_name": connection.company_name,
            "environment": connection.environment,
            "access_token_expires_at": connection.access_token_expires_at,
            "refresh_token_expires_at": connection.refresh_token_expires_at,
        }

    async def disconnect(self, user: User) -> dict:
        """Revoke at Intuit when possible, then always drop the local connection"""
        connection = self.require_connection(user.id)

        try:
            await self.token_transport.revoke(decrypt_token(connection.refresh_token))
        except (QBOError, ValueError) as e:
            logger.warning(f"⚠️ QuickBooks token revoke failed for user {user.id}, removing connection anyway: {e}")

        QBOConnectionRepository.delete_connection(self.db, user.id)
        SyncLogRepository.log_action(self.db, user.id, "disconnect")

        logger.info(f"✅ QuickBooks disconnected for user: {user.email}")
        return {"success": True}

    async def refresh(self, user: User) -> dict:
        connection = self.require_connection(user.id)
        await self.tokens.get_valid_access_token(connection, force=True)
        return {
            "success": True,
            "access_token_expires_at": connection.access_token_expires_at,
            "refresh_token_expires_at": connection.refresh_token_expires_at,
        }

    async def test_connection(self, user: User) -> dict:
        connection = self.require_connection(user.id)
        access_token = await self.tokens.get_valid_access_token(connection)
        company_info = await self.client.get_company_info(access_token, connection.company_id)
        return {
            "success": True,
            "company_id": connection.company_id,
            "company_name": company_info.get("CompanyName") or connection.company_name,
        }

    async def proxy(self, user: User, endpoint: str, method: str = "GET", data: Any = None) -> dict:
        """Pass-through relay of one data operation"""
        connection = self.require_connection(user.id)
        try:
            result = await self.client.make_request(connection, endpoint, method, data)
        except QBOError as e:
            SyncLogRepository.log_action(
                self.db, user.id, "proxy", error=e.message, payload={"endpoint": endpoint, "method": method}
            )
            raise
        SyncLogRepository.log_action(
            self.db, user.id, "proxy", payload={"endpoint": endpoint, "method": method}
        )
        return result
