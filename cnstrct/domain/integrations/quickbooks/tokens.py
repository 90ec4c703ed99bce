"""
Token refresh

Hands out a usable access token for a connection, refreshing it when it is
within five minutes of expiring. Concurrent refreshes of the same
connection inside this process share a single in-flight call to Intuit,
and a refresh already stored by another session is reused rather than
repeated.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session

from ....encryption import decrypt_token
from ....models_quickbooks import QBOConnection
from ....shared.clock import Clock, utcnow
from .config import QBOConfig
from .errors import (
    QBONetworkError,
    ReauthenticationRequired,
    TokenExchangeError,
    TokenRefreshError,
)
from .repository import QBOConnectionRepository, SyncLogRepository
from .transport import TokenTransport

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)


class RefreshCoordinator:
    """One refresh task per connection id at a time"""

    def __init__(self):
        self._tasks: Dict[int, asyncio.Task] = {}

    def in_flight(self, key: int) -> bool:
        return key in self._tasks

    async def run(self, key: int, factory: Callable[[], Awaitable[str]]) -> str:
        if self.in_flight(key):
            logger.debug(f"Joining in-flight QBO token refresh for connection {key}")
            task = self._tasks[key]
        else:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda _: self._tasks.pop(key, None))
        # A cancelled waiter must not cancel the refresh other callers are waiting on
        return await asyncio.shield(task)


refresh_coordinator = RefreshCoordinator()


class TokenManager:
    def __init__(
        self,
        db: Session,
        config: QBOConfig,
        transport: TokenTransport,
        clock: Clock = utcnow,
        coordinator: Optional[RefreshCoordinator] = None,
    ):
        self.db = db
        self.config = config
        self.transport = transport
        self.clock = clock
        self.coordinator = coordinator or refresh_coordinator

    def needs_refresh(self, connection: QBOConnection) -> bool:
        """True once the access token is within five minutes of expiry"""
        return self.clock() >= connection.access_token_expires_at - REFRESH_MARGIN

    async def get_valid_access_token(self, connection: QBOConnection, force: bool = False) -> str:
        """
        Return a usable access token for the connection.

        Fresh tokens come back unchanged. Otherwise the refresh token is
        traded for a new pair, which overwrites the stored pair and both
        expiries.

        Raises:
            ReauthenticationRequired: refresh token expired or rejected; the
                connection has been deleted
            TokenRefreshError: transient failure; the connection is kept
        """
        if not force and not self.needs_refresh(connection):
            try:
                return decrypt_token(connection.access_token)
            except ValueError:
                logger.warning(f"⚠️ Stored access token for connection {connection.id} is unreadable, refreshing")

        access_token = await self.coordinator.run(connection.id, lambda: self._refresh(connection, force))
        # A joined refresh was written through another session
        self.db.refresh(connection)
        return access_token

    async def _refresh(self, connection: QBOConnection, force: bool = False) -> str:
        # The row may have been rotated or removed since this session loaded it
        try:
            self.db.refresh(connection)
        except InvalidRequestError as e:
            raise ReauthenticationRequired(
                "QuickBooks connection was removed. Please reconnect your QuickBooks account."
            ) from e

        user_id = connection.user_id
        if not force and not self.needs_refresh(connection):
            logger.debug(f"QBO token for user {user_id} was already refreshed by another session")
            try:
                return decrypt_token(connection.access_token)
            except ValueError:
                logger.warning(f"⚠️ Stored access token for user {user_id} is unreadable, refreshing")

        expires_at = connection.refresh_token_expires_at
        if expires_at is not None and expires_at <= self.clock():
            self._drop_connection(user_id, "refresh token expired")
            raise ReauthenticationRequired(
                "QuickBooks refresh token expired. Please reconnect your QuickBooks account."
            )

        try:
            refresh_token = decrypt_token(connection.refresh_token)
        except ValueError as e:
            self._drop_connection(user_id, "stored refresh token unreadable")
            raise ReauthenticationRequired(
                "QuickBooks credentials are unreadable. Please reconnect your QuickBooks account."
            ) from e

        logger.info(f"🔄 Refreshing QuickBooks access token for user {user_id}")
        try:
            token_data = await self.transport.refresh(refresh_token)
        except ReauthenticationRequired as e:
            self._drop_connection(user_id, e.message)
            raise
        except (TokenExchangeError, QBONetworkError) as e:
            logger.error(f"❌ QuickBooks token refresh failed for user {user_id}: {e}")
            SyncLogRepository.log_action(self.db, user_id, "refresh", error=str(e))
            raise TokenRefreshError(f"Failed to refresh QuickBooks token: {e}") from e

        QBOConnectionRepository.update_tokens(self.db, connection, token_data, now=self.clock())
        SyncLogRepository.log_action(self.db, user_id, "refresh")
        logger.info(f"✅ QuickBooks access token refreshed for user {user_id}")
        return token_data.access_token

    def _drop_connection(self, user_id: int, reason: str) -> None:
        logger.warning(f"⚠️ Dropping QuickBooks connection for user {user_id}: {reason}")
        QBOConnectionRepository.delete_connection(self.db, user_id)
        SyncLogRepository.log_action(self.db, user_id, "refresh", error=reason)
