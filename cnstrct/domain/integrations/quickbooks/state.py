"""OAuth CSRF state: issued when authorization starts, consumed on callback"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ....models_quickbooks import QBOAuthState
from ....shared.clock import Clock, utcnow
from .errors import ExpiredStateError, InvalidStateError

logger = logging.getLogger(__name__)

STATE_TTL = timedelta(minutes=10)


class AuthStateService:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @staticmethod
    def generate_state() -> str:
        """Generate a cryptographically secure state token"""
        return secrets.token_urlsafe(32)

    def store_state(self, state: str, user_id: int) -> QBOAuthState:
        now = self.clock()
        self._purge_expired(now)

        auth_state = QBOAuthState(state=state, user_id=user_id, expires_at=now + STATE_TTL)
        self.db.add(auth_state)
        self.db.commit()
        return auth_state

    def validate_state(self, candidate: Optional[str], user_id: Optional[int] = None) -> int:
        """
        Accept a state exactly once, before it expires.

        Returns the id of the user who started the authorization. The row is
        deleted whether the state is accepted or found expired.
        """
        if not candidate:
            raise InvalidStateError("Missing state parameter")

        auth_state = self.db.get(QBOAuthState, candidate)
        if auth_state is None:
            logger.warning("⚠️ QBO callback with unknown state")
            raise InvalidStateError("Invalid state parameter. Please try again.")

        if user_id is not None and auth_state.user_id != user_id:
            logger.warning(f"⚠️ QBO state issued to user {auth_state.user_id} presented by user {user_id}")
            raise InvalidStateError("Invalid state parameter. Please try again.")

        owner_id, expires_at = auth_state.user_id, auth_state.expires_at
        self.db.delete(auth_state)
        self.db.commit()

        if self.clock() >= expires_at:
            logger.warning(f"⚠️ Expired QBO state presented for user {owner_id}")
            raise ExpiredStateError("Authorization state has expired. Please connect again.")

        return owner_id

    def _purge_expired(self, now) -> None:
        deleted = (
            self.db.query(QBOAuthState)
            .filter(QBOAuthState.expires_at <= now)
            .delete(synchronize_session=False)
        )
        if deleted:
            logger.debug(f"Purged {deleted} expired QBO auth states")
