"""QuickBooks repository - Database operations for connections, entity references and sync logs"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ....encryption import encrypt_token
from ....models_quickbooks import QBOConnection, QBOEntityReference, QBOSyncLog
from ....shared.clock import utcnow
from .transport import TokenResponse

logger = logging.getLogger(__name__)


class QBOConnectionRepository:
    """Repository for QBO connection rows, one per user"""

    @staticmethod
    def get_connection(db: Session, user_id: int) -> Optional[QBOConnection]:
        return db.query(QBOConnection).filter(QBOConnection.user_id == user_id).first()

    @staticmethod
    def upsert_connection(
        db: Session,
        user_id: int,
        token_data: TokenResponse,
        company_info: dict,
        environment: str,
        now: Optional[datetime] = None,
    ) -> QBOConnection:
        """Create or replace the user's connection; expiries are absolute from `now`"""
        now = now or utcnow()
        connection = QBOConnectionRepository.get_connection(db, user_id)

        if connection is None:
            connection = QBOConnection(user_id=user_id)
            db.add(connection)

        connection.company_id = company_info.get("company_id") or token_data.realm_id
        connection.company_name = company_info.get("company_name")
        connection.access_token = encrypt_token(token_data.access_token)
        connection.refresh_token = encrypt_token(token_data.refresh_token)
        connection.access_token_expires_at = now + timedelta(seconds=token_data.expires_in)
        connection.refresh_token_expires_at = now + timedelta(seconds=token_data.refresh_expires_in)
        connection.environment = environment
        connection.updated_at = now

        db.commit()
        db.refresh(connection)
        return connection

    @staticmethod
    def update_tokens(
        db: Session,
        connection: QBOConnection,
        token_data: TokenResponse,
        now: Optional[datetime] = None,
    ) -> QBOConnection:
        """Overwrite the token pair and both expiry timestamps after a refresh"""
        now = now or utcnow()
        connection.access_token = encrypt_token(token_data.access_token)
        if token_data.refresh_token:
            connection.refresh_token = encrypt_token(token_data.refresh_token)
        connection.access_token_expires_at = now + timedelta(seconds=token_data.expires_in)
        connection.refresh_token_expires_at = now + timedelta(seconds=token_data.refresh_expires_in)
        connection.updated_at = now
        db.commit()
        db.refresh(connection)
        return connection

    @staticmethod
    def delete_connection(db: Session, user_id: int) -> bool:
        connection = QBOConnectionRepository.get_connection(db, user_id)
        if connection is None:
            return False
        db.delete(connection)
        db.commit()
        return True


class EntityReferenceRepository:
    """Local record <-> QBO entity id mappings"""

    @staticmethod
    def get_reference(
        db: Session, local_entity_id, local_entity_type: str
    ) -> Optional[QBOEntityReference]:
        return (
            db.query(QBOEntityReference)
            .filter(
                QBOEntityReference.local_entity_id == str(local_entity_id),
                QBOEntityReference.local_entity_type == local_entity_type,
            )
            .first()
        )

    @staticmethod
    def upsert_reference(
        db: Session,
        user_id: int,
        qbo_company_id: str,
        local_entity_id,
        local_entity_type: str,
        qbo_entity_id,
        qbo_entity_type: str,
        sync_status: str = "synced",
    ) -> QBOEntityReference:
        """At most one reference per (local id, local type); later writes replace the target"""
        reference = EntityReferenceRepository.get_reference(db, local_entity_id, local_entity_type)
        if reference is None:
            reference = QBOEntityReference(
                local_entity_id=str(local_entity_id),
                local_entity_type=local_entity_type,
            )
            db.add(reference)

        reference.user_id = user_id
        reference.qbo_company_id = qbo_company_id
        reference.qbo_entity_id = str(qbo_entity_id)
        reference.qbo_entity_type = qbo_entity_type
        reference.sync_status = sync_status
        reference.updated_at = utcnow()

        db.commit()
        db.refresh(reference)
        return reference


class SyncLogRepository:
    @staticmethod
    def log_action(
        db: Session,
        user_id: int,
        action: str,
        error: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        """Record a QBO action; failures here are logged and never reach the caller"""
        data = dict(payload or {})
        if error:
            data["error"] = error
        try:
            db.add(
                QBOSyncLog(
                    user_id=user_id,
                    action=action,
                    status="error" if error else "success",
                    payload=data,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to log QBO action {action}: {e}")
