"""
QuickBooks Integration Models
Database models for QBO OAuth tokens, pending authorization states,
entity references and the sync action log
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class QBOConnection(Base):
    """Store QuickBooks OAuth tokens and company information"""
    __tablename__ = "qbo_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    access_token_expires_at = Column(DateTime, nullable=False)
    refresh_token_expires_at = Column(DateTime, nullable=True)

    # QuickBooks company info
    company_id = Column(String(255), nullable=False)  # Realm ID
    company_name = Column(String(255), nullable=True)

    # Environment (sandbox or production)
    environment = Column(String(50), default="sandbox")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")


class QBOAuthState(Base):
    """CSRF state for an authorization in flight, bound to the user who started it"""
    __tablename__ = "qbo_auth_states"

    state = Column(String(255), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class QBOEntityReference(Base):
    """Maps a local record to its QuickBooks counterpart"""
    __tablename__ = "qbo_references"
    __table_args__ = (
        UniqueConstraint("local_entity_id", "local_entity_type", name="uq_qbo_reference_local"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    qbo_company_id = Column(String(255), nullable=False)

    local_entity_id = Column(String(255), nullable=False)
    local_entity_type = Column(String(50), nullable=False)  # expense, payment, invoice, payee, client

    qbo_entity_id = Column(String(255), nullable=False)
    qbo_entity_type = Column(String(50), nullable=False)  # Bill, BillPayment, Invoice, Payment, Vendor, Customer

    sync_status = Column(String(50), default="synced")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class QBOSyncLog(Base):
    """Track QuickBooks connection and sync operations"""
    __tablename__ = "qbo_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    action = Column(String(100), nullable=False)  # oauth-callback, refresh, disconnect, sync-expense, ...
    status = Column(String(50), nullable=False)  # success, error
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
