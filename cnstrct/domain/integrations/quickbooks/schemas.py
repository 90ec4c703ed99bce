"""QuickBooks schemas - Pydantic models for the QBO endpoints"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator


class AuthInitiateResponse(BaseModel):
    auth_url: str
    state: str


class CallbackRequest(BaseModel):
    """Callback parameters relayed by the frontend after Intuit's redirect"""

    code: str
    state: str
    realmId: str


class CallbackResponse(BaseModel):
    success: bool
    company_id: Optional[str] = None
    company_name: Optional[str] = None


class QBOStatusResponse(BaseModel):
    connected: bool
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    environment: Optional[str] = None
    access_token_expires_at: Optional[datetime] = None
    refresh_token_expires_at: Optional[datetime] = None


class RefreshResponse(BaseModel):
    success: bool
    access_token_expires_at: Optional[datetime] = None
    refresh_token_expires_at: Optional[datetime] = None


class TestConnectionResponse(BaseModel):
    success: bool
    company_id: Optional[str] = None
    company_name: Optional[str] = None


class ProxyRequest(BaseModel):
    """A single QBO data operation, e.g. {"endpoint": "query", "data": {"query": "..."}}"""

    endpoint: str
    method: str = "GET"
    data: Optional[Any] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        method = v.upper()
        if method not in ("GET", "POST", "PUT", "DELETE"):
            raise ValueError("method must be GET, POST, PUT or DELETE")
        return method

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v):
        endpoint = v.strip().lstrip("/")
        if not endpoint or ".." in endpoint or "://" in endpoint:
            raise ValueError("endpoint must be a relative QBO API path")
        return endpoint


class SyncResponse(BaseModel):
    success: bool = True
    qbo_id: str
    qbo_type: str
    already_synced: bool = False


class SyncStatusResponse(BaseModel):
    synced: bool
    qbo_id: Optional[str] = None
    qbo_type: Optional[str] = None
    sync_status: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class AccountResponse(BaseModel):
    id: str
    name: str
    account_type: Optional[str] = None
    account_sub_type: Optional[str] = None
