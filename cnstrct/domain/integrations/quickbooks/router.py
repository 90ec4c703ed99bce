"""
QuickBooks router - OAuth connection lifecycle, API relay and entity sync

All routes require a Supabase bearer token except GET /qbo/callback, which
Intuit redirects the browser to; that route identifies the user by the
state it carries.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ....auth import get_current_user
from ....config import FRONTEND_URL
from ....database import get_db
from ....models import Expense, Invoice, Payment, Project, User
from .config import QBOConfig
from .errors import QBOError
from .schemas import (
    AccountResponse,
    AuthInitiateResponse,
    CallbackRequest,
    CallbackResponse,
    ProxyRequest,
    QBOStatusResponse,
    RefreshResponse,
    SyncResponse,
    SyncStatusResponse,
    TestConnectionResponse,
)
from .service import QuickBooksConnectionService
from .sync import QuickBooksSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qbo", tags=["QuickBooks"])


def get_qbo_config(request: Request) -> QBOConfig:
    """QBO configuration resolved once at startup"""
    return request.app.state.qbo_config


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport for Intuit calls; None means the real network"""
    return None


def get_connection_service(
    db: Session = Depends(get_db),
    config: QBOConfig = Depends(get_qbo_config),
    http_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
) -> QuickBooksConnectionService:
    """Dependency injection for QuickBooksConnectionService"""
    return QuickBooksConnectionService(db, config, http_transport)


def get_sync_service(
    db: Session = Depends(get_db),
    connections: QuickBooksConnectionService = Depends(get_connection_service),
) -> QuickBooksSyncService:
    return QuickBooksSyncService(db, connections)


def _http_error(e: QBOError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


# ============================================================================
# OAUTH
# ============================================================================


@router.post("/auth/initiate", response_model=AuthInitiateResponse)
async def initiate_auth(
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Start the OAuth flow; returns Intuit's consent URL"""
    try:
        return service.initiate_authorization(current_user)
    except QBOError as e:
        raise _http_error(e) from e


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    realmId: Optional[str] = None,
    error: Optional[str] = None,
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Intuit redirect target; finishes the flow and sends the browser back to the app"""
    redirect_base = f"{FRONTEND_URL}/qbo/callback"

    if error:
        logger.warning(f"⚠️ QuickBooks authorization denied: {error}")
        return RedirectResponse(f"{redirect_base}?{urlencode({'error': 'true', 'message': error})}")

    try:
        result = await service.complete_authorization(code, state, realmId)
    except QBOError as e:
        logger.error(f"❌ QuickBooks callback failed: {e.message}")
        return RedirectResponse(f"{redirect_base}?{urlencode({'error': 'true', 'message': e.message})}")
    except Exception as e:
        logger.error(f"❌ QuickBooks callback error: {str(e)}")
        message = "Failed to complete QuickBooks connection"
        return RedirectResponse(f"{redirect_base}?{urlencode({'error': 'true', 'message': message})}")

    params = {
        "success": "true",
        "companyName": result["company_name"] or "",
        "companyId": result["company_id"],
    }
    return RedirectResponse(f"{redirect_base}?{urlencode(params)}")


@router.post("/callback-handler", response_model=CallbackResponse)
async def oauth_callback_handler(
    payload: CallbackRequest,
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Complete the OAuth flow from parameters the frontend relays"""
    try:
        return await service.complete_authorization(
            payload.code, payload.state, payload.realmId, user_id=current_user.id
        )
    except QBOError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"QuickBooks OAuth callback error: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to complete QuickBooks connection") from e


# ============================================================================
# CONNECTION
# ============================================================================


@router.get("/status", response_model=QBOStatusResponse)
async def get_status(
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Check if user has QuickBooks connected"""
    return service.get_status(current_user)


@router.post("/disconnect")
async def disconnect(
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    try:
        return await service.disconnect(current_user)
    except QBOError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"QuickBooks disconnect error: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to disconnect QuickBooks") from e


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Force a token refresh"""
    try:
        return await service.refresh(current_user)
    except QBOError as e:
        raise _http_error(e) from e


@router.get("/test-connection", response_model=TestConnectionResponse)
async def test_connection(
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    try:
        return await service.test_connection(current_user)
    except QBOError as e:
        raise _http_error(e) from e


@router.post("/proxy")
async def proxy(
    payload: ProxyRequest,
    current_user: User = Depends(get_current_user),
    service: QuickBooksConnectionService = Depends(get_connection_service),
):
    """Relay a data operation to the QBO API for the caller's company"""
    try:
        return await service.proxy(current_user, payload.endpoint, payload.method, payload.data)
    except QBOError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"QuickBooks proxy error: {str(e)}")
        raise HTTPException(status_code=500, detail="QuickBooks request failed") from e


# ============================================================================
# SYNC
# ============================================================================


def _owned_expense(db: Session, user: User, expense_id: int) -> Expense:
    expense = (
        db.query(Expense)
        .join(Project)
        .filter(Expense.id == expense_id, Project.user_id == user.id)
        .first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


def _owned_invoice(db: Session, user: User, invoice_id: int) -> Invoice:
    invoice = (
        db.query(Invoice)
        .join(Project)
        .filter(Invoice.id == invoice_id, Project.user_id == user.id)
        .first()
    )
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


def _owned_payment(db: Session, user: User, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    record = None
    if payment is not None:
        record = payment.expense or payment.invoice
    if record is None or record.project.user_id != user.id:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


OWNED_RECORDS = {
    "expense": _owned_expense,
    "invoice": _owned_invoice,
    "payment": _owned_payment,
}


@router.post("/sync/expense/{expense_id}", response_model=SyncResponse)
async def sync_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Push an expense to QuickBooks as a bill"""
    expense = _owned_expense(db, current_user, expense_id)
    try:
        return await service.sync_expense(current_user, expense)
    except QBOError as e:
        raise _http_error(e) from e


@router.post("/sync/invoice/{invoice_id}", response_model=SyncResponse)
async def sync_invoice(
    invoice_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Push an invoice to QuickBooks"""
    invoice = _owned_invoice(db, current_user, invoice_id)
    try:
        return await service.sync_invoice(current_user, invoice)
    except QBOError as e:
        raise _http_error(e) from e


@router.post("/sync/payment/{payment_id}", response_model=SyncResponse)
async def sync_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Push a payment to QuickBooks as a bill payment or invoice payment"""
    payment = _owned_payment(db, current_user, payment_id)
    try:
        return await service.sync_payment(current_user, payment)
    except QBOError as e:
        raise _http_error(e) from e


@router.get("/sync/status/{entity_type}/{entity_id}", response_model=SyncStatusResponse)
async def sync_status(
    entity_type: str,
    entity_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Whether an expense, invoice or payment has been pushed to the connected company"""
    owned = OWNED_RECORDS.get(entity_type)
    if owned is None:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity_type}")
    owned(db, current_user, entity_id)
    return service.sync_status(current_user, entity_type, entity_id)


# ============================================================================
# ACCOUNTS
# ============================================================================


@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    account_type: Optional[str] = Query(None, alias="type"),
    current_user: User = Depends(get_current_user),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Chart of accounts for the connected company, e.g. ?type=Expense"""
    try:
        return await service.list_accounts(current_user, account_type)
    except QBOError as e:
        raise _http_error(e) from e
