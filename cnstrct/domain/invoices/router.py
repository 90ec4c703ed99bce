"""Invoice router - FastAPI endpoints for invoices and invoice payments"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...schemas import PaymentCreate, PaymentResponse, QBOSyncResult, RecordedPaymentResponse
from ..integrations.quickbooks.router import get_sync_service
from ..integrations.quickbooks.sync import QuickBooksSyncService
from .schemas import InvoiceCreate, InvoiceResponse
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Invoices"])


def get_invoice_service(
    db: Session = Depends(get_db),
    qbo_sync: QuickBooksSyncService = Depends(get_sync_service),
) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db, qbo_sync)


@router.get("/projects/{project_id}/invoices", response_model=list[InvoiceResponse])
async def get_invoices(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoices(project_id, current_user)


@router.post("/projects/{project_id}/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    project_id: int,
    data: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice, qbo_sync = await service.create_invoice(project_id, data, current_user)
    response = InvoiceResponse.model_validate(invoice)
    if qbo_sync is not None:
        response.qbo_sync = QBOSyncResult(**qbo_sync)
    return response


@router.get("/invoices/{invoice_id}/payments", response_model=list[PaymentResponse])
async def get_invoice_payments(
    invoice_id: int,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice(invoice_id, current_user).payments


@router.post("/invoices/{invoice_id}/payments", response_model=RecordedPaymentResponse, status_code=201)
async def record_invoice_payment(
    invoice_id: int,
    data: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Record a payment received from the client"""
    payment, summary, qbo_sync = await service.record_payment(invoice_id, data, current_user)
    return RecordedPaymentResponse(
        payment=PaymentResponse.model_validate(payment),
        amount_paid=summary.amount_paid,
        amount_due=summary.amount_due,
        payment_status=summary.payment_status,
        qbo_sync=QBOSyncResult(**qbo_sync) if qbo_sync is not None else None,
    )
