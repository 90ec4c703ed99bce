"""Expense router - FastAPI endpoints for expenses and expense payments"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...schemas import PaymentCreate, PaymentResponse, QBOSyncResult, RecordedPaymentResponse
from ..integrations.quickbooks.router import get_sync_service
from ..integrations.quickbooks.sync import QuickBooksSyncService
from .schemas import ExpenseCreate, ExpenseResponse
from .service import ExpenseService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Expenses"])


def get_expense_service(
    db: Session = Depends(get_db),
    qbo_sync: QuickBooksSyncService = Depends(get_sync_service),
) -> ExpenseService:
    """Dependency injection for ExpenseService"""
    return ExpenseService(db, qbo_sync)


@router.get("/projects/{project_id}/expenses", response_model=list[ExpenseResponse])
async def get_expenses(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.get_expenses(project_id, current_user)


@router.post("/projects/{project_id}/expenses", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    project_id: int,
    data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    expense, qbo_sync = await service.create_expense(project_id, data, current_user)
    response = ExpenseResponse.model_validate(expense)
    if qbo_sync is not None:
        response.qbo_sync = QBOSyncResult(**qbo_sync)
    return response


@router.get("/expenses/{expense_id}/payments", response_model=list[PaymentResponse])
async def get_expense_payments(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return service.get_expense(expense_id, current_user).payments


@router.post("/expenses/{expense_id}/payments", response_model=RecordedPaymentResponse, status_code=201)
async def record_expense_payment(
    expense_id: int,
    data: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    """Record a payment to the expense's payee"""
    payment, summary, qbo_sync = await service.record_payment(expense_id, data, current_user)
    return RecordedPaymentResponse(
        payment=PaymentResponse.model_validate(payment),
        amount_paid=summary.amount_paid,
        amount_due=summary.amount_due,
        payment_status=summary.payment_status,
        qbo_sync=QBOSyncResult(**qbo_sync) if qbo_sync is not None else None,
    )
