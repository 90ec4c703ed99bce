"""Expense service - Business logic for expenses and expense payments"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Expense, User
from ...schemas import PaymentCreate
from ...shared.clock import utcnow
from ..integrations.quickbooks.sync import QuickBooksSyncService, sync_and_report
from ..projects.repository import ProjectRepository
from .repository import ExpenseRepository
from .schemas import ExpenseCreate

logger = logging.getLogger(__name__)


class ExpenseService:
    """Service layer for expense business logic"""

    def __init__(self, db: Session, qbo_sync: Optional[QuickBooksSyncService] = None):
        self.db = db
        self.repo = ExpenseRepository()
        self.qbo_sync = qbo_sync

    def _project(self, project_id: int, user: User):
        project = ProjectRepository.get_project(self.db, project_id, user.id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        return project

    def get_expense(self, expense_id: int, user: User) -> Expense:
        expense = self.repo.get_expense(self.db, expense_id, user.id)
        if not expense:
            raise HTTPException(status_code=404, detail="Expense not found")
        return expense

    def get_expenses(self, project_id: int, user: User) -> list[Expense]:
        project = self._project(project_id, user)
        return self.repo.get_expenses(self.db, project.id)

    async def create_expense(self, project_id: int, data: ExpenseCreate, user: User) -> tuple[Expense, Optional[dict]]:
        """Create the expense; push it to QuickBooks afterwards when asked"""
        project = self._project(project_id, user)

        expense = self.repo.create_expense(
            self.db, project.id, **data.model_dump(exclude={"sync_to_qbo"})
        )
        logger.info(f"✅ Expense {expense.id} created on project {project.id}: {expense.amount}")

        qbo_sync = None
        if data.sync_to_qbo and self.qbo_sync is not None:
            qbo_sync = await sync_and_report(self.qbo_sync.sync_expense(user, expense))
        return expense, qbo_sync

    async def record_payment(self, expense_id: int, data: PaymentCreate, user: User):
        """Record a payment against an expense; the balance is recomputed from every payment"""
        expense = self.get_expense(expense_id, user)

        payment_data = data.model_dump(exclude={"sync_to_qbo"})
        payment_data["payment_date"] = payment_data["payment_date"] or utcnow().date()
        payment, summary = self.repo.add_payment(self.db, expense, **payment_data)

        logger.info(
            f"💰 Payment {payment.id} of {payment.amount} on expense {expense.id}: "
            f"{summary.amount_due} due ({summary.payment_status})"
        )

        qbo_sync = None
        if data.sync_to_qbo and self.qbo_sync is not None:
            qbo_sync = await sync_and_report(self.qbo_sync.sync_expense_payment(user, payment))
        return payment, summary, qbo_sync
