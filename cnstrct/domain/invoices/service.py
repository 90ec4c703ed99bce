"""Invoice service - Business logic for client invoices and the payments against them"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Invoice, User
from ...schemas import PaymentCreate
from ...shared.clock import utcnow
from ..integrations.quickbooks.sync import QuickBooksSyncService, sync_and_report
from ..projects.repository import ProjectRepository
from .repository import InvoiceRepository
from .schemas import InvoiceCreate

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, db: Session, qbo_sync: Optional[QuickBooksSyncService] = None):
        self.db = db
        self.repo = InvoiceRepository()
        self.qbo_sync = qbo_sync

    def get_invoice(self, invoice_id: int, user: User) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id, user.id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def get_invoices(self, project_id: int, user: User) -> list[Invoice]:
        project = ProjectRepository.get_project(self.db, project_id, user.id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        return self.repo.get_invoices(self.db, project.id)

    async def create_invoice(self, project_id: int, data: InvoiceCreate, user: User) -> tuple[Invoice, Optional[dict]]:
        project = ProjectRepository.get_project(self.db, project_id, user.id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")

        invoice_data = data.model_dump(exclude={"sync_to_qbo"})
        invoice_data["invoice_date"] = invoice_data["invoice_date"] or utcnow().date()
        invoice = self.repo.create_invoice(self.db, project.id, **invoice_data)
        logger.info(f"✅ Invoice {invoice.invoice_number} created on project {project.id}")

        qbo_sync = None
        if data.sync_to_qbo and self.qbo_sync is not None:
            qbo_sync = await sync_and_report(self.qbo_sync.sync_invoice(user, invoice))
        return invoice, qbo_sync

    async def record_payment(self, invoice_id: int, data: PaymentCreate, user: User):
        invoice = self.get_invoice(invoice_id, user)

        payment_data = data.model_dump(exclude={"sync_to_qbo"})
        payment_data["payment_date"] = payment_data["payment_date"] or utcnow().date()
        payment, summary = self.repo.add_payment(self.db, invoice, **payment_data)

        logger.info(
            f"💰 Payment {payment.id} of {payment.amount} on invoice {invoice.invoice_number}: "
            f"{summary.amount_due} due ({summary.payment_status})"
        )

        qbo_sync = None
        if data.sync_to_qbo and self.qbo_sync is not None:
            qbo_sync = await sync_and_report(self.qbo_sync.sync_invoice_payment(user, payment))
        return payment, summary, qbo_sync
