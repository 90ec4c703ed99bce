"""Invoice repository - Database operations for invoices and their payments"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Invoice, Payment, Project
from ...shared.payments import PaymentSummary, summarize_payments


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def get_invoices(db: Session, project_id: int) -> list[Invoice]:
        return (
            db.query(Invoice)
            .filter(Invoice.project_id == project_id)
            .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
            .all()
        )

    @staticmethod
    def get_invoice(db: Session, invoice_id: int, user_id: int) -> Optional[Invoice]:
        """Get an invoice on a project owned by the user"""
        return (
            db.query(Invoice)
            .join(Project)
            .filter(Invoice.id == invoice_id, Project.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_invoice(db: Session, project_id: int, **invoice_data) -> Invoice:
        invoice = Invoice(
            project_id=project_id,
            amount_due=invoice_data["amount"],
            payment_status="due",
            **invoice_data,
        )
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def add_payment(db: Session, invoice: Invoice, **payment_data) -> tuple[Payment, PaymentSummary]:
        """Record an incoming payment and recompute the invoice's balance from all payments"""
        payment = Payment(direction="incoming", **payment_data)
        invoice.payments.append(payment)

        summary = summarize_payments(invoice.amount, [p.amount for p in invoice.payments])
        invoice.amount_due = summary.amount_due
        invoice.payment_status = summary.payment_status

        db.commit()
        db.refresh(payment)
        db.refresh(invoice)
        return payment, summary
