"""Expense repository - Database operations for expenses and their payments"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Expense, Payment, Project
from ...shared.payments import PaymentSummary, summarize_payments


class ExpenseRepository:
    """Repository for expense database operations"""

    @staticmethod
    def get_expenses(db: Session, project_id: int) -> list[Expense]:
        return (
            db.query(Expense)
            .filter(Expense.project_id == project_id)
            .order_by(Expense.expense_date.desc(), Expense.id.desc())
            .all()
        )

    @staticmethod
    def get_expense(db: Session, expense_id: int, user_id: int) -> Optional[Expense]:
        """Get an expense on a project owned by the user"""
        return (
            db.query(Expense)
            .join(Project)
            .filter(Expense.id == expense_id, Project.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_expense(db: Session, project_id: int, **expense_data) -> Expense:
        amount = expense_data["amount"]
        expense = Expense(project_id=project_id, amount_due=amount, payment_status="due", **expense_data)
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def add_payment(db: Session, expense: Expense, **payment_data) -> tuple[Payment, PaymentSummary]:
        """Record an outgoing payment and recompute the expense's balance from all payments"""
        payment = Payment(direction="outgoing", **payment_data)
        expense.payments.append(payment)

        summary = summarize_payments(expense.amount, [p.amount for p in expense.payments])
        expense.amount_due = summary.amount_due
        expense.payment_status = summary.payment_status

        db.commit()
        db.refresh(payment)
        db.refresh(expense)
        return payment, summary
