"""Expense domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...schemas import QBOSyncResult
from ...shared.validators import validate_positive_amount, validate_required_text


class ExpenseCreate(BaseModel):
    """Schema for creating a new expense"""

    name: str
    payee: str
    amount: float
    expense_date: date
    expense_type: Optional[str] = None  # labor, materials, equipment, other
    expense_number: Optional[str] = None
    notes: Optional[str] = None
    qbo_account_id: Optional[str] = None
    sync_to_qbo: bool = False

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return validate_positive_amount(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return validate_required_text(v, "Expense name")

    @field_validator("payee")
    @classmethod
    def validate_payee(cls, v):
        return validate_required_text(v, "Payee")


class ExpenseResponse(BaseModel):
    id: int
    project_id: int
    name: str
    payee: str
    amount: float
    amount_due: float
    payment_status: str
    expense_date: date
    expense_type: Optional[str] = None
    expense_number: Optional[str] = None
    notes: Optional[str] = None
    qbo_account_id: Optional[str] = None
    created_at: Optional[datetime] = None
    qbo_sync: Optional[QBOSyncResult] = None

    class Config:
        from_attributes = True
