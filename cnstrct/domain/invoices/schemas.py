"""Invoice domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...schemas import QBOSyncResult
from ...shared.validators import validate_positive_amount, validate_required_text


class InvoiceCreate(BaseModel):
    """Schema for creating a new invoice"""

    invoice_number: str
    amount: float
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    sync_to_qbo: bool = False

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return validate_positive_amount(v)

    @field_validator("invoice_number")
    @classmethod
    def validate_invoice_number(cls, v):
        return validate_required_text(v, "Invoice number")

    @model_validator(mode="after")
    def validate_dates(self):
        if self.invoice_date and self.due_date and self.due_date < self.invoice_date:
            raise ValueError("Due date cannot be before the invoice date")
        return self


class InvoiceResponse(BaseModel):
    id: int
    project_id: int
    invoice_number: str
    amount: float
    amount_due: float
    payment_status: str
    invoice_date: date
    due_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    qbo_sync: Optional[QBOSyncResult] = None

    class Config:
        from_attributes = True
