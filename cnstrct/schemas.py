from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .shared.validators import validate_positive_amount


# Payment Schemas (shared by expenses and invoices)
class PaymentCreate(BaseModel):
    amount: float
    payment_date: Optional[date] = None
    payment_method_code: Optional[str] = None  # cc, check, transfer, cash
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    sync_to_qbo: bool = False

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return validate_positive_amount(v)


class PaymentResponse(BaseModel):
    id: int
    expense_id: Optional[int] = None
    invoice_id: Optional[int] = None
    amount: float
    payment_date: date
    payment_method_code: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    direction: str
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QBOSyncResult(BaseModel):
    """Outcome of the optional QuickBooks push that follows a local write"""

    success: bool
    qbo_id: Optional[str] = None
    qbo_type: Optional[str] = None
    already_synced: Optional[bool] = None
    error: Optional[str] = None


class RecordedPaymentResponse(BaseModel):
    payment: PaymentResponse
    amount_paid: float
    amount_due: float
    payment_status: str
    qbo_sync: Optional[QBOSyncResult] = None

