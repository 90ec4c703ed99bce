"""Payment aggregation shared by expenses and invoices"""

from dataclasses import dataclass
from typing import Iterable

STATUS_DUE = "due"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_PAID = "paid"


@dataclass(frozen=True)
class PaymentSummary:
    amount_paid: float
    amount_due: float
    payment_status: str


def summarize_payments(amount: float, payment_amounts: Iterable[float]) -> PaymentSummary:
    """
    Derive amount due and status from every payment made against an amount.

    Over-payment clamps the amount due at zero.
    """
    amount_paid = round(sum(float(a) for a in payment_amounts), 2)
    amount_due = round(max(0.0, float(amount) - amount_paid), 2)

    if amount_paid >= round(float(amount), 2):
        status = STATUS_PAID
    elif amount_paid > 0:
        status = STATUS_PARTIALLY_PAID
    else:
        status = STATUS_DUE

    return PaymentSummary(amount_paid=amount_paid, amount_due=amount_due, payment_status=status)
