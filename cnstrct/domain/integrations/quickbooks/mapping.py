"""
QBO payload mappers

Pure functions turning local records into QuickBooks entity bodies.
"""

from typing import Optional

from ....models import Expense, Invoice, Payment, Project
from ....shared.clock import format_qbo_date

# Local payment method codes -> QBO PaymentType
PAYMENT_TYPE_MAP = {
    "cc": "CreditCard",
    "check": "Check",
    "transfer": "EFT",
    "cash": "Cash",
}


def _private_note(kind: str, record) -> str:
    return record.notes or f"{kind} from CNSTRCT - ID: {record.id}"


def map_payee_to_vendor(payee: str) -> dict:
    return {"DisplayName": payee}


def map_client_to_customer(project: Project) -> dict:
    """Customer body for the project's client; email is the fallback display name"""
    customer = {"DisplayName": project.client_name or project.client_email}
    if project.client_email:
        customer["PrimaryEmailAddr"] = {"Address": project.client_email}
    return customer


def map_expense_to_bill(expense: Expense, vendor_id: str, account_id: str) -> dict:
    bill = {
        "VendorRef": {"value": vendor_id},
        "Line": [
            {
                "DetailType": "AccountBasedExpenseLineDetail",
                "Amount": float(expense.amount),
                "AccountBasedExpenseLineDetail": {
                    "AccountRef": {"value": account_id},
                    "Description": expense.name,
                },
            }
        ],
        "TxnDate": format_qbo_date(expense.expense_date),
        "PrivateNote": _private_note("Expense", expense),
    }
    if expense.expense_number:
        bill["DocNumber"] = expense.expense_number
    return bill


def map_expense_payment_to_bill_payment(payment: Payment, vendor_id: str, bill_id: str) -> dict:
    amount = float(payment.amount)
    bill_payment = {
        "VendorRef": {"value": vendor_id},
        "TotalAmt": amount,
        "TxnDate": format_qbo_date(payment.payment_date),
        "PayType": "Check",
        "Line": [{"Amount": amount, "LinkedTxn": [{"TxnId": bill_id, "TxnType": "Bill"}]}],
        "PrivateNote": _private_note("Payment", payment),
    }
    if payment.payment_reference:
        bill_payment["DocNumber"] = payment.payment_reference
    return bill_payment


def map_invoice_to_invoice(invoice: Invoice, customer_id: str, item_id: str) -> dict:
    qbo_invoice = {
        "CustomerRef": {"value": customer_id},
        "Line": [
            {
                "DetailType": "SalesItemLineDetail",
                "Amount": float(invoice.amount),
                "Description": invoice.description or f"Invoice {invoice.invoice_number}",
                "SalesItemLineDetail": {"ItemRef": {"value": item_id}},
            }
        ],
        "TxnDate": format_qbo_date(invoice.invoice_date),
        "PrivateNote": _private_note("Invoice", invoice),
    }
    if invoice.due_date:
        qbo_invoice["DueDate"] = format_qbo_date(invoice.due_date)
    if invoice.invoice_number:
        qbo_invoice["DocNumber"] = invoice.invoice_number
    return qbo_invoice


def map_invoice_payment_to_payment(
    payment: Payment, customer_id: str, invoice_id: str, payment_method: Optional[str] = None
) -> dict:
    amount = float(payment.amount)
    qbo_payment = {
        "CustomerRef": {"value": customer_id},
        "TotalAmt": amount,
        "TxnDate": format_qbo_date(payment.payment_date),
        "Line": [{"Amount": amount, "LinkedTxn": [{"TxnId": invoice_id, "TxnType": "Invoice"}]}],
        "PrivateNote": _private_note("Payment", payment),
    }
    if payment.payment_reference:
        qbo_payment["PaymentRefNum"] = payment.payment_reference

    payment_type = PAYMENT_TYPE_MAP.get(payment_method or payment.payment_method_code or "")
    if payment_type:
        qbo_payment["PaymentType"] = payment_type
    return qbo_payment
