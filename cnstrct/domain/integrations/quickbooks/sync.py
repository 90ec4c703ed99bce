"""
QuickBooks entity sync

Pushes expenses, invoices and their payments to QBO. Every pushed record
gets an entity reference, so pushing the same record again returns the
stored QBO id without calling QBO.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ....config import QBO_DEFAULT_EXPENSE_ACCOUNT_ID, QBO_DEFAULT_INCOME_ITEM_ID
from ....models import Expense, Invoice, Payment, User
from ....models_quickbooks import QBOConnection
from .errors import QBOAPIError, QBOError
from .mapping import (
    map_client_to_customer,
    map_expense_payment_to_bill_payment,
    map_expense_to_bill,
    map_invoice_payment_to_payment,
    map_invoice_to_invoice,
    map_payee_to_vendor,
)
from .repository import EntityReferenceRepository, QBOConnectionRepository, SyncLogRepository
from .service import QuickBooksConnectionService

logger = logging.getLogger(__name__)

ACCOUNT_PAGE_SIZE = 1000


def escape_query_value(value: str) -> str:
    """QBO query strings are single-quoted; quotes and backslashes are backslash-escaped"""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class QuickBooksSyncService:
    def __init__(self, db: Session, connections: QuickBooksConnectionService):
        self.db = db
        self.connections = connections
        self.client = connections.client

    def _existing(self, connection: QBOConnection, local_id, local_type: str) -> Optional[str]:
        """Stored QBO id for a local record, if it was pushed to this company"""
        reference = EntityReferenceRepository.get_reference(self.db, local_id, local_type)
        if reference and reference.qbo_company_id == connection.company_id:
            return reference.qbo_entity_id
        return None

    def _remember(
        self, user: User, connection: QBOConnection, local_id, local_type: str, qbo_id: str, qbo_type: str
    ) -> None:
        EntityReferenceRepository.upsert_reference(
            self.db,
            user_id=user.id,
            qbo_company_id=connection.company_id,
            local_entity_id=local_id,
            local_entity_type=local_type,
            qbo_entity_id=qbo_id,
            qbo_entity_type=qbo_type,
        )

    async def _create(self, connection: QBOConnection, endpoint: str, entity: str, body: dict) -> str:
        result = await self.client.make_request(connection, endpoint, "POST", body)
        qbo_id = (result.get(entity) or {}).get("Id")
        if not qbo_id:
            raise QBOAPIError(f"QuickBooks did not return an id for the new {entity}", response_data=result)
        return str(qbo_id)

    async def _find_by_display_name(self, connection: QBOConnection, entity: str, name: str) -> Optional[str]:
        sql = f"select * from {entity} where DisplayName = '{escape_query_value(name)}'"
        found = (await self.client.query(connection, sql)).get(entity) or []
        return str(found[0]["Id"]) if found else None

    async def get_or_create_vendor(self, user: User, connection: QBOConnection, payee: str) -> str:
        local_id = f"{user.id}:{payee}"
        vendor_id = self._existing(connection, local_id, "payee")
        if vendor_id:
            return vendor_id

        vendor_id = await self._find_by_display_name(connection, "Vendor", payee)
        if not vendor_id:
            vendor_id = await self._create(connection, "vendor", "Vendor", map_payee_to_vendor(payee))
            logger.info(f"✅ Created QuickBooks vendor {vendor_id} for payee {payee}")

        self._remember(user, connection, local_id, "payee", vendor_id, "Vendor")
        return vendor_id

    async def get_or_create_customer(self, user: User, connection: QBOConnection, invoice: Invoice) -> str:
        body = map_client_to_customer(invoice.project)
        display_name = body["DisplayName"]
        if not display_name:
            raise QBOAPIError("Project has no client name or email to use as the QuickBooks customer", 400)

        local_id = f"{user.id}:{display_name}"
        customer_id = self._existing(connection, local_id, "client")
        if customer_id:
            return customer_id

        customer_id = await self._find_by_display_name(connection, "Customer", display_name)
        if not customer_id:
            customer_id = await self._create(connection, "customer", "Customer", body)
            logger.info(f"✅ Created QuickBooks customer {customer_id} for {display_name}")

        self._remember(user, connection, local_id, "client", customer_id, "Customer")
        return customer_id

    async def _run(self, user: User, action: str, local_id, work) -> dict:
        """Run one sync step with action logging on both outcomes"""
        try:
            result = await work()
        except QBOError as e:
            logger.error(f"❌ QuickBooks {action} failed for {local_id}: {e}")
            SyncLogRepository.log_action(self.db, user.id, action, error=e.message, payload={"local_id": local_id})
            raise
        SyncLogRepository.log_action(self.db, user.id, action, payload={"local_id": local_id, **result})
        return result

    async def sync_expense(self, user: User, expense: Expense) -> dict:
        connection = self.connections.require_connection(user.id)

        async def work():
            bill_id = self._existing(connection, expense.id, "expense")
            if bill_id:
                return {"qbo_id": bill_id, "qbo_type": "Bill", "already_synced": True}

            vendor_id = await self.get_or_create_vendor(user, connection, expense.payee)
            account_id = expense.qbo_account_id or QBO_DEFAULT_EXPENSE_ACCOUNT_ID
            bill_id = await self._create(
                connection, "bill", "Bill", map_expense_to_bill(expense, vendor_id, account_id)
            )
            self._remember(user, connection, expense.id, "expense", bill_id, "Bill")
            logger.info(f"✅ Expense {expense.id} synced to QuickBooks as bill {bill_id}")
            return {"qbo_id": bill_id, "qbo_type": "Bill", "already_synced": False}

        return await self._run(user, "sync-expense", expense.id, work)

    async def sync_expense_payment(self, user: User, payment: Payment) -> dict:
        connection = self.connections.require_connection(user.id)

        async def work():
            existing = self._existing(connection, payment.id, "payment")
            if existing:
                return {"qbo_id": existing, "qbo_type": "BillPayment", "already_synced": True}

            expense = payment.expense
            bill = await self.sync_expense(user, expense)
            vendor_id = await self.get_or_create_vendor(user, connection, expense.payee)
            body = map_expense_payment_to_bill_payment(payment, vendor_id, bill["qbo_id"])
            qbo_id = await self._create(connection, "billpayment", "BillPayment", body)
            self._remember(user, connection, payment.id, "payment", qbo_id, "BillPayment")
            logger.info(f"✅ Payment {payment.id} synced to QuickBooks as bill payment {qbo_id}")
            return {"qbo_id": qbo_id, "qbo_type": "BillPayment", "already_synced": False}

        return await self._run(user, "sync-expense-payment", payment.id, work)

    async def sync_invoice(self, user: User, invoice: Invoice) -> dict:
        connection = self.connections.require_connection(user.id)

        async def work():
            existing = self._existing(connection, invoice.id, "invoice")
            if existing:
                return {"qbo_id": existing, "qbo_type": "Invoice", "already_synced": True}

            customer_id = await self.get_or_create_customer(user, connection, invoice)
            body = map_invoice_to_invoice(invoice, customer_id, QBO_DEFAULT_INCOME_ITEM_ID)
            qbo_id = await self._create(connection, "invoice", "Invoice", body)
            self._remember(user, connection, invoice.id, "invoice", qbo_id, "Invoice")
            logger.info(f"✅ Invoice {invoice.invoice_number} synced to QuickBooks as {qbo_id}")
            return {"qbo_id": qbo_id, "qbo_type": "Invoice", "already_synced": False}

        return await self._run(user, "sync-invoice", invoice.id, work)

    async def sync_invoice_payment(self, user: User, payment: Payment) -> dict:
        connection = self.connections.require_connection(user.id)

        async def work():
            existing = self._existing(connection, payment.id, "payment")
            if existing:
                return {"qbo_id": existing, "qbo_type": "Payment", "already_synced": True}

            invoice = payment.invoice
            qbo_invoice = await self.sync_invoice(user, invoice)
            customer_id = await self.get_or_create_customer(user, connection, invoice)
            body = map_invoice_payment_to_payment(payment, customer_id, qbo_invoice["qbo_id"])
            qbo_id = await self._create(connection, "payment", "Payment", body)
            self._remember(user, connection, payment.id, "payment", qbo_id, "Payment")
            logger.info(f"✅ Payment {payment.id} synced to QuickBooks as {qbo_id}")
            return {"qbo_id": qbo_id, "qbo_type": "Payment", "already_synced": False}

        return await self._run(user, "sync-invoice-payment", payment.id, work)

    async def sync_payment(self, user: User, payment: Payment) -> dict:
        """Route a payment to the bill-payment or invoice-payment sync"""
        if payment.expense_id is not None:
            return await self.sync_expense_payment(user, payment)
        return await self.sync_invoice_payment(user, payment)

    def sync_status(self, user: User, local_type: str, local_id) -> dict:
        """Stored QBO reference for a local record in the connected company"""
        reference = EntityReferenceRepository.get_reference(self.db, local_id, local_type)
        connection = QBOConnectionRepository.get_connection(self.db, user.id)
        if (
            reference is None
            or connection is None
            or reference.user_id != user.id
            or reference.qbo_company_id != connection.company_id
        ):
            return {"synced": False}

        return {
            "synced": True,
            "qbo_id": reference.qbo_entity_id,
            "qbo_type": reference.qbo_entity_type,
            "sync_status": reference.sync_status,
            "last_synced_at": reference.updated_at,
        }

    async def list_accounts(self, user: User, account_type: Optional[str] = None) -> list:
        """Active chart-of-accounts entries, e.g. the Expense accounts a bill can post to"""
        connection = self.connections.require_connection(user.id)

        sql = "select * from Account where Active = true"
        if account_type:
            sql += f" and AccountType = '{escape_query_value(account_type)}'"
        sql += f" maxresults {ACCOUNT_PAGE_SIZE}"

        accounts = (await self.client.query(connection, sql)).get("Account") or []
        logger.info(f"Listed {len(accounts)} QuickBooks accounts for user {user.id} (type: {account_type or 'any'})")
        return [
            {
                "id": str(account["Id"]),
                "name": account.get("FullyQualifiedName") or account.get("Name") or "",
                "account_type": account.get("AccountType"),
                "account_sub_type": account.get("AccountSubType"),
            }
            for account in accounts
        ]


async def sync_and_report(sync) -> dict:
    """
    Await a sync after the local record is committed.

    Failures are logged and returned as {"success": False, "error": ...};
    the local operation has already succeeded and stays that way.
    """
    try:
        result = await sync
    except QBOError as e:
        return {"success": False, "error": e.message}
    except Exception as e:
        logger.error(f"❌ Unexpected QuickBooks sync error: {str(e)}")
        return {"success": False, "error": "QuickBooks sync failed"}
    return {"success": True, **result}
