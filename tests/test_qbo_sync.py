import json
from datetime import date

import httpx
import pytest

from cnstrct.domain.integrations.quickbooks.errors import ConnectionNotFoundError
from cnstrct.domain.integrations.quickbooks.repository import (
    EntityReferenceRepository,
    QBOConnectionRepository,
)
from cnstrct.domain.integrations.quickbooks.service import QuickBooksConnectionService
from cnstrct.domain.integrations.quickbooks.sync import (
    QuickBooksSyncService,
    escape_query_value,
    sync_and_report,
)
from cnstrct.domain.integrations.quickbooks.transport import TokenResponse
from cnstrct.models import Payment
from cnstrct.models_quickbooks import QBOSyncLog


class FakeQBO:
    """Accounting API that finds nothing and hands out sequential ids

    Writes are keyed by requestid the way QBO does: a repeated requestid
    gets the original reply instead of a second entity.
    """

    def __init__(self, existing_vendors=None, time_out_first=()):
        self.existing_vendors = existing_vendors or {}
        self.time_out_first = set(time_out_first)
        self.requests = []
        self.replies = {}
        self.next_id = 100

    def __call__(self, request):
        self.requests.append(request)
        entity_path = request.url.path.rsplit("/", 1)[-1]

        if entity_path == "query":
            sql = request.url.params["query"]
            entity = sql.split(" from ", 1)[1].split(" ", 1)[0]
            found = [{"Id": vid} for name, vid in self.existing_vendors.items() if f"'{name}'" in sql]
            return httpx.Response(200, json={"QueryResponse": {entity: found} if found else {}})

        entity = {
            "vendor": "Vendor",
            "customer": "Customer",
            "bill": "Bill",
            "billpayment": "BillPayment",
            "invoice": "Invoice",
            "payment": "Payment",
        }[entity_path]
        request_id = request.url.params.get("requestid")
        if request_id not in self.replies:
            self.next_id += 1
            self.replies[request_id] = {entity: {"Id": str(self.next_id), **json.loads(request.content)}}
        if entity_path in self.time_out_first:
            self.time_out_first.discard(entity_path)
            raise httpx.ReadTimeout("QBO accepted the write but the response was lost", request=request)
        return httpx.Response(200, json=self.replies[request_id])

    def posted(self, entity_path):
        return [r for r in self.requests if r.method == "POST" and r.url.path.endswith(f"/{entity_path}")]


@pytest.fixture
def fake_qbo():
    return FakeQBO()


@pytest.fixture
def connection(db, user, clock):
    token = TokenResponse(access_token="access-1", refresh_token="refresh-1", realm_id="9130")
    return QBOConnectionRepository.upsert_connection(
        db, user.id, token, {"company_id": "9130", "company_name": "Acme Builders"}, "sandbox", now=clock()
    )


def _sync_service(db, qbo_config, fast_retry, clock, handler):
    connections = QuickBooksConnectionService(db, qbo_config, httpx.MockTransport(handler), fast_retry, clock)
    return QuickBooksSyncService(db, connections)


def test_escape_query_value_backslash_escapes_quotes():
    assert escape_query_value("Harper O'Neil") == "Harper O\\'Neil"
    assert escape_query_value("C:\\Tile's") == "C:\\\\Tile\\'s"


@pytest.mark.asyncio
async def test_sync_expense_creates_vendor_and_bill(db, user, expense, connection, qbo_config, fast_retry, clock, fake_qbo):
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_expense(user, expense)

    assert result["qbo_type"] == "Bill"
    assert result["already_synced"] is False
    assert len(fake_qbo.posted("vendor")) == 1
    bill = json.loads(fake_qbo.posted("bill")[0].content)
    assert bill["VendorRef"] == {"value": "101"}
    assert bill["Line"][0]["AccountBasedExpenseLineDetail"]["AccountRef"] == {"value": "1"}

    reference = EntityReferenceRepository.get_reference(db, expense.id, "expense")
    assert reference.qbo_entity_id == result["qbo_id"]
    assert reference.qbo_company_id == "9130"


@pytest.mark.asyncio
async def test_sync_expense_twice_does_not_call_qbo_again(db, user, expense, connection, qbo_config, fast_retry, clock, fake_qbo):
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    first = await sync.sync_expense(user, expense)
    calls_after_first = len(fake_qbo.requests)
    second = await sync.sync_expense(user, expense)

    assert second == {"qbo_id": first["qbo_id"], "qbo_type": "Bill", "already_synced": True}
    assert len(fake_qbo.requests) == calls_after_first


@pytest.mark.asyncio
async def test_bill_lost_to_a_timeout_is_created_once(db, user, expense, connection, qbo_config, fast_retry, clock):
    fake_qbo = FakeQBO(time_out_first={"bill"})
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_expense(user, expense)

    attempts = fake_qbo.posted("bill")
    assert len(attempts) == 2
    assert len({r.url.params["requestid"] for r in attempts}) == 1
    bills = [reply for reply in fake_qbo.replies.values() if "Bill" in reply]
    assert len(bills) == 1
    assert result["qbo_id"] == bills[0]["Bill"]["Id"]


@pytest.mark.asyncio
async def test_existing_vendor_is_reused(db, user, expense, connection, qbo_config, fast_retry, clock):
    fake_qbo = FakeQBO(existing_vendors={"Acme Cabinets": "55"})
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    await sync.sync_expense(user, expense)

    assert fake_qbo.posted("vendor") == []
    bill = json.loads(fake_qbo.posted("bill")[0].content)
    assert bill["VendorRef"] == {"value": "55"}


@pytest.mark.asyncio
async def test_customer_lookup_escapes_quotes(db, user, invoice, connection, qbo_config, fast_retry, clock, fake_qbo):
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_invoice(user, invoice)

    queries = [r.url.params["query"] for r in fake_qbo.requests if r.url.path.endswith("/query")]
    assert queries == ["select * from Customer where DisplayName = 'Harper O\\'Neil'"]
    assert result["qbo_type"] == "Invoice"
    customer = json.loads(fake_qbo.posted("customer")[0].content)
    assert customer["DisplayName"] == "Harper O'Neil"


@pytest.mark.asyncio
async def test_invoice_payment_syncs_invoice_first(db, user, invoice, connection, qbo_config, fast_retry, clock, fake_qbo):
    payment = Payment(
        invoice_id=invoice.id, amount=500.0, payment_date=date(2024, 3, 10),
        payment_method_code="check", direction="incoming",
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_payment(user, payment)

    assert result["qbo_type"] == "Payment"
    assert len(fake_qbo.posted("invoice")) == 1
    body = json.loads(fake_qbo.posted("payment")[0].content)
    invoice_ref = EntityReferenceRepository.get_reference(db, invoice.id, "invoice")
    assert body["Line"][0]["LinkedTxn"] == [{"TxnId": invoice_ref.qbo_entity_id, "TxnType": "Invoice"}]
    assert body["PaymentType"] == "Check"


@pytest.mark.asyncio
async def test_expense_payment_becomes_bill_payment(db, user, expense, connection, qbo_config, fast_retry, clock, fake_qbo):
    payment = Payment(expense_id=expense.id, amount=40.0, payment_date=date(2024, 3, 4), direction="outgoing")
    db.add(payment)
    db.commit()
    db.refresh(payment)
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_payment(user, payment)

    assert result["qbo_type"] == "BillPayment"
    body = json.loads(fake_qbo.posted("billpayment")[0].content)
    bill_ref = EntityReferenceRepository.get_reference(db, expense.id, "expense")
    assert body["Line"][0]["LinkedTxn"] == [{"TxnId": bill_ref.qbo_entity_id, "TxnType": "Bill"}]
    # Vendor is looked up once and remembered
    assert len(fake_qbo.posted("vendor")) == 1


@pytest.mark.asyncio
async def test_failed_sync_is_logged(db, user, expense, connection, qbo_config, fast_retry, clock):
    def handler(request):
        if request.url.path.endswith("/query"):
            return httpx.Response(200, json={"QueryResponse": {}})
        return httpx.Response(400, json={"Fault": {"Error": [{"Message": "Invalid account"}]}})

    sync = _sync_service(db, qbo_config, fast_retry, clock, handler)

    report = await sync_and_report(sync.sync_expense(user, expense))

    assert report["success"] is False
    assert "Invalid account" in report["error"]
    log = db.query(QBOSyncLog).filter(QBOSyncLog.action == "sync-expense").one()
    assert log.status == "error"
    assert EntityReferenceRepository.get_reference(db, expense.id, "expense") is None


@pytest.mark.asyncio
async def test_sync_without_connection_reports_failure(db, user, expense, qbo_config, fast_retry, clock, fake_qbo):
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    with pytest.raises(ConnectionNotFoundError):
        await sync.sync_expense(user, expense)

    report = await sync_and_report(sync.sync_expense(user, expense))
    assert report == {"success": False, "error": "QuickBooks not connected"}
    assert fake_qbo.requests == []


@pytest.mark.asyncio
async def test_reference_from_another_company_is_ignored(db, user, expense, connection, qbo_config, fast_retry, clock, fake_qbo):
    EntityReferenceRepository.upsert_reference(db, user.id, "other-realm", expense.id, "expense", "7", "Bill")
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)

    result = await sync.sync_expense(user, expense)

    assert result["already_synced"] is False
    assert len(fake_qbo.posted("bill")) == 1


@pytest.mark.asyncio
async def test_sync_status_follows_the_connected_company(db, user, expense, invoice, connection, qbo_config, fast_retry, clock, fake_qbo):
    sync = _sync_service(db, qbo_config, fast_retry, clock, fake_qbo)
    EntityReferenceRepository.upsert_reference(db, user.id, "other-realm", invoice.id, "invoice", "44", "Invoice")

    assert sync.sync_status(user, "expense", expense.id) == {"synced": False}
    result = await sync.sync_expense(user, expense)
    status = sync.sync_status(user, "expense", expense.id)

    assert status["synced"] is True
    assert status["qbo_id"] == result["qbo_id"]
    assert status["qbo_type"] == "Bill"
    assert sync.sync_status(user, "invoice", invoice.id) == {"synced": False}


@pytest.mark.asyncio
async def test_list_accounts_queries_active_accounts_of_a_type(db, user, connection, qbo_config, fast_retry, clock):
    queries = []

    def handler(request):
        queries.append(request.url.params["query"])
        account = {"Id": 7, "Name": "Materials", "FullyQualifiedName": "Job Expenses:Materials", "AccountType": "Expense"}
        return httpx.Response(200, json={"QueryResponse": {"Account": [account]}})

    sync = _sync_service(db, qbo_config, fast_retry, clock, handler)

    accounts = await sync.list_accounts(user, "Expense")

    assert queries == ["select * from Account where Active = true and AccountType = 'Expense' maxresults 1000"]
    assert accounts == [
        {"id": "7", "name": "Job Expenses:Materials", "account_type": "Expense", "account_sub_type": None}
    ]
