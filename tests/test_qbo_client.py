import json

import httpx
import pytest

from cnstrct.domain.integrations.quickbooks.client import QBOClient
from cnstrct.domain.integrations.quickbooks.errors import QBOAPIError
from cnstrct.domain.integrations.quickbooks.repository import QBOConnectionRepository
from cnstrct.domain.integrations.quickbooks.tokens import RefreshCoordinator, TokenManager
from cnstrct.domain.integrations.quickbooks.transport import DirectTokenTransport, TokenResponse

from conftest import token_payload


@pytest.fixture
def connection(db, user, clock):
    token = TokenResponse(access_token="access-1", refresh_token="refresh-1", realm_id="9130")
    return QBOConnectionRepository.upsert_connection(
        db, user.id, token, {"company_id": "9130", "company_name": "Acme Builders"}, "sandbox", now=clock()
    )


def _client(db, qbo_config, clock, handler, fast_retry):
    mock = httpx.MockTransport(handler)
    tokens = TokenManager(
        db, qbo_config, DirectTokenTransport(qbo_config, mock, fast_retry), clock, coordinator=RefreshCoordinator()
    )
    return QBOClient(db, qbo_config, tokens, mock, fast_retry)


@pytest.mark.asyncio
async def test_query_is_sent_as_query_parameter(db, connection, qbo_config, clock, fast_retry):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"QueryResponse": {"Vendor": [{"Id": "55"}]}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    result = await client.query(connection, "select * from Vendor where DisplayName = 'Acme'")

    assert result == {"Vendor": [{"Id": "55"}]}
    request = seen[0]
    assert request.url.path == "/v3/company/9130/query"
    assert request.url.params["query"] == "select * from Vendor where DisplayName = 'Acme'"
    assert request.headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_post_sends_json_body(db, connection, qbo_config, clock, fast_retry):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"Vendor": {"Id": "77"}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    result = await client.make_request(connection, "vendor", "post", {"DisplayName": "Acme"})

    assert result == {"Vendor": {"Id": "77"}}
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == {"DisplayName": "Acme"}
    assert seen[0].url.path == "/v3/company/9130/vendor"
    assert len(seen[0].url.params["requestid"]) == 32


@pytest.mark.asyncio
async def test_401_forces_one_refresh_and_retry(db, connection, qbo_config, clock, fast_retry):
    api_calls = []
    token_calls = []

    def handler(request):
        if str(request.url) == qbo_config.token_endpoint:
            token_calls.append(request)
            return httpx.Response(200, json=token_payload("access-2", "refresh-2"))
        api_calls.append(request.headers["Authorization"])
        if request.headers["Authorization"] == "Bearer access-1":
            return httpx.Response(401, json={"Fault": {"Error": [{"Message": "AuthenticationFailed"}]}})
        return httpx.Response(200, json={"CompanyInfo": {"CompanyName": "Acme Builders"}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    result = await client.make_request(connection, "companyinfo/9130")

    assert result["CompanyInfo"]["CompanyName"] == "Acme Builders"
    assert api_calls == ["Bearer access-1", "Bearer access-2"]
    assert len(token_calls) == 1


@pytest.mark.asyncio
async def test_second_401_is_an_api_error(db, connection, qbo_config, clock, fast_retry):
    api_calls = []

    def handler(request):
        if str(request.url) == qbo_config.token_endpoint:
            return httpx.Response(200, json=token_payload("access-2", "refresh-2"))
        api_calls.append(request)
        return httpx.Response(401, json={"Fault": {"Error": [{"Message": "AuthenticationFailed"}]}})

    client = _client(db, qbo_config, clock, handler, fast_retry)

    with pytest.raises(QBOAPIError) as exc_info:
        await client.make_request(connection, "companyinfo/9130")

    assert exc_info.value.status_code == 401
    assert len(api_calls) == 2


@pytest.mark.asyncio
async def test_fault_message_is_surfaced(db, connection, qbo_config, clock, fast_retry):
    def handler(request):
        return httpx.Response(
            400,
            json={"Fault": {"Error": [{"Message": "Validation", "Detail": "Duplicate Name Exists Error"}]}},
        )

    client = _client(db, qbo_config, clock, handler, fast_retry)

    with pytest.raises(QBOAPIError) as exc_info:
        await client.make_request(connection, "vendor", "POST", {"DisplayName": "Acme"})

    assert exc_info.value.status_code == 400
    assert "Duplicate Name Exists Error" in exc_info.value.message
    assert exc_info.value.response_data["Fault"]["Error"][0]["Message"] == "Validation"


@pytest.mark.asyncio
async def test_get_company_info_uses_given_token(db, qbo_config, clock, fast_retry):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"CompanyInfo": {"CompanyName": "Acme Builders", "Id": "1"}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    info = await client.get_company_info("fresh-token", "9130")

    assert info["CompanyName"] == "Acme Builders"
    assert seen[0].url.path == "/v3/company/9130/companyinfo/9130"
    assert seen[0].headers["Authorization"] == "Bearer fresh-token"


@pytest.mark.asyncio
async def test_query_already_in_endpoint_is_kept(db, connection, qbo_config, clock, fast_retry):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"QueryResponse": {"Vendor": [{"Id": "55"}]}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    result = await client.make_request(connection, "query?query=select%20*%20from%20Vendor")

    assert result["QueryResponse"]["Vendor"] == [{"Id": "55"}]
    assert seen[0].url.params["query"] == "select * from Vendor"


@pytest.mark.asyncio
async def test_timed_out_post_is_resent_with_the_same_requestid(db, connection, qbo_config, clock, fast_retry):
    attempts = []
    created = {}

    def handler(request):
        request_id = request.url.params["requestid"]
        attempts.append(request_id)
        # QBO keeps the first result for a requestid and replays it
        bill = created.setdefault(request_id, {"Id": str(200 + len(created))})
        if len(attempts) == 1:
            raise httpx.ReadTimeout("timed out waiting for QBO", request=request)
        return httpx.Response(200, json={"Bill": bill})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    result = await client.make_request(connection, "bill", "POST", {"VendorRef": {"value": "55"}})

    assert result == {"Bill": {"Id": "200"}}
    assert len(attempts) == 2
    assert attempts[0] == attempts[1]
    assert len(created) == 1


@pytest.mark.asyncio
async def test_each_write_gets_its_own_requestid(db, connection, qbo_config, clock, fast_retry):
    seen = []

    def handler(request):
        seen.append(request.url.params["requestid"])
        return httpx.Response(200, json={"Vendor": {"Id": str(len(seen))}})

    client = _client(db, qbo_config, clock, handler, fast_retry)
    await client.make_request(connection, "vendor", "POST", {"DisplayName": "Acme"})
    await client.make_request(connection, "vendor", "POST", {"DisplayName": "Stone Supply"})

    assert len(set(seen)) == 2
