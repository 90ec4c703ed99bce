"""
QuickBooks API client

Relays data operations to the QBO accounting API on behalf of a stored
connection. Tokens are attached here; callers only name the endpoint.
"""

import logging
import uuid
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from ....config import QBO_HTTP_TIMEOUT
from ....models_quickbooks import QBOConnection
from .config import QBOConfig
from .errors import QBOAPIError
from .retry import RetryPolicy
from .tokens import TokenManager

logger = logging.getLogger(__name__)


def _fault_message(response: httpx.Response) -> str:
    """First Fault error message from a QBO error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if not isinstance(body, dict):
        return f"HTTP {response.status_code}"

    fault = body.get("Fault") or body.get("fault") or {}
    errors = fault.get("Error") or fault.get("error") or []
    if errors:
        first = errors[0]
        return first.get("Detail") or first.get("Message") or first.get("message") or str(first)
    return body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class QBOClient:
    def __init__(
        self,
        db: Session,
        config: QBOConfig,
        token_manager: TokenManager,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = QBO_HTTP_TIMEOUT,
    ):
        self.db = db
        self.config = config
        self.token_manager = token_manager
        self.http_transport = http_transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

    def _url(self, realm_id: str, endpoint: str) -> str:
        return f"{self.config.api_base_url}/company/{realm_id}/{endpoint.lstrip('/')}"

    async def _send(
        self,
        realm_id: str,
        endpoint: str,
        method: str,
        data: Any,
        access_token: str,
        request_id: Optional[str] = None,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        kwargs = {"headers": headers}

        if method == "GET":
            if endpoint.split("?", 1)[0].strip("/") == "query":
                sql = data.get("query") if isinstance(data, dict) else data
                # Without a statement the endpoint carries its own ?query=
                if sql:
                    kwargs["params"] = {"query": sql}
            elif data:
                kwargs["params"] = data
        else:
            # QBO replays the original result for a repeated requestid
            if request_id:
                kwargs["params"] = {"requestid": request_id}
            if data is not None:
                headers["Content-Type"] = "application/json"
                kwargs["json"] = data

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.http_transport) as client:
            return await self.retry_policy.send(
                client, method, self._url(realm_id, endpoint), label=f"QBO {method} {endpoint}", **kwargs
            )

    async def make_request(
        self,
        connection: QBOConnection,
        endpoint: str,
        method: str = "GET",
        data: Any = None,
    ) -> dict:
        """
        Send one request to the QBO API for this connection.

        A 401 forces a token refresh and the request is retried once.
        Writes carry one requestid across every attempt, so a retried POST
        cannot create a second entity. Non-2xx responses raise QBOAPIError
        carrying the Fault message.
        """
        method = (method or "GET").upper()
        realm_id = connection.company_id
        request_id = uuid.uuid4().hex if method != "GET" else None

        access_token = await self.token_manager.get_valid_access_token(connection)
        response = await self._send(realm_id, endpoint, method, data, access_token, request_id)

        if response.status_code == 401:
            logger.warning(f"🔄 QBO returned 401 for {endpoint}, refreshing token and retrying once")
            access_token = await self.token_manager.get_valid_access_token(connection, force=True)
            response = await self._send(realm_id, endpoint, method, data, access_token, request_id)

        if not response.is_success:
            message = _fault_message(response)
            logger.error(f"❌ QBO API error {response.status_code} on {method} {endpoint}: {message}")
            raise QBOAPIError(
                f"QuickBooks API error: {message}",
                status_code=response.status_code,
                response_data=_json_or_none(response),
            )

        return _json_or_none(response) or {}

    async def query(self, connection: QBOConnection, sql: str) -> dict:
        """Run a QBO query and return its QueryResponse"""
        result = await self.make_request(connection, "query", "GET", {"query": sql})
        return result.get("QueryResponse", {})

    async def get_company_info(self, access_token: str, realm_id: str) -> dict:
        """Fetch CompanyInfo with an explicit token, before a connection row exists"""
        response = await self._send(realm_id, f"companyinfo/{realm_id}", "GET", None, access_token)
        if not response.is_success:
            raise QBOAPIError(
                f"Failed to fetch company info: {_fault_message(response)}",
                status_code=response.status_code,
                response_data=_json_or_none(response),
            )
        body = _json_or_none(response) or {}
        return body.get("CompanyInfo", {})
