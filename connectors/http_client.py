"""Generic REST Source API client.

Talks to a JSON source exposing:
    GET {base}/invoices?tenantExternalId=&from=&to=[&cedula=&vendor=]
    GET {base}/payments?tenantExternalId=&from=&to=[&cedula=&vendor=]
    GET {base}/customers?tenantExternalId=&page=&pageSize=[&vendor=]

Responses are camelCase JSON arrays (or `{"invoices": [...],
"unmappedRefsCount": n}` for invoices) validated into the canonical models.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from connectors.http_transport import (
    HttpTransport,
    RetryConfig,
    SourceApiError,
    TransportConfig,
)
from connectors.source_base import SourceApiClient, register_source_client
from core.cache.ttl_store import TTLStore
from core.config import SourceSettings
from core.models.source import (
    FetchInvoicesResult,
    FetchOptions,
    SourceCustomer,
    SourceInvoice,
    SourcePayment,
)
from core.observability.logging import get_logger

logger = get_logger(__name__)


@register_source_client("http")
class HttpSourceApiClient(SourceApiClient):
    """REST client authenticated with a bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        transport: Optional[HttpTransport] = None,
        timeout_seconds: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.transport = transport or HttpTransport(TransportConfig(
            timeout_seconds=timeout_seconds,
            retry_config=RetryConfig(),
        ))

    @classmethod
    def from_settings(
        cls,
        settings: SourceSettings,
        directory=None,
        cache: Optional[TTLStore] = None,
    ) -> "HttpSourceApiClient":
        return cls(
            base_url=settings.api_url or "",
            token=settings.api_token,
            timeout_seconds=min(settings.timeout_seconds, 30.0),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        body = await self.transport.get_text(url, params=params, headers=self._headers())
        if not body.strip():
            return []
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise SourceApiError(f"Invalid JSON from {url}: {e}", 200, body) from e

    @staticmethod
    def _range_params(
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "tenantExternalId": tenant_external_id,
            "from": date_from,
            "to": date_to,
        }
        if options and options.cedula:
            params["cedula"] = options.cedula
        if options and options.vendor:
            params["vendor"] = options.vendor
        return params

    async def fetch_invoices(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> FetchInvoicesResult:
        data = await self._get_json(
            "/invoices", self._range_params(tenant_external_id, date_from, date_to, options)
        )
        try:
            if isinstance(data, dict):
                return FetchInvoicesResult.model_validate(data)
            return FetchInvoicesResult(
                invoices=[SourceInvoice.model_validate(item) for item in data or []],
            )
        except ValidationError as e:
            raise SourceApiError(f"Malformed invoices payload: {e}", 200, str(data)[:500]) from e

    async def fetch_payments(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> List[SourcePayment]:
        data = await self._get_json(
            "/payments", self._range_params(tenant_external_id, date_from, date_to, options)
        )
        try:
            return [SourcePayment.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise SourceApiError(f"Malformed payments payload: {e}", 200, str(data)[:500]) from e

    async def fetch_customers(
        self,
        tenant_external_id: str,
        page: int,
        page_size: int,
        vendor: Optional[str] = None,
    ) -> List[SourceCustomer]:
        params: Dict[str, Any] = {
            "tenantExternalId": tenant_external_id,
            "page": page,
            "pageSize": page_size,
        }
        if vendor:
            params["vendor"] = vendor
        data = await self._get_json("/customers", params)
        try:
            return [SourceCustomer.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise SourceApiError(f"Malformed customers payload: {e}", 200, str(data)[:500]) from e

    async def close(self) -> None:
        await self.transport.close()
