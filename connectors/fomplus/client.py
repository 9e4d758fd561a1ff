"""Fomplus ERP Source API client.

Endpoints (ASMX web services):
- Sales lines:   {ventas}/srvAPI.asmx/GenerarInfoVentas
- Receivables:   {cartera}/srvCxcPed.asmx/EstadoDeCuentaCartera
- Customers:     {cartera}/srvCxcPed.asmx/ListadoClientes

Every call tries an HTTP GET first and falls back to a SOAP 1.1 POST when the
GET fails. Payloads may be XML, JSON, or JSON wrapped in an XML string; all of
them go through the Record Extractor before assembly.
"""

import asyncio
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from lxml import etree

from assembler import AssemblyOptions, map_customers, map_invoices, map_payments
from connectors.http_transport import (
    HttpTransport,
    RetryConfig,
    SourceApiError,
    TransportConfig,
    raise_for_error_marker,
)
from connectors.source_base import SourceApiClient, register_source_client
from core.cache.ttl_store import TTLStore
from core.config import SourceSettings
from core.models.source import (
    FetchInvoicesResult,
    FetchOptions,
    SourceCustomer,
    SourcePayment,
)
from core.observability.logging import get_logger
from customer_resolver.normalize import normalize_customer_id
from extraction.records import FlatRecord, extract_records
from inventory_directory.directory import DirectoryMaps, InventoryDirectory

logger = get_logger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"
TEMPURI_NS = "http://tempuri.org/"


# =============================================================================
# Date helpers
# =============================================================================

def _parse_day(value: str) -> Optional[date]:
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date_only(value: str) -> str:
    """ISO date (YYYY-MM-DD); today when the value does not parse."""
    parsed = _parse_day(value)
    return (parsed or datetime.now(timezone.utc).date()).isoformat()


def format_date_time(value: str) -> str:
    """Timestamp in the receivables endpoint's format (YYYY-MM-DD HH:MM:SS)."""
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        parsed = datetime.now(timezone.utc)
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def split_date_range(date_from: str, date_to: str, chunk_days: int = 7) -> List[Tuple[date, date]]:
    """Split [date_from, date_to] into consecutive windows of chunk_days days.

    Returns an empty list when either bound does not parse.
    """
    start = _parse_day(date_from)
    end = _parse_day(date_to)
    if start is None or end is None:
        return []

    step = max(1, chunk_days)
    ranges: List[Tuple[date, date]] = []
    cursor = start
    while cursor <= end:
        range_end = min(cursor + timedelta(days=step - 1), end)
        ranges.append((cursor, range_end))
        cursor += timedelta(days=step)
    return ranges


def build_soap_envelope(method: str, params: Dict[str, Any]) -> str:
    """SOAP 1.1 request body; empty parameters are omitted."""
    envelope = etree.Element(
        f"{{{SOAP_ENV_NS}}}Envelope",
        nsmap={"soap": SOAP_ENV_NS, "xsi": XSI_NS, "xsd": XSD_NS},
    )
    body = etree.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    call = etree.SubElement(body, f"{{{TEMPURI_NS}}}{method}", nsmap={None: TEMPURI_NS})
    for key, value in params.items():
        if value is None or value == "":
            continue
        etree.SubElement(call, f"{{{TEMPURI_NS}}}{key}").text = str(value)
    return etree.tostring(envelope, encoding="utf-8", xml_declaration=True).decode("utf-8")


# =============================================================================
# Client
# =============================================================================

@register_source_client("fomplus")
class FomplusSourceApiClient(SourceApiClient):
    """Source API client for the Fomplus ERP.

    Args:
        settings: Source settings (endpoints, credentials, sales feed shape)
        directory: Inventory directory used to enrich sales lines
        cache: TTL store for directory maps, keyed by tenant
        transport: HTTP transport (injectable for tests)
    """

    def __init__(
        self,
        settings: SourceSettings,
        directory: Optional[InventoryDirectory] = None,
        cache: Optional[TTLStore] = None,
        transport: Optional[HttpTransport] = None,
    ):
        self.settings = settings
        self.directory = directory
        self.maps_cache = cache if cache is not None else TTLStore(settings.inventory_maps_ttl_seconds)
        self.options = AssemblyOptions.from_settings(settings)
        self.transport = transport or HttpTransport(TransportConfig(
            timeout_seconds=settings.timeout_seconds,
            retry_config=RetryConfig(max_retries=1),
        ))

    @classmethod
    def from_settings(
        cls,
        settings: SourceSettings,
        directory=None,
        cache: Optional[TTLStore] = None,
    ) -> "FomplusSourceApiClient":
        return cls(settings, directory=directory, cache=cache)

    def _database(self, tenant_external_id: str) -> str:
        return self.settings.database or tenant_external_id

    # =========================================================================
    # Transport
    # =========================================================================

    async def _get_with_soap_fallback(
        self,
        base_url: str,
        service: str,
        method: str,
        params: Dict[str, Any],
    ) -> str:
        get_url = f"{base_url.rstrip('/')}/{service}/{method}"
        soap_url = f"{base_url.rstrip('/')}/{service}"
        try:
            body = await self.transport.get_text(get_url, params=params)
            return raise_for_error_marker(body, get_url)
        except SourceApiError as e:
            logger.warning(
                f"GET {method} failed, retrying as SOAP: {e}",
                extra_fields={"status_code": e.status_code},
            )

        body = await self.transport.post_text(
            soap_url,
            build_soap_envelope(method, params),
            headers={
                "Content-Type": "text/xml; charset=utf-8",
                "SOAPAction": f'"{TEMPURI_NS}{method}"',
            },
        )
        return raise_for_error_marker(body, soap_url)

    # =========================================================================
    # Sales
    # =========================================================================

    async def fetch_invoices(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> FetchInvoicesResult:
        options = options or FetchOptions()
        cedula = normalize_customer_id(options.cedula) if options.cedula else ""
        ranges = split_date_range(date_from, date_to, self.settings.ventas_chunk_days)
        concurrency = min(3, max(1, self.settings.ventas_range_concurrency))

        async def fetch_range(window: Tuple[date, date]) -> List[FlatRecord]:
            params: Dict[str, Any] = {
                "strPar_Empresa": self._database(tenant_external_id),
                "datPar_FecIni": window[0].isoformat(),
                "datPar_FecFin": window[1].isoformat(),
                "objPar_Objeto": self.settings.api_token,
            }
            if cedula:
                params["strPar_Nit"] = cedula
                params["strPar_Cedula"] = cedula
            body = await self._get_with_soap_fallback(
                self.settings.ventas_base_url, "srvAPI.asmx", "GenerarInfoVentas", params
            )
            return extract_records(body)

        records: List[FlatRecord] = []
        for i in range(0, len(ranges), concurrency):
            batch = ranges[i:i + concurrency]
            results = await asyncio.gather(*(fetch_range(window) for window in batch))
            for chunk in results:
                records.extend(chunk)

        maps = self._inventory_maps(tenant_external_id, options.tenant_id)
        result = map_invoices(records, format_date_only(date_from), maps, self.options)
        logger.debug(
            "Sales lines assembled",
            extra_fields={
                "lines": len(records),
                "invoices": len(result.invoices),
                "windows": len(ranges),
                "unmapped_refs": result.unmapped_refs_count,
            },
        )
        return result

    # =========================================================================
    # Receivables
    # =========================================================================

    async def fetch_payments(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> List[SourcePayment]:
        options = options or FetchOptions()
        params = {
            "strPar_Basedatos": self._database(tenant_external_id),
            "strPar_Token": self.settings.api_token,
            "datPar_Fecha": format_date_time(date_to),
            "strPar_Cedula": options.cedula or "",
            "strPar_Vended": options.vendor or self.settings.vendor or "",
        }
        body = await self._get_with_soap_fallback(
            self.settings.cartera_base_url, "srvCxcPed.asmx", "EstadoDeCuentaCartera", params
        )
        return map_payments(extract_records(body), format_date_only(date_to))

    # =========================================================================
    # Customers
    # =========================================================================

    async def fetch_customers(
        self,
        tenant_external_id: str,
        page: int,
        page_size: int,
        vendor: Optional[str] = None,
    ) -> List[SourceCustomer]:
        params = {
            "strPar_Basedatos": self._database(tenant_external_id),
            "strPar_Token": self.settings.api_token,
            "strPar_Vended": vendor or "",
            "intPar_Filas": page_size,
            "intPar_Pagina": page,
        }
        body = await self._get_with_soap_fallback(
            self.settings.cartera_base_url, "srvCxcPed.asmx", "ListadoClientes", params
        )
        return map_customers(extract_records(body))

    # =========================================================================
    # Inventory directory
    # =========================================================================

    def _inventory_maps(self, tenant_external_id: str, tenant_id: Optional[str]) -> DirectoryMaps:
        key = tenant_id or tenant_external_id
        cached = self.maps_cache.get(key)
        if cached is not None:
            return cached
        if not tenant_id or self.directory is None:
            return DirectoryMaps()
        try:
            maps = self.directory.get_maps(tenant_id)
        except sqlite3.Error as e:
            logger.warning(
                f"Inventory directory unavailable, assembling without it: {e}",
                extra_fields={"tenant_id": tenant_id},
            )
            return DirectoryMaps()
        self.maps_cache.set(key, maps)
        return maps

    async def inventory_brand_names(
        self,
        tenant_external_id: str,
        tenant_id: Optional[str] = None,
    ) -> List[str]:
        maps = self._inventory_maps(tenant_external_id, tenant_id)
        names = {name for name in maps.brand_by_ref.values() if name and name.strip()}
        return sorted(names, key=str.casefold)

    async def close(self) -> None:
        await self.transport.close()
