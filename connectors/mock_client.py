"""Mock Source API client.

Used when no external source is configured. Returns empty results unless
seeded, which lets tests and local runs drive the sync engine without HTTP.
"""

from typing import List, Optional

from connectors.source_base import SourceApiClient, register_source_client
from core.models.source import (
    FetchInvoicesResult,
    FetchOptions,
    SourceCustomer,
    SourceInvoice,
    SourcePayment,
)
from customer_resolver.normalize import normalize_customer_id


@register_source_client("mock")
class MockSourceApiClient(SourceApiClient):
    """In-memory Source API.

    Args:
        invoices: Invoices returned by fetch_invoices (filtered by date and cedula)
        payments: Payments returned by fetch_payments (filtered by cedula)
        customers: Customer listing served page by page
    """

    def __init__(
        self,
        invoices: Optional[List[SourceInvoice]] = None,
        payments: Optional[List[SourcePayment]] = None,
        customers: Optional[List[SourceCustomer]] = None,
        brand_names: Optional[List[str]] = None,
    ):
        self.invoices = list(invoices or [])
        self.payments = list(payments or [])
        self.customers = list(customers or [])
        self.brand_names = list(brand_names or [])
        self.calls: List[tuple] = []

    async def fetch_invoices(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> FetchInvoicesResult:
        self.calls.append(("invoices", date_from, date_to, options))
        cedula = normalize_customer_id(options.cedula) if options and options.cedula else ""
        invoices = [
            invoice for invoice in self.invoices
            if date_from[:10] <= invoice.issued_at[:10] <= date_to[:10]
            and (not cedula or normalize_customer_id(invoice.customer_nit) == cedula)
        ]
        return FetchInvoicesResult(invoices=invoices, unmapped_refs_count=0)

    async def fetch_payments(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> List[SourcePayment]:
        self.calls.append(("payments", date_from, date_to, options))
        cedula = normalize_customer_id(options.cedula) if options and options.cedula else ""
        return [
            payment for payment in self.payments
            if not cedula or normalize_customer_id(payment.customer_nit) == cedula
        ]

    async def fetch_customers(
        self,
        tenant_external_id: str,
        page: int,
        page_size: int,
        vendor: Optional[str] = None,
    ) -> List[SourceCustomer]:
        self.calls.append(("customers", page, page_size, vendor))
        start = (max(1, page) - 1) * page_size
        return self.customers[start:start + page_size]

    async def inventory_brand_names(
        self,
        tenant_external_id: str,
        tenant_id: Optional[str] = None,
    ) -> List[str]:
        return sorted(set(self.brand_names), key=str.casefold)
