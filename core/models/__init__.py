"""Core data models - provider-neutral source records and persisted rows.

This package contains the canonical records every Source API client returns
and the tenant-scoped rows the sync engine persists.
"""

from core.models.source import (
    DecimalValue,
    SourceBase,
    SourceInvoiceItem,
    SourceInvoice,
    FetchInvoicesResult,
    SourcePayment,
    SourceCustomer,
    FetchOptions,
)

from core.models.entities import (
    Tenant,
    Customer,
    Invoice,
    InvoiceItem,
    Payment,
    Credit,
    DirectoryEntry,
)

__all__ = [
    # Source records
    "DecimalValue",
    "SourceBase",
    "SourceInvoiceItem",
    "SourceInvoice",
    "FetchInvoicesResult",
    "SourcePayment",
    "SourceCustomer",
    "FetchOptions",
    # Persisted rows
    "Tenant",
    "Customer",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "Credit",
    "DirectoryEntry",
]
