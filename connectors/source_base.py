"""Source API Client Base.

This module defines the contract every Source API client implements. The
sync engine depends only on three operations:
1. fetch_invoices(tenant_external_id, date_from, date_to, options)
2. fetch_payments(tenant_external_id, date_from, date_to, options)
3. fetch_customers(tenant_external_id, page, page_size, vendor)

Implementations register themselves by name; the concrete client is chosen
once at startup from SourceSettings:
- "fomplus" when SOURCE_API_PROVIDER=fomplus
- "http" when SOURCE_API_URL is set
- "mock" otherwise
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union

from core.cache.ttl_store import TTLStore
from core.config import SourceSettings
from core.models.source import (
    FetchInvoicesResult,
    FetchOptions,
    SourceCustomer,
    SourceInvoice,
    SourcePayment,
)

InvoiceFetch = Union[List[SourceInvoice], FetchInvoicesResult]


class SourceApiClient(ABC):
    """Abstract base class for Source API clients.

    Subclasses are constructed through `from_settings` so the factory can
    build any registered client the same way.
    """

    name: str = "base"

    @classmethod
    def from_settings(
        cls,
        settings: SourceSettings,
        directory=None,
        cache: Optional[TTLStore] = None,
    ) -> "SourceApiClient":
        return cls()

    @abstractmethod
    async def fetch_invoices(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> InvoiceFetch:
        """Fetch assembled invoices issued in [date_from, date_to] (ISO dates)."""
        pass

    @abstractmethod
    async def fetch_payments(
        self,
        tenant_external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[FetchOptions] = None,
    ) -> List[SourcePayment]:
        """Fetch receivables lines (payments and open balances) as of date_to."""
        pass

    @abstractmethod
    async def fetch_customers(
        self,
        tenant_external_id: str,
        page: int,
        page_size: int,
        vendor: Optional[str] = None,
    ) -> List[SourceCustomer]:
        """Fetch one page of the customer listing; an empty page ends paging."""
        pass

    async def inventory_brand_names(
        self,
        tenant_external_id: str,
        tenant_id: Optional[str] = None,
    ) -> List[str]:
        """Distinct brand names known to the source (optional capability)."""
        return []

    async def close(self) -> None:
        """Release network resources."""
        pass

    async def __aenter__(self) -> "SourceApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def as_invoice_result(value: InvoiceFetch) -> FetchInvoicesResult:
    """Normalize the two allowed fetch_invoices return shapes."""
    if isinstance(value, FetchInvoicesResult):
        return value
    return FetchInvoicesResult(invoices=list(value or []), unmapped_refs_count=0)


# =============================================================================
# Client Factory
# =============================================================================

_client_registry: Dict[str, type] = {}


def register_source_client(name: str):
    """Decorator to register a Source API client implementation."""
    def decorator(cls):
        cls.name = name
        _client_registry[name] = cls
        return cls
    return decorator


def resolve_client_name(settings: SourceSettings) -> str:
    if settings.is_fomplus:
        return "fomplus"
    if settings.api_url:
        return "http"
    return "mock"


def create_source_client(
    settings: SourceSettings,
    directory=None,
    cache: Optional[TTLStore] = None,
) -> SourceApiClient:
    """Create the Source API client selected by configuration.

    Args:
        settings: Source settings
        directory: InventoryDirectory used to enrich sales lines (optional)
        cache: TTL store for directory maps (a fresh one when omitted)

    Returns:
        Configured client instance

    Raises:
        ValueError: If the selected client is not registered
    """
    name = resolve_client_name(settings)
    if name not in _client_registry:
        available = list(_client_registry.keys())
        raise ValueError(
            f"Unknown source client: {name}. "
            f"Available: {available}"
        )
    client_class = _client_registry[name]
    return client_class.from_settings(settings, directory=directory, cache=cache)


def list_available_clients() -> List[str]:
    """List all registered client names."""
    return list(_client_registry.keys())
