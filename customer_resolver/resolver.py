"""Customer Resolution.

Maps the tax IDs found in every feed onto exactly one Customer per
(tenant, canonical NIT):

1. Invoices and payments resolve-or-create: an unknown NIT gets a placeholder
   customer (`from_directory=False`) so the record can still be reconciled.
2. The customer-listing feed is authoritative: it finds the customer by the
   canonical OR raw NIT, migrates legacy un-normalized keys in place when the
   canonical key is free, sanitizes filler names, and marks the row
   `from_directory=True`.
"""

from decimal import Decimal
from typing import Optional

from core.models.entities import Customer
from core.models.source import SourceCustomer
from core.observability.logging import get_logger
from customer_resolver.normalize import (
    NO_NAME_PLACEHOLDER,
    normalize_customer_id,
    sanitize_customer_name,
)
from sync_engine.store import SyncStore

logger = get_logger(__name__)


class CustomerResolver:
    """Resolves source tax IDs to local Customer rows.

    Example:
        resolver = CustomerResolver(store)
        customer = await resolver.resolve_or_create("tenant-1", "900.123.456-7")
    """

    def __init__(self, store: SyncStore):
        self.store = store

    async def resolve_or_create(self, tenant_id: str, nit: Optional[str]) -> Optional[Customer]:
        """Return the customer for a NIT, creating a placeholder when unknown.

        Args:
            tenant_id: Tenant scope
            nit: Tax ID as received (any format)

        Returns:
            The Customer, or None when the NIT normalizes to empty
        """
        canonical = normalize_customer_id(nit)
        if not canonical:
            return None

        existing = self.store.find_customer_by_nit(tenant_id, canonical)
        if existing:
            return existing

        logger.debug(
            "Creating placeholder customer",
            extra_fields={"nit": canonical},
        )
        return self.store.create_customer(Customer(
            tenant_id=tenant_id,
            nit=canonical,
            name=NO_NAME_PLACEHOLDER,
            from_directory=False,
        ))

    async def upsert_from_directory(self, tenant_id: str, record: SourceCustomer) -> Optional[Customer]:
        """Create or update a customer from the authoritative listing feed.

        Args:
            tenant_id: Tenant scope
            record: One customer-listing record

        Returns:
            The upserted Customer, or None when the NIT normalizes to empty
        """
        canonical = normalize_customer_id(record.nit)
        if not canonical:
            return None

        raw = (record.nit or "").strip()
        existing = self.store.find_customer_by_any_nit(tenant_id, [canonical, record.nit, raw])
        if existing and existing.nit != canonical:
            conflict = self.store.find_customer_by_nit(tenant_id, canonical)
            if conflict is None:
                self.store.rename_customer_nit(existing.id, canonical)
                logger.info(
                    "Migrated legacy customer key",
                    extra_fields={"from_nit": existing.nit, "to_nit": canonical},
                )
            else:
                logger.warning(
                    "Legacy customer key left in place; canonical key already taken",
                    extra_fields={"legacy_nit": existing.nit, "nit": canonical},
                )

        customer = self.store.upsert_directory_customer(
            tenant_id,
            canonical,
            sanitize_customer_name(record.name, canonical),
            segment=record.segment or None,
            city=record.city or None,
            vendor=record.vendor or None,
        )

        if record.credit_limit is not None and record.credit_limit >= Decimal("0"):
            self.store.upsert_credit_limit(tenant_id, customer.id, record.credit_limit)

        return customer
