"""Persisted entity rows.

Every row is tenant-scoped. Ids are owned by storage. Money is Decimal.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EntityBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Tenant(EntityBase):
    """A tenant and the status of its last manual sync."""
    id: str
    name: str = ""
    external_id: str = ""
    last_sync_at: Optional[datetime] = None
    last_sync_duration_ms: Optional[int] = None
    last_sync_unmapped_refs: Optional[int] = None
    last_sync_error: Optional[str] = None


class Customer(EntityBase):
    """Exactly one per (tenant_id, nit)."""
    id: Optional[int] = None
    tenant_id: str
    nit: str
    name: str
    city: Optional[str] = None
    vendor: Optional[str] = None
    segment: Optional[str] = None
    from_directory: bool = False


class Invoice(EntityBase):
    """An invoice header; signed fields are always raw * sale_sign."""
    id: Optional[int] = None
    tenant_id: str
    customer_id: int
    invoice_number: str
    issued_at: str
    total: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")
    units: int = 0
    sale_sign: int = 1
    signed_total: Decimal = Decimal("0")
    signed_margin: Decimal = Decimal("0")
    signed_units: int = 0
    vendor: Optional[str] = None
    city: Optional[str] = None
    document_type: Optional[str] = None


class InvoiceItem(EntityBase):
    """A line owned by exactly one invoice."""
    id: Optional[int] = None
    tenant_id: str
    invoice_id: int
    product_name: str
    brand: str = ""
    category: str = ""
    class_code: Optional[str] = None
    class_name: Optional[str] = None
    quantity: int = 0
    unit_price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    margin: Decimal = Decimal("0")


class Payment(EntityBase):
    """Deduplicated on (tenant_id, customer_id, invoice_id, paid_at, amount)."""
    id: Optional[int] = None
    tenant_id: str
    customer_id: int
    invoice_id: Optional[int] = None
    paid_at: str
    amount: Decimal


class Credit(EntityBase):
    """Point-in-time receivables snapshot, one per customer."""
    id: Optional[int] = None
    tenant_id: str
    customer_id: int
    balance: Decimal = Decimal("0")
    overdue: Decimal = Decimal("0")
    dso_days: int = 0
    credit_limit: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None


class DirectoryEntry(EntityBase):
    """Inventory reference -> brand/class names; unique per (tenant_id, reference)."""
    tenant_id: str
    reference: str
    brand: Optional[str] = None
    brand_code: Optional[str] = None
    class_code: Optional[str] = None
    class_name: Optional[str] = None
    updated_at: Optional[datetime] = Field(default=None)
