"""Canonical Source API records.

These models are what every Source API client hands to the sync engine,
regardless of the ERP endpoint (or mock) that produced them. Field names
accept both snake_case and the camelCase used by REST sources.
"""

from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from numbers or numeric strings ("1.234,5" style excluded)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        try:
            return Decimal(s.replace(",", ""))
        except InvalidOperation:
            raise ValueError(f"Invalid decimal: {value!r}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]


# =============================================================================
# Base Model
# =============================================================================

class SourceBase(BaseModel):
    """Base model for all source records."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# =============================================================================
# Sales
# =============================================================================

class SourceInvoiceItem(SourceBase):
    """One line of a sales document."""
    product_name: str = "Total"
    brand: str = ""
    category: str = ""
    class_code: Optional[str] = None
    class_name: Optional[str] = None
    quantity: DecimalValue = Decimal("0")
    unit_price: DecimalValue = Decimal("0")
    total: DecimalValue = Decimal("0")
    margin: DecimalValue = Decimal("0")


class SourceInvoice(SourceBase):
    """An assembled invoice (or credit note) with its lines."""
    external_id: str
    customer_nit: str = ""
    customer_name: Optional[str] = None
    issued_at: str = Field(..., description="ISO date (YYYY-MM-DD)")
    total: DecimalValue = Decimal("0")
    margin: DecimalValue = Decimal("0")
    units: DecimalValue = Decimal("0")
    vendor: Optional[str] = None
    city: Optional[str] = None
    document_type: Optional[str] = Field(default=None, description="Movement code (TIPMOV)")
    sale_sign: int = Field(default=1, description="1 = sale, -1 = credit note/return")
    items: List[SourceInvoiceItem] = Field(default_factory=list)


class FetchInvoicesResult(SourceBase):
    """Invoices plus the data-quality count of references missing from the directory."""
    invoices: List[SourceInvoice] = Field(default_factory=list)
    unmapped_refs_count: int = 0


# =============================================================================
# Receivables
# =============================================================================

class SourcePayment(SourceBase):
    """A receivables line: a payment, an open balance, or both."""
    external_id: str = ""
    customer_nit: str = ""
    customer_name: Optional[str] = None
    invoice_external_id: Optional[str] = None
    paid_at: str = ""
    amount: DecimalValue = Decimal("0")
    balance: Optional[DecimalValue] = None
    due_at: Optional[str] = None
    overdue_days: Optional[int] = None
    credit_limit: Optional[DecimalValue] = None


# =============================================================================
# Customers
# =============================================================================

class SourceCustomer(SourceBase):
    """A customer from the authoritative customer-listing feed."""
    external_id: str = ""
    nit: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    segment: Optional[str] = None
    vendor: Optional[str] = None
    credit_limit: Optional[DecimalValue] = None


class FetchOptions(SourceBase):
    """Per-call filters for the per-customer sync strategy."""
    cedula: Optional[str] = None
    vendor: Optional[str] = None
    tenant_id: Optional[str] = None
