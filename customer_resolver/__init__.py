"""Customer Resolver Module.

Canonical customer identity across the customer-listing, receivables and
sales feeds.

Usage:
    from customer_resolver import CustomerResolver, normalize_customer_id

    resolver = CustomerResolver(store)
    customer = await resolver.resolve_or_create(tenant_id, "900.123.456-7")
"""

from customer_resolver.normalize import (
    NO_BRAND,
    NO_CATEGORY,
    NO_NAME_PLACEHOLDER,
    UNMAPPED_BRAND,
    UNMAPPED_CLASS,
    is_invalid_customer_name,
    normalize_customer_id,
    normalize_refer,
    sanitize_customer_name,
)
from customer_resolver.resolver import CustomerResolver

__all__ = [
    "CustomerResolver",
    "normalize_customer_id",
    "normalize_refer",
    "is_invalid_customer_name",
    "sanitize_customer_name",
    "NO_NAME_PLACEHOLDER",
    "UNMAPPED_BRAND",
    "UNMAPPED_CLASS",
    "NO_BRAND",
    "NO_CATEGORY",
]
