"""Invoice Assembler Module.

Maps flat Source API records into canonical invoices (with line items),
receivables lines and customers.

Usage:
    from assembler import map_invoices, AssemblyOptions

    result = map_invoices(records, "2024-01-05", maps, AssemblyOptions())
"""

from assembler.options import AssemblyOptions
from assembler.invoices import map_invoices, resolve_invoice_id
from assembler.payments import map_payments
from assembler.customers import is_active_customer, map_customers

__all__ = [
    "AssemblyOptions",
    "map_invoices",
    "resolve_invoice_id",
    "map_payments",
    "map_customers",
    "is_active_customer",
]
