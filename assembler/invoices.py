"""Invoice Assembly.

Groups flat sales lines into invoices with line items:

1. Group key: the external invoice id (prefix + document number) when one
   resolves, else `"{nit}-{issued}-{total}"`.
2. Sign: movement codes in the credit-note set give `sale_sign = -1`.
3. Lines: reference normalized; brand from the directory by reference, else
   the ERP brand text, else "(SIN MAPEO)" when a reference exists, else
   "Sin marca"; line discount subtracted; unit price derived from total and
   quantity when missing.
4. Header: a nonzero document total wins; otherwise line totals accumulate.
   Margin and units always accumulate from lines.
5. Invoices without a customer NIT are dropped.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, Optional

from assembler import aliases
from assembler.options import AssemblyOptions
from core.models.source import FetchInvoicesResult, SourceInvoice, SourceInvoiceItem
from customer_resolver.normalize import (
    NO_BRAND,
    NO_CATEGORY,
    UNMAPPED_BRAND,
    UNMAPPED_CLASS,
    normalize_customer_id,
    normalize_refer,
)
from extraction.fields import RecordView
from extraction.records import FlatRecord
from inventory_directory.directory import DirectoryMaps

ZERO = Decimal("0")
UNIT_PRICE_QUANTUM = Decimal("0.0001")


def _amount_key(value: Decimal) -> str:
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def resolve_invoice_id(view: RecordView) -> str:
    """External invoice id: prefix + base id, else prefix + document number."""
    prefix = view.pick(aliases.INVOICE_PREFIX) or ""
    numdoc = view.pick(aliases.INVOICE_NUMDOC) or ""
    base_id = view.pick(aliases.INVOICE_ID) or ""
    if base_id:
        return f"{prefix}{base_id}" if prefix else base_id
    if prefix and numdoc:
        return f"{prefix}{numdoc}"
    return ""


def _resolve_brand(reference: str, erp_brand: Optional[str], maps: DirectoryMaps) -> str:
    if reference and reference in maps.brand_by_ref:
        return maps.brand_by_ref[reference]
    if erp_brand and erp_brand.strip():
        return erp_brand.strip()
    return UNMAPPED_BRAND if reference else NO_BRAND


def _resolve_class_code(reference: str, erp_class: Optional[str], maps: DirectoryMaps) -> Optional[str]:
    if erp_class and erp_class.strip():
        return erp_class.strip()
    if reference:
        return maps.class_code_by_ref.get(reference) or UNMAPPED_CLASS
    return None


def map_invoices(
    records: Iterable[FlatRecord],
    fallback_date: str,
    maps: Optional[DirectoryMaps] = None,
    options: Optional[AssemblyOptions] = None,
) -> FetchInvoicesResult:
    """Assemble sales lines into invoices.

    Args:
        records: Flat sales records (one per line)
        fallback_date: ISO date used when a record carries no parseable date
        maps: Inventory directory lookups (empty when not loaded)
        options: Field lists and credit-note codes

    Returns:
        FetchInvoicesResult with the invoices and the count of lines whose
        reference is missing from the directory
    """
    maps = maps or DirectoryMaps()
    options = options or AssemblyOptions()

    grouped: "OrderedDict[str, SourceInvoice]" = OrderedDict()
    header_totals: Dict[str, Decimal] = {}
    unmapped_refs = 0

    for record in records:
        view = RecordView(record)

        document_type = (view.pick(options.tipomov_fields) or "").strip() or None
        invoice_id = resolve_invoice_id(view)
        nit = normalize_customer_id(view.pick(aliases.INVOICE_NIT) or "")
        issued_at = view.date(aliases.INVOICE_DATE) or fallback_date
        record_total = view.decimal(aliases.INVOICE_TOTAL)
        document_total = view.decimal(options.document_total_fields)

        quantity = view.decimal(aliases.LINE_QUANTITY) or ZERO
        margin = view.decimal(aliases.LINE_MARGIN) or ZERO
        reference = normalize_refer(view.pick(aliases.LINE_REFERENCE))
        product_name = view.pick(aliases.LINE_PRODUCT_NAME) or "Total"
        item_total = view.decimal(aliases.LINE_TOTAL)
        discount = view.decimal(options.discount_fields) or ZERO
        line_total = (item_total if item_total is not None else (record_total or ZERO)) - discount

        unit_price = view.decimal(aliases.LINE_UNIT_PRICE)
        if unit_price is None:
            unit_price = (line_total / quantity).quantize(UNIT_PRICE_QUANTUM) if quantity > 0 else ZERO

        if reference and reference not in maps.brand_by_ref:
            unmapped_refs += 1

        class_code = _resolve_class_code(reference, view.pick(options.class_fields), maps)
        item = SourceInvoiceItem(
            product_name=reference or product_name,
            brand=_resolve_brand(reference, view.pick(options.brand_fields), maps),
            category=view.pick(aliases.LINE_CATEGORY) or NO_CATEGORY,
            class_code=class_code,
            class_name=maps.class_name_by_ref.get(reference) or class_code,
            quantity=quantity,
            unit_price=unit_price,
            total=line_total,
            margin=margin,
        )

        if invoice_id:
            key = invoice_id
        else:
            synth_total = document_total if document_total else line_total
            key = f"{nit}-{issued_at}-{_amount_key(synth_total)}"

        invoice = grouped.get(key)
        if invoice is None:
            invoice = SourceInvoice(
                external_id=key,
                customer_nit=nit,
                customer_name=view.pick(aliases.INVOICE_CUSTOMER_NAME),
                issued_at=issued_at,
                vendor=view.pick(aliases.INVOICE_VENDOR),
                document_type=document_type,
                sale_sign=options.sale_sign(document_type or ""),
            )
            grouped[key] = invoice
            if document_total:
                header_totals[key] = document_total

        city = view.pick(options.city_fields)
        if city and city.strip() and not (invoice.city and invoice.city.strip()):
            invoice.city = city.strip()
        if not invoice.customer_name:
            invoice.customer_name = view.pick(aliases.INVOICE_CUSTOMER_NAME)

        invoice.items.append(item)
        invoice.units += quantity
        invoice.margin += margin
        if key not in header_totals:
            invoice.total += line_total

    for key, total in header_totals.items():
        grouped[key].total = total

    invoices = [invoice for invoice in grouped.values() if invoice.customer_nit]
    return FetchInvoicesResult(invoices=invoices, unmapped_refs_count=unmapped_refs)
