"""Reconciliation Engine.

Reconciles Source API data into local storage for one tenant. Three
independent, idempotent operations:

1. sync_customers - one page of the authoritative customer listing
2. sync_invoices  - invoices (+ items) issued in a date window
3. sync_payments  - payments and the per-customer credit snapshot

Invoices and payments support two fetch strategies:
- BULK: one fetch for the whole window
- PER_CUSTOMER: one fetch per known local customer (the ERP's bulk sales
  endpoint can time out or truncate for large tenants)
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from connectors.source_base import SourceApiClient, as_invoice_result
from core.models.entities import Invoice, InvoiceItem, Payment
from core.models.source import FetchOptions, SourceInvoice, SourcePayment
from core.observability.logging import get_logger
from customer_resolver.normalize import normalize_customer_id
from customer_resolver.resolver import CustomerResolver
from sync_engine.store import SyncStore, round_units

logger = get_logger(__name__)

ZERO = Decimal("0")
SECONDS_PER_DAY = 86400


class SyncStrategy(str, Enum):
    BULK = "bulk"
    PER_CUSTOMER = "per_customer"


class CancelToken:
    """Cooperative cancellation flag checked between buckets and customers."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class SyncOptions:
    """Per-call options for invoice and payment sync.

    Attributes:
        full_range: Force the bulk strategy (month buckets, single-day runs)
        brand_code_to_name: Brand code -> display name
        class_code_to_name: Class code -> display name
        cancel_token: Checked between customers in the per-customer strategy
    """
    full_range: bool = False
    brand_code_to_name: Optional[Dict[str, str]] = None
    class_code_to_name: Optional[Dict[str, str]] = None
    cancel_token: Optional[CancelToken] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled


# =============================================================================
# Results
# =============================================================================

@dataclass
class CustomerSyncResult:
    """synced is the size of the fetched page; 0 ends paging."""
    synced: int = 0


@dataclass
class InvoiceSyncResult:
    synced: int = 0
    created: int = 0
    updated: int = 0
    unmapped_refs_count: int = 0


@dataclass
class PaymentSyncResult:
    synced: int = 0
    credits_updated: int = 0
    undetermined_aging: int = 0


@dataclass
class _CreditSummary:
    balance: Decimal = ZERO
    overdue: Decimal = ZERO
    overdue_days_sum: int = 0
    overdue_count: int = 0
    credit_limit: Optional[Decimal] = None

    @property
    def dso_days(self) -> int:
        if self.overdue_count == 0:
            return 0
        average = Decimal(self.overdue_days_sum) / Decimal(self.overdue_count)
        return int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _lookup(mapping: Dict[str, str], code: Optional[str]) -> Optional[str]:
    if not code or not mapping:
        return None
    key = code.strip()
    return mapping.get(key) or mapping.get(key.upper())


def overdue_days_for(payment: SourcePayment, now: datetime) -> Optional[int]:
    """Days past due for a receivables line.

    Uses the explicit day count when present, else derives it from the due
    date against `now` (clamped at 0). Returns None when neither is known.
    """
    if payment.overdue_days is not None:
        return payment.overdue_days
    if not payment.due_at:
        return None
    try:
        due = datetime.fromisoformat(payment.due_at[:10]).replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    elapsed = (now - due).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(elapsed))


# =============================================================================
# Service
# =============================================================================

class SyncService:
    """Reconciles Source API records into a SyncStore.

    Example:
        service = SyncService(store, create_source_client(settings))
        await service.sync_customers("tenant-1", "EMP01", page=1, page_size=1000)
        await service.sync_invoices("tenant-1", "EMP01", "2024-01-05", "2024-01-05")
        await service.sync_payments("tenant-1", "EMP01", "2024-01-05", "2024-01-05")
    """

    def __init__(
        self,
        store: SyncStore,
        source_client: SourceApiClient,
        strategy: SyncStrategy = SyncStrategy.BULK,
        vendor: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.source_client = source_client
        self.strategy = strategy
        self.vendor = vendor or None
        self.resolver = CustomerResolver(store)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _per_customer(self, options: SyncOptions) -> bool:
        return self.strategy == SyncStrategy.PER_CUSTOMER and not options.full_range

    # =========================================================================
    # Customers
    # =========================================================================

    async def sync_customers(
        self,
        tenant_id: str,
        external_id: str,
        page: int = 1,
        page_size: int = 1000,
    ) -> CustomerSyncResult:
        """Upsert one page of the customer listing.

        Returns:
            CustomerSyncResult; synced == 0 means there are no more pages
        """
        records = await self.source_client.fetch_customers(external_id, page, page_size, self.vendor)
        if not records:
            return CustomerSyncResult(synced=0)

        for record in records:
            await self.resolver.upsert_from_directory(tenant_id, record)

        logger.info(
            "Customer page synced",
            extra_fields={"page": page, "records": len(records)},
        )
        return CustomerSyncResult(synced=len(records))

    # =========================================================================
    # Invoices
    # =========================================================================

    async def sync_invoices(
        self,
        tenant_id: str,
        external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[SyncOptions] = None,
    ) -> InvoiceSyncResult:
        """Create or update invoices issued in [date_from, date_to].

        Items of every synced invoice are replaced wholesale.
        """
        options = options or SyncOptions()
        result = InvoiceSyncResult()

        if not self._per_customer(options):
            fetched = as_invoice_result(await self.source_client.fetch_invoices(
                external_id, date_from, date_to, FetchOptions(tenant_id=tenant_id)
            ))
            result.unmapped_refs_count += fetched.unmapped_refs_count
            for invoice in fetched.invoices:
                await self._save_invoice(tenant_id, invoice, options, result)
        else:
            for customer in self.store.list_customers(tenant_id):
                if options.cancelled:
                    logger.info("Invoice sync cancelled between customers")
                    break
                fetched = as_invoice_result(await self.source_client.fetch_invoices(
                    external_id,
                    date_from,
                    date_to,
                    FetchOptions(cedula=customer.nit, vendor=customer.vendor or "", tenant_id=tenant_id),
                ))
                result.unmapped_refs_count += fetched.unmapped_refs_count
                for invoice in fetched.invoices:
                    if not invoice.customer_nit:
                        invoice = invoice.model_copy(update={"customer_nit": customer.nit})
                    await self._save_invoice(tenant_id, invoice, options, result)

        logger.info(
            "Invoices synced",
            extra_fields={
                "synced": result.synced,
                "created": result.created,
                "updated": result.updated,
                "unmapped_refs": result.unmapped_refs_count,
            },
        )
        return result

    async def _save_invoice(
        self,
        tenant_id: str,
        draft: SourceInvoice,
        options: SyncOptions,
        result: InvoiceSyncResult,
    ) -> None:
        nit = normalize_customer_id(draft.customer_nit)
        if not nit or not draft.external_id:
            return

        customer = await self.resolver.resolve_or_create(tenant_id, nit)
        city = (draft.city or "").strip()
        if city:
            self.store.set_customer_city_if_missing(customer.id, city)

        existing = self.store.find_invoice(tenant_id, customer.id, draft.external_id)
        saved = self.store.save_invoice(Invoice(
            id=existing.id if existing else None,
            tenant_id=tenant_id,
            customer_id=customer.id,
            invoice_number=draft.external_id,
            issued_at=draft.issued_at,
            total=draft.total,
            margin=draft.margin,
            units=round_units(draft.units),
            sale_sign=draft.sale_sign,
            vendor=draft.vendor,
            city=city or None,
            document_type=draft.document_type,
        ))

        brand_names = options.brand_code_to_name or {}
        class_names = options.class_code_to_name or {}
        items: List[InvoiceItem] = []
        for item in draft.items:
            class_name = item.class_name
            if not class_name or class_name == item.class_code:
                class_name = _lookup(class_names, item.class_code) or class_name
            items.append(InvoiceItem(
                tenant_id=tenant_id,
                invoice_id=saved.id,
                product_name=item.product_name,
                brand=_lookup(brand_names, item.brand) or item.brand,
                category=item.category,
                class_code=item.class_code,
                class_name=class_name,
                quantity=round_units(item.quantity),
                unit_price=item.unit_price,
                total=item.total,
                margin=item.margin,
            ))
        self.store.replace_invoice_items(tenant_id, saved.id, items)

        result.synced += 1
        if existing:
            result.updated += 1
        else:
            result.created += 1

    # =========================================================================
    # Payments
    # =========================================================================

    async def sync_payments(
        self,
        tenant_id: str,
        external_id: str,
        date_from: str,
        date_to: str,
        options: Optional[SyncOptions] = None,
    ) -> PaymentSyncResult:
        """Insert new payments and replace the credit snapshot of every customer seen.

        The credit summary lives only for this call; each touched customer's
        Credit row is overwritten once at the end.
        """
        options = options or SyncOptions()
        result = PaymentSyncResult()
        summaries: Dict[int, _CreditSummary] = {}
        now = self._clock()

        if not self._per_customer(options):
            records = await self.source_client.fetch_payments(
                external_id, date_from, date_to, FetchOptions(tenant_id=tenant_id)
            )
            for record in records:
                await self._apply_payment(tenant_id, record, summaries, now, result)
        else:
            for customer in self.store.list_customers(tenant_id):
                if options.cancelled:
                    logger.info("Payment sync cancelled between customers")
                    break
                summaries.setdefault(customer.id, _CreditSummary())
                records = await self.source_client.fetch_payments(
                    external_id,
                    date_from,
                    date_to,
                    FetchOptions(cedula=customer.nit, vendor=customer.vendor or "", tenant_id=tenant_id),
                )
                for record in records:
                    if not record.customer_nit:
                        record = record.model_copy(update={"customer_nit": customer.nit})
                    await self._apply_payment(tenant_id, record, summaries, now, result)

        for customer_id, summary in summaries.items():
            self.store.upsert_credit_snapshot(
                tenant_id,
                customer_id,
                balance=summary.balance,
                overdue=summary.overdue,
                dso_days=summary.dso_days,
                credit_limit=summary.credit_limit,
            )
            result.credits_updated += 1

        if result.undetermined_aging:
            logger.warning(
                "Open balances without due date or overdue days counted as not overdue",
                extra_fields={"records": result.undetermined_aging},
            )
        logger.info(
            "Payments synced",
            extra_fields={"synced": result.synced, "credits_updated": result.credits_updated},
        )
        return result

    async def _apply_payment(
        self,
        tenant_id: str,
        record: SourcePayment,
        summaries: Dict[int, _CreditSummary],
        now: datetime,
        result: PaymentSyncResult,
    ) -> None:
        customer = await self.resolver.resolve_or_create(tenant_id, record.customer_nit)
        if customer is None:
            return

        summary = summaries.setdefault(customer.id, _CreditSummary())
        if record.credit_limit is not None and record.credit_limit >= 0:
            summary.credit_limit = record.credit_limit

        balance = record.balance or ZERO
        if balance > 0:
            overdue_days = overdue_days_for(record, now)
            if overdue_days is None:
                result.undetermined_aging += 1
                overdue_days = 0
            summary.balance += balance
            if overdue_days > 0:
                summary.overdue += balance
                summary.overdue_days_sum += overdue_days
                summary.overdue_count += 1

        if record.amount > 0:
            invoice = None
            if record.invoice_external_id:
                invoice = self.store.find_invoice(tenant_id, customer.id, record.invoice_external_id)
            invoice_id = invoice.id if invoice else None
            if not self.store.payment_exists(tenant_id, customer.id, invoice_id, record.paid_at, record.amount):
                self.store.insert_payment(Payment(
                    tenant_id=tenant_id,
                    customer_id=customer.id,
                    invoice_id=invoice_id,
                    paid_at=record.paid_at,
                    amount=record.amount,
                ))
                result.synced += 1
