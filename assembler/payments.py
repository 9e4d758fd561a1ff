"""Receivables mapping: EstadoDeCuentaCartera-style records -> SourcePayment."""

from decimal import Decimal
from typing import Iterable, List, Optional

from assembler import aliases
from core.models.source import SourcePayment
from customer_resolver.normalize import normalize_customer_id
from extraction.fields import RecordView
from extraction.records import FlatRecord


def _overdue_days(view: RecordView) -> Optional[int]:
    value = view.decimal(aliases.PAYMENT_OVERDUE_DAYS)
    return int(value) if value is not None else None


def map_payments(records: Iterable[FlatRecord], fallback_date: str) -> List[SourcePayment]:
    """Map receivables lines; lines without a customer NIT are skipped.

    Args:
        records: Flat receivables records
        fallback_date: ISO date used when no payment date is present

    Returns:
        One SourcePayment per usable record
    """
    payments: List[SourcePayment] = []
    for record in records:
        view = RecordView(record)
        nit = normalize_customer_id(view.pick(aliases.PAYMENT_NIT) or "")
        if not nit:
            continue

        paid_at = view.date(aliases.PAYMENT_DATE) or fallback_date
        amount = view.decimal(aliases.PAYMENT_AMOUNT) or Decimal("0")
        balance = view.decimal(aliases.PAYMENT_BALANCE)
        credit_limit = view.decimal(aliases.CREDIT_LIMIT)

        invoice_ref = view.pick(aliases.PAYMENT_INVOICE_ID)
        prefix = view.pick(aliases.PAYMENT_PREFIX)
        if invoice_ref and prefix and not invoice_ref.startswith(prefix):
            invoice_ref = f"{prefix}{invoice_ref}"

        external_id = view.pick(aliases.PAYMENT_EXTERNAL_ID)
        if not external_id:
            external_id = f"{nit}-{paid_at}-{balance if balance is not None else amount}"

        payments.append(SourcePayment(
            external_id=external_id,
            customer_nit=nit,
            customer_name=view.pick(aliases.PAYMENT_CUSTOMER_NAME),
            invoice_external_id=invoice_ref,
            paid_at=paid_at,
            amount=amount,
            balance=balance,
            due_at=view.date(aliases.PAYMENT_DUE_DATE),
            overdue_days=_overdue_days(view),
            credit_limit=credit_limit if credit_limit is not None and credit_limit >= 0 else None,
        ))
    return payments
