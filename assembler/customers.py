"""Customer-listing mapping: ListadoClientes-style records -> SourceCustomer."""

from typing import Iterable, List, Optional

from assembler import aliases
from core.models.source import SourceCustomer
from customer_resolver.normalize import normalize_customer_id
from extraction.fields import RecordView
from extraction.records import FlatRecord

_ACTIVE_VALUES = ("false", "0", "no")
_INACTIVE_VALUES = ("true", "1", "si", "sí", "yes")


def is_active_customer(raw: Optional[str]) -> bool:
    """The listing flags *active* customers with CLI_ACTIVO = false.

    Missing or unrecognized values count as active.
    """
    if raw is None or raw.strip() == "":
        return True
    value = raw.strip().lower()
    if value in _ACTIVE_VALUES:
        return True
    if value in _INACTIVE_VALUES:
        return False
    return True


def map_customers(records: Iterable[FlatRecord]) -> List[SourceCustomer]:
    """Map active customers; records without NIT or name are skipped."""
    customers: List[SourceCustomer] = []
    for record in records:
        view = RecordView(record)
        if not is_active_customer(view.pick(aliases.CUSTOMER_ACTIVE)):
            continue

        nit = normalize_customer_id(view.pick(aliases.CUSTOMER_NIT) or "")
        name = view.pick(aliases.CUSTOMER_NAME)
        if not nit or not name:
            continue

        credit_limit = view.decimal(aliases.CREDIT_LIMIT)
        customers.append(SourceCustomer(
            external_id=view.pick(aliases.CUSTOMER_EXTERNAL_ID) or nit,
            nit=nit,
            name=name,
            email=view.pick(aliases.CUSTOMER_EMAIL),
            phone=view.pick(aliases.CUSTOMER_PHONE),
            address=view.pick(aliases.CUSTOMER_ADDRESS),
            city=view.pick(aliases.CUSTOMER_CITY),
            segment=view.pick(aliases.CUSTOMER_SEGMENT),
            vendor=view.pick(aliases.CUSTOMER_VENDOR),
            credit_limit=credit_limit if credit_limit is not None and credit_limit >= 0 else None,
        ))
    return customers
