"""Sync Engine Storage.

This module defines the storage contract the sync engine is written against
(`SyncStore`) and its SQLite implementation:
- Schema initialization with tenant-qualified uniqueness constraints
- Customers, invoices (+ items), payments and credit snapshots
- Inventory directory and brand/class code mappings
- Tenant sync status

Amounts are stored as normalized decimal text so equality checks (payment
de-duplication) are exact.
"""

import sqlite3
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from core.config import DEFAULT_DB_PATH
from core.models.entities import (
    Credit,
    Customer,
    DirectoryEntry,
    Invoice,
    InvoiceItem,
    Payment,
    Tenant,
)

MAPPING_KINDS = ("brand", "class")


# =============================================================================
# Value helpers
# =============================================================================

def decimal_text(value: Optional[Decimal]) -> Optional[str]:
    """Canonical text form of an amount ("100.50" -> "100.5", "1E+2" -> "100")."""
    if value is None:
        return None
    value = Decimal(value)
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def round_units(value) -> int:
    """Round a quantity half-up to a whole number of units."""
    return int(Decimal(value or 0).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dec(value: Optional[str]) -> Decimal:
    return Decimal(value) if value not in (None, "") else Decimal("0")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Storage contract
# =============================================================================

class SyncStore(Protocol):
    """Everything the sync engine reads and writes. All calls are tenant-scoped."""

    # Tenants
    def upsert_tenant(self, tenant: Tenant) -> Tenant: ...
    def get_tenant(self, tenant_id: str) -> Optional[Tenant]: ...
    def list_tenants(self) -> List[Tenant]: ...
    def update_tenant_sync_status(
        self,
        tenant_id: str,
        last_sync_at: datetime,
        duration_ms: int,
        unmapped_refs: int,
        error: Optional[str],
    ) -> None: ...

    # Customers
    def find_customer_by_nit(self, tenant_id: str, nit: str) -> Optional[Customer]: ...
    def find_customer_by_any_nit(self, tenant_id: str, nits: Iterable[str]) -> Optional[Customer]: ...
    def create_customer(self, customer: Customer) -> Customer: ...
    def rename_customer_nit(self, customer_id: int, nit: str) -> None: ...
    def upsert_directory_customer(
        self,
        tenant_id: str,
        nit: str,
        name: str,
        segment: Optional[str] = None,
        city: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> Customer: ...
    def set_customer_city_if_missing(self, customer_id: int, city: str) -> bool: ...
    def list_customers(self, tenant_id: str) -> List[Customer]: ...

    # Invoices
    def find_invoice(self, tenant_id: str, customer_id: int, invoice_number: str) -> Optional[Invoice]: ...
    def save_invoice(self, invoice: Invoice) -> Invoice: ...
    def replace_invoice_items(self, tenant_id: str, invoice_id: int, items: List[InvoiceItem]) -> int: ...
    def list_invoice_items(self, invoice_id: int) -> List[InvoiceItem]: ...
    def list_invoices(self, tenant_id: str) -> List[Invoice]: ...
    def invoice_coverage(self, tenant_id: str) -> Dict[str, object]: ...

    # Payments
    def payment_exists(
        self,
        tenant_id: str,
        customer_id: int,
        invoice_id: Optional[int],
        paid_at: str,
        amount: Decimal,
    ) -> bool: ...
    def insert_payment(self, payment: Payment) -> Payment: ...
    def list_payments(self, tenant_id: str) -> List[Payment]: ...

    # Credit
    def get_credit(self, customer_id: int) -> Optional[Credit]: ...
    def upsert_credit_snapshot(
        self,
        tenant_id: str,
        customer_id: int,
        balance: Decimal,
        overdue: Decimal,
        dso_days: int,
        credit_limit: Optional[Decimal] = None,
    ) -> None: ...
    def upsert_credit_limit(self, tenant_id: str, customer_id: int, credit_limit: Decimal) -> None: ...

    # Inventory directory
    def upsert_directory_entries(self, tenant_id: str, entries: List[DirectoryEntry]) -> int: ...
    def list_directory_entries(
        self, tenant_id: str, offset: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[DirectoryEntry], int]: ...

    # Brand/class code mappings
    def get_code_mappings(self, tenant_id: str, kind: str) -> Dict[str, str]: ...
    def upsert_code_mappings(self, tenant_id: str, kind: str, mapping: Dict[str, str]) -> int: ...


# =============================================================================
# Schema
# =============================================================================

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS tenant (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        external_id TEXT NOT NULL DEFAULT '',
        last_sync_at TEXT,
        last_sync_duration_ms INTEGER,
        last_sync_unmapped_refs INTEGER,
        last_sync_error TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customer (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        nit TEXT NOT NULL,
        name TEXT NOT NULL,
        city TEXT,
        vendor TEXT,
        segment TEXT,
        from_directory INTEGER NOT NULL DEFAULT 0,
        UNIQUE(tenant_id, nit)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        customer_id INTEGER NOT NULL REFERENCES customer(id),
        invoice_number TEXT NOT NULL,
        issued_at TEXT NOT NULL,
        total TEXT NOT NULL,
        margin TEXT NOT NULL,
        units INTEGER NOT NULL,
        sale_sign INTEGER NOT NULL DEFAULT 1,
        signed_total TEXT NOT NULL,
        signed_margin TEXT NOT NULL,
        signed_units INTEGER NOT NULL,
        vendor TEXT,
        city TEXT,
        document_type TEXT,
        UNIQUE(tenant_id, customer_id, invoice_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoice_item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        invoice_id INTEGER NOT NULL REFERENCES invoice(id) ON DELETE CASCADE,
        product_name TEXT NOT NULL,
        brand TEXT NOT NULL DEFAULT '',
        category TEXT NOT NULL DEFAULT '',
        class_code TEXT,
        class_name TEXT,
        quantity INTEGER NOT NULL,
        unit_price TEXT NOT NULL,
        total TEXT NOT NULL,
        margin TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        customer_id INTEGER NOT NULL REFERENCES customer(id),
        invoice_id INTEGER REFERENCES invoice(id),
        paid_at TEXT NOT NULL,
        amount TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS credit (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tenant_id TEXT NOT NULL,
        customer_id INTEGER NOT NULL UNIQUE REFERENCES customer(id),
        balance TEXT NOT NULL DEFAULT '0',
        overdue TEXT NOT NULL DEFAULT '0',
        dso_days INTEGER NOT NULL DEFAULT 0,
        credit_limit TEXT NOT NULL DEFAULT '0',
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_directory (
        tenant_id TEXT NOT NULL,
        reference TEXT NOT NULL,
        brand TEXT,
        brand_code TEXT,
        class_code TEXT,
        class_name TEXT,
        updated_at TEXT NOT NULL,
        UNIQUE(tenant_id, reference)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_brand (
        tenant_id TEXT NOT NULL,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        UNIQUE(tenant_id, code)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_class (
        tenant_id TEXT NOT NULL,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        UNIQUE(tenant_id, code)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_invoice_item_invoice ON invoice_item(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_payment_lookup ON payment(tenant_id, customer_id, paid_at)",
]


def init_sync_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize sync engine tables.

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        for statement in SCHEMA:
            cursor.execute(statement)
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# Row mappers
# =============================================================================

def _row_to_tenant(row: sqlite3.Row) -> Tenant:
    return Tenant(
        id=row["id"],
        name=row["name"],
        external_id=row["external_id"],
        last_sync_at=_dt(row["last_sync_at"]),
        last_sync_duration_ms=row["last_sync_duration_ms"],
        last_sync_unmapped_refs=row["last_sync_unmapped_refs"],
        last_sync_error=row["last_sync_error"],
    )


def _row_to_customer(row: sqlite3.Row) -> Customer:
    return Customer(
        id=row["id"],
        tenant_id=row["tenant_id"],
        nit=row["nit"],
        name=row["name"],
        city=row["city"],
        vendor=row["vendor"],
        segment=row["segment"],
        from_directory=bool(row["from_directory"]),
    )


def _row_to_invoice(row: sqlite3.Row) -> Invoice:
    return Invoice(
        id=row["id"],
        tenant_id=row["tenant_id"],
        customer_id=row["customer_id"],
        invoice_number=row["invoice_number"],
        issued_at=row["issued_at"],
        total=_dec(row["total"]),
        margin=_dec(row["margin"]),
        units=row["units"],
        sale_sign=row["sale_sign"],
        signed_total=_dec(row["signed_total"]),
        signed_margin=_dec(row["signed_margin"]),
        signed_units=row["signed_units"],
        vendor=row["vendor"],
        city=row["city"],
        document_type=row["document_type"],
    )


def _row_to_item(row: sqlite3.Row) -> InvoiceItem:
    return InvoiceItem(
        id=row["id"],
        tenant_id=row["tenant_id"],
        invoice_id=row["invoice_id"],
        product_name=row["product_name"],
        brand=row["brand"],
        category=row["category"],
        class_code=row["class_code"],
        class_name=row["class_name"],
        quantity=row["quantity"],
        unit_price=_dec(row["unit_price"]),
        total=_dec(row["total"]),
        margin=_dec(row["margin"]),
    )


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row["id"],
        tenant_id=row["tenant_id"],
        customer_id=row["customer_id"],
        invoice_id=row["invoice_id"],
        paid_at=row["paid_at"],
        amount=_dec(row["amount"]),
    )


def _row_to_credit(row: sqlite3.Row) -> Credit:
    return Credit(
        id=row["id"],
        tenant_id=row["tenant_id"],
        customer_id=row["customer_id"],
        balance=_dec(row["balance"]),
        overdue=_dec(row["overdue"]),
        dso_days=row["dso_days"],
        credit_limit=_dec(row["credit_limit"]),
        updated_at=_dt(row["updated_at"]),
    )


def _row_to_directory_entry(row: sqlite3.Row) -> DirectoryEntry:
    return DirectoryEntry(
        tenant_id=row["tenant_id"],
        reference=row["reference"],
        brand=row["brand"],
        brand_code=row["brand_code"],
        class_code=row["class_code"],
        class_name=row["class_name"],
        updated_at=_dt(row["updated_at"]),
    )


# =============================================================================
# SQLite implementation
# =============================================================================

class SQLiteSyncStore:
    """SQLite-backed `SyncStore`.

    Opens one connection per call; tables are created on construction.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        init_sync_db(self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor
        finally:
            conn.close()

    # =========================================================================
    # Tenants
    # =========================================================================

    def upsert_tenant(self, tenant: Tenant) -> Tenant:
        self._execute("""
            INSERT INTO tenant (id, name, external_id)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                external_id = excluded.external_id
        """, (tenant.id, tenant.name, tenant.external_id))
        return self.get_tenant(tenant.id)

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        row = self._fetchone("SELECT * FROM tenant WHERE id = ?", (tenant_id,))
        return _row_to_tenant(row) if row else None

    def list_tenants(self) -> List[Tenant]:
        return [_row_to_tenant(r) for r in self._fetchall("SELECT * FROM tenant ORDER BY id")]

    def update_tenant_sync_status(
        self,
        tenant_id: str,
        last_sync_at: datetime,
        duration_ms: int,
        unmapped_refs: int,
        error: Optional[str],
    ) -> None:
        self._execute("""
            UPDATE tenant SET
                last_sync_at = ?,
                last_sync_duration_ms = ?,
                last_sync_unmapped_refs = ?,
                last_sync_error = ?
            WHERE id = ?
        """, (last_sync_at.isoformat(), duration_ms, unmapped_refs, error, tenant_id))

    # =========================================================================
    # Customers
    # =========================================================================

    def find_customer_by_nit(self, tenant_id: str, nit: str) -> Optional[Customer]:
        row = self._fetchone(
            "SELECT * FROM customer WHERE tenant_id = ? AND nit = ?", (tenant_id, nit)
        )
        return _row_to_customer(row) if row else None

    def find_customer_by_any_nit(self, tenant_id: str, nits: Iterable[str]) -> Optional[Customer]:
        """First customer matching any candidate NIT, in candidate order."""
        for nit in nits:
            if not nit:
                continue
            customer = self.find_customer_by_nit(tenant_id, nit)
            if customer:
                return customer
        return None

    def create_customer(self, customer: Customer) -> Customer:
        """Insert a customer; an existing row with the same NIT is returned instead."""
        self._execute("""
            INSERT INTO customer (tenant_id, nit, name, city, vendor, segment, from_directory)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tenant_id, nit) DO NOTHING
        """, (
            customer.tenant_id,
            customer.nit,
            customer.name,
            customer.city,
            customer.vendor,
            customer.segment,
            int(customer.from_directory),
        ))
        return self.find_customer_by_nit(customer.tenant_id, customer.nit)

    def rename_customer_nit(self, customer_id: int, nit: str) -> None:
        self._execute("UPDATE customer SET nit = ? WHERE id = ?", (nit, customer_id))

    def upsert_directory_customer(
        self,
        tenant_id: str,
        nit: str,
        name: str,
        segment: Optional[str] = None,
        city: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> Customer:
        """Create or update a customer confirmed by the customer-listing feed.

        segment/city/vendor only overwrite stored values when supplied.
        """
        self._execute("""
            INSERT INTO customer (tenant_id, nit, name, city, vendor, segment, from_directory)
            VALUES (?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT(tenant_id, nit) DO UPDATE SET
                name = excluded.name,
                segment = COALESCE(excluded.segment, customer.segment),
                city = COALESCE(excluded.city, customer.city),
                vendor = COALESCE(excluded.vendor, customer.vendor),
                from_directory = 1
        """, (tenant_id, nit, name, city, vendor, segment))
        return self.find_customer_by_nit(tenant_id, nit)

    def set_customer_city_if_missing(self, customer_id: int, city: str) -> bool:
        cursor = self._execute("""
            UPDATE customer SET city = ?
            WHERE id = ? AND (city IS NULL OR TRIM(city) = '')
        """, (city, customer_id))
        return cursor.rowcount > 0

    def list_customers(self, tenant_id: str) -> List[Customer]:
        rows = self._fetchall(
            "SELECT * FROM customer WHERE tenant_id = ? ORDER BY id", (tenant_id,)
        )
        return [_row_to_customer(r) for r in rows]

    # =========================================================================
    # Invoices
    # =========================================================================

    def find_invoice(self, tenant_id: str, customer_id: int, invoice_number: str) -> Optional[Invoice]:
        row = self._fetchone("""
            SELECT * FROM invoice
            WHERE tenant_id = ? AND customer_id = ? AND invoice_number = ?
        """, (tenant_id, customer_id, invoice_number))
        return _row_to_invoice(row) if row else None

    def save_invoice(self, invoice: Invoice) -> Invoice:
        """Insert or update (by id) an invoice; signed fields are derived here."""
        sign = -1 if invoice.sale_sign < 0 else 1
        invoice = invoice.model_copy(update={
            "sale_sign": sign,
            "signed_total": invoice.total * sign,
            "signed_margin": invoice.margin * sign,
            "signed_units": invoice.units * sign,
        })
        values = (
            invoice.issued_at,
            decimal_text(invoice.total),
            decimal_text(invoice.margin),
            invoice.units,
            invoice.sale_sign,
            decimal_text(invoice.signed_total),
            decimal_text(invoice.signed_margin),
            invoice.signed_units,
            invoice.vendor,
            invoice.city,
            invoice.document_type,
        )
        if invoice.id is not None:
            self._execute("""
                UPDATE invoice SET
                    issued_at = ?, total = ?, margin = ?, units = ?, sale_sign = ?,
                    signed_total = ?, signed_margin = ?, signed_units = ?,
                    vendor = ?, city = ?, document_type = ?
                WHERE id = ?
            """, values + (invoice.id,))
            return invoice

        cursor = self._execute("""
            INSERT INTO invoice (
                tenant_id, customer_id, invoice_number,
                issued_at, total, margin, units, sale_sign,
                signed_total, signed_margin, signed_units,
                vendor, city, document_type
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (invoice.tenant_id, invoice.customer_id, invoice.invoice_number) + values)
        return invoice.model_copy(update={"id": cursor.lastrowid})

    def replace_invoice_items(self, tenant_id: str, invoice_id: int, items: List[InvoiceItem]) -> int:
        """Delete every item of the invoice and insert the fresh set in one transaction."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM invoice_item WHERE tenant_id = ? AND invoice_id = ?",
                (tenant_id, invoice_id),
            )
            cursor.executemany("""
                INSERT INTO invoice_item (
                    tenant_id, invoice_id, product_name, brand, category,
                    class_code, class_name, quantity, unit_price, total, margin
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    tenant_id,
                    invoice_id,
                    item.product_name,
                    item.brand,
                    item.category,
                    item.class_code,
                    item.class_name,
                    item.quantity,
                    decimal_text(item.unit_price),
                    decimal_text(item.total),
                    decimal_text(item.margin),
                )
                for item in items
            ])
            conn.commit()
            return len(items)
        finally:
            conn.close()

    def list_invoice_items(self, invoice_id: int) -> List[InvoiceItem]:
        rows = self._fetchall(
            "SELECT * FROM invoice_item WHERE invoice_id = ? ORDER BY id", (invoice_id,)
        )
        return [_row_to_item(r) for r in rows]

    def list_invoices(self, tenant_id: str) -> List[Invoice]:
        rows = self._fetchall(
            "SELECT * FROM invoice WHERE tenant_id = ? ORDER BY id", (tenant_id,)
        )
        return [_row_to_invoice(r) for r in rows]

    def invoice_coverage(self, tenant_id: str) -> Dict[str, object]:
        """Earliest/latest issue date and invoice/item counts for the tenant."""
        row = self._fetchone("""
            SELECT MIN(issued_at) AS earliest, MAX(issued_at) AS latest, COUNT(*) AS invoices,
                   (SELECT COUNT(*) FROM invoice_item WHERE tenant_id = ?) AS items
            FROM invoice WHERE tenant_id = ?
        """, (tenant_id, tenant_id))
        return {
            "earliest_date": row["earliest"][:10] if row["earliest"] else None,
            "latest_date": row["latest"][:10] if row["latest"] else None,
            "total_invoices": row["invoices"],
            "total_items": row["items"],
        }

    # =========================================================================
    # Payments
    # =========================================================================

    def payment_exists(
        self,
        tenant_id: str,
        customer_id: int,
        invoice_id: Optional[int],
        paid_at: str,
        amount: Decimal,
    ) -> bool:
        row = self._fetchone("""
            SELECT 1 FROM payment
            WHERE tenant_id = ? AND customer_id = ? AND invoice_id IS ?
              AND paid_at = ? AND amount = ?
            LIMIT 1
        """, (tenant_id, customer_id, invoice_id, paid_at, decimal_text(amount)))
        return row is not None

    def insert_payment(self, payment: Payment) -> Payment:
        cursor = self._execute("""
            INSERT INTO payment (tenant_id, customer_id, invoice_id, paid_at, amount)
            VALUES (?, ?, ?, ?, ?)
        """, (
            payment.tenant_id,
            payment.customer_id,
            payment.invoice_id,
            payment.paid_at,
            decimal_text(payment.amount),
        ))
        return payment.model_copy(update={"id": cursor.lastrowid})

    def list_payments(self, tenant_id: str) -> List[Payment]:
        rows = self._fetchall(
            "SELECT * FROM payment WHERE tenant_id = ? ORDER BY id", (tenant_id,)
        )
        return [_row_to_payment(r) for r in rows]

    # =========================================================================
    # Credit
    # =========================================================================

    def get_credit(self, customer_id: int) -> Optional[Credit]:
        row = self._fetchone("SELECT * FROM credit WHERE customer_id = ?", (customer_id,))
        return _row_to_credit(row) if row else None

    def upsert_credit_snapshot(
        self,
        tenant_id: str,
        customer_id: int,
        balance: Decimal,
        overdue: Decimal,
        dso_days: int,
        credit_limit: Optional[Decimal] = None,
    ) -> None:
        """Replace the receivables snapshot; credit_limit is kept unless supplied."""
        self._execute("""
            INSERT INTO credit (
                tenant_id, customer_id, balance, overdue, dso_days, credit_limit, updated_at
            ) VALUES (?, ?, ?, ?, ?, COALESCE(?, '0'), ?)
            ON CONFLICT(customer_id) DO UPDATE SET
                balance = excluded.balance,
                overdue = excluded.overdue,
                dso_days = excluded.dso_days,
                credit_limit = COALESCE(?, credit.credit_limit),
                updated_at = excluded.updated_at
        """, (
            tenant_id,
            customer_id,
            decimal_text(balance),
            decimal_text(overdue),
            dso_days,
            decimal_text(credit_limit),
            datetime.now(timezone.utc).isoformat(),
            decimal_text(credit_limit),
        ))

    def upsert_credit_limit(self, tenant_id: str, customer_id: int, credit_limit: Decimal) -> None:
        """Set only the credit limit, leaving balance/overdue/dso untouched."""
        self._execute("""
            INSERT INTO credit (tenant_id, customer_id, credit_limit, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(customer_id) DO UPDATE SET
                credit_limit = excluded.credit_limit,
                updated_at = excluded.updated_at
        """, (tenant_id, customer_id, decimal_text(credit_limit), datetime.now(timezone.utc).isoformat()))

    # =========================================================================
    # Inventory directory
    # =========================================================================

    def upsert_directory_entries(self, tenant_id: str, entries: List[DirectoryEntry]) -> int:
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            conn.executemany("""
                INSERT INTO inventory_directory (
                    tenant_id, reference, brand, brand_code, class_code, class_name, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, reference) DO UPDATE SET
                    brand = excluded.brand,
                    brand_code = excluded.brand_code,
                    class_code = excluded.class_code,
                    class_name = excluded.class_name,
                    updated_at = excluded.updated_at
            """, [
                (
                    tenant_id,
                    e.reference,
                    e.brand,
                    e.brand_code,
                    e.class_code,
                    e.class_name,
                    now,
                )
                for e in entries
            ])
            conn.commit()
            return len(entries)
        finally:
            conn.close()

    def list_directory_entries(
        self, tenant_id: str, offset: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[DirectoryEntry], int]:
        """Directory page ordered by reference, plus the tenant's total count."""
        conn = self._connect()
        try:
            total = conn.execute(
                "SELECT COUNT(*) FROM inventory_directory WHERE tenant_id = ?", (tenant_id,)
            ).fetchone()[0]
            rows = conn.execute("""
                SELECT * FROM inventory_directory
                WHERE tenant_id = ?
                ORDER BY reference
                LIMIT ? OFFSET ?
            """, (tenant_id, -1 if limit is None else limit, offset)).fetchall()
            return [_row_to_directory_entry(r) for r in rows], total
        finally:
            conn.close()

    # =========================================================================
    # Brand/class code mappings
    # =========================================================================

    @staticmethod
    def _mapping_table(kind: str) -> str:
        if kind not in MAPPING_KINDS:
            raise ValueError(f"Unknown mapping kind: {kind}")
        return "product_brand" if kind == "brand" else "product_class"

    def get_code_mappings(self, tenant_id: str, kind: str) -> Dict[str, str]:
        table = self._mapping_table(kind)
        rows = self._fetchall(
            f"SELECT code, name FROM {table} WHERE tenant_id = ? ORDER BY code", (tenant_id,)
        )
        return {r["code"]: r["name"] for r in rows}

    def upsert_code_mappings(self, tenant_id: str, kind: str, mapping: Dict[str, str]) -> int:
        table = self._mapping_table(kind)
        rows = [
            (tenant_id, code.strip(), name.strip())
            for code, name in mapping.items()
            if code and code.strip() and name and name.strip()
        ]
        conn = self._connect()
        try:
            conn.executemany(f"""
                INSERT INTO {table} (tenant_id, code, name) VALUES (?, ?, ?)
                ON CONFLICT(tenant_id, code) DO UPDATE SET name = excluded.name
            """, rows)
            conn.commit()
            return len(rows)
        finally:
            conn.close()
