"""Inventory/Brand Directory.

Reference data mapping canonical product references to brand and class
names. Loaded independently of sales (CSV upload or bulk PUT) and injected
into invoice assembly through `DirectoryMaps`.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Union

from pydantic import BaseModel, Field

from core.models.entities import DirectoryEntry
from core.observability.logging import get_logger
from customer_resolver.normalize import normalize_refer
from inventory_directory.csv_parse import DirectoryRow, parse_directory_csv
from sync_engine.store import SyncStore

logger = get_logger(__name__)

MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 100


@dataclass
class DirectoryMaps:
    """Lookup maps keyed by normalized reference."""
    brand_by_ref: Dict[str, str] = field(default_factory=dict)
    class_code_by_ref: Dict[str, str] = field(default_factory=dict)
    class_name_by_ref: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.brand_by_ref or self.class_code_by_ref or self.class_name_by_ref)


class DirectoryUpsertResult(BaseModel):
    """Outcome of one bulk load."""
    rows_received: int = 0
    count: int = Field(default=0, description="Distinct references upserted")
    duplicate_refs: int = Field(default=0, description="Rows superseded by a later row")


class DirectoryPage(BaseModel):
    items: List[DirectoryEntry]
    total: int
    page: int
    page_size: int


class InventoryDirectory:
    """Tenant-scoped inventory directory backed by a SyncStore.

    Example:
        directory = InventoryDirectory(store)
        directory.load_csv("tenant-1", csv_text)
        maps = directory.get_maps("tenant-1")
    """

    def __init__(self, store: SyncStore):
        self.store = store

    def upsert_bulk(self, tenant_id: str, rows: Iterable[DirectoryRow]) -> DirectoryUpsertResult:
        """Upsert rows; within one batch the last row per reference wins."""
        latest: Dict[str, DirectoryRow] = {}
        received = 0
        duplicates: List[str] = []
        for row in rows:
            received += 1
            reference = normalize_refer(row.reference)
            if not reference:
                continue
            if reference in latest:
                duplicates.append(reference)
            latest[reference] = row

        entries = [
            DirectoryEntry(
                tenant_id=tenant_id,
                reference=reference,
                brand=_clean(row.brand),
                brand_code=_clean(row.brand_code),
                class_code=_clean(row.class_code),
                class_name=_clean(row.class_name),
            )
            for reference, row in latest.items()
        ]
        count = self.store.upsert_directory_entries(tenant_id, entries) if entries else 0

        if duplicates:
            logger.warning(
                "Duplicate references in directory batch; last row kept",
                extra_fields={
                    "tenant_id": tenant_id,
                    "duplicates": len(duplicates),
                    "sample": sorted(set(duplicates))[:10],
                },
            )
        logger.info(
            "Inventory directory upserted",
            extra_fields={"tenant_id": tenant_id, "rows": received, "upserted": count},
        )
        return DirectoryUpsertResult(rows_received=received, count=count, duplicate_refs=len(duplicates))

    def load_csv(self, tenant_id: str, content: Union[str, bytes]) -> DirectoryUpsertResult:
        """Parse a `;`-delimited directory CSV and upsert it."""
        return self.upsert_bulk(tenant_id, parse_directory_csv(content))

    def get_maps(self, tenant_id: str) -> DirectoryMaps:
        entries, _ = self.store.list_directory_entries(tenant_id)
        maps = DirectoryMaps()
        for entry in entries:
            reference = normalize_refer(entry.reference)
            if not reference:
                continue
            if entry.brand and entry.brand.strip():
                maps.brand_by_ref[reference] = entry.brand.strip()
            if entry.class_code and entry.class_code.strip():
                maps.class_code_by_ref[reference] = entry.class_code.strip()
            if entry.class_name and entry.class_name.strip():
                maps.class_name_by_ref[reference] = entry.class_name.strip()
        return maps

    def list(self, tenant_id: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> DirectoryPage:
        page = max(1, page)
        page_size = min(MAX_PAGE_SIZE, max(1, page_size))
        items, total = self.store.list_directory_entries(
            tenant_id, offset=(page - 1) * page_size, limit=page_size
        )
        return DirectoryPage(items=items, total=total, page=page, page_size=page_size)

    def brand_names(self, tenant_id: str) -> List[str]:
        """Distinct brand names in the tenant's directory, sorted."""
        names = set(self.get_maps(tenant_id).brand_by_ref.values())
        return sorted(names, key=str.casefold)


def _clean(value):
    if value is None:
        return None
    value = value.strip()
    return value or None
