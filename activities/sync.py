"""Source sync activities.

Temporal activities wrapping the sync engine so a long manual sync (e.g. a
400-day backfill) survives worker restarts. Each activity builds its
components from SourceSettings and closes the Source API client when done.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from temporalio import activity

from core.config import SourceSettings
from core.observability.logging import with_correlation
from sync_engine.bootstrap import SyncComponents, build_components
from sync_engine.runner import sync_bucket
from sync_engine.service import SyncOptions


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class SyncCustomerPagesInput:
    """Input for sync_customer_pages activity.

    Attributes:
        tenant_id: Local tenant id
        external_id: Tenant id in the ERP
        page_size: Customers per page
        max_pages: Stop after this many pages (0 = until an empty page)
    """
    tenant_id: str
    external_id: str
    page_size: int = 1000
    max_pages: int = 0


@dataclass
class SyncCustomerPagesOutput:
    customers_synced: int
    pages: int


@dataclass
class SyncSourceBucketInput:
    """Input for sync_source_bucket activity.

    Attributes:
        tenant_id: Local tenant id
        external_id: Tenant id in the ERP
        date_from: Bucket start (ISO date)
        date_to: Bucket end (ISO date)
        full_range: Force one bulk fetch for the bucket
    """
    tenant_id: str
    external_id: str
    date_from: str
    date_to: str
    full_range: bool = False


@dataclass
class SyncSourceBucketOutput:
    """Output from sync_source_bucket activity.

    Attributes:
        errors: [{"date", "stage", "message"}] for stages that failed
    """
    date_from: str
    date_to: str
    invoices_synced: int = 0
    payments_synced: int = 0
    unmapped_refs_count: int = 0
    errors: List[dict] = field(default_factory=list)


@dataclass
class RecordSyncStatusInput:
    tenant_id: str
    duration_ms: int
    unmapped_refs: int
    error: Optional[str] = None


def _components() -> SyncComponents:
    return build_components(SourceSettings.from_env())


# =============================================================================
# Activities
# =============================================================================

@activity.defn
async def sync_customer_pages(input: SyncCustomerPagesInput) -> SyncCustomerPagesOutput:
    """Sync the customer listing page by page until an empty page."""
    components = _components()
    started = time.monotonic()
    total = 0
    page = 0
    try:
        with with_correlation(tenant_id=input.tenant_id, stage="customers", activity_name="sync_customer_pages"):
            while input.max_pages <= 0 or page < input.max_pages:
                page += 1
                result = await components.service.sync_customers(
                    input.tenant_id, input.external_id, page, input.page_size
                )
                activity.heartbeat(f"page {page}")
                if result.synced == 0:
                    break
                total += result.synced
    finally:
        await components.source_client.close()

    activity.logger.info(
        f"Customers synced for {input.tenant_id}: {total} in {page} page(s) "
        f"({int((time.monotonic() - started) * 1000)}ms)"
    )
    return SyncCustomerPagesOutput(customers_synced=total, pages=page)


@activity.defn
async def sync_source_bucket(input: SyncSourceBucketInput) -> SyncSourceBucketOutput:
    """Sync invoices then payments for one date bucket.

    Stage failures are returned in `errors`; the activity itself only fails
    on infrastructure errors (e.g. the database is unavailable).
    """
    components = _components()
    try:
        options = SyncOptions(
            full_range=input.full_range,
            brand_code_to_name=components.store.get_code_mappings(input.tenant_id, "brand"),
            class_code_to_name=components.store.get_code_mappings(input.tenant_id, "class"),
        )
        with with_correlation(tenant_id=input.tenant_id, activity_name="sync_source_bucket"):
            bucket = await sync_bucket(
                components.service,
                input.tenant_id,
                input.external_id,
                input.date_from,
                input.date_to,
                options,
            )
    finally:
        await components.source_client.close()

    return SyncSourceBucketOutput(
        date_from=bucket.date_from,
        date_to=bucket.date_to,
        invoices_synced=bucket.invoices_synced,
        payments_synced=bucket.payments_synced,
        unmapped_refs_count=bucket.unmapped_refs_count,
        errors=[{"date": e.date, "stage": e.stage, "message": e.message} for e in bucket.errors],
    )


@activity.defn
async def record_sync_status(input: RecordSyncStatusInput) -> None:
    """Write the tenant's last-sync status."""
    components = _components()
    try:
        components.store.update_tenant_sync_status(
            input.tenant_id,
            last_sync_at=datetime.now(timezone.utc),
            duration_ms=input.duration_ms,
            unmapped_refs=input.unmapped_refs,
            error=input.error,
        )
    finally:
        await components.source_client.close()
