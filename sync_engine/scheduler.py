"""Sync Scheduler.

Periodic trigger for all tenants. Each eligible tick:

1. Sync the customer listing (paged until an empty page), once per day
2. Either backfill the last `backfill_days` days day-by-day (once per day),
   or sync just today, for invoices and payments

A failed day is only logged; it is retried on a later tick while it still
falls inside the backfill window. A failed customer listing is logged and the
tenant still syncs its invoices and payments; any other tenant failure skips
only that tenant. The in-flight guard is process-local.

Usage:
    python -m sync_engine.scheduler
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

from core.config import SourceSettings
from core.models.entities import Tenant
from core.observability.logging import configure_logging, get_logger, log_stage_error, with_correlation
from core.observability.metrics import SyncMetrics
from sync_engine.bootstrap import build_components
from sync_engine.runner import BucketResult, SyncRunner, sync_bucket
from sync_engine.service import SyncOptions
from sync_engine.store import SyncStore

logger = get_logger(__name__)


class SourceScheduler:
    """Periodic multi-tenant sync with a single-flight guard.

    Attributes:
        in_flight: True while a tick is running
        last_customer_sync_day: Day the customer listing was last synced
        last_backfill_day: Day the backfill window was last processed
    """

    def __init__(
        self,
        runner: SyncRunner,
        store: SyncStore,
        settings: SourceSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.runner = runner
        self.store = store
        self.settings = settings
        self.metrics: SyncMetrics = runner.metrics
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.in_flight = False
        self.last_customer_sync_day: Optional[date] = None
        self.last_backfill_day: Optional[date] = None
        self._stop = asyncio.Event()

    @property
    def service(self):
        return self.runner.service

    def _days_to_sync(self, today: date) -> List[date]:
        backfill_days = self.settings.backfill_days
        if backfill_days > 0 and self.last_backfill_day != today:
            start = today - timedelta(days=backfill_days - 1)
            return [start + timedelta(days=i) for i in range(backfill_days)]
        return [today]

    async def tick(self) -> bool:
        """Run one scheduling pass over all tenants.

        Returns:
            False when the pass was skipped (disabled, no source, or in flight)
        """
        if not self.settings.sync_enabled or not self.settings.has_external_source:
            return False
        if self.in_flight:
            logger.info("Previous tick still running; skipping")
            return False

        self.in_flight = True
        self.metrics.record_run_started("scheduled")
        try:
            today = self._clock().date()
            tenants = self.store.list_tenants()
            sync_customers = self.last_customer_sync_day != today
            days = self._days_to_sync(today)
            backfill = len(days) > 1

            for tenant in tenants:
                if self.runner.is_running(tenant.id):
                    logger.info("Manual sync in progress; tenant skipped", extra_fields={"tenant_id": tenant.id})
                    continue
                try:
                    await self._sync_tenant(tenant, sync_customers, days)
                except Exception:
                    with with_correlation(tenant_id=tenant.id):
                        logger.exception("Scheduled sync failed for tenant")

            if sync_customers:
                self.last_customer_sync_day = today
            if backfill:
                self.last_backfill_day = today
            self.metrics.record_run_completed("scheduled")
            logger.info(
                "Scheduled sync completed",
                extra_fields={"tenants": len(tenants), "days": len(days), "customers": sync_customers},
            )
            return True
        except Exception:
            self.metrics.record_run_failed("scheduled")
            logger.exception("Scheduled sync failed")
            return True
        finally:
            self.in_flight = False

    async def _sync_tenant(self, tenant: Tenant, sync_customers: bool, days: List[date]) -> None:
        external_id = tenant.external_id or tenant.id
        with with_correlation(tenant_id=tenant.id):
            if sync_customers:
                with with_correlation(stage="customers"):
                    try:
                        await self._sync_all_customer_pages(tenant.id, external_id)
                    except Exception as e:
                        self.metrics.record_bucket("customers", False)
                        log_stage_error("customers", str(e) or type(e).__name__)

            # Day buckets keep the configured strategy (bulk or per customer).
            options = SyncOptions(
                full_range=False,
                brand_code_to_name=self.store.get_code_mappings(tenant.id, "brand"),
                class_code_to_name=self.store.get_code_mappings(tenant.id, "class"),
            )
            unmapped = 0
            for day in days:
                bucket: BucketResult = await sync_bucket(
                    self.service, tenant.id, external_id, day.isoformat(), day.isoformat(), options
                )
                unmapped += bucket.unmapped_refs_count
                failed = {error.stage for error in bucket.errors}
                self.metrics.record_bucket("invoices", "invoices" not in failed, bucket.invoices_synced)
                self.metrics.record_bucket("payments", "payments" not in failed, bucket.payments_synced)
            self.metrics.record_unmapped_refs(unmapped)

    async def _sync_all_customer_pages(self, tenant_id: str, external_id: str) -> int:
        page = 1
        total = 0
        while True:
            result = await self.service.sync_customers(
                tenant_id, external_id, page, self.settings.customer_page_size
            )
            if result.synced == 0:
                break
            total += result.synced
            page += 1
        self.metrics.record_bucket("customers", True, total)
        return total

    async def run_forever(self, interval_seconds: Optional[float] = None) -> None:
        """Tick every interval until stop() is called."""
        interval = interval_seconds or self.settings.scheduler_interval_minutes * 60
        logger.info("Scheduler started", extra_fields={"interval_s": interval})
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()


async def main():
    """Run the scheduler as a standalone process."""
    configure_logging()
    settings = SourceSettings.from_env()
    components = build_components(settings)
    scheduler = SourceScheduler(components.runner, components.store, settings)
    try:
        await scheduler.run_forever()
    finally:
        await components.source_client.close()


if __name__ == "__main__":
    asyncio.run(main())
