"""Manual sync orchestration.

A manual "sync now" request for one tenant:

1. Sync one page of the customer listing (identity before facts)
2. Split [date_from, date_to] into buckets: days, or months when the range
   exceeds 31 days
3. Fold over the buckets: invoices then payments per bucket; a failing stage
   becomes a SyncError entry and the fold continues
4. Record progress and honor cancellation between buckets
5. Write the tenant's last-sync status

Runs are single-flight per tenant within this process.
"""

import asyncio
import calendar
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from core.models.entities import Tenant
from core.observability.logging import (
    get_logger,
    log_stage_complete,
    log_stage_error,
    with_correlation,
)
from core.observability.metrics import SyncMetrics
from sync_engine.service import CancelToken, SyncOptions, SyncService
from sync_engine.store import SyncStore

logger = get_logger(__name__)

DEFAULT_RANGE_DAYS = 30
MONTH_BUCKET_THRESHOLD_DAYS = 31


# =============================================================================
# Results
# =============================================================================

@dataclass
class SyncError:
    """One failed stage of one bucket."""
    date: str
    stage: str
    message: str


@dataclass
class BucketResult:
    date_from: str
    date_to: str
    invoices_synced: int = 0
    payments_synced: int = 0
    unmapped_refs_count: int = 0
    errors: List[SyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class SyncReport:
    customers_synced: int = 0
    invoices_synced: int = 0
    payments_synced: int = 0
    unmapped_refs_count: int = 0
    errors: List[SyncError] = field(default_factory=list)
    cancelled: bool = False
    duration_ms: int = 0

    def add_bucket(self, bucket: BucketResult) -> None:
        self.invoices_synced += bucket.invoices_synced
        self.payments_synced += bucket.payments_synced
        self.unmapped_refs_count += bucket.unmapped_refs_count
        self.errors.extend(bucket.errors)

    @property
    def error_summary(self) -> Optional[str]:
        if not self.errors:
            return None
        return "; ".join(error.message for error in self.errors)


@dataclass
class SyncProgress:
    percent: int
    stage: str
    current: int
    total: int


class SyncAlreadyRunningError(RuntimeError):
    """A sync for this tenant is already in progress in this process."""
    pass


class CustomerStageError(RuntimeError):
    """The customer listing failed; the run ends before any bucket."""
    pass


# =============================================================================
# Buckets
# =============================================================================

def bucket_label(date_from: str, date_to: str) -> str:
    return date_from if date_from == date_to else f"{date_from}/{date_to}"


def day_buckets(start: date, end: date) -> List[Tuple[str, str]]:
    buckets = []
    cursor = start
    while cursor <= end:
        day = cursor.isoformat()
        buckets.append((day, day))
        cursor += timedelta(days=1)
    return buckets


def month_buckets(start: date, end: date) -> List[Tuple[str, str]]:
    """Calendar months clipped to [start, end]."""
    buckets = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        month_start = date(year, month, 1)
        month_end = date(year, month, calendar.monthrange(year, month)[1])
        buckets.append((max(month_start, start).isoformat(), min(month_end, end).isoformat()))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return buckets


def plan_buckets(start: date, end: date) -> Tuple[List[Tuple[str, str]], bool]:
    """Buckets for a range, and whether they are month buckets."""
    by_month = (end - start).days + 1 > MONTH_BUCKET_THRESHOLD_DAYS
    return (month_buckets(start, end) if by_month else day_buckets(start, end)), by_month


async def sync_bucket(
    service: SyncService,
    tenant_id: str,
    external_id: str,
    date_from: str,
    date_to: str,
    options: Optional[SyncOptions] = None,
) -> BucketResult:
    """Sync invoices then payments for one bucket.

    A failure in either stage is recorded in the result; the other stage
    still runs.
    """
    label = bucket_label(date_from, date_to)
    result = BucketResult(date_from=date_from, date_to=date_to)

    with with_correlation(bucket=label):
        with with_correlation(stage="invoices"):
            try:
                invoices = await service.sync_invoices(tenant_id, external_id, date_from, date_to, options)
                result.invoices_synced = invoices.synced
                result.unmapped_refs_count = invoices.unmapped_refs_count
            except Exception as e:
                message = str(e) or type(e).__name__
                result.errors.append(SyncError(date=label, stage="invoices", message=message))
                log_stage_error("invoices", message, bucket=label)

        with with_correlation(stage="payments"):
            try:
                payments = await service.sync_payments(tenant_id, external_id, date_from, date_to, options)
                result.payments_synced = payments.synced
            except Exception as e:
                message = str(e) or type(e).__name__
                result.errors.append(SyncError(date=label, stage="payments", message=message))
                log_stage_error("payments", message, bucket=label)

    return result


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip()[:10]).date()
    except ValueError:
        return None


# =============================================================================
# Runner
# =============================================================================

class SyncRunner:
    """Runs manual syncs, one at a time per tenant.

    Example:
        runner = SyncRunner(service, store)
        status = runner.start("tenant-1", date_from="2024-01-01", date_to="2024-01-31")
        ...
        runner.request_cancel("tenant-1")
    """

    def __init__(
        self,
        service: SyncService,
        store: SyncStore,
        metrics: Optional[SyncMetrics] = None,
        today: Optional[Callable[[], date]] = None,
        customer_page_size: int = 1000,
    ):
        self.service = service
        self.store = store
        self.metrics = metrics or SyncMetrics.instance()
        self.customer_page_size = customer_page_size
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self._running: Set[str] = set()
        self._progress: Dict[str, SyncProgress] = {}
        self._cancel_tokens: Dict[str, CancelToken] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # State
    # =========================================================================

    def is_running(self, tenant_id: str) -> bool:
        return tenant_id in self._running

    def progress(self, tenant_id: str) -> Optional[SyncProgress]:
        if not self.is_running(tenant_id):
            return None
        return self._progress.get(tenant_id)

    def request_cancel(self, tenant_id: str) -> bool:
        """Ask a running sync to stop at the next bucket/customer boundary.

        Returns:
            True if a sync was running
        """
        token = self._cancel_tokens.get(tenant_id)
        if token is None or not self.is_running(tenant_id):
            return False
        token.cancel()
        logger.info("Cancellation requested", extra_fields={"tenant_id": tenant_id})
        return True

    def resolve_range(self, date_from: Optional[str], date_to: Optional[str]) -> Tuple[str, str]:
        """Default range is the last 30 days; unparseable bounds become today."""
        today = self._today()
        if date_from is None:
            date_from = (today - timedelta(days=DEFAULT_RANGE_DAYS)).isoformat()
        if date_to is None:
            date_to = today.isoformat()
        start = _parse_day(date_from) or today
        end = _parse_day(date_to) or today
        return start.isoformat(), end.isoformat()

    def _acquire(self, tenant_id: str) -> CancelToken:
        self._running.add(tenant_id)
        token = CancelToken()
        self._cancel_tokens[tenant_id] = token
        self._progress[tenant_id] = SyncProgress(percent=0, stage="customers", current=0, total=1)
        return token

    def _release(self, tenant_id: str) -> None:
        self._running.discard(tenant_id)
        self._progress.pop(tenant_id, None)
        self._cancel_tokens.pop(tenant_id, None)
        self._tasks.pop(tenant_id, None)

    # =========================================================================
    # Entry points
    # =========================================================================

    def start(
        self,
        tenant_id: str,
        external_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        trigger: str = "manual",
    ) -> Dict[str, str]:
        """Launch a background sync on the running event loop.

        Returns:
            {"status": "running"} if one is already in progress, else
            {"status": "started", "from": ..., "to": ...}
        """
        if self.is_running(tenant_id):
            return {"status": "running"}

        date_from, date_to = self.resolve_range(date_from, date_to)
        token = self._acquire(tenant_id)

        async def background() -> SyncReport:
            try:
                return await self._execute(
                    tenant_id, external_id, date_from, date_to, page, page_size, trigger, token
                )
            finally:
                self._release(tenant_id)

        self._tasks[tenant_id] = asyncio.create_task(background())
        logger.info(
            "Sync started",
            extra_fields={"tenant_id": tenant_id, "from": date_from, "to": date_to},
        )
        return {"status": "started", "from": date_from, "to": date_to}

    async def wait(self, tenant_id: str) -> Optional[SyncReport]:
        """Await the background sync of a tenant, if any."""
        task = self._tasks.get(tenant_id)
        if task is None:
            return None
        return await task

    async def run(
        self,
        tenant_id: str,
        external_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        trigger: str = "manual",
    ) -> SyncReport:
        """Run a sync inline and return its report.

        Raises:
            SyncAlreadyRunningError: A sync for the tenant is in progress
        """
        if self.is_running(tenant_id):
            raise SyncAlreadyRunningError(f"Sync already running for tenant {tenant_id}")

        date_from, date_to = self.resolve_range(date_from, date_to)
        token = self._acquire(tenant_id)
        try:
            return await self._execute(
                tenant_id, external_id, date_from, date_to, page, page_size, trigger, token
            )
        finally:
            self._release(tenant_id)

    # =========================================================================
    # Execution
    # =========================================================================

    def _ensure_tenant(self, tenant_id: str, external_id: Optional[str]) -> str:
        tenant = self.store.get_tenant(tenant_id)
        if tenant is None:
            tenant = self.store.upsert_tenant(Tenant(id=tenant_id, external_id=external_id or tenant_id))
        return external_id or tenant.external_id or tenant_id

    async def _execute(
        self,
        tenant_id: str,
        external_id: Optional[str],
        date_from: str,
        date_to: str,
        page: int,
        page_size: Optional[int],
        trigger: str,
        token: CancelToken,
    ) -> SyncReport:
        started = time.monotonic()
        report = SyncReport()
        self.metrics.record_run_started(trigger)

        with with_correlation(tenant_id=tenant_id, run_id=f"{trigger}-{int(time.time())}"):
            external_id = self._ensure_tenant(tenant_id, external_id)
            failed = False
            try:
                await self._fold(tenant_id, external_id, date_from, date_to, page, page_size, token, report)
            except Exception as e:
                # Customer-stage failures (or storage failures) end the run.
                failed = True
                message = str(e) or type(e).__name__
                stage = "customers" if isinstance(e, CustomerStageError) else "sync"
                logger.exception(f"Sync failed: {message}")
                report.errors.append(SyncError(
                    date=bucket_label(date_from, date_to), stage=stage, message=message
                ))

            report.duration_ms = int((time.monotonic() - started) * 1000)
            if failed:
                self.metrics.record_run_failed(trigger)
            else:
                self.metrics.record_run_completed(trigger, report.duration_ms, cancelled=report.cancelled)
            self.metrics.record_unmapped_refs(report.unmapped_refs_count)
            self.store.update_tenant_sync_status(
                tenant_id,
                last_sync_at=datetime.now(timezone.utc),
                duration_ms=report.duration_ms,
                unmapped_refs=report.unmapped_refs_count,
                error=report.error_summary,
            )
            logger.info(
                "Sync finished",
                extra_fields={
                    "customers": report.customers_synced,
                    "invoices": report.invoices_synced,
                    "payments": report.payments_synced,
                    "unmapped_refs": report.unmapped_refs_count,
                    "errors": len(report.errors),
                    "cancelled": report.cancelled,
                    "duration_ms": report.duration_ms,
                },
            )
        return report

    async def _fold(
        self,
        tenant_id: str,
        external_id: str,
        date_from: str,
        date_to: str,
        page: int,
        page_size: Optional[int],
        token: CancelToken,
        report: SyncReport,
    ) -> None:
        with with_correlation(stage="customers"):
            try:
                customers = await self.service.sync_customers(
                    tenant_id, external_id, page, page_size or self.customer_page_size
                )
            except Exception as e:
                raise CustomerStageError(str(e) or type(e).__name__) from e
        report.customers_synced = customers.synced
        if token.cancelled:
            report.cancelled = True
            return

        start, end = _parse_day(date_from), _parse_day(date_to)
        buckets, by_month = plan_buckets(start, end)
        options = SyncOptions(
            full_range=by_month or date_from == date_to,
            brand_code_to_name=self.store.get_code_mappings(tenant_id, "brand"),
            class_code_to_name=self.store.get_code_mappings(tenant_id, "class"),
            cancel_token=token,
        )

        total = len(buckets)
        self._progress[tenant_id] = SyncProgress(percent=5, stage="invoices+payments", current=0, total=total)

        for index, (bucket_from, bucket_to) in enumerate(buckets, start=1):
            if token.cancelled:
                logger.info("Sync cancelled", extra_fields={"completed_buckets": index - 1, "total": total})
                report.cancelled = True
                break

            bucket_started = time.monotonic()
            bucket = await sync_bucket(self.service, tenant_id, external_id, bucket_from, bucket_to, options)
            report.add_bucket(bucket)

            stage_failed = {error.stage for error in bucket.errors}
            self.metrics.record_bucket("invoices", "invoices" not in stage_failed, bucket.invoices_synced)
            self.metrics.record_bucket("payments", "payments" not in stage_failed, bucket.payments_synced)
            self.metrics.record_stage_time("bucket", (time.monotonic() - bucket_started) * 1000)

            label = bucket_label(bucket_from, bucket_to)
            self._progress[tenant_id] = SyncProgress(
                percent=5 + int(95 * index / total + 0.5),
                stage=label,
                current=index,
                total=total,
            )
            if bucket.invoices_synced or bucket.payments_synced:
                log_stage_complete(
                    "bucket",
                    bucket=label,
                    invoices=bucket.invoices_synced,
                    payments=bucket.payments_synced,
                )
