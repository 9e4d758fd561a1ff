"""Source Sync Workflow.

Durable version of a manual "sync now": customers first, then one activity
per date bucket. A failed bucket is recorded and the fold continues.
Supports a `cancel` signal (checked between buckets) and a `progress` query.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from activities.sync import (
        RecordSyncStatusInput,
        SyncCustomerPagesInput,
        SyncSourceBucketInput,
        record_sync_status,
        sync_customer_pages,
        sync_source_bucket,
    )
    from sync_engine.runner import bucket_label, plan_buckets


TASK_QUEUE = "source-sync"


@dataclass
class SourceSyncInput:
    """Input for Source Sync Workflow.

    Attributes:
        tenant_id: Local tenant id
        external_id: Tenant id in the ERP
        date_from: Range start (ISO date, already resolved by the caller)
        date_to: Range end (ISO date)
        customer_page_size: Customers per listing page
        customer_max_pages: Listing pages to sync (0 = all)
    """
    tenant_id: str
    external_id: str
    date_from: str
    date_to: str
    customer_page_size: int = 1000
    customer_max_pages: int = 1


@workflow.defn
class SourceSyncWorkflow:
    """Workflow for one tenant's manual sync."""

    def __init__(self):
        self._cancel_requested = False
        self._progress = {"percent": 0, "stage": "customers", "current": 0, "total": 1}

    @workflow.signal
    def cancel(self) -> None:
        self._cancel_requested = True

    @workflow.query
    def progress(self) -> dict:
        return dict(self._progress)

    @workflow.run
    async def run(self, input: SourceSyncInput) -> dict:
        """Execute the sync.

        Returns:
            dict with customers/invoices/payments synced, unmapped_refs_count,
            errors [{date, stage, message}], cancelled and duration_ms
        """
        started = workflow.now()
        workflow.logger.info(
            f"Starting source sync for {input.tenant_id}: {input.date_from} -> {input.date_to}"
        )

        activity_options = {
            "start_to_close_timeout": timedelta(minutes=30),
            "heartbeat_timeout": timedelta(minutes=10),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=5),
                maximum_interval=timedelta(minutes=2),
                backoff_coefficient=2.0,
            ),
        }

        report = {
            "customers_synced": 0,
            "invoices_synced": 0,
            "payments_synced": 0,
            "unmapped_refs_count": 0,
            "errors": [],
            "cancelled": False,
            "duration_ms": 0,
        }
        errors: List[dict] = report["errors"]

        try:
            customers = await workflow.execute_activity(
                sync_customer_pages,
                SyncCustomerPagesInput(
                    tenant_id=input.tenant_id,
                    external_id=input.external_id,
                    page_size=input.customer_page_size,
                    max_pages=input.customer_max_pages,
                ),
                **activity_options,
            )
            report["customers_synced"] = customers.customers_synced
        except ActivityError as e:
            message = str(e.cause or e)
            workflow.logger.error(f"Customer sync failed: {message}")
            errors.append({
                "date": bucket_label(input.date_from, input.date_to),
                "stage": "customers",
                "message": message,
            })
            return await self._finish(input, started, report)

        start = date.fromisoformat(input.date_from)
        end = date.fromisoformat(input.date_to)
        buckets, by_month = plan_buckets(start, end)
        full_range = by_month or input.date_from == input.date_to
        total = len(buckets)
        self._progress = {"percent": 5, "stage": "invoices+payments", "current": 0, "total": total}

        for index, (bucket_from, bucket_to) in enumerate(buckets, start=1):
            if self._cancel_requested:
                workflow.logger.info(f"Sync cancelled after {index - 1}/{total} buckets")
                report["cancelled"] = True
                break

            label = bucket_label(bucket_from, bucket_to)
            try:
                bucket = await workflow.execute_activity(
                    sync_source_bucket,
                    SyncSourceBucketInput(
                        tenant_id=input.tenant_id,
                        external_id=input.external_id,
                        date_from=bucket_from,
                        date_to=bucket_to,
                        full_range=full_range,
                    ),
                    **activity_options,
                )
                report["invoices_synced"] += bucket.invoices_synced
                report["payments_synced"] += bucket.payments_synced
                report["unmapped_refs_count"] += bucket.unmapped_refs_count
                errors.extend(bucket.errors)
            except ActivityError as e:
                message = str(e.cause or e)
                workflow.logger.warning(f"Bucket {label} failed: {message}")
                errors.append({"date": label, "stage": "bucket", "message": message})

            self._progress = {
                "percent": 5 + int(95 * index / total + 0.5),
                "stage": label,
                "current": index,
                "total": total,
            }

        return await self._finish(input, started, report)

    async def _finish(self, input: SourceSyncInput, started, report: dict) -> dict:
        report["duration_ms"] = int((workflow.now() - started).total_seconds() * 1000)
        error = "; ".join(e["message"] for e in report["errors"]) or None
        await workflow.execute_activity(
            record_sync_status,
            RecordSyncStatusInput(
                tenant_id=input.tenant_id,
                duration_ms=report["duration_ms"],
                unmapped_refs=report["unmapped_refs_count"],
                error=error,
            ),
            start_to_close_timeout=timedelta(seconds=30),
        )
        workflow.logger.info(
            f"Source sync finished for {input.tenant_id}: "
            f"invoices={report['invoices_synced']} payments={report['payments_synced']} "
            f"errors={len(report['errors'])} cancelled={report['cancelled']}"
        )
        return report
