"""Source sync workflow and activity tests (no Temporal server).

The workflow is executed directly with the Temporal workflow APIs patched;
activities run inside temporalio's ActivityEnvironment against a temp
SQLite store and a seeded mock source.
"""

import asyncio
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from temporalio.testing import ActivityEnvironment

from activities.sync import (
    RecordSyncStatusInput,
    SyncCustomerPagesInput,
    SyncCustomerPagesOutput,
    SyncSourceBucketInput,
    SyncSourceBucketOutput,
    record_sync_status,
    sync_customer_pages,
    sync_source_bucket,
)
from connectors.mock_client import MockSourceApiClient
from core.config import SourceSettings
from core.models.entities import Tenant
from core.models.source import SourceCustomer, SourceInvoice
from core.observability.metrics import SyncMetrics
from sync_engine.bootstrap import build_components
from temporal_client import source_sync_workflow_id
from workflows.source_sync_workflow import SourceSyncInput, SourceSyncWorkflow


T0 = datetime(2024, 1, 10, 12, 0, 0)


class FakeActivities:
    """Stands in for workflow.execute_activity."""

    def __init__(self, workflow, failing_bucket=None, cancel_on=None):
        self.workflow = workflow
        self.failing_bucket = failing_bucket
        self.cancel_on = cancel_on
        self.buckets = []
        self.customer_inputs = []
        self.status = None

    async def execute(self, activity_fn, arg, **options):
        if activity_fn is sync_customer_pages:
            self.customer_inputs.append(arg)
            return SyncCustomerPagesOutput(customers_synced=3, pages=1)
        if activity_fn is sync_source_bucket:
            self.buckets.append(arg)
            if arg.date_from == self.cancel_on:
                self.workflow.cancel()
            errors = []
            if arg.date_from == self.failing_bucket:
                errors = [{"date": arg.date_from, "stage": "payments", "message": "timeout"}]
            return SyncSourceBucketOutput(
                date_from=arg.date_from,
                date_to=arg.date_to,
                invoices_synced=2,
                payments_synced=1,
                unmapped_refs_count=1,
                errors=errors,
            )
        if activity_fn is record_sync_status:
            self.status = arg
            return None
        raise AssertionError(f"unexpected activity {activity_fn}")


def run_workflow(input, **fake_options):
    wf = SourceSyncWorkflow()
    fake = FakeActivities(wf, **fake_options)
    with patch("temporalio.workflow.execute_activity", new=fake.execute), \
            patch("temporalio.workflow.now", side_effect=[T0, T0 + timedelta(milliseconds=1500)]), \
            patch("temporalio.workflow.logger", MagicMock()):
        report = asyncio.run(wf.run(input))
    return wf, fake, report


class TestSourceSyncWorkflow:
    """Workflow fold over buckets."""

    def test_day_buckets(self):
        wf, fake, report = run_workflow(
            SourceSyncInput(tenant_id="t1", external_id="EMP", date_from="2024-01-01", date_to="2024-01-03"),
            failing_bucket="2024-01-02",
        )

        assert [(b.date_from, b.date_to) for b in fake.buckets] == [
            ("2024-01-01", "2024-01-01"),
            ("2024-01-02", "2024-01-02"),
            ("2024-01-03", "2024-01-03"),
        ]
        assert not any(b.full_range for b in fake.buckets)
        assert fake.customer_inputs[0].max_pages == 1
        assert report["customers_synced"] == 3
        assert report["invoices_synced"] == 6
        assert report["payments_synced"] == 3
        assert report["unmapped_refs_count"] == 3
        assert report["errors"] == [{"date": "2024-01-02", "stage": "payments", "message": "timeout"}]
        assert report["cancelled"] is False
        assert report["duration_ms"] == 1500

        assert fake.status.tenant_id == "t1"
        assert fake.status.error == "timeout"
        assert fake.status.unmapped_refs == 3
        assert wf.progress() == {"percent": 100, "stage": "2024-01-03", "current": 3, "total": 3}

    def test_month_buckets_use_full_range(self):
        _, fake, _ = run_workflow(
            SourceSyncInput(tenant_id="t1", external_id="EMP", date_from="2024-01-15", date_to="2024-03-10"),
        )
        assert [(b.date_from, b.date_to) for b in fake.buckets] == [
            ("2024-01-15", "2024-01-31"),
            ("2024-02-01", "2024-02-29"),
            ("2024-03-01", "2024-03-10"),
        ]
        assert all(b.full_range for b in fake.buckets)

    def test_cancel_signal(self):
        wf, fake, report = run_workflow(
            SourceSyncInput(tenant_id="t1", external_id="EMP", date_from="2024-01-01", date_to="2024-01-03"),
            cancel_on="2024-01-01",
        )
        assert len(fake.buckets) == 1
        assert report["cancelled"] is True
        assert fake.status.error is None
        assert wf.progress()["current"] == 1

    def test_initial_progress(self):
        assert SourceSyncWorkflow().progress() == {"percent": 0, "stage": "customers", "current": 0, "total": 1}

    def test_workflow_id_per_tenant(self):
        assert source_sync_workflow_id("t1") == "source-sync-t1"


@pytest.fixture
def components():
    with tempfile.TemporaryDirectory() as tmp:
        source = MockSourceApiClient(
            customers=[SourceCustomer(nit=str(i), name=f"C{i}") for i in range(1, 4)],
            invoices=[SourceInvoice(external_id="F1", customer_nit="1", issued_at="2024-01-05", total=10)],
        )
        yield build_components(
            SourceSettings(db_path=Path(tmp) / "sync.db"),
            source_client=source,
            metrics=SyncMetrics(),
        )


class TestSyncActivities:
    """Activities over the real sync engine."""

    def test_customer_pages_until_empty(self, components):
        with patch("activities.sync._components", return_value=components):
            output = asyncio.run(ActivityEnvironment().run(
                sync_customer_pages, SyncCustomerPagesInput(tenant_id="t1", external_id="EMP", page_size=2)
            ))
        assert output == SyncCustomerPagesOutput(customers_synced=3, pages=3)
        assert len(components.store.list_customers("t1")) == 3

    def test_customer_page_limit(self, components):
        with patch("activities.sync._components", return_value=components):
            output = asyncio.run(ActivityEnvironment().run(
                sync_customer_pages,
                SyncCustomerPagesInput(tenant_id="t1", external_id="EMP", page_size=2, max_pages=1),
            ))
        assert output == SyncCustomerPagesOutput(customers_synced=2, pages=1)

    def test_bucket(self, components):
        with patch("activities.sync._components", return_value=components):
            output = asyncio.run(ActivityEnvironment().run(
                sync_source_bucket,
                SyncSourceBucketInput(tenant_id="t1", external_id="EMP", date_from="2024-01-05", date_to="2024-01-05"),
            ))
        assert output.invoices_synced == 1
        assert output.errors == []
        assert len(components.store.list_invoices("t1")) == 1

    def test_record_status(self, components):
        components.store.upsert_tenant(Tenant(id="t1", external_id="EMP"))
        with patch("activities.sync._components", return_value=components):
            asyncio.run(ActivityEnvironment().run(
                record_sync_status,
                RecordSyncStatusInput(tenant_id="t1", duration_ms=42, unmapped_refs=2, error="boom"),
            ))
        tenant = components.store.get_tenant("t1")
        assert tenant.last_sync_duration_ms == 42
        assert tenant.last_sync_unmapped_refs == 2
        assert tenant.last_sync_error == "boom"
        assert tenant.last_sync_at is not None
