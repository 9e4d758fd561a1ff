"""
Manual sync orchestration and scheduler tests.

Covers bucket planning, the fold over buckets (errors recorded, remaining
buckets still run), single-flight per tenant, cancellation, progress,
tenant status, and the scheduler's day tracking, backfill and guard release.
"""

import asyncio
import sqlite3
import tempfile
from datetime import date, datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from connectors import SourceTimeoutError
from connectors.mock_client import MockSourceApiClient
from core.config import SourceSettings
from core.models.entities import Tenant
from core.models.source import SourceCustomer, SourceInvoice, SourcePayment
from core.observability.metrics import SyncMetrics
from sync_engine.runner import (
    SyncAlreadyRunningError,
    SyncRunner,
    bucket_label,
    month_buckets,
    plan_buckets,
)
from sync_engine.scheduler import SourceScheduler
from sync_engine.service import SyncService, SyncStrategy
from sync_engine.store import SQLiteSyncStore


TENANT = "t1"
TODAY = date(2024, 3, 31)


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmp:
        yield SQLiteSyncStore(Path(tmp) / "sync.db")


def invoice(external_id, day, nit="1"):
    return SourceInvoice(external_id=external_id, customer_nit=nit, issued_at=day, total=10)


class HookedClient(MockSourceApiClient):
    """Mock source that runs a hook on every invoice fetch and can fail chosen days."""

    def __init__(self, *args, fail_days=(), fail_customers=False, fail_tenants=(), on_invoices=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_days = set(fail_days)
        self.fail_customers = fail_customers
        self.fail_tenants = set(fail_tenants)
        self.on_invoices = on_invoices

    async def fetch_invoices(self, tenant_external_id, date_from, date_to, options=None):
        if self.on_invoices:
            self.on_invoices(date_from, date_to)
        if date_from in self.fail_days:
            raise SourceTimeoutError("Source API timed out")
        return await super().fetch_invoices(tenant_external_id, date_from, date_to, options)

    async def fetch_customers(self, tenant_external_id, page, page_size, vendor=None):
        if self.fail_customers or tenant_external_id in self.fail_tenants:
            raise SourceTimeoutError("customer listing timed out")
        return await super().fetch_customers(tenant_external_id, page, page_size, vendor)


def make_runner(store, client, strategy=SyncStrategy.BULK):
    service = SyncService(store, client, strategy=strategy)
    return SyncRunner(service, store, metrics=SyncMetrics(), today=lambda: TODAY)


class TestBuckets:
    """Bucket planning."""

    def test_short_range_is_days(self):
        buckets, by_month = plan_buckets(date(2024, 1, 1), date(2024, 1, 31))
        assert not by_month
        assert len(buckets) == 31
        assert buckets[0] == ("2024-01-01", "2024-01-01")

    def test_long_range_is_months(self):
        buckets, by_month = plan_buckets(date(2024, 1, 1), date(2024, 2, 1))
        assert by_month
        assert buckets == [("2024-01-01", "2024-01-31"), ("2024-02-01", "2024-02-01")]

    def test_month_buckets_are_clipped(self):
        assert month_buckets(date(2023, 12, 15), date(2024, 3, 10)) == [
            ("2023-12-15", "2023-12-31"),
            ("2024-01-01", "2024-01-31"),
            ("2024-02-01", "2024-02-29"),
            ("2024-03-01", "2024-03-10"),
        ]

    def test_empty_range(self):
        buckets, _ = plan_buckets(date(2024, 1, 2), date(2024, 1, 1))
        assert buckets == []

    def test_bucket_label(self):
        assert bucket_label("2024-01-01", "2024-01-01") == "2024-01-01"
        assert bucket_label("2024-01-01", "2024-01-31") == "2024-01-01/2024-01-31"


class TestRange:
    """Range defaults."""

    def test_default_is_last_30_days(self, store):
        runner = make_runner(store, MockSourceApiClient())
        assert runner.resolve_range(None, None) == ("2024-03-01", "2024-03-31")

    def test_unparseable_bounds_become_today(self, store):
        runner = make_runner(store, MockSourceApiClient())
        assert runner.resolve_range("nope", "2024-03-05T10:00:00") == ("2024-03-31", "2024-03-05")


class TestSyncRunner:
    """The fold over buckets."""

    def test_run_reports_counts_and_updates_tenant(self, store):
        client = MockSourceApiClient(
            customers=[SourceCustomer(nit="1", name="A")],
            invoices=[invoice("F1", "2024-01-04"), invoice("F2", "2024-01-06")],
            payments=[SourcePayment(customer_nit="1", amount=5, paid_at="2024-01-04")],
        )
        runner = make_runner(store, client)
        report = asyncio.run(runner.run(TENANT, date_from="2024-01-04", date_to="2024-01-06"))

        assert report.customers_synced == 1
        assert report.invoices_synced == 2
        assert report.payments_synced == 1
        assert report.errors == []
        assert not report.cancelled

        tenant = store.get_tenant(TENANT)
        assert tenant.external_id == TENANT
        assert tenant.last_sync_at is not None
        assert tenant.last_sync_at.tzinfo is not None
        assert tenant.last_sync_error is None
        assert tenant.last_sync_unmapped_refs == 0
        assert not runner.is_running(TENANT)

    def test_failed_bucket_does_not_stop_the_fold(self, store):
        client = HookedClient(
            invoices=[invoice("F1", "2024-01-04"), invoice("F3", "2024-01-06")],
            fail_days={"2024-01-05"},
        )
        runner = make_runner(store, client)
        report = asyncio.run(runner.run(TENANT, date_from="2024-01-04", date_to="2024-01-06"))

        assert report.invoices_synced == 2
        assert [(e.date, e.stage, e.message) for e in report.errors] == [
            ("2024-01-05", "invoices", "Source API timed out"),
        ]
        payment_days = [c[1] for c in client.calls if c[0] == "payments"]
        assert payment_days == ["2024-01-04", "2024-01-05", "2024-01-06"]
        assert store.get_tenant(TENANT).last_sync_error == "Source API timed out"

    def test_customer_failure_ends_the_run(self, store):
        client = HookedClient(fail_customers=True)
        runner = make_runner(store, client)
        report = asyncio.run(runner.run(TENANT, date_from="2024-01-04", date_to="2024-01-05"))

        assert [e.stage for e in report.errors] == ["customers"]
        assert not [c for c in client.calls if c[0] == "invoices"]
        assert runner.metrics.get_summary()["runs"]["failed"] == 1
        assert store.get_tenant(TENANT).last_sync_error == "customer listing timed out"

    def test_storage_failure_is_not_a_customer_error(self, store):
        client = MockSourceApiClient(customers=[SourceCustomer(nit="1", name="A")])
        runner = make_runner(store, client)
        with patch.object(store, "get_code_mappings", side_effect=sqlite3.OperationalError("database is locked")):
            report = asyncio.run(runner.run(TENANT, date_from="2024-01-04", date_to="2024-01-05"))

        assert report.customers_synced == 1
        assert [(e.stage, e.message) for e in report.errors] == [("sync", "database is locked")]
        assert runner.metrics.get_summary()["runs"]["failed"] == 1

    def test_month_buckets_use_bulk_fetch(self, store):
        client = MockSourceApiClient(customers=[SourceCustomer(nit="1", name="A")])
        runner = make_runner(store, client, SyncStrategy.PER_CUSTOMER)
        asyncio.run(runner.run(TENANT, date_from="2024-01-01", date_to="2024-02-15"))

        invoice_calls = [c for c in client.calls if c[0] == "invoices"]
        assert [(c[1], c[2]) for c in invoice_calls] == [
            ("2024-01-01", "2024-01-31"),
            ("2024-02-01", "2024-02-15"),
        ]
        assert all(c[3].cedula is None for c in invoice_calls)

    def test_progress_and_cancellation(self, store):
        seen = []
        client = HookedClient()
        runner = make_runner(store, client)

        def on_invoices(date_from, date_to):
            progress = runner.progress(TENANT)
            seen.append(progress.percent)
            if date_from == "2024-01-02":
                assert runner.request_cancel(TENANT)

        client.on_invoices = on_invoices
        report = asyncio.run(runner.run(TENANT, date_from="2024-01-01", date_to="2024-01-03"))

        assert seen == [5, 37]
        assert report.cancelled
        assert runner.progress(TENANT) is None
        assert runner.metrics.get_summary()["runs"]["cancelled"] == 1

    def test_cancel_without_running_sync(self, store):
        assert not make_runner(store, MockSourceApiClient()).request_cancel(TENANT)

    def test_single_flight(self, store):
        runner = make_runner(store, MockSourceApiClient())

        async def go():
            first = runner.start(TENANT, date_from="2024-01-01", date_to="2024-01-01")
            second = runner.start(TENANT)
            with pytest.raises(SyncAlreadyRunningError):
                await runner.run(TENANT)
            report = await runner.wait(TENANT)
            return first, second, report

        first, second, report = asyncio.run(go())
        assert first == {"status": "started", "from": "2024-01-01", "to": "2024-01-01"}
        assert second == {"status": "running"}
        assert report.errors == []
        assert not runner.is_running(TENANT)

    def test_existing_tenant_external_id_is_used(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = MockSourceApiClient()
        with patch.object(client, "fetch_customers", wraps=client.fetch_customers) as fetch:
            asyncio.run(make_runner(store, client).run(TENANT, date_from="2024-01-01", date_to="2024-01-01"))
        assert fetch.call_args.args[0] == "EMP01"


class TestSourceScheduler:
    """Periodic multi-tenant sync."""

    def make_scheduler(self, store, client, strategy=SyncStrategy.BULK, **settings):
        values = {"api_url": "http://source.local", "customer_page_size": 2}
        values.update(settings)
        runner = make_runner(store, client, strategy)
        clock = lambda: datetime(2024, 1, 10, 12, 0)
        return SourceScheduler(runner, store, SourceSettings(**values), clock=clock)

    def seeded_client(self, **kwargs):
        return HookedClient(
            customers=[SourceCustomer(nit=str(i), name=f"C{i}") for i in range(1, 4)],
            invoices=[invoice("F1", "2024-01-10")],
            **kwargs,
        )

    def test_disabled(self, store):
        scheduler = self.make_scheduler(store, MockSourceApiClient(), sync_enabled=False)
        assert asyncio.run(scheduler.tick()) is False

    def test_no_external_source(self, store):
        scheduler = self.make_scheduler(store, MockSourceApiClient(), api_url=None)
        assert asyncio.run(scheduler.tick()) is False

    def test_in_flight_guard(self, store):
        scheduler = self.make_scheduler(store, MockSourceApiClient())
        scheduler.in_flight = True
        assert asyncio.run(scheduler.tick()) is False

    def test_tick_syncs_customers_once_per_day(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = self.seeded_client()
        scheduler = self.make_scheduler(store, client)

        assert asyncio.run(scheduler.tick()) is True
        assert [c[1] for c in client.calls if c[0] == "customers"] == [1, 2, 3]
        assert [(c[1], c[2]) for c in client.calls if c[0] == "invoices"] == [("2024-01-10", "2024-01-10")]
        assert scheduler.last_customer_sync_day == date(2024, 1, 10)
        assert len(store.list_customers(TENANT)) == 3
        assert len(store.list_invoices(TENANT)) == 1
        assert not scheduler.in_flight

        client.calls.clear()
        asyncio.run(scheduler.tick())
        assert not [c for c in client.calls if c[0] == "customers"]
        assert [c[0] for c in client.calls] == ["invoices", "payments"]

    def test_backfill_once_per_day(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = self.seeded_client()
        scheduler = self.make_scheduler(store, client, backfill_days=3)

        asyncio.run(scheduler.tick())
        assert [c[1] for c in client.calls if c[0] == "invoices"] == ["2024-01-08", "2024-01-09", "2024-01-10"]
        assert scheduler.last_backfill_day == date(2024, 1, 10)

        client.calls.clear()
        asyncio.run(scheduler.tick())
        assert [c[1] for c in client.calls if c[0] == "invoices"] == ["2024-01-10"]

    def test_failed_day_is_only_logged(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = self.seeded_client(fail_days={"2024-01-09"})
        scheduler = self.make_scheduler(store, client, backfill_days=2)

        assert asyncio.run(scheduler.tick()) is True
        assert len(store.list_invoices(TENANT)) == 1
        assert scheduler.metrics.get_summary()["stages"]["buckets_failed"] == {"invoices": 1}

    def test_customer_failure_does_not_block_other_tenants(self, store):
        store.upsert_tenant(Tenant(id="a", external_id="BAD"))
        store.upsert_tenant(Tenant(id="b", external_id="GOOD"))
        client = self.seeded_client(fail_tenants={"BAD"})
        scheduler = self.make_scheduler(store, client)

        assert asyncio.run(scheduler.tick()) is True
        assert len(store.list_invoices("a")) == 1
        assert len(store.list_invoices("b")) == 1
        assert len(store.list_customers("b")) == 3
        summary = scheduler.metrics.get_summary()
        assert summary["stages"]["buckets_failed"] == {"customers": 1}
        assert summary["runs"]["completed"] == 1
        assert summary["runs"]["failed"] == 0

    def test_tenant_storage_failure_skips_only_that_tenant(self, store):
        store.upsert_tenant(Tenant(id="a", external_id="EMP01"))
        store.upsert_tenant(Tenant(id="b", external_id="EMP02"))
        client = self.seeded_client()
        scheduler = self.make_scheduler(store, client)
        get_code_mappings = store.get_code_mappings

        def flaky_mappings(tenant_id, kind):
            if tenant_id == "a":
                raise RuntimeError("db locked")
            return get_code_mappings(tenant_id, kind)

        with patch.object(store, "get_code_mappings", side_effect=flaky_mappings):
            assert asyncio.run(scheduler.tick()) is True
        assert store.list_invoices("a") == []
        assert len(store.list_invoices("b")) == 1
        assert scheduler.metrics.get_summary()["runs"]["completed"] == 1

    def test_day_buckets_keep_per_customer_strategy(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = self.seeded_client()
        scheduler = self.make_scheduler(store, client, SyncStrategy.PER_CUSTOMER)

        assert asyncio.run(scheduler.tick()) is True
        invoice_calls = [c for c in client.calls if c[0] == "invoices"]
        assert sorted(c[3].cedula for c in invoice_calls) == ["1", "2", "3"]
        payment_calls = [c for c in client.calls if c[0] == "payments"]
        assert sorted(c[3].cedula for c in payment_calls) == ["1", "2", "3"]
        assert len(store.list_invoices(TENANT)) == 1

    def test_tenant_with_manual_sync_is_skipped(self, store):
        store.upsert_tenant(Tenant(id=TENANT, external_id="EMP01"))
        client = self.seeded_client()
        scheduler = self.make_scheduler(store, client)
        with patch.object(scheduler.runner, "is_running", return_value=True):
            assert asyncio.run(scheduler.tick()) is True
        assert client.calls == []

    def test_guard_released_after_crash(self, store):
        scheduler = self.make_scheduler(store, MockSourceApiClient())
        with patch.object(store, "list_tenants", side_effect=RuntimeError("db down")):
            assert asyncio.run(scheduler.tick()) is True
        assert not scheduler.in_flight
        assert scheduler.metrics.get_summary()["runs"]["failed"] == 1

    def test_run_forever_stops(self, store):
        scheduler = self.make_scheduler(store, MockSourceApiClient(), sync_enabled=False)

        async def go():
            task = asyncio.create_task(scheduler.run_forever(interval_seconds=0.01))
            await asyncio.sleep(0.05)
            scheduler.stop()
            await asyncio.wait_for(task, timeout=1)
            return task.done()

        assert asyncio.run(go())
