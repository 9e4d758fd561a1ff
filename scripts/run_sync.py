#!/usr/bin/env python
"""Run a manual sync for one tenant.

By default the sync runs inline in this process; with --temporal it is
started as a SourceSyncWorkflow and the script waits for its result.

Usage:
    python scripts/run_sync.py <tenant_id>
    python scripts/run_sync.py tenant-1 --from 2024-01-01 --to 2024-03-31
    python scripts/run_sync.py tenant-1 --external-id 901234567 --temporal
"""

import argparse
import asyncio
import json
from dataclasses import asdict

from core.config import SourceSettings
from core.observability.logging import configure_logging, get_logger
from sync_engine.bootstrap import build_components

logger = get_logger(__name__)


async def run_inline(args: argparse.Namespace) -> dict:
    components = build_components(SourceSettings.from_env())
    try:
        report = await components.runner.run(
            args.tenant_id,
            external_id=args.external_id,
            date_from=args.date_from,
            date_to=args.date_to,
            page_size=args.page_size,
        )
    finally:
        await components.source_client.close()
    return asdict(report)


async def run_temporal(args: argparse.Namespace) -> dict:
    from temporal_client import get_temporal_client, start_source_sync
    from workflows.source_sync_workflow import SourceSyncInput

    settings = SourceSettings.from_env()
    components = build_components(settings)
    try:
        date_from, date_to = components.runner.resolve_range(args.date_from, args.date_to)
    finally:
        await components.source_client.close()

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")
    handle = await start_source_sync(
        client,
        SourceSyncInput(
            tenant_id=args.tenant_id,
            external_id=args.external_id or args.tenant_id,
            date_from=date_from,
            date_to=date_to,
            customer_page_size=args.page_size or settings.customer_page_size,
        ),
    )
    logger.info(f"Workflow started: {handle.id}")
    return await handle.result()


def main():
    parser = argparse.ArgumentParser(description="Run a manual source sync")
    parser.add_argument("tenant_id", help="Local tenant id")
    parser.add_argument("--external-id", default=None, help="Tenant id in the ERP (defaults to tenant_id)")
    parser.add_argument("--from", dest="date_from", default=None, help="Range start YYYY-MM-DD (default: 30 days ago)")
    parser.add_argument("--to", dest="date_to", default=None, help="Range end YYYY-MM-DD (default: today)")
    parser.add_argument("--page-size", type=int, default=None, help="Customers per listing page")
    parser.add_argument("--temporal", action="store_true", help="Run as a Temporal workflow")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    args = parser.parse_args()

    configure_logging(json_format=args.json_logs)
    runner = run_temporal if args.temporal else run_inline
    result = asyncio.run(runner(args))
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
