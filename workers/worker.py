"""Worker for the source sync pipeline.

Connects to Temporal, listens on the source-sync task queue and executes
SourceSyncWorkflow together with its activities.

Run with --queue <name> to poll a different queue.
"""

import argparse
import asyncio
import logging

from temporalio.worker import Worker

from temporal_client import get_temporal_client
from workflows.source_sync_workflow import SourceSyncWorkflow, TASK_QUEUE
from activities.sync import record_sync_status, sync_customer_pages, sync_source_bucket


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Registrations
# =============================================================================

WORKFLOWS = [SourceSyncWorkflow]

ACTIVITIES = [
    sync_customer_pages,
    sync_source_bucket,
    record_sync_status,
]


async def run_worker(queue: str = TASK_QUEUE):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll

    Raises:
        Exception: If connection to Temporal fails
    """
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    worker = Worker(
        client,
        task_queue=queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
    )
    logger.info(f"Worker created for queue '{queue}':")
    logger.info(f"  - Workflows: {len(WORKFLOWS)}")
    logger.info(f"  - Activities: {len(ACTIVITIES)}")

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Source Sync Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE,
        help=f"Task queue to poll (default: {TASK_QUEUE})"
    )

    args = parser.parse_args()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
