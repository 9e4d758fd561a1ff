"""Activity definitions module."""

from activities.sync import (
    sync_customer_pages,
    sync_source_bucket,
    record_sync_status,
    SyncCustomerPagesInput,
    SyncCustomerPagesOutput,
    SyncSourceBucketInput,
    SyncSourceBucketOutput,
    RecordSyncStatusInput,
)

__all__ = [
    "sync_customer_pages",
    "sync_source_bucket",
    "record_sync_status",
    "SyncCustomerPagesInput",
    "SyncCustomerPagesOutput",
    "SyncSourceBucketInput",
    "SyncSourceBucketOutput",
    "RecordSyncStatusInput",
]
