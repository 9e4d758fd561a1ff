"""Process wiring for the sync engine.

Builds the store, directory, directory maps cache, Source API client, service
and runner once at startup from SourceSettings. The client is selected here
and nowhere else.
"""

from dataclasses import dataclass
from typing import Optional

from connectors import SourceApiClient, create_source_client
from core.cache.ttl_store import TTLStore
from core.config import SourceSettings
from core.observability.metrics import SyncMetrics
from inventory_directory.directory import InventoryDirectory
from sync_engine.runner import SyncRunner
from sync_engine.service import SyncService, SyncStrategy
from sync_engine.store import SQLiteSyncStore, SyncStore


@dataclass
class SyncComponents:
    settings: SourceSettings
    store: SyncStore
    directory: InventoryDirectory
    source_client: SourceApiClient
    service: SyncService
    runner: SyncRunner
    maps_cache: TTLStore


def strategy_for(settings: SourceSettings) -> SyncStrategy:
    """Per-customer fetching applies to the Fomplus sales feed unless disabled."""
    if settings.is_fomplus and settings.sync_by_customer:
        return SyncStrategy.PER_CUSTOMER
    return SyncStrategy.BULK


def build_components(
    settings: SourceSettings,
    store: Optional[SyncStore] = None,
    source_client: Optional[SourceApiClient] = None,
    metrics: Optional[SyncMetrics] = None,
) -> SyncComponents:
    """Wire the sync engine.

    Args:
        settings: Source settings
        store: Storage (SQLite at settings.db_path when omitted)
        source_client: Source API client (selected from settings when omitted)
        metrics: Metrics collector (process default when omitted)
    """
    store = store or SQLiteSyncStore(settings.db_path)
    directory = InventoryDirectory(store)
    maps_cache = TTLStore(settings.inventory_maps_ttl_seconds)
    if source_client is None:
        source_client = create_source_client(settings, directory=directory, cache=maps_cache)
    service = SyncService(store, source_client, strategy=strategy_for(settings))
    runner = SyncRunner(
        service,
        store,
        metrics=metrics,
        customer_page_size=settings.customer_page_size,
    )
    return SyncComponents(
        settings=settings,
        store=store,
        directory=directory,
        source_client=source_client,
        service=service,
        runner=runner,
        maps_cache=maps_cache,
    )
