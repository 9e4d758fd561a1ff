"""Sync Engine - Reconciles ERP data into the BI store.

Modules:
- store:     storage contract (SyncStore) and its SQLite implementation
- service:   reconciliation of customers, invoices and payments
- runner:    manual sync orchestration over date buckets
- scheduler: periodic multi-tenant sync
- bootstrap: startup wiring from SourceSettings

Import submodules directly (e.g. `from sync_engine.service import SyncService`);
this package keeps no eager imports so the storage layer can be used by
lower-level packages without cycles.
"""
