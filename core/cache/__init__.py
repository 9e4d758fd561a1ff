"""Explicitly-owned caches, injected where needed."""

from core.cache.ttl_store import TTLStore

__all__ = ["TTLStore"]
