"""Core module - provider-neutral configuration, models and observability.

This module contains the canonical source record models, persisted entity
rows, settings, caching and logging/metrics used by every sync component.

ERP-specific logic (Fomplus, generic REST, ...) belongs in /connectors/.
"""

__version__ = "1.0.0"
