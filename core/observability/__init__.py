"""
Observability Module for the Source Sync Engine

Provides:
- Structured logging with correlation IDs (tenant, run, stage, bucket)
- Sync metrics collection (runs, buckets, records, durations)
"""

from core.observability.metrics import (
    SyncMetrics,
    get_metrics,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    get_correlation_context,
)

__all__ = [
    # Metrics
    "SyncMetrics",
    "get_metrics",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "get_correlation_context",
]
