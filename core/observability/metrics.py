"""
Metrics Collection for the Source Sync Engine

Collects and exposes metrics for:
- Sync run lifecycle (started, completed, cancelled, failed)
- Per-stage bucket outcomes (customers, invoices, payments)
- Records synced and unmapped product references
- Run durations (average, p95)

Metrics are kept in-memory; the collector is injected into the runner and the
scheduler, with a process-wide default from SyncMetrics.instance().
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class RunMetrics:
    """Counters for sync runs."""
    started: int = 0
    completed: int = 0
    cancelled: int = 0
    failed: int = 0
    in_progress: int = 0

    # By trigger (manual, scheduled, backfill, workflow)
    by_trigger: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0})
    )


@dataclass
class StageMetrics:
    """Counters per sync stage."""
    buckets_ok: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    buckets_failed: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    records_synced: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unmapped_refs: int = 0
    undetermined_aging: int = 0


@dataclass
class TimingMetrics:
    """Run duration samples."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector
# =============================================================================

class SyncMetrics:
    """
    Thread-safe metrics collector for source sync runs.

    Usage:
        metrics = SyncMetrics.instance()
        metrics.record_run_started("manual")
        metrics.record_bucket("invoices", ok=True, synced=12)
    """

    _instance: Optional["SyncMetrics"] = None
    _instance_lock = Lock()

    def __init__(self):
        self.runs = RunMetrics()
        self.stages = StageMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "SyncMetrics":
        """Get the process-wide default collector."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Runs
    # =========================================================================

    def record_run_started(self, trigger: str):
        with self._lock:
            self.runs.started += 1
            self.runs.in_progress += 1
            self.runs.by_trigger[trigger]["started"] += 1

    def record_run_completed(self, trigger: str, duration_ms: float = None, cancelled: bool = False):
        with self._lock:
            self.runs.in_progress = max(0, self.runs.in_progress - 1)
            if cancelled:
                self.runs.cancelled += 1
            else:
                self.runs.completed += 1
                self.runs.by_trigger[trigger]["completed"] += 1
            if duration_ms:
                self.timings.add_sample(duration_ms, f"run.{trigger}")

    def record_run_failed(self, trigger: str):
        with self._lock:
            self.runs.failed += 1
            self.runs.in_progress = max(0, self.runs.in_progress - 1)
            self.runs.by_trigger[trigger]["failed"] += 1

    # =========================================================================
    # Stages
    # =========================================================================

    def record_bucket(self, stage: str, ok: bool, synced: int = 0):
        """Record the outcome of one stage over one date bucket."""
        with self._lock:
            if ok:
                self.stages.buckets_ok[stage] += 1
                self.stages.records_synced[stage] += synced
            else:
                self.stages.buckets_failed[stage] += 1

    def record_unmapped_refs(self, count: int):
        with self._lock:
            self.stages.unmapped_refs += count

    def record_undetermined_aging(self, count: int):
        with self._lock:
            self.stages.undetermined_aging += count

    def record_stage_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "runs": {
                    "started": self.runs.started,
                    "completed": self.runs.completed,
                    "cancelled": self.runs.cancelled,
                    "failed": self.runs.failed,
                    "in_progress": self.runs.in_progress,
                    "by_trigger": {k: dict(v) for k, v in self.runs.by_trigger.items()},
                },
                "stages": {
                    "buckets_ok": dict(self.stages.buckets_ok),
                    "buckets_failed": dict(self.stages.buckets_failed),
                    "records_synced": dict(self.stages.records_synced),
                    "unmapped_refs": self.stages.unmapped_refs,
                    "undetermined_aging": self.stages.undetermined_aging,
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


def get_metrics() -> SyncMetrics:
    """Get the process-wide metrics collector."""
    return SyncMetrics.instance()
