"""
Metrics Collection for the Reconciliation Engine

Collects and exposes metrics for:
- Reconciliations by overall verdict
- Apply outcomes (applied, skipped, errors)
- Pending approval resolutions (approved, rejected, expired)
- Fail-open degradations of external lookups
- Processing times (average, p95)

Metrics are kept in-memory for the life of the process.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ReconciliationMetrics:
    """Counts of reconciliation plans produced."""
    total: int = 0
    by_verdict: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class ApplyMetrics:
    """Counts of per-item writes against the inventory system."""
    runs: int = 0
    applied: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class ApprovalMetrics:
    """Pending approval lifecycle counts."""
    stored: int = 0
    by_status: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    unknown_id: int = 0


@dataclass
class TimingMetrics:
    """Processing time metrics."""
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
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for the reconciliation engine.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_reconciliation("auto_approve")
        metrics.record_apply(applied=2, skipped=1, errors=0)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.reconciliations = ReconciliationMetrics()
        self.applies = ApplyMetrics()
        self.approvals = ApprovalMetrics()
        self.timings = TimingMetrics()
        self.fail_open: Dict[str, int] = defaultdict(int)
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def record_reconciliation(self, verdict: str, duration_ms: float = None):
        """Record a reconciliation plan and its overall verdict."""
        with self._lock:
            self.reconciliations.total += 1
            self.reconciliations.by_verdict[verdict] += 1
            if duration_ms:
                self.timings.add_sample(duration_ms, "reconcile")

    def record_apply(self, applied: int, skipped: int, errors: int, duration_ms: float = None):
        """Record one apply run."""
        with self._lock:
            self.applies.runs += 1
            self.applies.applied += applied
            self.applies.skipped += skipped
            self.applies.errors += errors
            if duration_ms:
                self.timings.add_sample(duration_ms, "apply")

    def record_approval_stored(self):
        with self._lock:
            self.approvals.stored += 1

    def record_approval_resolved(self, status: str):
        """Record an approval reaching a terminal status."""
        with self._lock:
            self.approvals.by_status[status] += 1

    def record_unknown_approval(self):
        with self._lock:
            self.approvals.unknown_id += 1

    def record_fail_open(self, lookup: str):
        """Record a lookup that failed and was treated as a pass."""
        with self._lock:
            self.fail_open[lookup] += 1

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "reconciliations": {
                    "total": self.reconciliations.total,
                    "by_verdict": dict(self.reconciliations.by_verdict),
                },
                "applies": {
                    "runs": self.applies.runs,
                    "applied": self.applies.applied,
                    "skipped": self.applies.skipped,
                    "errors": self.applies.errors,
                },
                "approvals": {
                    "stored": self.approvals.stored,
                    "by_status": dict(self.approvals.by_status),
                    "unknown_id": self.approvals.unknown_id,
                },
                "fail_open": dict(self.fail_open),
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


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_reconciliation(verdict: str, duration_ms: float = None):
    """Record a reconciliation plan."""
    get_metrics().record_reconciliation(verdict, duration_ms)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
