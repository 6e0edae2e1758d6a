"""
Metrics Collection for the Defense Builder

Tracks pipeline runs, latency, degraded phases and failures for monitoring.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class RunMetrics:
    """Metrics for a single pipeline run."""
    run_id: str
    client_id: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    claims_count: int = 0
    statutes_count: int = 0
    retrieval_failures: int = 0
    degraded_phases: list = field(default_factory=list)
    recommendation: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "client_id": self.client_id,
            "latency_ms": round(self.latency_ms, 1),
            "claims": self.claims_count,
            "statutes": self.statutes_count,
            "retrieval_failures": self.retrieval_failures,
            "degraded_phases": list(self.degraded_phases),
            "recommendation": self.recommendation,
            "error": self.error,
        }


@dataclass
class SystemMetrics:
    """Aggregated pipeline metrics."""
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    # Degradation and retrieval
    degraded_by_phase: dict = field(default_factory=lambda: defaultdict(int))
    retrieval_failures: int = 0
    rate_limited_requests: int = 0

    # Outcomes
    recommendations: dict = field(default_factory=lambda: defaultdict(int))
    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        if self.total_runs == 0:
            return 0
        return self.total_latency_ms / self.total_runs

    @property
    def p95_latency_ms(self) -> float:
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def error_rate(self) -> float:
        if self.total_runs == 0:
            return 0
        return self.failed_runs / self.total_runs

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "runs": {
                "total": self.total_runs,
                "successful": self.successful_runs,
                "failed": self.failed_runs,
                "error_rate": f"{self.error_rate:.2%}",
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(self.min_latency_ms, 2) if self.min_latency_ms != float('inf') else 0,
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
            },
            "degraded_by_phase": dict(self.degraded_by_phase),
            "retrieval_failures": self.retrieval_failures,
            "rate_limited_requests": self.rate_limited_requests,
            "recommendations": dict(self.recommendations),
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates pipeline metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_run(client_id) as tracker:
            result = pipeline.run(...)
            tracker.set_result(result)

        metrics = collector.get_metrics_dict()
    """

    def __init__(self, max_history: int = 1000):
        self.metrics = SystemMetrics()
        self._run_history: list[RunMetrics] = []
        self._max_history = max_history
        self._start_time = datetime.now()
        self._lock = threading.Lock()

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._run_history = []
            self._start_time = datetime.now()

    class RunTracker:
        """Context manager for tracking a pipeline run."""

        def __init__(self, collector: 'MetricsCollector', client_id: str):
            self.collector = collector
            self.run = RunMetrics(
                run_id=f"r_{int(time.time() * 1000)}",
                client_id=client_id,
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.run.end_time = time.time()
            self.run.latency_ms = (self.run.end_time - self.run.start_time) * 1000

            if exc_type:
                self.run.error = exc_type.__name__
                self.collector._record_error(exc_type.__name__)

            self.collector._record_run(self.run)
            return False  # Don't suppress exceptions

        def set_result(self, result) -> None:
            """Copy counters from a PipelineResult."""
            self.run.claims_count = len(result.claims)
            self.run.statutes_count = len(result.relevant_laws)
            self.run.retrieval_failures = result.retrieval_failures
            self.run.degraded_phases = list(result.degraded_phases)
            if result.verdict is not None:
                self.run.recommendation = result.verdict.recommendation
            if not result.success:
                self.run.error = result.error_type or "PipelineError"
                self.collector._record_error(self.run.error)

    def track_run(self, client_id: str) -> RunTracker:
        return self.RunTracker(self, client_id)

    def _record_run(self, run: RunMetrics):
        with self._lock:
            m = self.metrics
            m.total_runs += 1
            if run.error:
                m.failed_runs += 1
            else:
                m.successful_runs += 1

            m.total_latency_ms += run.latency_ms
            m.min_latency_ms = min(m.min_latency_ms, run.latency_ms)
            m.max_latency_ms = max(m.max_latency_ms, run.latency_ms)
            m.latencies.append(run.latency_ms)
            if len(m.latencies) > self._max_history:
                m.latencies = m.latencies[-self._max_history:]

            m.retrieval_failures += run.retrieval_failures
            for phase in run.degraded_phases:
                m.degraded_by_phase[phase] += 1
            if run.recommendation and not run.error:
                m.recommendations[run.recommendation] += 1

            self._run_history.append(run)
            if len(self._run_history) > self._max_history:
                self._run_history = self._run_history[-self._max_history:]

    def _record_error(self, error_type: str):
        with self._lock:
            self.metrics.errors_by_type[error_type] += 1

    def record_rate_limited(self):
        with self._lock:
            self.metrics.rate_limited_requests += 1

    def get_metrics_dict(self) -> dict:
        with self._lock:
            return self.metrics.to_dict()

    def get_recent_runs(self, limit: int = 10) -> list[RunMetrics]:
        if limit <= 0:
            return []
        with self._lock:
            return self._run_history[-limit:]

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time


# Global metrics collector instance
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
