"""
Tests for execution/defense_builder/metrics.py

Covers: RunMetrics, SystemMetrics (aggregation properties),
        MetricsCollector run tracking, degraded-phase and rate-limit
        counters, and the get_metrics_collector factory.
"""

import time
from types import SimpleNamespace

import pytest


def _result(success=True, recommendation="fight", degraded=(), retrieval_failures=0, error_type=None):
    verdict = SimpleNamespace(recommendation=recommendation) if success else None
    return SimpleNamespace(
        success=success,
        claims=[1, 2],
        relevant_laws=[1, 2, 3],
        verdict=verdict,
        degraded_phases=list(degraded),
        retrieval_failures=retrieval_failures,
        error_type=error_type,
    )


class TestSystemMetrics:
    """Tests for SystemMetrics computed properties."""

    def test_avg_latency_zero_runs(self):
        from execution.defense_builder.metrics import SystemMetrics
        assert SystemMetrics().avg_latency_ms == 0

    def test_avg_latency(self):
        from execution.defense_builder.metrics import SystemMetrics
        m = SystemMetrics(total_runs=4, total_latency_ms=400.0)
        assert m.avg_latency_ms == 100.0

    def test_p95_latency(self):
        from execution.defense_builder.metrics import SystemMetrics
        m = SystemMetrics(latencies=list(range(1, 101)))
        assert m.p95_latency_ms >= 95

    def test_error_rate(self):
        from execution.defense_builder.metrics import SystemMetrics
        m = SystemMetrics(total_runs=10, failed_runs=2)
        assert abs(m.error_rate - 0.2) < 1e-6

    def test_to_dict_structure(self):
        from execution.defense_builder.metrics import SystemMetrics
        d = SystemMetrics().to_dict()
        assert set(d) == {
            "runs", "latency_ms", "degraded_by_phase", "retrieval_failures",
            "rate_limited_requests", "recommendations", "errors",
        }
        assert d["latency_ms"]["min"] == 0


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_successful_run(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector()
        with collector.track_run("ip:1") as tracker:
            time.sleep(0.01)
            tracker.set_result(_result(degraded=["gap_analysis"], retrieval_failures=1))

        data = collector.get_metrics_dict()
        assert data["runs"] == {"total": 1, "successful": 1, "failed": 0, "error_rate": "0.00%"}
        assert data["latency_ms"]["avg"] >= 10
        assert data["degraded_by_phase"] == {"gap_analysis": 1}
        assert data["retrieval_failures"] == 1
        assert data["recommendations"] == {"fight": 1}

    def test_failed_result(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector()
        with collector.track_run("ip:1") as tracker:
            tracker.set_result(_result(success=False, error_type="RetrievalUnavailableError"))

        data = collector.get_metrics_dict()
        assert data["runs"]["failed"] == 1
        assert data["errors"] == {"RetrievalUnavailableError": 1}
        assert data["recommendations"] == {}

    def test_exception_recorded_and_propagated(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector()
        with pytest.raises(RuntimeError):
            with collector.track_run("ip:1"):
                raise RuntimeError("boom")
        assert collector.get_metrics_dict()["errors"] == {"RuntimeError": 1}

    def test_rate_limited_counter(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector()
        collector.record_rate_limited()
        collector.record_rate_limited()
        assert collector.get_metrics_dict()["rate_limited_requests"] == 2

    def test_history_bounded(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector(max_history=3)
        for i in range(5):
            with collector.track_run(f"c{i}") as tracker:
                tracker.set_result(_result())
        recent = collector.get_recent_runs(limit=10)
        assert [r.client_id for r in recent] == ["c2", "c3", "c4"]
        assert len(collector.metrics.latencies) == 3

    def test_reset(self):
        from execution.defense_builder.metrics import MetricsCollector
        collector = MetricsCollector()
        collector.record_rate_limited()
        collector.reset()
        assert collector.get_metrics_dict()["rate_limited_requests"] == 0

    def test_uptime(self):
        from execution.defense_builder.metrics import MetricsCollector
        assert MetricsCollector().get_uptime().total_seconds() >= 0


class TestGetMetricsCollector:
    """Tests for the module-level accessor."""

    def test_singleton(self):
        from execution.defense_builder.metrics import get_metrics_collector
        assert get_metrics_collector() is get_metrics_collector()
