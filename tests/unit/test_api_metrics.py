"""Unit tests for the in-memory request metrics collector and tracing middleware."""

import pytest

from src.api import metrics as metrics_mod
from src.api.metrics import MetricsCollector, get_metrics_collector


class TestMetricsCollector:
    def test_empty_snapshot(self):
        snapshot = MetricsCollector().get_metrics()

        assert snapshot["requests"]["total"] == 0
        assert snapshot["latency"] == {
            "p50_ms": 0.0,
            "p95_ms": 0.0,
            "p99_ms": 0.0,
            "min_ms": 0.0,
            "max_ms": 0.0,
            "avg_ms": 0.0,
        }
        assert snapshot["active_requests"] == 0

    def test_records_requests(self):
        collector = MetricsCollector()
        collector.record_request("GET", "/api/v1/health", 200, 5.0)
        collector.record_request("GET", "/api/v1/health", 200, 15.0)
        collector.record_request("POST", "/api/v1/home-assistant/connect", 401, 10.0)

        snapshot = collector.get_metrics()

        assert snapshot["requests"]["total"] == 3
        assert snapshot["requests"]["by_status"] == {"200": 2, "401": 1}
        assert snapshot["requests"]["by_route"]["GET /api/v1/health"] == 2
        assert snapshot["errors"]["total"] == 1
        assert snapshot["latency"]["min_ms"] == 5.0
        assert snapshot["latency"]["max_ms"] == 15.0
        assert snapshot["latency"]["avg_ms"] == 10.0

    def test_percentiles(self):
        collector = MetricsCollector()
        for ms in range(1, 101):
            collector.record_request("GET", "/x", 200, float(ms))

        latency = collector.get_metrics()["latency"]

        assert latency["p50_ms"] == 51.0
        assert latency["p95_ms"] == 96.0
        assert latency["p99_ms"] == 100.0

    def test_latency_window_is_bounded(self):
        collector = MetricsCollector(window_size=3)
        for ms in (100.0, 1.0, 2.0, 3.0):
            collector.record_request("GET", "/x", 200, ms)

        snapshot = collector.get_metrics()

        assert snapshot["requests"]["total"] == 4
        assert snapshot["latency"]["max_ms"] == 3.0

    def test_errors_by_type(self):
        collector = MetricsCollector()
        collector.record_error("TimeoutError")
        collector.record_error("TimeoutError")

        assert collector.get_metrics()["errors"] == {"total": 2, "by_type": {"TimeoutError": 2}}

    def test_active_requests_never_negative(self):
        collector = MetricsCollector()
        collector.increment_active_requests()
        collector.decrement_active_requests()
        collector.decrement_active_requests()

        assert collector.get_metrics()["active_requests"] == 0

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_request("GET", "/x", 500, 1.0)
        collector.record_error("ValueError")

        collector.reset()

        snapshot = collector.get_metrics()
        assert snapshot["requests"]["total"] == 0
        assert snapshot["errors"]["total"] == 0

    def test_singleton(self, monkeypatch):
        monkeypatch.setattr(metrics_mod, "_metrics_collector", None)

        assert get_metrics_collector() is get_metrics_collector()


@pytest.mark.asyncio
class TestRequestTracing:
    async def test_requests_are_recorded(self, api_client, monkeypatch):
        monkeypatch.setattr(metrics_mod, "_metrics_collector", None)

        await api_client.get("/api/v1/health")
        response = await api_client.get("/api/v1/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["requests"]["by_route"]["GET /api/v1/health"] == 1
        assert data["active_requests"] == 1
