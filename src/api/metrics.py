"""In-memory HTTP request metrics.

Counts requests by status and route, keeps a sliding latency window for
percentiles, and tracks errors and in-flight requests. Metrics reset on
restart.
"""

import time
from collections import Counter, deque
from threading import Lock
from typing import Any

_start_time: float = time.time()

PERCENTILES = (50, 95, 99)


def _percentile(ordered: list[float], pct: int) -> float:
    if not ordered:
        return 0.0
    index = min(len(ordered) - 1, int(len(ordered) * pct / 100))
    return round(ordered[index], 2)


class MetricsCollector:
    """Thread-safe in-memory request metrics.

    Args:
        window_size: Number of recent requests kept for latency percentiles
    """

    def __init__(self, window_size: int = 1000):
        self._lock = Lock()
        self._request_count = 0
        self._requests_by_status: Counter[str] = Counter()
        self._requests_by_route: Counter[str] = Counter()
        self._latency_window: deque[float] = deque(maxlen=window_size)
        self._error_count = 0
        self._errors_by_type: Counter[str] = Counter()
        self._active_requests = 0

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        with self._lock:
            self._request_count += 1
            self._requests_by_status[str(status_code)] += 1
            self._requests_by_route[f"{method} {path}"] += 1
            self._latency_window.append(duration_ms)
            if status_code >= 400:
                self._error_count += 1

    def record_error(self, error_type: str) -> None:
        """Record an exception that escaped a request handler."""
        with self._lock:
            self._error_count += 1
            self._errors_by_type[error_type] += 1

    def increment_active_requests(self) -> None:
        with self._lock:
            self._active_requests += 1

    def decrement_active_requests(self) -> None:
        with self._lock:
            self._active_requests = max(0, self._active_requests - 1)

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of all counters plus latency percentiles."""
        with self._lock:
            latencies = sorted(self._latency_window)
            latency = {f"p{pct}_ms": _percentile(latencies, pct) for pct in PERCENTILES}
            latency.update(
                min_ms=round(latencies[0], 2) if latencies else 0.0,
                max_ms=round(latencies[-1], 2) if latencies else 0.0,
                avg_ms=round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
            )
            return {
                "requests": {
                    "total": self._request_count,
                    "by_status": dict(self._requests_by_status),
                    "by_route": dict(self._requests_by_route.most_common(20)),
                },
                "latency": latency,
                "errors": {
                    "total": self._error_count,
                    "by_type": dict(self._errors_by_type),
                },
                "active_requests": self._active_requests,
                "uptime_seconds": round(time.time() - _start_time, 2),
            }

    def reset(self) -> None:
        with self._lock:
            self._request_count = 0
            self._requests_by_status.clear()
            self._requests_by_route.clear()
            self._latency_window.clear()
            self._error_count = 0
            self._errors_by_type.clear()
            self._active_requests = 0


_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the process-wide metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
