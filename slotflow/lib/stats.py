"""
Per-attempt request metrics.

ResilientClient emits one RequestAttemptMetric for every physical
attempt, retries included. ApiMonitor keeps a bounded window of them
and summarises on demand.
"""

import json
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

MAX_METRICS = 1000


@dataclass(frozen=True)
class RequestAttemptMetric:
    """One physical HTTP attempt."""
    endpoint: str  # URL path
    method: str
    status: int  # 0 = no response
    duration: float  # seconds
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None
    attempt: int = 1

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class RequestStats:
    """Aggregated summary over a set of metrics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_duration: float = 0.0
    error_rate: float = 0.0  # percent
    last_request_time: float = 0.0
    requests_by_endpoint: dict[str, int] = field(default_factory=dict)
    errors_by_status: dict[int, int] = field(default_factory=dict)


def summarize(metrics: list[RequestAttemptMetric]) -> RequestStats:
    if not metrics:
        return RequestStats()

    total = len(metrics)
    successful = sum(1 for m in metrics if m.succeeded)

    by_endpoint: dict[str, int] = {}
    errors_by_status: dict[int, int] = {}
    for m in metrics:
        by_endpoint[m.endpoint] = by_endpoint.get(m.endpoint, 0) + 1
        if m.status >= 400:
            errors_by_status[m.status] = errors_by_status.get(m.status, 0) + 1

    return RequestStats(
        total_requests=total,
        successful_requests=successful,
        failed_requests=total - successful,
        average_duration=sum(m.duration for m in metrics) / total,
        error_rate=round((total - successful) / total * 100, 2),
        last_request_time=max(m.timestamp for m in metrics),
        requests_by_endpoint=by_endpoint,
        errors_by_status=errors_by_status,
    )


class ApiMonitor:
    """Bounded in-memory store of request metrics."""

    def __init__(self, max_metrics: int = MAX_METRICS):
        self._metrics: deque[RequestAttemptMetric] = deque(maxlen=max_metrics)

    def record(self, metric: RequestAttemptMetric) -> None:
        self._metrics.append(metric)
        logger.debug(
            f"[HTTP] {metric.method} {metric.endpoint} -> {metric.status} "
            f"in {format_duration(metric.duration)}"
            + (f" ({metric.error})" if metric.error else "")
        )

    @property
    def metrics(self) -> list[RequestAttemptMetric]:
        return list(self._metrics)

    def summary(self, endpoint: Optional[str] = None) -> RequestStats:
        """Summarise all metrics, or only those for one endpoint path."""
        metrics = self.metrics
        if endpoint is not None:
            metrics = [m for m in metrics if m.endpoint == endpoint]
        return summarize(metrics)

    def clear(self) -> None:
        self._metrics.clear()

    def export(self) -> str:
        """Metrics as JSON lines."""
        return "\n".join(json.dumps(asdict(m)) for m in self._metrics)


def format_duration(seconds: float) -> str:
    """Format seconds for log lines."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.0f}s"
