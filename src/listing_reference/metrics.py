from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Optional

from listing_reference.models import MetricsSnapshot


class MetricEvent(str, Enum):
    REQUEST = "request"
    HIT = "hit"
    MISS = "miss"
    DEDUPED = "deduped"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    INVALID = "invalid"


_COUNTER_FOR_EVENT = {
    MetricEvent.REQUEST: "total_requests",
    MetricEvent.HIT: "hits",
    MetricEvent.MISS: "misses",
    MetricEvent.DEDUPED: "deduped_requests",
    MetricEvent.ERROR: "errors",
    MetricEvent.RATE_LIMITED: "rate_limited",
    MetricEvent.INVALID: "invalid_references",
}

MIN_REQUESTS_FOR_HIT_RATE_ALERT = 10


class MetricsCollector:
    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._samples = 0
        self._mean_ms = 0.0
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counters = {name: 0 for name in _COUNTER_FOR_EVENT.values()}
            self._samples = 0
            self._mean_ms = 0.0

    def record(self, event: MetricEvent, response_time_ms: Optional[float] = None) -> None:
        counter = _COUNTER_FOR_EVENT[MetricEvent(event)]
        with self._lock:
            self._counters[counter] += 1
            if response_time_ms is not None:
                self._observe(response_time_ms)

    def observe_response_time(self, response_time_ms: float) -> None:
        with self._lock:
            self._observe(response_time_ms)

    def _observe(self, value: float) -> None:
        # Welford running mean.
        self._samples += 1
        self._mean_ms += (float(value) - self._mean_ms) / self._samples

    def snapshot(self, cache_size: int = 0, pending_requests: int = 0) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
            mean = self._mean_ms
        return MetricsSnapshot(
            avg_response_time_ms=mean,
            cache_size=cache_size,
            pending_requests=pending_requests,
            **counters,
        )

    def check_alerts(self, snapshot: Optional[MetricsSnapshot] = None) -> List[dict]:
        snap = snapshot or self.snapshot()
        alerts: List[dict] = []
        if snap.total_requests:
            error_rate = round(snap.errors / snap.total_requests * 100, 2)
            if error_rate > 25:
                alerts.append(
                    {"type": "critical", "message": "High error rate detected", "metric": error_rate}
                )
            elif error_rate > 10:
                alerts.append(
                    {"type": "warning", "message": "Elevated error rate", "metric": error_rate}
                )
        avg = round(snap.avg_response_time_ms, 3)
        if avg > 3000:
            alerts.append({"type": "critical", "message": "Very slow response times", "metric": avg})
        elif avg > 1500:
            alerts.append({"type": "warning", "message": "Slow response times", "metric": avg})
        if (
            snap.total_requests >= MIN_REQUESTS_FOR_HIT_RATE_ALERT
            and snap.cache_hit_rate < 30
        ):
            alerts.append(
                {"type": "warning", "message": "Low cache efficiency", "metric": snap.cache_hit_rate}
            )
        return alerts
