from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class ResolvedReference(BaseModel):
    reference: str
    url: str
    source: str
    response_time_ms: float = 0.0


class MetricsAlert(BaseModel):
    type: str
    message: str
    metric: float


class ReferenceMetrics(BaseModel):
    """Counters since the last reset plus the alerts they trigger."""

    hits: int = 0
    misses: int = 0
    deduped_requests: int = 0
    errors: int = 0
    total_requests: int = 0
    cache_size: int = 0
    avg_response_time_ms: float = 0.0
    pending_requests: int = 0
    rate_limited: int = 0
    invalid_references: int = 0
    cache_hit_rate: float = 0.0
    alerts: List[MetricsAlert] = Field(default_factory=list)
