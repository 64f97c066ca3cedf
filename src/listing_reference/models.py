from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional


class Source(str, Enum):
    CACHE = "cache"
    FALLBACK = "fallback"
    # Navigations tagged ENHANCED replace the current history entry.
    ENHANCED = "enhanced"
    API = "api"


@dataclass(frozen=True)
class ReferenceQuery:
    raw: str
    normalized: str
    key: str


@dataclass(frozen=True)
class ResolvedResult:
    reference: str
    canonical_url: str
    source: Source
    response_time_ms: float = 0.0

    def with_source(self, source: Source, response_time_ms: Optional[float] = None):
        return ResolvedResult(
            reference=self.reference,
            canonical_url=self.canonical_url,
            source=source,
            response_time_ms=(
                self.response_time_ms if response_time_ms is None else response_time_ms
            ),
        )

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "url": self.canonical_url,
            "source": self.source.value,
            "response_time_ms": round(self.response_time_ms, 3),
        }


@dataclass
class CacheEntry:
    key: str
    value: ResolvedResult
    inserted_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class RateWindow:
    client_id: str
    timestamps: Deque[float] = field(default_factory=deque)
    hourly: Deque[float] = field(default_factory=deque)


@dataclass
class MetricsSnapshot:
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

    @property
    def cache_hit_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return round(self.hits / self.total_requests * 100, 2)

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "deduped_requests": self.deduped_requests,
            "errors": self.errors,
            "total_requests": self.total_requests,
            "cache_size": self.cache_size,
            "avg_response_time_ms": round(self.avg_response_time_ms, 3),
            "pending_requests": self.pending_requests,
            "rate_limited": self.rate_limited,
            "invalid_references": self.invalid_references,
            "cache_hit_rate": self.cache_hit_rate,
        }
