from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache

DEFAULT_LOOKUP_URL = "https://meqasa.com/mqrouter/ref"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = str(raw).strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return max(minimum, int(str(raw).strip()))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class ResolverConfig:
    """Every tuning knob of the resolver, with its default.

    Durations are milliseconds throughout. `hourly_limit` of 0 disables the
    second, per-hour admission window.
    """

    lookup_url: str = DEFAULT_LOOKUP_URL
    app_id: str = "vercel"
    timeout_ms: int = 5000
    max_retries: int = 2
    backoff_base_ms: int = 1000
    backoff_factor: float = 2.0
    backoff_max_ms: int = 5000
    backoff_jitter_ms: int = 0
    ttl_ms: int = 30 * 60 * 1000
    cache_max_entries: int = 500
    cache_enabled: bool = True
    rate_limit_per_window: int = 30
    window_ms: int = 60 * 1000
    hourly_limit: int = 0
    cleanup_interval_ms: int = 5 * 60 * 1000
    trust_client_header: bool = False
    hybrid_enabled: bool = True

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be >= 1")
        if self.rate_limit_per_window < 1:
            raise ValueError("rate_limit_per_window must be >= 1")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")
        if self.hourly_limit < 0:
            raise ValueError("hourly_limit must be >= 0")
        if self.cleanup_interval_ms <= 0:
            raise ValueError("cleanup_interval_ms must be positive")

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        d = cls()
        return cls(
            lookup_url=os.getenv("LRR_LOOKUP_URL", d.lookup_url),
            app_id=os.getenv("LRR_APP_ID", d.app_id),
            timeout_ms=_env_int("LRR_TIMEOUT_MS", d.timeout_ms, minimum=1),
            max_retries=_env_int("LRR_MAX_RETRIES", d.max_retries),
            backoff_base_ms=_env_int("LRR_BACKOFF_BASE_MS", d.backoff_base_ms),
            backoff_factor=_env_float("LRR_BACKOFF_FACTOR", d.backoff_factor),
            backoff_max_ms=_env_int("LRR_BACKOFF_MAX_MS", d.backoff_max_ms),
            backoff_jitter_ms=_env_int("LRR_BACKOFF_JITTER_MS", d.backoff_jitter_ms),
            ttl_ms=_env_int("LRR_TTL_MS", d.ttl_ms, minimum=1),
            cache_max_entries=_env_int(
                "LRR_CACHE_MAX_ENTRIES", d.cache_max_entries, minimum=1
            ),
            cache_enabled=_env_bool("LRR_CACHE", d.cache_enabled),
            rate_limit_per_window=_env_int(
                "LRR_RATE_LIMIT_PER_WINDOW", d.rate_limit_per_window, minimum=1
            ),
            window_ms=_env_int("LRR_WINDOW_MS", d.window_ms, minimum=1),
            hourly_limit=_env_int("LRR_HOURLY_LIMIT", d.hourly_limit),
            cleanup_interval_ms=_env_int(
                "LRR_CLEANUP_INTERVAL_MS", d.cleanup_interval_ms, minimum=1
            ),
            trust_client_header=_env_bool(
                "LRR_TRUST_CLIENT_HEADER", d.trust_client_header
            ),
            hybrid_enabled=_env_bool("LRR_HYBRID", d.hybrid_enabled),
        )

    def with_overrides(self, **overrides) -> "ResolverConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@lru_cache(maxsize=1)
def get_config() -> ResolverConfig:
    return ResolverConfig.from_env()


def reset_config_cache() -> None:
    """Test helper to force env re-read."""

    get_config.cache_clear()
