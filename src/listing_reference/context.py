from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Set

from listing_reference.cache import ResolutionCache
from listing_reference.config import ResolverConfig, get_config
from listing_reference.coordinator import RequestCoordinator
from listing_reference.http_client import LookupClient, RetryConfig
from listing_reference.metrics import MetricEvent, MetricsCollector
from listing_reference.normalize import default_fallback_url
from listing_reference.ratelimit import RateLimiter
from listing_reference.resolver import RemoteResolver

logger = logging.getLogger("lrr.context")


@dataclass
class ResolverContext:
    """Everything one resolver instance shares across calls.

    Build one per process (or per test) and pass it to the functions in
    `listing_reference.service`. `reset()` returns it to a cold state.
    """

    config: ResolverConfig
    cache: ResolutionCache
    limiter: RateLimiter
    coordinator: RequestCoordinator
    resolver: RemoteResolver
    metrics: MetricsCollector
    fallback_url: Callable[[str], str] = default_fallback_url
    lookup_client: Optional[LookupClient] = None
    clock: Callable[[], float] = field(default=time.perf_counter)
    background_tasks: Set[asyncio.Task] = field(default_factory=set)
    last_cleanup: Optional[float] = None

    def track(self, task: asyncio.Task) -> asyncio.Task:
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
        return task

    @classmethod
    def create(
        cls,
        config: Optional[ResolverConfig] = None,
        fetch: Optional[Callable[[str], Awaitable[str]]] = None,
        fallback_url: Callable[[str], str] = default_fallback_url,
        transport=None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand_fn: Optional[Callable[[], float]] = None,
    ) -> "ResolverContext":
        """Wire up the components.

        `fetch` replaces the HTTP lookup entirely (an async callable taking
        the reference and returning the listing path); otherwise an httpx
        based `LookupClient` is built, optionally over `transport`. `clock`
        is a monotonic seconds source shared by cache, limiter and timing.
        """
        config = config or get_config()
        clock = clock or time.monotonic
        lookup_client = None
        if fetch is None:
            lookup_client = LookupClient(
                lookup_url=config.lookup_url,
                app_id=config.app_id,
                timeout=config.timeout_ms / 1000.0,
                transport=transport,
            )
            fetch = lookup_client.fetch
        metrics = MetricsCollector()
        return cls(
            config=config,
            cache=ResolutionCache(
                max_entries=config.cache_max_entries,
                ttl_ms=config.ttl_ms,
                enabled=config.cache_enabled,
                clock=clock,
            ),
            limiter=RateLimiter(
                max_requests=config.rate_limit_per_window,
                window_ms=config.window_ms,
                clock=clock,
                hourly_limit=config.hourly_limit,
            ),
            coordinator=RequestCoordinator(
                on_dedup=lambda _key: metrics.record(MetricEvent.DEDUPED),
                clock=clock,
            ),
            resolver=RemoteResolver(
                fetch,
                timeout_ms=config.timeout_ms,
                retry_config=RetryConfig.from_config(config),
                sleep=sleep,
                clock=clock,
                rand_fn=rand_fn,
            ),
            metrics=metrics,
            fallback_url=fallback_url,
            lookup_client=lookup_client,
            clock=clock,
        )

    def reset(self) -> None:
        self.cache.clear()
        self.limiter.reset()
        self.coordinator.reset()
        self.metrics.reset()
        self.last_cleanup = None

    def cleanup(self) -> dict:
        """Drop expired cache entries and idle rate windows."""
        return {
            "expired_entries": self.cache.purge_expired(),
            "idle_clients": self.limiter.purge_idle(),
        }

    def maybe_cleanup(self) -> Optional[dict]:
        """Run `cleanup()` once every `cleanup_interval_ms` of clock time."""
        now = self.clock()
        if self.last_cleanup is None:
            self.last_cleanup = now
            return None
        if (now - self.last_cleanup) * 1000.0 < self.config.cleanup_interval_ms:
            return None
        self.last_cleanup = now
        removed = self.cleanup()
        logger.debug("periodic cleanup: %s", removed)
        return removed

    async def aclose(self) -> None:
        if self.background_tasks:
            await asyncio.gather(*list(self.background_tasks), return_exceptions=True)
        await self.coordinator.drain()
        if self.lookup_client is not None:
            await self.lookup_client.aclose()
