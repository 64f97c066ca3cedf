from __future__ import annotations

import logging
from typing import Optional

from listing_reference.context import ResolverContext
from listing_reference.errors import InvalidReference, RateLimited, ResolutionError
from listing_reference.metrics import MetricEvent
from listing_reference.models import MetricsSnapshot, ReferenceQuery, ResolvedResult, Source
from listing_reference.normalize import normalize_reference

logger = logging.getLogger("lrr.service")


def validate_reference(context: ResolverContext, reference) -> ReferenceQuery:
    try:
        return normalize_reference(reference)
    except InvalidReference:
        context.metrics.record(MetricEvent.INVALID)
        raise


def admit(context: ResolverContext, query: ReferenceQuery, client_id: Optional[str] = None) -> None:
    context.maybe_cleanup()
    if context.limiter.check(client_id):
        context.metrics.record(MetricEvent.REQUEST)
        return
    context.metrics.record(MetricEvent.RATE_LIMITED)
    retry_after = context.limiter.retry_after(client_id)
    logger.info("rate limited client=%s ref=%s", client_id or "anonymous", query.normalized)
    raise RateLimited(
        "Rate limit exceeded",
        reference=query.normalized,
        client_id=client_id or "",
        retry_after=retry_after,
    )


async def _lookup_and_store(
    context: ResolverContext,
    query: ReferenceQuery,
    timeout_ms: Optional[int],
    max_retries: Optional[int],
) -> ResolvedResult:
    context.metrics.record(MetricEvent.MISS)
    try:
        result = await context.resolver.lookup(
            query.normalized, timeout_ms=timeout_ms, max_retries=max_retries
        )
    except ResolutionError as exc:
        # Counted once per upstream failure, however many callers share it.
        context.metrics.record(MetricEvent.ERROR)
        logger.info("lookup failed ref=%s: %s", query.normalized, exc)
        raise
    context.cache.put(query.key, result)
    return result


async def resolve_admitted(
    context: ResolverContext,
    query: ReferenceQuery,
    timeout_ms: Optional[int] = None,
    max_retries: Optional[int] = None,
) -> ResolvedResult:
    """Cache fast path, then one shared upstream lookup per key."""
    started = context.clock()
    cached = context.cache.get(query.key)
    if cached is not None:
        elapsed_ms = (context.clock() - started) * 1000.0
        context.metrics.record(MetricEvent.HIT, elapsed_ms)
        return cached.with_source(Source.CACHE, elapsed_ms)
    result = await context.coordinator.resolve(
        query.key,
        lambda: _lookup_and_store(context, query, timeout_ms, max_retries),
    )
    context.metrics.observe_response_time((context.clock() - started) * 1000.0)
    return result


async def resolve_reference(
    context: ResolverContext,
    reference,
    client_id: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    max_retries: Optional[int] = None,
) -> ResolvedResult:
    """Resolve a typed reference code to its canonical listing URL.

    Raises InvalidReference or RateLimited before touching the network, and
    NotFound, UpstreamTimeout or UpstreamError once the lookup gives up.
    """
    query = validate_reference(context, reference)
    admit(context, query, client_id)
    return await resolve_admitted(context, query, timeout_ms, max_retries)


def get_metrics(context: ResolverContext) -> MetricsSnapshot:
    return context.metrics.snapshot(
        cache_size=len(context.cache),
        pending_requests=context.coordinator.pending_count(),
    )
