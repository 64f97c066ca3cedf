from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from listing_reference.errors import (
    NotFound,
    ResolutionError,
    UpstreamError,
    UpstreamTimeout,
)
from listing_reference.http_client import RetryConfig
from listing_reference.models import ResolvedResult, Source

logger = logging.getLogger("lrr.resolver")

Fetch = Callable[[str], Awaitable[str]]


def classify_failure(exc: BaseException, reference: str) -> ResolutionError:
    if isinstance(exc, ResolutionError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return UpstreamTimeout("lookup exceeded its deadline", reference=reference)
    error = UpstreamError(f"lookup failed: {exc.__class__.__name__}", reference=reference)
    error.__cause__ = exc
    return error


class RemoteResolver:
    """Runs one upstream lookup under a deadline with bounded retries.

    `fetch` takes the reference and returns the canonical listing path; it is
    normally `LookupClient.fetch`. NotFound is terminal; timeouts and upstream
    errors are retried with exponential backoff until the retry budget is
    spent, then the last classified error is raised.
    """

    def __init__(
        self,
        fetch: Fetch,
        timeout_ms: int = 5000,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
        rand_fn: Optional[Callable[[], float]] = None,
    ):
        self._fetch = fetch
        self.timeout_ms = timeout_ms
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._clock = clock
        self._rand_fn = rand_fn

    def _delays(self, max_retries: Optional[int]):
        config = self.retry_config
        if max_retries is not None and max_retries != config.retries:
            config = RetryConfig(
                retries=max_retries,
                base_delay=config.base_delay,
                factor=config.factor,
                jitter=config.jitter,
                max_delay=config.max_delay,
            )
        return config.delays(rand_fn=self._rand_fn)

    async def lookup(
        self,
        reference: str,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> ResolvedResult:
        timeout = (timeout_ms or self.timeout_ms) / 1000.0
        delays = self._delays(max_retries)
        started = self._clock()
        attempt = 0
        while True:
            try:
                path = await asyncio.wait_for(self._fetch(reference), timeout)
            except NotFound:
                raise
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify_failure(exc, reference)
                if not error.retryable or attempt >= len(delays):
                    raise error
                delay = delays[attempt]
                logger.warning(
                    "retry %d/%d after %.0fms for ref=%s (%s)",
                    attempt + 1,
                    len(delays),
                    delay * 1000,
                    reference,
                    error,
                )
                await self._sleep(delay)
                attempt += 1
                continue
            elapsed_ms = (self._clock() - started) * 1000.0
            return ResolvedResult(
                reference=reference,
                canonical_url=path,
                source=Source.API,
                response_time_ms=elapsed_ms,
            )
