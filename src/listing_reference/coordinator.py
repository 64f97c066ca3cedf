from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Set

from listing_reference.models import ResolvedResult

logger = logging.getLogger("lrr.coordinator")

Factory = Callable[[], Awaitable[ResolvedResult]]


@dataclass
class PendingRequest:
    key: str
    future: "asyncio.Future[ResolvedResult]"
    started_at: float
    waiters: int = 1


def _consume_outcome(future: asyncio.Future) -> None:
    # Marks the exception as retrieved when every waiter walked away.
    if not future.cancelled():
        future.exception()


class RequestCoordinator:
    """Collapses concurrent resolutions of one key onto a single call.

    The first caller for a key starts `factory()` in its own task; everyone
    arriving while it runs awaits the same future and gets the same value or
    the same exception. The pending entry is removed before the future is
    settled, so a call after settlement always starts a fresh attempt.
    Cancelling a waiter never cancels the shared task.
    """

    def __init__(
        self,
        on_dedup: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._pending: Dict[str, PendingRequest] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.Lock()
        self._on_dedup = on_dedup
        self._clock = clock

    async def resolve(self, key: str, factory: Factory) -> ResolvedResult:
        joined = False
        with self._lock:
            pending = self._pending.get(key)
            if pending is not None:
                pending.waiters += 1
                joined = True
            else:
                loop = asyncio.get_running_loop()
                future = loop.create_future()
                future.add_done_callback(_consume_outcome)
                pending = PendingRequest(key=key, future=future, started_at=self._clock())
                self._pending[key] = pending
                task = loop.create_task(self._run(pending, factory))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        if joined:
            if self._on_dedup is not None:
                self._on_dedup(key)
            logger.debug("joined in-flight lookup for %s (%d waiters)", key, pending.waiters)
        return await asyncio.shield(pending.future)

    async def _run(self, pending: PendingRequest, factory: Factory) -> None:
        try:
            result = await factory()
        except asyncio.CancelledError:
            self._settle(pending)
            pending.future.cancel()
            raise
        except Exception as exc:
            self._settle(pending)
            pending.future.set_exception(exc)
            return
        self._settle(pending)
        pending.future.set_result(result)

    def _settle(self, pending: PendingRequest) -> None:
        with self._lock:
            if self._pending.get(pending.key) is pending:
                del self._pending[pending.key]

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    async def drain(self) -> None:
        """Wait for every in-flight call to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self) -> None:
        with self._lock:
            self._pending.clear()
