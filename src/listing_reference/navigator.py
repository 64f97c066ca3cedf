from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from listing_reference.context import ResolverContext
from listing_reference.errors import ResolutionError
from listing_reference.models import ResolvedResult, Source
from listing_reference.service import admit, resolve_admitted, validate_reference

logger = logging.getLogger("lrr.navigator")

OnNavigate = Callable[[str, Source], None]
OnError = Callable[[str], None]


class NavigationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FALLBACK_DISPATCHED = "fallback_dispatched"
    RESOLVING = "resolving"
    CONFIRMED = "confirmed"
    CORRECTED = "corrected"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {NavigationState.CONFIRMED, NavigationState.CORRECTED, NavigationState.FAILED}
)


class NavigationHandle:
    """Tracks one hybrid navigation from validation to its terminal state."""

    def __init__(self, reference: str):
        self.reference = reference
        self.state = NavigationState.IDLE
        self.history: List[NavigationState] = [NavigationState.IDLE]
        self.fallback_url: Optional[str] = None
        self.result: Optional[ResolvedResult] = None
        self.error: Optional[Exception] = None
        self._task: Optional[asyncio.Task] = None

    def _transition(self, state: NavigationState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"navigation already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def source(self) -> Optional[Source]:
        return self.result.source if self.result is not None else None

    async def wait(self) -> NavigationState:
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.state


class HybridNavigator:
    """Navigate at once to a guessed URL, then confirm or correct it.

    `navigate` must be called from inside a running event loop. It returns
    after the optimistic navigation has been dispatched; confirmation runs
    as a background task tracked by the returned handle. `on_navigate` is
    called at most twice (fallback, then enhanced) and `on_error` at most
    once. An error after the fallback never undoes it.

    A callback that raises during confirmation ends the navigation in
    FAILED with the exception on `handle.error`.
    """

    def __init__(self, context: ResolverContext):
        self.context = context

    def navigate(
        self,
        reference,
        on_navigate: OnNavigate,
        on_error: Optional[OnError] = None,
        client_id: Optional[str] = None,
    ) -> NavigationHandle:
        loop = asyncio.get_running_loop()
        handle = NavigationHandle("" if reference is None else str(reference))
        handle._transition(NavigationState.VALIDATING)
        try:
            query = validate_reference(self.context, reference)
            admit(self.context, query, client_id)
        except ResolutionError as exc:
            self._fail(handle, exc, on_error)
            return handle

        if self.context.config.hybrid_enabled:
            handle.fallback_url = self.context.fallback_url(query.normalized)
            on_navigate(handle.fallback_url, Source.FALLBACK)
            handle._transition(NavigationState.FALLBACK_DISPATCHED)

        handle._transition(NavigationState.RESOLVING)
        handle._task = self.context.track(
            loop.create_task(self._confirm(handle, query, on_navigate, on_error))
        )
        return handle

    async def _confirm(self, handle, query, on_navigate, on_error) -> NavigationState:
        try:
            result = await resolve_admitted(self.context, query)
        except ResolutionError as exc:
            self._fail(handle, exc, on_error)
            return handle.state
        handle.result = result
        try:
            self._settle(handle, result, on_navigate)
        except Exception as exc:
            logger.exception("navigation callback failed for %s", query.normalized)
            handle.error = exc
            handle._transition(NavigationState.FAILED)
        return handle.state

    def _settle(self, handle, result: ResolvedResult, on_navigate: OnNavigate) -> None:
        if handle.fallback_url is None:
            on_navigate(result.canonical_url, result.source)
            handle._transition(NavigationState.CONFIRMED)
        elif result.canonical_url == handle.fallback_url:
            logger.debug("fallback confirmed for %s (%s)", result.reference, result.source.value)
            handle._transition(NavigationState.CONFIRMED)
        else:
            on_navigate(result.canonical_url, Source.ENHANCED)
            handle._transition(NavigationState.CORRECTED)

    def _fail(self, handle, exc: ResolutionError, on_error: Optional[OnError]) -> None:
        handle.error = exc
        handle._transition(NavigationState.FAILED)
        if handle.fallback_url is not None:
            logger.debug(
                "background resolution failed for %s, staying on %s: %s",
                handle.reference,
                handle.fallback_url,
                exc,
            )
        if on_error is not None:
            on_error(exc.user_message)


def navigate_hybrid(
    context: ResolverContext,
    reference,
    on_navigate: OnNavigate,
    on_error: Optional[OnError] = None,
    client_id: Optional[str] = None,
) -> NavigationHandle:
    return HybridNavigator(context).navigate(
        reference, on_navigate, on_error=on_error, client_id=client_id
    )
