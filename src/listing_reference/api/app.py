import logging
import math

from fastapi import FastAPI, HTTPException, Request

from listing_reference.api.schemas import ReferenceMetrics, ResolvedReference
from listing_reference.context import ResolverContext
from listing_reference.errors import (
    InvalidReference,
    NotFound,
    RateLimited,
    ResolutionError,
    UpstreamTimeout,
)
from listing_reference.service import get_metrics, resolve_reference

logger = logging.getLogger("lrr.api")

CLIENT_ID_HEADER = "X-Client-Id"


def _status_for(exc):
    if isinstance(exc, InvalidReference):
        return 400
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, RateLimited):
        return 429
    if isinstance(exc, UpstreamTimeout):
        return 504
    return 502


def _client_id(request, ctx):
    # The header is caller-controlled; honor it only behind a trusted proxy.
    if ctx.config.trust_client_header:
        header = (request.headers.get(CLIENT_ID_HEADER) or "").strip()
        if header:
            return header
    if request.client is not None:
        return request.client.host
    return None


def create_app(context=None):
    app = FastAPI(title="listing-reference-resolver")
    app.state.resolver = context

    def _context(request):
        ctx = request.app.state.resolver
        if ctx is None:
            ctx = ResolverContext.create()
            request.app.state.resolver = ctx
        return ctx

    @app.get("/health")
    def health_route():
        return {"status": "ok"}

    @app.get("/api/reference-metrics", response_model=ReferenceMetrics)
    def reference_metrics(request: Request):
        ctx = _context(request)
        snapshot = get_metrics(ctx)
        payload = snapshot.to_dict()
        payload["alerts"] = ctx.metrics.check_alerts(snapshot)
        return payload

    @app.get("/api/reference/{reference}", response_model=ResolvedReference)
    async def resolve_route(reference: str, request: Request):
        ctx = _context(request)
        try:
            result = await resolve_reference(ctx, reference, client_id=_client_id(request, ctx))
        except ResolutionError as exc:
            status = _status_for(exc)
            headers = None
            if isinstance(exc, RateLimited):
                headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
            if status >= 500:
                logger.warning("reference lookup failed ref=%s: %s", exc.reference, exc)
            raise HTTPException(status_code=status, detail=exc.user_message, headers=headers)
        return result.to_dict()

    @app.on_event("shutdown")
    async def _close_resolver():
        ctx = app.state.resolver
        if ctx is not None:
            await ctx.aclose()

    return app


app = create_app()
