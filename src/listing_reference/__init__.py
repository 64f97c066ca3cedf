"""Package initializer for `listing_reference`."""

from .config import ResolverConfig
from .context import ResolverContext
from .errors import (
    InvalidReference,
    NotFound,
    RateLimited,
    ResolutionError,
    UpstreamError,
    UpstreamTimeout,
)
from .models import MetricsSnapshot, ResolvedResult, Source
from .navigator import NavigationHandle, NavigationState, navigate_hybrid
from .service import get_metrics, resolve_reference

__all__ = [
    "InvalidReference",
    "MetricsSnapshot",
    "NavigationHandle",
    "NavigationState",
    "NotFound",
    "RateLimited",
    "ResolutionError",
    "ResolvedResult",
    "ResolverConfig",
    "ResolverContext",
    "Source",
    "UpstreamError",
    "UpstreamTimeout",
    "get_metrics",
    "navigate_hybrid",
    "resolve_reference",
]
