from __future__ import annotations

from typing import Optional


class ResolutionError(Exception):
    """Base class for every failure the resolver surfaces to callers.

    `user_message` is safe to show in a toast; `str(exc)` is for logs.
    """

    user_message = "Search failed. Please try again."
    retryable = False

    def __init__(self, message: Optional[str] = None, *, reference: str = ""):
        super().__init__(message or self.user_message)
        self.reference = reference


class InvalidReference(ResolutionError, ValueError):
    user_message = "Invalid reference format"


class RateLimited(ResolutionError):
    user_message = "Too many searches. Please wait a moment and try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reference: str = "",
        client_id: str = "",
        retry_after: float = 0.0,
    ):
        super().__init__(message, reference=reference)
        self.client_id = client_id
        self.retry_after = retry_after


class NotFound(ResolutionError):
    user_message = "Property not available"


class UpstreamTimeout(ResolutionError, TimeoutError):
    user_message = "Search timed out. Please try again."
    retryable = True


class UpstreamError(ResolutionError):
    retryable = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reference: str = "",
        status: Optional[int] = None,
    ):
        super().__init__(message, reference=reference)
        self.status = status
