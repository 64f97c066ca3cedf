import json
import random
import re

import httpx

from listing_reference.config import DEFAULT_LOOKUP_URL
from listing_reference.errors import NotFound, UpstreamError, UpstreamTimeout


RETRY_STATUS = {429, 500, 502, 503, 504}

_HOST_PREFIX_RE = re.compile(r"^https?://[^/]+/")
_SLUG_STRIP_RE = re.compile(r"[^a-zA-Z0-9-]")


class RetryConfig:
    def __init__(self, retries=2, base_delay=1.0, factor=2.0, jitter=0.0, max_delay=5.0):
        self.retries = retries
        self.base_delay = base_delay
        self.factor = factor
        self.jitter = jitter
        self.max_delay = max_delay

    @classmethod
    def from_config(cls, config, retries=None):
        return cls(
            retries=config.max_retries if retries is None else retries,
            base_delay=config.backoff_base_ms / 1000.0,
            factor=config.backoff_factor,
            jitter=config.backoff_jitter_ms / 1000.0,
            max_delay=config.backoff_max_ms / 1000.0,
        )

    def delays(self, rand_fn=None):
        return compute_backoff_delays(
            self.retries,
            self.base_delay,
            self.factor,
            self.jitter,
            rand_fn=rand_fn,
            max_delay=self.max_delay,
        )


def compute_backoff_delays(
    retries, base_delay=1.0, factor=2.0, jitter=0.0, rand_fn=None, max_delay=None
):
    delays = []
    current = base_delay
    rand_fn = rand_fn or random.random
    for _ in range(retries):
        step = current if max_delay is None else min(current, max_delay)
        noise = (rand_fn() * 2 - 1) * jitter
        delays.append(max(0.0, step + noise))
        current *= factor
    return delays


def _slug(value):
    return _SLUG_STRIP_RE.sub("", "-".join(str(value).split(" "))).lower()


def listing_path_from_payload(payload, reference=""):
    """Map a lookup-service listing payload to its canonical site path.

    Without `detailreq` the path is built from the listing fields; the
    looked-up reference stands in when `listingid` is missing.
    """
    detail = payload.get("detailreq")
    if detail:
        path = _HOST_PREFIX_RE.sub("", str(detail).strip())
        if path.startswith("listings/"):
            return f"/{path}"
        if path.startswith("/listings/"):
            return path
        return f"/listings/{path.lstrip('/')}"
    listing_id = payload.get("listingid")
    if listing_id in (None, ""):
        listing_id = reference
    if listing_id in (None, ""):
        error = UpstreamError(
            "lookup payload has neither detailreq nor listingid", reference=reference
        )
        error.retryable = False
        raise error
    type_slug = re.sub(r"\s+", "-", str(payload.get("type") or "property").lower())
    contract_slug = str(payload.get("contract") or "rent").lower()
    location = payload.get("locationstring") or payload.get("location") or "Ghana"
    return (
        f"/listings/{type_slug}-for-{contract_slug}-at-{_slug(location)}-{listing_id}"
    )


def parse_lookup_response(status, text, reference=""):
    if status == 404:
        raise NotFound("Listing not available", reference=reference)
    if status >= 400:
        error = UpstreamError(
            f"lookup service returned HTTP {status}", reference=reference, status=status
        )
        if status not in RETRY_STATUS and status < 500:
            error.retryable = False
        raise error
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise UpstreamError(
            "lookup service returned invalid JSON", reference=reference, status=status
        ) from exc
    if not isinstance(payload, dict):
        raise UpstreamError(
            "lookup service returned an unexpected payload", reference=reference, status=status
        )
    if payload.get("status") == "fail":
        raise NotFound(payload.get("msg") or "Listing not available", reference=reference)
    return listing_path_from_payload(payload, reference)


class LookupClient:
    """Talks to the remote listing lookup service.

    One POST per call, no retries here: retry and timeout policy belong to
    `RemoteResolver`.
    """

    def __init__(
        self,
        lookup_url=DEFAULT_LOOKUP_URL,
        app_id="vercel",
        timeout=None,
        transport=None,
        client=None,
    ):
        self.lookup_url = lookup_url
        self.app_id = app_id
        self.timeout = timeout
        self._transport = transport
        self._client = client

    async def _ensure_client(self):
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self._transport
        )
        return self._client

    async def fetch(self, reference):
        client = await self._ensure_client()
        headers = {
            "User-Agent": "listing-reference-resolver",
            "Accept": "application/json",
        }
        try:
            response = await client.post(
                self.lookup_url,
                data={"refref": reference, "app": self.app_id},
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(
                f"lookup timed out: {exc.__class__.__name__}", reference=reference
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"lookup transport error: {exc.__class__.__name__}", reference=reference
            ) from exc
        return parse_lookup_response(response.status_code, response.text, reference)

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
