import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from listing_reference.config import ResolverConfig
from listing_reference.context import ResolverContext
from listing_reference.errors import NotFound, UpstreamError, UpstreamTimeout
from listing_reference.http_client import LookupClient, listing_path_from_payload
from listing_reference.service import resolve_reference


def _fetch(handler, reference="086983"):
    async def _run():
        client = LookupClient(
            lookup_url="https://lookup.example/ref",
            transport=httpx.MockTransport(handler),
        )
        try:
            return await client.fetch(reference)
        finally:
            await client.aclose()

    return asyncio.run(_run())


def test_posts_form_encoded_reference():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"detailreq": "listings/house-for-rent-at-osu-086983"})

    assert _fetch(handler) == "/listings/house-for-rent-at-osu-086983"
    assert seen["method"] == "POST"
    assert seen["url"] == "https://lookup.example/ref"
    assert seen["form"] == {"refref": ["086983"], "app": ["vercel"]}


def test_fail_status_is_not_found():
    def handler(request):
        return httpx.Response(200, json={"status": "fail", "msg": "Listing not available"})

    with pytest.raises(NotFound) as exc:
        _fetch(handler, "999999")
    assert exc.value.reference == "999999"


def test_http_404_is_not_found():
    with pytest.raises(NotFound):
        _fetch(lambda request: httpx.Response(404))


def test_server_error_is_retryable_upstream_error():
    with pytest.raises(UpstreamError) as exc:
        _fetch(lambda request: httpx.Response(503, text="busy"))
    assert exc.value.status == 503
    assert exc.value.retryable


def test_client_error_is_not_retryable():
    with pytest.raises(UpstreamError) as exc:
        _fetch(lambda request: httpx.Response(400))
    assert not exc.value.retryable


def test_invalid_json_is_upstream_error():
    with pytest.raises(UpstreamError):
        _fetch(lambda request: httpx.Response(200, text="<html>oops</html>"))


def test_transport_timeout_is_classified():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamTimeout):
        _fetch(handler)


def test_connect_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamError):
        _fetch(handler)


@pytest.mark.parametrize(
    "detail,expected",
    [
        ("https://meqasa.com/listings/flat-for-rent-at-osu-1", "/listings/flat-for-rent-at-osu-1"),
        ("/listings/flat-for-rent-at-osu-1", "/listings/flat-for-rent-at-osu-1"),
        ("flat-for-rent-at-osu-1", "/listings/flat-for-rent-at-osu-1"),
        ("/flat-for-rent-at-osu-1", "/listings/flat-for-rent-at-osu-1"),
    ],
)
def test_detailreq_paths(detail, expected):
    assert listing_path_from_payload({"detailreq": detail}) == expected


def test_path_built_from_listing_fields():
    payload = {
        "type": "Office Space",
        "contract": "Sale",
        "locationstring": "East Legon, Accra",
        "listingid": 86983,
    }
    assert (
        listing_path_from_payload(payload)
        == "/listings/office-space-for-sale-at-east-legon-accra-86983"
    )


def test_path_defaults_when_fields_missing():
    assert listing_path_from_payload({"listingid": "7"}) == "/listings/property-for-rent-at-ghana-7"


def test_missing_listingid_falls_back_to_reference():
    payload = json.loads('{"type": "house", "contract": "sale"}')
    assert (
        listing_path_from_payload(payload, "086983")
        == "/listings/house-for-sale-at-ghana-086983"
    )


def test_payload_without_identity_is_not_retryable():
    with pytest.raises(UpstreamError) as exc:
        listing_path_from_payload(json.loads('{"type": "house"}'))
    assert not exc.value.retryable


def test_bare_listing_payload_resolves_in_one_call(sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"type": "house", "contract": "sale"})

    async def scenario():
        ctx = ResolverContext.create(
            ResolverConfig(lookup_url="https://lookup.example/ref"),
            transport=httpx.MockTransport(handler),
            sleep=sleeps,
        )
        try:
            return await resolve_reference(ctx, "086983")
        finally:
            await ctx.aclose()

    result = asyncio.run(scenario())
    assert result.canonical_url == "/listings/house-for-sale-at-ghana-086983"
    assert len(calls) == 1
    assert sleeps.delays == []
