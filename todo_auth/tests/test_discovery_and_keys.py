"""Tests for the discovery cache and the JWKS key-set cache."""
import httpx
import pytest

from todo_auth.discovery import MetadataCache, discovery_url
from todo_auth.errors import DiscoveryError, ProviderTimeoutError, UnknownKeyError
from todo_auth.keys import KeySetCache

pytestmark = pytest.mark.anyio


def test_discovery_url_handles_trailing_slash():
    assert discovery_url("https://idp/o/app/") == "https://idp/o/app/.well-known/openid-configuration"
    assert discovery_url("https://idp") == "https://idp/.well-known/openid-configuration"


async def test_discover_fetches_once(provider):
    cache = MetadataCache(provider.issuer, provider.http())
    first = await cache.discover()
    second = await cache.discover()
    assert first is second
    assert first.token_endpoint == provider.discovery_doc["token_endpoint"]
    assert first.end_session_endpoint == provider.discovery_doc["end_session_endpoint"]
    assert provider.calls_to("/.well-known/openid-configuration") == 1


async def test_discover_invalidate_refetches(provider):
    cache = MetadataCache(provider.issuer, provider.http())
    await cache.discover()
    cache.invalidate()
    await cache.discover()
    assert provider.calls_to("/.well-known/openid-configuration") == 2


async def test_discover_http_error_is_not_cached():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="down")
        return httpx.Response(
            200,
            json={
                "issuer": "https://idp/",
                "authorization_endpoint": "https://idp/authorize",
                "token_endpoint": "https://idp/token",
                "jwks_uri": "https://idp/jwks",
            },
        )

    cache = MetadataCache("https://idp/", httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(DiscoveryError):
        await cache.discover()
    meta = await cache.discover()
    assert meta.end_session_endpoint is None
    assert len(calls) == 2


async def test_discover_invalid_json():
    def handler(request):
        return httpx.Response(200, text="<html>not json</html>")

    cache = MetadataCache("https://idp/", httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(DiscoveryError):
        await cache.discover()


async def test_discover_missing_endpoint(provider):
    del provider.discovery_doc["token_endpoint"]
    cache = MetadataCache(provider.issuer, provider.http())
    with pytest.raises(DiscoveryError, match="token_endpoint"):
        await cache.discover()


async def test_discover_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    cache = MetadataCache("https://idp/", httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(DiscoveryError):
        await cache.discover()


async def test_discover_timeout_is_distinct(provider):
    provider.timeout_paths.add("/application/o/todo-app/.well-known/openid-configuration")
    cache = MetadataCache(provider.issuer, provider.http())
    with pytest.raises(ProviderTimeoutError):
        await cache.discover()


async def test_signing_key_resolved_and_memoized(provider):
    http = provider.http()
    keys = KeySetCache(MetadataCache(provider.issuer, http), http)
    key = await keys.get_signing_key(provider.kid)
    assert key.key_id == provider.kid
    await keys.get_signing_key(provider.kid)
    assert provider.calls_to("/jwks/") == 1


async def test_unknown_kid_refetches_once_then_fails(provider):
    http = provider.http()
    keys = KeySetCache(MetadataCache(provider.issuer, http), http)
    await keys.get_signing_keys()
    with pytest.raises(UnknownKeyError):
        await keys.get_signing_key("rotated-away")
    assert provider.calls_to("/jwks/") == 2


async def test_rotated_key_found_after_refetch(provider, other_key):
    http = provider.http()
    keys = KeySetCache(MetadataCache(provider.issuer, http), http)
    await keys.get_signing_keys()
    provider.add_key(other_key, "idp-key-2")
    key = await keys.get_signing_key("idp-key-2")
    assert key.key_id == "idp-key-2"
    assert provider.calls_to("/jwks/") == 2


async def test_missing_kid_with_single_key(provider):
    http = provider.http()
    keys = KeySetCache(MetadataCache(provider.issuer, http), http)
    key = await keys.get_signing_key(None)
    assert key.key_id == provider.kid


async def test_jwks_without_usable_keys(provider):
    provider.jwks = {"keys": []}
    http = provider.http()
    keys = KeySetCache(MetadataCache(provider.issuer, http), http)
    with pytest.raises(DiscoveryError):
        await keys.get_signing_keys()
