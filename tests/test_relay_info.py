"""NIP-11 relay information over HTTP."""

import httpx
import pytest

from nostr_reservations.errors import RelayError
from nostr_reservations.transport.http import RelayInfoClient, RelayInformation, http_url

DOCUMENT = {
    "name": "relay.test",
    "description": "test relay",
    "supported_nips": [1, 11, 13, 59],
    "software": "strfry",
    "version": "1.0",
    "limitation": {"min_pow_difficulty": 16, "auth_required": False},
    "fees": {"admission": []},
}


def _client(handler):
    return RelayInfoClient(transport=httpx.MockTransport(handler))


def test_http_url():
    assert http_url("wss://relay.test/") == "https://relay.test"
    assert http_url("ws://localhost:7777") == "http://localhost:7777"
    with pytest.raises(RelayError):
        http_url("https://relay.test")


def test_defaults():
    info = RelayInformation()
    assert info.min_pow_difficulty == 0
    assert not info.supports(13)


@pytest.mark.asyncio
async def test_get():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = (request.url.scheme, request.url.host)
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, json=DOCUMENT)

    client = _client(handler)
    try:
        info = await client.get("wss://relay.test")
    finally:
        await client.close()

    assert seen == {"url": ("https", "relay.test"), "accept": "application/nostr+json"}
    assert info.name == "relay.test"
    assert info.min_pow_difficulty == 16
    assert info.supports(59)
    assert info.model_extra["fees"] == {"admission": []}


@pytest.mark.asyncio
async def test_http_error():
    client = _client(lambda request: httpx.Response(404, text="not found"))
    with pytest.raises(RelayError) as exc_info:
        await client.get("wss://relay.test")
    assert exc_info.value.relay == "wss://relay.test"
    await client.close()


@pytest.mark.asyncio
async def test_invalid_document():
    client = _client(lambda request: httpx.Response(200, text="<html>hello</html>"))
    with pytest.raises(RelayError):
        await client.get("wss://relay.test")
    await client.close()


@pytest.mark.asyncio
async def test_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with pytest.raises(RelayError):
        await client.get("wss://relay.test")
    await client.close()
