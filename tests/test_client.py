"""Client flows against an in-memory relay pool."""

import httpx
import pytest

from nostr_reservations import AsyncReservationClient, ReservationClient
from nostr_reservations.client import DEFAULT_RELAYS
from nostr_reservations.errors import InvalidKey, RelayError
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.negotiation import NegotiationState
from nostr_reservations.pow import get_difficulty
from nostr_reservations.transport.http import RelayInfoClient

RELAYS = ["wss://relay.test"]
TIME = 1729468800
LATER = 1729470600
TZ = "America/Los_Angeles"
REQUEST = {"party_size": 2, "time": TIME, "tzid": TZ, "message": "Dinner"}


def _info_client(min_pow):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"name": "test", "limitation": {"min_pow_difficulty": min_pow}})
    return RelayInfoClient(transport=httpx.MockTransport(handler))


def test_defaults(alice):
    client = AsyncReservationClient(alice.nsec)
    assert client.relays == DEFAULT_RELAYS
    assert client.public_key == alice.public_key
    assert client.npub == alice.npub
    assert alice.nsec not in repr(client)


def test_invalid_key():
    with pytest.raises(InvalidKey):
        AsyncReservationClient("nsec1notakey")


@pytest.mark.asyncio
async def test_full_negotiation(pool, alice, bob):
    diner = AsyncReservationClient(alice.nsec, relays=RELAYS, pool=pool)
    restaurant = AsyncReservationClient(bob.private_key.hex(), relays=RELAYS, pool=pool)

    sent = await diner.send_request({**REQUEST}, bob.npub)

    inbox = await restaurant.fetch_messages()
    assert [m.rumor.id for m in inbox] == [sent.inner_id]
    request = inbox[0]
    assert request.sender_pubkey == alice.public_key

    await restaurant.respond(request, {"status": "confirmed", "time": TIME, "tzid": TZ})

    threads = await diner.fetch_threads()
    assert list(threads) == [sent.inner_id]
    thread = threads[sent.inner_id]
    assert thread.state is NegotiationState.CONFIRMED
    # the diner sees their own Self-CC copy of the request
    assert thread.request.rumor.id == sent.inner_id

    await diner.send_modification_request(
        thread.latest, {"party_size": 2, "time": LATER, "tzid": TZ, "message": "Running late"}
    )

    thread = (await restaurant.fetch_threads())[sent.inner_id]
    assert thread.state is NegotiationState.MODIFICATION_REQUESTED
    modification = thread.latest
    assert modification.kind is EventKind.RESERVATION_MODIFICATION_REQUEST

    await restaurant.send_modification_response(
        modification, {"status": "confirmed", "time": LATER, "tzid": TZ, "duration": 7200}
    )

    for client in (diner, restaurant):
        thread = (await client.fetch_threads())[sent.inner_id]
        assert thread.state is NegotiationState.MODIFICATION_CONFIRMED
        assert [m.kind for m in thread.messages] == [9901, 9902, 9903, 9904]

    await diner.close()
    assert not pool.closed


@pytest.mark.asyncio
async def test_reply_to_own_copy_targets_counterparty(pool, alice, bob):
    diner = AsyncReservationClient(alice.private_key, relays=RELAYS, pool=pool)
    sent = await diner.send_request(REQUEST, bob.public_key)
    own_copy = (await diner.fetch_messages())[0]
    assert own_copy.rumor.id == sent.inner_id

    result = await diner.send_modification_request(own_copy, {**REQUEST, "party_size": 3})
    assert result.recipient_wrap.tags == [["p", bob.public_key]]


@pytest.mark.asyncio
async def test_send_by_thread_ids(pool, alice, bob):
    restaurant = AsyncReservationClient(bob.private_key, relays=RELAYS, pool=pool)
    root_id = "1" * 64
    result = await restaurant.send(
        {"status": "declined"}, alice.npub, EventKind.RESERVATION_RESPONSE, root_id=root_id
    )
    assert ["e", root_id, RELAYS[0], "root"] in result.rumor.tags


@pytest.mark.asyncio
async def test_auto_pow_uses_relay_information(pool, alice, bob):
    diner = AsyncReservationClient(alice.private_key, relays=RELAYS, pool=pool,
                                   auto_pow=True, info_client=_info_client(3))
    assert await diner.required_pow_difficulty() == 3
    result = await diner.send_request(REQUEST, bob.public_key)
    assert get_difficulty(result.recipient_wrap.id) >= 3
    await diner.close()


@pytest.mark.asyncio
async def test_required_pow_skips_unreachable_relays(pool, alice):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    diner = AsyncReservationClient(alice.private_key, relays=RELAYS, pool=pool,
                                   info_client=RelayInfoClient(transport=httpx.MockTransport(handler)))
    assert await diner.required_pow_difficulty() == 0
    with pytest.raises(RelayError):
        await diner.relay_information(RELAYS[0])
    await diner.close()


def test_sync_client(pool, alice, bob):
    diner = ReservationClient(alice.nsec, relays=RELAYS, pool=pool)
    restaurant = ReservationClient(bob.nsec, relays=RELAYS, pool=pool)
    try:
        sent = diner.send_request(REQUEST, bob.npub)
        request = restaurant.fetch_messages()[0]
        restaurant.respond(request, {"status": "declined", "message": "Fully booked"})
        thread = diner.fetch_threads()[sent.inner_id]
        assert thread.state is NegotiationState.DECLINED
        assert thread.latest.payload.message == "Fully booked"
    finally:
        diner.close()
        restaurant.close()
