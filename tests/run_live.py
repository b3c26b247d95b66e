"""Live check: full negotiation between two fresh keys over a real relay."""

import asyncio
import os
import sys

# Add src to path for development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from nostr_reservations import AsyncReservationClient, DecryptionFailed, NegotiationState
from nostr_reservations.crypto.keys import generate_keypair
from nostr_reservations.events import now
from nostr_reservations.giftwrap import unwrap

RELAY_URL = os.environ.get("NOSTR_RELAY_URL", "wss://nos.lol")

passed = 0
failed = 0

def check(condition, msg):
    global passed, failed
    if condition:
        print(f"  PASS: {msg}")
        passed += 1
    else:
        print(f"  FAIL: {msg}")
        failed += 1


async def threads_for(client, root_id, want_state=None, attempts=5):
    for _ in range(attempts):
        threads = await client.fetch_threads(since=now() - 120)
        thread = threads.get(root_id)
        if thread and (want_state is None or thread.state is want_state):
            return thread
        await asyncio.sleep(1)
    return None


async def main():
    diner_keys, restaurant_keys = generate_keypair(), generate_keypair()
    diner = AsyncReservationClient(diner_keys.private_key, relays=[RELAY_URL], auto_pow=True)
    restaurant = AsyncReservationClient(restaurant_keys.private_key, relays=[RELAY_URL], auto_pow=True)
    tomorrow = now() + 86400

    # T1: Relay information
    print("\n=== T1: Relay information ===")
    info = await diner.relay_information(RELAY_URL)
    check(info is not None, f"NIP-11 document: {info.name} ({info.software})")
    print(f"  min_pow_difficulty: {info.min_pow_difficulty}")

    # T2: Request
    print("\n=== T2: Request ===")
    sent = await diner.send_request(
        {"party_size": 2, "time": tomorrow, "tzid": "America/Los_Angeles", "message": "live check"},
        restaurant_keys.npub,
    )
    check(sent.delivered, f"Request published: {sent.inner_id}")
    check(sent.self_error is None, "Self copy published")
    check(sent.recipient_wrap.pubkey != diner_keys.public_key, "Wrap author is a one-time key")
    try:
        unwrap(sent.recipient_wrap, diner_keys.private_key)
        check(False, "Sender should not open the recipient copy")
    except DecryptionFailed:
        check(True, "Recipient copy is unreadable to the sender")

    # T3: Restaurant sees it
    print("\n=== T3: Restaurant inbox ===")
    thread = await threads_for(restaurant, sent.inner_id)
    check(thread is not None and thread.state is NegotiationState.REQUESTED, "Thread is requested")

    # T4: Confirm
    print("\n=== T4: Confirm ===")
    if thread is not None:
        await restaurant.respond(
            thread.request, {"status": "confirmed", "time": tomorrow, "tzid": "America/Los_Angeles"}
        )
    thread = await threads_for(diner, sent.inner_id, NegotiationState.CONFIRMED)
    check(thread is not None, "Diner sees confirmation")

    # T5: Modify
    print("\n=== T5: Modification ===")
    if thread is not None:
        await diner.send_modification_request(
            thread.latest, {"party_size": 3, "time": tomorrow + 1800, "tzid": "America/Los_Angeles"}
        )
    thread = await threads_for(restaurant, sent.inner_id, NegotiationState.MODIFICATION_REQUESTED)
    check(thread is not None, "Restaurant sees modification request")
    if thread is not None:
        await restaurant.send_modification_response(
            thread.latest, {"status": "confirmed", "time": tomorrow + 1800, "tzid": "America/Los_Angeles"}
        )
    thread = await threads_for(diner, sent.inner_id, NegotiationState.MODIFICATION_CONFIRMED)
    check(thread is not None, "Diner sees modification confirmed")
    if thread is not None:
        check([m.kind for m in thread.messages] == [9901, 9902, 9903, 9904], "Thread holds all four kinds")

    await diner.close()
    await restaurant.close()

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed out of {passed + failed}")
    print("=" * 50)
    sys.exit(1 if failed > 0 else 0)


asyncio.run(main())
