"""Shared fixtures: keypairs and an in-memory relay pool."""

from typing import Any, Iterable

import pytest

from nostr_reservations.crypto.keys import generate_keypair
from nostr_reservations.errors import RelayError
from nostr_reservations.models.event import SignedEvent
from nostr_reservations.transport.relay import PublishResult


def _matches(f: dict[str, Any], event: SignedEvent) -> bool:
    if "kinds" in f and event.kind not in f["kinds"]:
        return False
    if "#p" in f:
        tagged = {tag[1] for tag in event.tags if len(tag) >= 2 and tag[0] == "p"}
        if not tagged & set(f["#p"]):
            return False
    return True


class FakePool:
    """Stores published events; publishes to any pubkey in ``fail_for`` are rejected."""

    def __init__(self, fail_for: Iterable[str] = ()):
        self.events: list[SignedEvent] = []
        self.published: list[tuple[SignedEvent, list[str]]] = []
        self.subscriptions: list[list[dict[str, Any]]] = []
        self.fail_for = set(fail_for)
        self.closed = False

    async def publish(self, event: SignedEvent, relays: Iterable[str]) -> PublishResult:
        relays = list(relays)
        self.published.append((event, relays))
        recipient = next((tag[1] for tag in event.tags if tag[0] == "p"), None)
        if recipient in self.fail_for:
            raise RelayError("blocked: rejected by test relay", "wss://relay.test")
        self.events.append(event)
        return PublishResult(relays, {})

    async def subscribe(self, filters, relays, close_on_eose: bool = False):
        self.subscriptions.append(filters)
        for event in list(self.events):
            if any(_matches(f, event) for f in filters):
                yield event

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def alice():
    return generate_keypair()


@pytest.fixture
def bob():
    return generate_keypair()


@pytest.fixture
def carol():
    return generate_keypair()


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def make_pool():
    return FakePool
