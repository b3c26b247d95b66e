"""
ReservationClient / AsyncReservationClient: main SDK clients.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator, Iterable, Optional, Union

from nostr_reservations.crypto.keys import get_public_key, normalize_private_key, normalize_public_key, npub_encode
from nostr_reservations.errors import InvalidPayload, RelayError
from nostr_reservations.events import finalize_event
from nostr_reservations.handlers import build_handler_events
from nostr_reservations.listener import ErrorCallback, ReservationListener
from nostr_reservations.models.event import SignedEvent
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.message import ReservationMessage
from nostr_reservations.negotiation import ConversationThread, build_threads, thread_root_for
from nostr_reservations.publisher import NegotiationPublisher, SendResult
from nostr_reservations.reservations import PayloadInput
from nostr_reservations.transport.http import RelayInfoClient, RelayInformation
from nostr_reservations.transport.relay import DEFAULT_PUBLISH_TIMEOUT, RelayPool, normalize_relays

logger = logging.getLogger(__name__)

DEFAULT_RELAYS = ["wss://relay.damus.io", "wss://nos.lol"]


class AsyncReservationClient:
    """Async reservation client (primary)."""

    def __init__(
        self,
        private_key: Union[str, bytes],
        relays: Optional[Iterable[str]] = None,
        pool: Optional[Any] = None,
        pow_difficulty: Optional[int] = None,
        auto_pow: bool = False,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
        info_client: Optional[RelayInfoClient] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._private_key = normalize_private_key(private_key)
        self.public_key = get_public_key(self._private_key)
        self.relays = normalize_relays(relays if relays is not None else DEFAULT_RELAYS)
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else RelayPool(publish_timeout=publish_timeout)
        self._pow_difficulty = pow_difficulty
        self._auto_pow = auto_pow and pow_difficulty is None
        self._info = info_client
        self.publisher = NegotiationPublisher(self.pool, self.relays)
        self.listener = ReservationListener(self.pool, self.relays, self._private_key, on_error=on_error)

    def __repr__(self) -> str:
        return f"AsyncReservationClient(npub={self.npub!r}, relays={self.relays!r})"

    @property
    def npub(self) -> str:
        return npub_encode(self.public_key)

    # Relay information

    async def relay_information(self, relay_url: str) -> RelayInformation:
        if self._info is None:
            self._info = RelayInfoClient()
        return await self._info.get(relay_url)

    async def required_pow_difficulty(self) -> int:
        """Highest ``min_pow_difficulty`` advertised by the configured relays."""
        required = 0
        for url in self.relays:
            try:
                info = await self.relay_information(url)
            except RelayError as e:
                logger.warning("No relay information for %s: %s", url, e)
                continue
            required = max(required, info.min_pow_difficulty)
        return required

    async def _pow(self) -> Optional[int]:
        if self._auto_pow:
            self._pow_difficulty = await self.required_pow_difficulty()
            self._auto_pow = False
        return self._pow_difficulty or None

    # Outbound

    async def send(
        self,
        payload: PayloadInput,
        recipient: str,
        kind: EventKind,
        root_id: Optional[str] = None,
        reply_id: Optional[str] = None,
    ) -> SendResult:
        """Send any reservation kind by thread ids rather than by replying to a message."""
        return await self.publisher.send_to_recipient_and_self(
            payload, self._private_key, normalize_public_key(recipient), self.public_key,
            kind=kind, root_id=root_id, reply_id=reply_id, pow_difficulty=await self._pow(),
        )

    def _counterparty(self, message: ReservationMessage, recipient: Optional[str]) -> str:
        if recipient:
            return recipient
        if message.sender_pubkey != self.public_key:
            return message.sender_pubkey
        # our own Self-CC copy: the counterparty is the first p tag
        for tag in message.rumor.tags:
            if len(tag) >= 2 and tag[0] == "p" and tag[1] != self.public_key:
                return tag[1]
        raise InvalidPayload("recipient", "cannot be derived from the message; pass it explicitly")

    def _threading(self, to: ReservationMessage) -> tuple[str, Optional[str]]:
        root_id = thread_root_for(to)
        reply_id = to.rumor.id if to.rumor.id != root_id else None
        return root_id, reply_id

    async def send_request(self, payload: PayloadInput, recipient: str) -> SendResult:
        """Send a reservation request; the result's ``inner_id`` is the thread root."""
        return await self.send(payload, recipient, EventKind.RESERVATION_REQUEST)

    async def respond(
        self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None,
    ) -> SendResult:
        root_id, reply_id = self._threading(to)
        return await self.send(
            payload, self._counterparty(to, recipient), EventKind.RESERVATION_RESPONSE, root_id, reply_id,
        )

    async def send_modification_request(
        self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None,
    ) -> SendResult:
        root_id, reply_id = self._threading(to)
        return await self.send(
            payload, self._counterparty(to, recipient),
            EventKind.RESERVATION_MODIFICATION_REQUEST, root_id, reply_id,
        )

    async def send_modification_response(
        self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None,
    ) -> SendResult:
        root_id, reply_id = self._threading(to)
        return await self.send(
            payload, self._counterparty(to, recipient),
            EventKind.RESERVATION_MODIFICATION_RESPONSE, root_id, reply_id,
        )

    async def announce(self, relay_url: Optional[str] = None) -> list[SignedEvent]:
        """Publish NIP-89 handler events saying this key handles the reservation kinds."""
        relay_url = relay_url or self.relays[0]
        events = [finalize_event(t, self._private_key) for t in build_handler_events(self.public_key, relay_url)]
        for event in events:
            await self.pool.publish(event, self.relays)
        return events

    # Inbound

    async def listen(self, since: Optional[int] = None) -> AsyncGenerator[ReservationMessage, None]:
        """Persistent stream of reservation messages (including our own Self-CC copies)."""
        async for message in self.listener.listen(since):
            yield message

    async def fetch_messages(self, since: Optional[int] = None) -> list[ReservationMessage]:
        return await self.listener.fetch(since)

    async def fetch_threads(self, since: Optional[int] = None) -> dict[str, ConversationThread]:
        return build_threads(await self.fetch_messages(since))

    async def close(self) -> None:
        if self._owns_pool:
            await self.pool.close()
        if self._info is not None:
            await self._info.close()
            self._info = None


class ReservationClient:
    """Sync wrapper around AsyncReservationClient. Runs the event loop internally."""

    def __init__(self, private_key: Union[str, bytes], **kwargs: Any):
        self._loop = asyncio.new_event_loop()
        self._async = AsyncReservationClient(private_key, **kwargs)

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def public_key(self) -> str:
        return self._async.public_key

    @property
    def npub(self) -> str:
        return self._async.npub

    @property
    def relays(self) -> list[str]:
        return self._async.relays

    def relay_information(self, relay_url: str) -> RelayInformation:
        return self._run(self._async.relay_information(relay_url))

    def send(self, payload: PayloadInput, recipient: str, kind: EventKind, **kwargs: Any) -> SendResult:
        return self._run(self._async.send(payload, recipient, kind, **kwargs))

    def send_request(self, payload: PayloadInput, recipient: str) -> SendResult:
        return self._run(self._async.send_request(payload, recipient))

    def respond(self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None) -> SendResult:
        return self._run(self._async.respond(to, payload, recipient))

    def send_modification_request(
        self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None,
    ) -> SendResult:
        return self._run(self._async.send_modification_request(to, payload, recipient))

    def send_modification_response(
        self, to: ReservationMessage, payload: PayloadInput, recipient: Optional[str] = None,
    ) -> SendResult:
        return self._run(self._async.send_modification_response(to, payload, recipient))

    def announce(self, relay_url: Optional[str] = None) -> list[SignedEvent]:
        return self._run(self._async.announce(relay_url))

    def fetch_messages(self, since: Optional[int] = None) -> list[ReservationMessage]:
        return self._run(self._async.fetch_messages(since))

    def fetch_threads(self, since: Optional[int] = None) -> dict[str, ConversationThread]:
        return self._run(self._async.fetch_threads(since))

    def close(self) -> None:
        try:
            self._run(self._async.close())
        finally:
            self._loop.close()
