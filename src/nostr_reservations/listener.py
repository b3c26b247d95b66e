"""
Inbound reservation messages: subscribe to gift wraps addressed to us,
unwrap them and parse the reservation inside.

A shared relay also carries wraps for other people and other protocols, so
failures here are reported through ``on_error`` and skipped, never raised.
"""

import logging
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Iterable, Optional, Protocol

from nostr_reservations.crypto.keys import get_public_key
from nostr_reservations.errors import DecryptionFailed, ReservationError
from nostr_reservations.giftwrap import TWO_DAYS, unwrap
from nostr_reservations.models.event import SignedEvent
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.message import ReservationMessage
from nostr_reservations.reservations import is_reservation_kind, to_reservation_message

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[ReservationError, SignedEvent], None]


class EventSubscriber(Protocol):
    def subscribe(
        self, filters: list[dict[str, Any]], relays: Iterable[str], close_on_eose: bool = False,
    ) -> AsyncIterator[SignedEvent]: ...


class ReservationListener:
    def __init__(
        self,
        pool: EventSubscriber,
        relays: Iterable[str],
        private_key: bytes,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._pool = pool
        self._relays = list(relays)
        self._private_key = private_key
        self._public_key = get_public_key(private_key)
        self._on_error = on_error

    def filters(self, since: Optional[int] = None) -> list[dict[str, Any]]:
        """Gift wraps tagged to our key. ``since`` is widened by the wrap timestamp jitter."""
        f: dict[str, Any] = {"kinds": [int(EventKind.GIFT_WRAP)], "#p": [self._public_key]}
        if since is not None:
            f["since"] = max(0, since - TWO_DAYS)
        return [f]

    def _report(self, error: ReservationError, event: SignedEvent) -> None:
        if self._on_error is not None:
            self._on_error(error, event)

    def handle(self, event: SignedEvent) -> Optional[ReservationMessage]:
        """Unwrap and parse one gift wrap; None when it is not a reservation for us."""
        try:
            rumor = unwrap(event, self._private_key)
        except DecryptionFailed as e:
            logger.debug("Skipping %s: %s", event.id, e)
            self._report(e, event)
            return None

        if not is_reservation_kind(rumor.kind):
            logger.debug("Ignoring unwrapped kind %d in %s", rumor.kind, event.id)
            return None

        try:
            return to_reservation_message(rumor, gift_wrap=event)
        except ReservationError as e:
            logger.warning("Malformed reservation %s in %s: %s", rumor.id, event.id, e)
            self._report(e, event)
            return None

    async def listen(self, since: Optional[int] = None) -> AsyncGenerator[ReservationMessage, None]:
        """Yield reservation messages as they arrive; runs until cancelled."""
        async for event in self._pool.subscribe(self.filters(since), self._relays):
            message = self.handle(event)
            if message is not None:
                yield message

    async def fetch(self, since: Optional[int] = None) -> list[ReservationMessage]:
        """Collect stored reservation messages up to end-of-stored-events."""
        messages = []
        async for event in self._pool.subscribe(self.filters(since), self._relays, close_on_eose=True):
            message = self.handle(event)
            if message is not None:
                messages.append(message)
        return messages
