"""
Self-CC publishing: one rumor, wrapped for the recipient and for the sender.

Both gift wraps carry the same rumor (same id), so the sender can later
recover their own outbound messages by unwrapping the self-addressed copy.
The two publishes run concurrently and are not atomic: either may fail
while the other succeeds.
"""

import asyncio
import logging
from typing import Any, Iterable, NamedTuple, Optional, Protocol

from pydantic import BaseModel

from nostr_reservations.crypto.keys import get_public_key
from nostr_reservations.errors import PublishError, ReservationError, UnexpectedKind
from nostr_reservations.giftwrap import wrap_rumor
from nostr_reservations.models.event import Rumor, SignedEvent
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.reservations import BUILDERS, PayloadInput, payload_kind

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def publish(self, event: SignedEvent, relays: Iterable[str]) -> Any: ...


class SendResult(NamedTuple):
    inner_id: str
    rumor: Rumor
    recipient_wrap: SignedEvent
    self_wrap: SignedEvent
    recipient_error: Optional[BaseException] = None
    self_error: Optional[BaseException] = None

    @property
    def delivered(self) -> bool:
        return self.recipient_error is None

    @property
    def partial(self) -> bool:
        return (self.recipient_error is None) != (self.self_error is None)


def _resolve_kind(payload: PayloadInput, kind: Optional[int]) -> EventKind:
    if isinstance(payload, BaseModel):
        actual = payload_kind(payload)
        if kind is not None and kind != actual:
            raise UnexpectedKind(int(kind), int(actual))
        return actual
    if kind is None:
        raise UnexpectedKind([int(k) for k in BUILDERS], 0)
    if kind not in BUILDERS:
        raise UnexpectedKind([int(k) for k in BUILDERS], kind)
    return EventKind(kind)


class NegotiationPublisher:
    def __init__(self, pool: EventPublisher, relays: Iterable[str]):
        self._pool = pool
        self._relays = list(relays)

    @property
    def relays(self) -> list[str]:
        return list(self._relays)

    def build(
        self,
        payload: PayloadInput,
        sender_private_key: bytes,
        recipient_public_key: str,
        *,
        kind: Optional[int] = None,
        root_id: Optional[str] = None,
        reply_id: Optional[str] = None,
    ) -> Rumor:
        resolved = _resolve_kind(payload, kind)
        builder = BUILDERS[resolved]
        if resolved == EventKind.RESERVATION_REQUEST:
            return builder(payload, sender_private_key, recipient_public_key)
        relay_hint = self._relays[0] if self._relays else None
        return builder(
            payload, sender_private_key, recipient_public_key,
            root_id=root_id, reply_id=reply_id, relay_hint=relay_hint,
        )

    async def send_to_recipient_and_self(
        self,
        payload: PayloadInput,
        sender_private_key: bytes,
        recipient_public_key: str,
        sender_public_key: Optional[str] = None,
        *,
        kind: Optional[int] = None,
        root_id: Optional[str] = None,
        reply_id: Optional[str] = None,
        pow_difficulty: Optional[int] = None,
    ) -> SendResult:
        """Build one rumor, wrap it for the recipient and for the sender, publish both.

        Raises PublishError only when both publishes fail. A single failure is
        logged and reported on the result.
        """
        sender_public_key = sender_public_key or get_public_key(sender_private_key)
        rumor = self.build(
            payload, sender_private_key, recipient_public_key,
            kind=kind, root_id=root_id, reply_id=reply_id,
        )

        recipient_wrap, self_wrap = await asyncio.gather(
            asyncio.to_thread(wrap_rumor, rumor, sender_private_key, recipient_public_key, pow_difficulty),
            asyncio.to_thread(wrap_rumor, rumor, sender_private_key, sender_public_key, pow_difficulty),
        )

        recipient_outcome, self_outcome = await asyncio.gather(
            self._pool.publish(recipient_wrap, self._relays),
            self._pool.publish(self_wrap, self._relays),
            return_exceptions=True,
        )
        for outcome in (recipient_outcome, self_outcome):
            if isinstance(outcome, BaseException) and not isinstance(outcome, ReservationError):
                raise outcome

        recipient_error = recipient_outcome if isinstance(recipient_outcome, BaseException) else None
        self_error = self_outcome if isinstance(self_outcome, BaseException) else None
        if recipient_error and self_error:
            raise PublishError(
                f"Failed to publish reservation {rumor.id} to recipient and self",
                {"recipient": str(recipient_error), "self": str(self_error)},
            )
        if recipient_error:
            logger.warning("Recipient copy of %s was not published: %s", rumor.id, recipient_error)
        if self_error:
            logger.warning("Self copy of %s was not published: %s", rumor.id, self_error)

        return SendResult(rumor.id, rumor, recipient_wrap, self_wrap, recipient_error, self_error)
