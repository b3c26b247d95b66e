"""
Boundary shapes handed to caches and UIs: thread markers and parsed messages.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, model_validator

from nostr_reservations.models.event import Rumor, SignedEvent
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.reservation import ReservationPayload

MESSAGE_TYPES = {
    EventKind.RESERVATION_REQUEST: "request",
    EventKind.RESERVATION_RESPONSE: "response",
    EventKind.RESERVATION_MODIFICATION_REQUEST: "modification-request",
    EventKind.RESERVATION_MODIFICATION_RESPONSE: "modification-response",
}


class ThreadMarker(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_id: Optional[str] = None
    reply_id: Optional[str] = None
    root_relay: Optional[str] = None
    reply_relay: Optional[str] = None

    @model_validator(mode="after")
    def reply_requires_root(self) -> "ThreadMarker":
        if self.reply_id and not self.root_id:
            raise ValueError("a reply marker requires a root marker")
        return self

    @property
    def is_root(self) -> bool:
        return self.root_id is None and self.reply_id is None


class ReservationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    rumor: Rumor
    kind: EventKind
    payload: ReservationPayload
    sender_pubkey: str
    gift_wrap: Optional[SignedEvent] = None

    @property
    def type(self) -> str:
        return MESSAGE_TYPES[self.kind]
