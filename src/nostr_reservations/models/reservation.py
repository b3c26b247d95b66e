"""
Reservation payload models for the four negotiation message kinds.
"""

from enum import Enum
from typing import ClassVar, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator, model_validator

from nostr_reservations.models.kinds import EventKind

MAX_MESSAGE_LENGTH = 2000
MIN_PARTY_SIZE = 1
MAX_PARTY_SIZE = 20


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    KIND: ClassVar[EventKind]

    message: Optional[StrictStr] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)

    @field_validator("message")
    @classmethod
    def empty_message_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class ReservationRequest(_Payload):
    """kind 9901 reservation.request"""
    KIND: ClassVar[EventKind] = EventKind.RESERVATION_REQUEST

    # strict: wrong-typed input (True, 1.0, "2") is rejected, not coerced
    party_size: StrictInt = Field(ge=MIN_PARTY_SIZE, le=MAX_PARTY_SIZE)
    time: StrictInt
    tzid: StrictStr = Field(min_length=1)
    name: Optional[StrictStr] = None
    telephone: Optional[StrictStr] = None   # tel: URI
    email: Optional[StrictStr] = None       # mailto: URI
    duration: Optional[StrictInt] = Field(default=None, gt=0)  # seconds
    earliest_time: Optional[StrictInt] = None
    latest_time: Optional[StrictInt] = None

    @field_validator("telephone")
    @classmethod
    def validate_telephone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.startswith("tel:") or len(value) <= len("tel:"):
            raise ValueError("telephone must be a tel: URI")
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        address = value[len("mailto:"):] if value.startswith("mailto:") else ""
        local, _, domain = address.partition("@")
        if not local or not domain:
            raise ValueError("email must be a mailto: URI")
        return value

    @model_validator(mode="after")
    def validate_window(self) -> "ReservationRequest":
        if (self.earliest_time is not None and self.latest_time is not None
                and self.earliest_time > self.latest_time):
            raise ValueError("earliest_time must not be after latest_time")
        return self


class ReservationModificationRequest(ReservationRequest):
    """kind 9903 reservation.modification.request"""
    KIND: ClassVar[EventKind] = EventKind.RESERVATION_MODIFICATION_REQUEST


class ReservationResponse(_Payload):
    """kind 9902 reservation.response"""
    KIND: ClassVar[EventKind] = EventKind.RESERVATION_RESPONSE
    ALLOWED_STATUSES: ClassVar[frozenset[ReservationStatus]] = frozenset(ReservationStatus)

    status: ReservationStatus
    time: Optional[StrictInt] = None
    tzid: Optional[StrictStr] = Field(default=None, min_length=1)
    duration: Optional[StrictInt] = Field(default=None, gt=0)


class ReservationModificationResponse(ReservationResponse):
    """kind 9904 reservation.modification.response"""
    KIND: ClassVar[EventKind] = EventKind.RESERVATION_MODIFICATION_RESPONSE
    ALLOWED_STATUSES: ClassVar[frozenset[ReservationStatus]] = frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.DECLINED}
    )


ReservationPayload = Union[
    ReservationRequest,
    ReservationResponse,
    ReservationModificationRequest,
    ReservationModificationResponse,
]

PAYLOAD_TYPES: dict[EventKind, type] = {
    EventKind.RESERVATION_REQUEST: ReservationRequest,
    EventKind.RESERVATION_RESPONSE: ReservationResponse,
    EventKind.RESERVATION_MODIFICATION_REQUEST: ReservationModificationRequest,
    EventKind.RESERVATION_MODIFICATION_RESPONSE: ReservationModificationResponse,
}
