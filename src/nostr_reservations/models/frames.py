"""
Relay frames (NIP-01) received from a relay.
"""

from typing import Literal, Union
from pydantic import BaseModel

from nostr_reservations.models.event import SignedEvent


class EventFrame(BaseModel):
    type: Literal["EVENT"] = "EVENT"
    subscription_id: str
    event: SignedEvent


class OkFrame(BaseModel):
    type: Literal["OK"] = "OK"
    event_id: str
    accepted: bool
    message: str = ""


class EoseFrame(BaseModel):
    type: Literal["EOSE"] = "EOSE"
    subscription_id: str


class NoticeFrame(BaseModel):
    type: Literal["NOTICE"] = "NOTICE"
    message: str


class ClosedFrame(BaseModel):
    type: Literal["CLOSED"] = "CLOSED"
    subscription_id: str
    message: str = ""


RelayFrame = Union[EventFrame, OkFrame, EoseFrame, NoticeFrame, ClosedFrame]
