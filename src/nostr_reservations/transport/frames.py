"""
Relay frame construction and parsing (NIP-01).

Client to relay: ``["EVENT", event]``, ``["REQ", sub_id, *filters]``,
``["CLOSE", sub_id]``. Relay to client: EVENT, OK, EOSE, NOTICE, CLOSED.
"""

import json
import uuid
from typing import Any, Optional

from pydantic import ValidationError

from nostr_reservations.models.event import SignedEvent
from nostr_reservations.models.frames import (
    ClosedFrame,
    EoseFrame,
    EventFrame,
    NoticeFrame,
    OkFrame,
    RelayFrame,
)


def new_subscription_id() -> str:
    return uuid.uuid4().hex[:16]


def build_event(event: SignedEvent) -> str:
    return json.dumps(["EVENT", event.model_dump()], separators=(",", ":"), ensure_ascii=False)


def build_req(subscription_id: str, filters: list[dict[str, Any]]) -> str:
    return json.dumps(["REQ", subscription_id, *filters], separators=(",", ":"))


def build_close(subscription_id: str) -> str:
    return json.dumps(["CLOSE", subscription_id])


def parse_frame(raw: str) -> Optional[RelayFrame]:
    """Parse a relay-to-client frame. Returns None if invalid or unknown."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, list) or not data or not isinstance(data[0], str):
        return None

    label, args = data[0], data[1:]
    try:
        if label == "EVENT" and len(args) >= 2:
            return EventFrame(subscription_id=args[0], event=SignedEvent.model_validate(args[1]))
        if label == "OK" and len(args) >= 2:
            return OkFrame(event_id=args[0], accepted=args[1], message=args[2] if len(args) > 2 else "")
        if label == "EOSE" and len(args) >= 1:
            return EoseFrame(subscription_id=args[0])
        if label == "NOTICE" and len(args) >= 1:
            return NoticeFrame(message=args[0])
        if label == "CLOSED" and len(args) >= 1:
            return ClosedFrame(subscription_id=args[0], message=args[1] if len(args) > 1 else "")
    except ValidationError:
        return None
    return None
