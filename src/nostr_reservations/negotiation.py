"""
Negotiation state derived from a thread of reservation messages.

The protocol itself stores no state; an observer folds the thread's
messages (oldest first) and the latest message decides. Duplicates from
Self-CC copies and out-of-order delivery are tolerated.
"""

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from nostr_reservations.errors import MissingThreadRoot
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.message import ReservationMessage
from nostr_reservations.models.reservation import ReservationPayload, ReservationStatus
from nostr_reservations.threads import read_markers


class NegotiationState(str, Enum):
    START = "start"
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    MODIFICATION_REQUESTED = "modification_requested"
    MODIFICATION_CONFIRMED = "modification_confirmed"
    MODIFICATION_DECLINED = "modification_declined"


# CONFIRMED is terminal unless a modification request follows.
TERMINAL_STATES = frozenset({
    NegotiationState.CONFIRMED,
    NegotiationState.DECLINED,
    NegotiationState.CANCELLED,
    NegotiationState.MODIFICATION_CONFIRMED,
    NegotiationState.MODIFICATION_DECLINED,
})

_RESPONSE_STATES = {
    ReservationStatus.CONFIRMED: NegotiationState.CONFIRMED,
    ReservationStatus.DECLINED: NegotiationState.DECLINED,
    ReservationStatus.CANCELLED: NegotiationState.CANCELLED,
}

_MODIFICATION_RESPONSE_STATES = {
    ReservationStatus.CONFIRMED: NegotiationState.MODIFICATION_CONFIRMED,
    ReservationStatus.DECLINED: NegotiationState.MODIFICATION_DECLINED,
}


def transition(state: NegotiationState, payload: ReservationPayload) -> NegotiationState:
    """State after observing ``payload``; the latest message wins over ``state``."""
    kind = payload.KIND
    if kind == EventKind.RESERVATION_REQUEST:
        return NegotiationState.REQUESTED
    if kind == EventKind.RESERVATION_MODIFICATION_REQUEST:
        return NegotiationState.MODIFICATION_REQUESTED
    if kind == EventKind.RESERVATION_RESPONSE:
        return _RESPONSE_STATES[payload.status]
    if kind == EventKind.RESERVATION_MODIFICATION_RESPONSE:
        # a cancelled modification response is rejected at parse time
        return _MODIFICATION_RESPONSE_STATES.get(payload.status, state)
    return state


def is_terminal(state: NegotiationState) -> bool:
    return state in TERMINAL_STATES


def _dedupe(messages: Iterable[ReservationMessage]) -> list[ReservationMessage]:
    seen: set[str] = set()
    unique = []
    for message in messages:
        if message.rumor.id not in seen:
            seen.add(message.rumor.id)
            unique.append(message)
    return unique


def _sorted(messages: Iterable[ReservationMessage]) -> list[ReservationMessage]:
    return sorted(messages, key=lambda m: m.rumor.created_at)


def derive_state(messages: Iterable[ReservationMessage]) -> NegotiationState:
    state = NegotiationState.START
    for message in _sorted(_dedupe(messages)):
        state = transition(state, message.payload)
    return state


def thread_root_for(message: ReservationMessage) -> str:
    """Root id of the thread ``message`` belongs to: a request is its own root."""
    if message.kind == EventKind.RESERVATION_REQUEST:
        return message.rumor.id
    root_id = read_markers(message.rumor).root_id
    if root_id is None:
        raise MissingThreadRoot(message.kind)
    return root_id


class ConversationThread(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_id: str
    messages: list[ReservationMessage]
    state: NegotiationState

    @property
    def request(self) -> Optional[ReservationMessage]:
        for message in self.messages:
            if message.kind == EventKind.RESERVATION_REQUEST and message.rumor.id == self.root_id:
                return message
        return None

    @property
    def latest(self) -> Optional[ReservationMessage]:
        return self.messages[-1] if self.messages else None


def build_threads(messages: Iterable[ReservationMessage]) -> dict[str, ConversationThread]:
    """Group messages into threads keyed by root id, oldest message first."""
    grouped: dict[str, list[ReservationMessage]] = {}
    for message in _dedupe(messages):
        grouped.setdefault(thread_root_for(message), []).append(message)
    return {
        root_id: ConversationThread(root_id=root_id, messages=_sorted(items), state=derive_state(items))
        for root_id, items in grouped.items()
    }


def merge_messages(
    existing: Iterable[ReservationMessage],
    incoming: Iterable[ReservationMessage],
) -> list[ReservationMessage]:
    """Union of both lists without repeated rumor ids, newest first."""
    merged = _dedupe([*existing, *incoming])
    return sorted(merged, key=lambda m: m.rumor.created_at, reverse=True)
