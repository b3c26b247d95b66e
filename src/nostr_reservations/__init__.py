"""
nostr-reservations: private reservation negotiation over Nostr relays.

Gift-wrapped (NIP-59) reservation requests and responses, NIP-13 proof of
work, NIP-10 threading, and an asyncio relay client.
"""

from nostr_reservations.client import ReservationClient, AsyncReservationClient, DEFAULT_RELAYS
from nostr_reservations.crypto.keys import Keypair, generate_keypair
from nostr_reservations.errors import (
    ReservationError,
    InvalidPayload,
    ConfirmedRequiresTime,
    MalformedTimestamp,
    InvalidTimezone,
    InvalidTimestamp,
    InvalidKey,
    UnexpectedKind,
    MissingTag,
    MissingThreadRoot,
    DecryptionFailed,
    PowNotReached,
    PowCancelled,
    RelayError,
    PublishError,
)
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.message import ReservationMessage, ThreadMarker
from nostr_reservations.models.reservation import (
    ReservationRequest,
    ReservationResponse,
    ReservationModificationRequest,
    ReservationModificationResponse,
    ReservationStatus,
)
from nostr_reservations.negotiation import ConversationThread, NegotiationState
from nostr_reservations.publisher import NegotiationPublisher, SendResult

__version__ = "0.1.0"
__all__ = [
    "ReservationClient",
    "AsyncReservationClient",
    "DEFAULT_RELAYS",
    "Keypair",
    "generate_keypair",
    "ReservationError",
    "InvalidPayload",
    "ConfirmedRequiresTime",
    "MalformedTimestamp",
    "InvalidTimezone",
    "InvalidTimestamp",
    "InvalidKey",
    "UnexpectedKind",
    "MissingTag",
    "MissingThreadRoot",
    "DecryptionFailed",
    "PowNotReached",
    "PowCancelled",
    "RelayError",
    "PublishError",
    "EventKind",
    "ReservationMessage",
    "ThreadMarker",
    "ReservationRequest",
    "ReservationResponse",
    "ReservationModificationRequest",
    "ReservationModificationResponse",
    "ReservationStatus",
    "ConversationThread",
    "NegotiationState",
    "NegotiationPublisher",
    "SendResult",
]
