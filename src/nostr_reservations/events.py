"""
Record hashing, signing and serialization (NIP-01).

The id is sha256 over the compact JSON array
``[0, pubkey, created_at, kind, tags, content]``; that order and field set
is what makes rumor ids deterministic across wraps.
"""

import hashlib
import json
import time
from typing import Union

from coincurve import PrivateKey, PublicKeyXOnly

from nostr_reservations.crypto.keys import get_public_key
from nostr_reservations.models.event import EventTemplate, Rumor, SignedEvent, UnsignedEvent

AnyEvent = Union[UnsignedEvent, Rumor, SignedEvent]


def now() -> int:
    return int(time.time())


def serialize_for_hash(event: UnsignedEvent) -> str:
    return json.dumps(
        [0, event.pubkey, event.created_at, event.kind, event.tags, event.content],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def get_event_hash(event: UnsignedEvent) -> str:
    return hashlib.sha256(serialize_for_hash(event).encode("utf-8")).hexdigest()


def to_unsigned(template: EventTemplate, pubkey: str) -> UnsignedEvent:
    return UnsignedEvent(
        kind=template.kind,
        pubkey=pubkey,
        created_at=template.created_at if template.created_at is not None else now(),
        tags=[list(tag) for tag in template.tags],
        content=template.content,
    )


def with_id(event: UnsignedEvent) -> Rumor:
    fields = event.model_dump(include={"kind", "pubkey", "created_at", "tags", "content"})
    return Rumor(**fields, id=get_event_hash(event))


def finalize_event(event: Union[EventTemplate, UnsignedEvent], private_key: bytes) -> SignedEvent:
    """Attach pubkey (for templates), id and a BIP-340 signature."""
    if isinstance(event, EventTemplate):
        event = to_unsigned(event, get_public_key(private_key))
    rumor = with_id(event)
    sig = PrivateKey(private_key).sign_schnorr(bytes.fromhex(rumor.id))
    return SignedEvent(**rumor.model_dump(), sig=sig.hex())


def verify_event(event: SignedEvent) -> bool:
    if get_event_hash(event) != event.id:
        return False
    try:
        return PublicKeyXOnly(bytes.fromhex(event.pubkey)).verify(
            bytes.fromhex(event.sig), bytes.fromhex(event.id)
        )
    except ValueError:
        return False


def to_json(event: AnyEvent) -> str:
    return json.dumps(event.model_dump(), separators=(",", ":"), ensure_ascii=False)
