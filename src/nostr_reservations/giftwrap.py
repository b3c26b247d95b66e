"""
NIP-59 gift wrap: rumor -> seal (kind 13) -> gift wrap (kind 1059).

The rumor is the unsigned record holding the real payload. The seal is
signed by the sender and encrypts the rumor to the recipient. The gift wrap
is signed by a one-time key, encrypts the seal, and carries only a ``p`` tag
naming the recipient, so relays see neither sender nor kind.
"""

import json
import logging
import secrets
from typing import Iterable, NamedTuple, Optional

from pydantic import ValidationError

from nostr_reservations import pow
from nostr_reservations.crypto import nip44
from nostr_reservations.crypto.keys import generate_private_key, get_public_key
from nostr_reservations.errors import DecryptionFailed
from nostr_reservations.events import finalize_event, get_event_hash, now, to_json, to_unsigned, verify_event, with_id
from nostr_reservations.models.event import EventTemplate, Rumor, SignedEvent, UnsignedEvent
from nostr_reservations.models.kinds import EventKind

logger = logging.getLogger(__name__)

TWO_DAYS = 2 * 24 * 60 * 60


class UnwrapBatch(NamedTuple):
    rumors: list[Rumor]
    failures: list[tuple[SignedEvent, DecryptionFailed]]


def _random_past() -> int:
    return now() - secrets.randbelow(TWO_DAYS)


def create_rumor(template: EventTemplate, sender_private_key: bytes) -> Rumor:
    return with_id(to_unsigned(template, get_public_key(sender_private_key)))


def create_seal(rumor: Rumor, sender_private_key: bytes, recipient_public_key: str) -> SignedEvent:
    content = nip44.encrypt_message(to_json(rumor), sender_private_key, recipient_public_key)
    return finalize_event(
        EventTemplate(kind=EventKind.SEAL, created_at=_random_past(), tags=[], content=content),
        sender_private_key,
    )


def create_wrap(seal: SignedEvent, recipient_public_key: str, pow_difficulty: Optional[int] = None) -> SignedEvent:
    """Encrypt ``seal`` under a fresh one-time key addressed to ``recipient_public_key``.

    With ``pow_difficulty`` the outer event is mined before signing, for relays
    that gate kind 1059 on proof of work.
    """
    one_time_key = generate_private_key()
    draft = UnsignedEvent(
        kind=EventKind.GIFT_WRAP,
        pubkey=get_public_key(one_time_key),
        created_at=_random_past(),
        tags=[["p", recipient_public_key]],
        content=nip44.encrypt_message(to_json(seal), one_time_key, recipient_public_key),
    )
    if pow_difficulty:
        draft = pow.mine(draft, pow_difficulty).event
    return finalize_event(draft, one_time_key)


def wrap(
    template: EventTemplate,
    sender_private_key: bytes,
    recipient_public_key: str,
    pow_difficulty: Optional[int] = None,
) -> SignedEvent:
    rumor = create_rumor(template, sender_private_key)
    return wrap_rumor(rumor, sender_private_key, recipient_public_key, pow_difficulty)


def wrap_rumor(
    rumor: Rumor,
    sender_private_key: bytes,
    recipient_public_key: str,
    pow_difficulty: Optional[int] = None,
) -> SignedEvent:
    """Seal and wrap an existing rumor; wrapping one rumor twice keeps its id."""
    seal = create_seal(rumor, sender_private_key, recipient_public_key)
    return create_wrap(seal, recipient_public_key, pow_difficulty)


def _decrypt_json(content: str, private_key: bytes, public_key: str, event_id: str) -> dict:
    try:
        plaintext = nip44.decrypt_message(content, private_key, public_key)
    except DecryptionFailed as e:
        raise DecryptionFailed(e.details["reason"], event_id)
    except ValueError as e:
        raise DecryptionFailed(str(e), event_id)
    try:
        data = json.loads(plaintext)
    except json.JSONDecodeError:
        raise DecryptionFailed("decrypted content is not JSON", event_id)
    if not isinstance(data, dict):
        raise DecryptionFailed("decrypted content is not an object", event_id)
    return data


def unwrap(gift_wrap: SignedEvent, recipient_private_key: bytes) -> Rumor:
    """Open a gift wrap addressed to ``recipient_private_key``'s owner.

    Raises DecryptionFailed when the wrap is not ours, was tampered with, or
    the seal signer differs from the rumor author.
    """
    event_id = gift_wrap.id
    if not is_gift_wrap(gift_wrap):
        raise DecryptionFailed(f"not a gift wrap (kind {gift_wrap.kind})", event_id)

    seal_data = _decrypt_json(gift_wrap.content, recipient_private_key, gift_wrap.pubkey, event_id)
    try:
        seal = SignedEvent.model_validate(seal_data)
    except ValidationError:
        raise DecryptionFailed("seal is malformed", event_id)
    if not is_seal(seal):
        raise DecryptionFailed(f"expected seal kind {EventKind.SEAL}, got {seal.kind}", event_id)
    if not verify_event(seal):
        raise DecryptionFailed("seal signature is invalid", event_id)

    rumor_data = _decrypt_json(seal.content, recipient_private_key, seal.pubkey, event_id)
    rumor_data.pop("sig", None)
    try:
        unsigned = UnsignedEvent.model_validate(
            {k: v for k, v in rumor_data.items() if k != "id"}
        )
    except ValidationError:
        raise DecryptionFailed("rumor is malformed", event_id)
    if unsigned.pubkey != seal.pubkey:
        raise DecryptionFailed("rumor author does not match seal signer", event_id)

    rumor_id = get_event_hash(unsigned)
    if rumor_data.get("id") not in (None, rumor_id):
        raise DecryptionFailed("rumor id does not match its content", event_id)
    return Rumor(**unsigned.model_dump(), id=rumor_id)


def unwrap_each(gift_wraps: Iterable[SignedEvent], recipient_private_key: bytes) -> UnwrapBatch:
    """Unwrap every event, keeping successes and failures apart."""
    batch = UnwrapBatch([], [])
    for gift_wrap in gift_wraps:
        try:
            batch.rumors.append(unwrap(gift_wrap, recipient_private_key))
        except DecryptionFailed as e:
            batch.failures.append((gift_wrap, e))
    return batch


def unwrap_many(gift_wraps: Iterable[SignedEvent], recipient_private_key: bytes) -> list[Rumor]:
    """Unwrap what we can; wraps addressed to someone else are logged and skipped."""
    batch = unwrap_each(gift_wraps, recipient_private_key)
    for gift_wrap, error in batch.failures:
        logger.warning("Failed to unwrap event %s: %s", gift_wrap.id, error.details["reason"])
    return batch.rumors


def is_gift_wrap(event: UnsignedEvent) -> bool:
    return event.kind == EventKind.GIFT_WRAP


def is_seal(event: UnsignedEvent) -> bool:
    return event.kind == EventKind.SEAL
