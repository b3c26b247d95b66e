"""
NIP-13 proof of work.

Difficulty is the number of leading zero bits of the event id. Mining
appends (or replaces) a ``["nonce", N, target]`` tag and bumps ``N`` until
the id has enough leading zeros.

``mine`` is a tight CPU-bound loop; inside async code use ``mine_async``,
which runs it on a worker thread.
"""

import asyncio
import logging
import threading
from typing import Callable, NamedTuple, Optional

from nostr_reservations.errors import PowCancelled, PowNotReached
from nostr_reservations.events import get_event_hash
from nostr_reservations.models.event import Rumor, UnsignedEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1_000_000
DEFAULT_PROGRESS_INTERVAL = 10_000
DEFAULT_HASHES_PER_SECOND = 100_000

ProgressCallback = Callable[[int, int], None]


class PowTag(NamedTuple):
    nonce: int
    target_difficulty: int


class MinedEvent(NamedTuple):
    event: Rumor
    nonce: int
    difficulty: int


def count_leading_zero_bits(hex_string: str) -> int:
    count = 0
    for char in hex_string:
        nibble = int(char, 16)
        if nibble == 0:
            count += 4
            continue
        if nibble < 8:
            count += 1
        if nibble < 4:
            count += 1
        if nibble < 2:
            count += 1
        break
    return count


def get_difficulty(event_id: str) -> int:
    return count_leading_zero_bits(event_id)


def has_valid_pow(event_id: str, min_difficulty: int) -> bool:
    return get_difficulty(event_id) >= min_difficulty


def _parse_int(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def get_pow_tag(event: UnsignedEvent) -> Optional[PowTag]:
    for tag in event.tags:
        if tag and tag[0] == "nonce":
            nonce = tag[1] if len(tag) > 1 else None
            target = tag[2] if len(tag) > 2 else None
            return PowTag(_parse_int(nonce), _parse_int(target))
    return None


def _with_nonce(tags: list[list[str]], nonce: int, target: int) -> list[list[str]]:
    kept = [list(tag) for tag in tags if not (tag and tag[0] == "nonce")]
    kept.append(["nonce", str(nonce), str(target)])
    return kept


def mine(
    draft: UnsignedEvent,
    target_difficulty: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    start_nonce: int = 0,
    on_progress: Optional[ProgressCallback] = None,
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    cancel: Optional[threading.Event] = None,
) -> MinedEvent:
    """Search nonces until the draft's id reaches ``target_difficulty`` leading zero bits.

    Raises PowNotReached (with the best difficulty seen) once ``max_iterations``
    hashes have been tried, and PowCancelled if ``cancel`` is set at a progress
    checkpoint.
    """
    if progress_interval < 1:
        raise ValueError(f"progress_interval must be at least 1, got {progress_interval}")
    if max_iterations < 0:
        raise ValueError(f"max_iterations must not be negative, got {max_iterations}")
    nonce = start_nonce
    best = 0
    progress_called = False

    for i in range(max_iterations):
        candidate = UnsignedEvent(
            kind=draft.kind,
            pubkey=draft.pubkey,
            created_at=draft.created_at,
            tags=_with_nonce(draft.tags, nonce, target_difficulty),
            content=draft.content,
        )
        event_id = get_event_hash(candidate)
        difficulty = get_difficulty(event_id)
        best = max(best, difficulty)

        if difficulty >= target_difficulty:
            if on_progress and not progress_called:
                on_progress(nonce, best)
            logger.debug("Mined difficulty %d at nonce %d after %d iterations", difficulty, nonce, i + 1)
            return MinedEvent(Rumor(**candidate.model_dump(), id=event_id), nonce, difficulty)

        if i % progress_interval == 0:
            if on_progress:
                on_progress(nonce, best)
                progress_called = True
            if cancel is not None and cancel.is_set():
                raise PowCancelled(nonce, best)

        nonce += 1

    raise PowNotReached(target_difficulty, best, max_iterations)


async def mine_async(draft: UnsignedEvent, target_difficulty: int, **kwargs) -> MinedEvent:
    """Run ``mine`` on a worker thread; cancelling the awaiting task stops the search."""
    cancel = kwargs.pop("cancel", None) or threading.Event()
    try:
        return await asyncio.to_thread(mine, draft, target_difficulty, cancel=cancel, **kwargs)
    except asyncio.CancelledError:
        cancel.set()
        raise


def validate(event: Rumor) -> bool:
    """True iff the event carries a nonce tag and its id meets the claimed target."""
    pow_tag = get_pow_tag(event)
    if pow_tag is None:
        return False
    return get_difficulty(event.id) >= pow_tag.target_difficulty


def estimate_seconds(target_difficulty: int, hashes_per_second: float = DEFAULT_HASHES_PER_SECOND) -> float:
    """Expected (not worst-case) mining time: 2^difficulty hashes."""
    return 2 ** target_difficulty / hashes_per_second
