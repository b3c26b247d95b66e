"""
Thread markers (NIP-10 ``e`` tags with ``root``/``reply``) and thread assembly.
"""

from typing import Iterable, Optional, Sequence, TypeVar

from nostr_reservations.models.event import Rumor
from nostr_reservations.models.message import ThreadMarker

R = TypeVar("R", bound=Rumor)


def attach_markers(
    tags: Sequence[Sequence[str]],
    root_id: Optional[str] = None,
    reply_id: Optional[str] = None,
    root_relay: Optional[str] = None,
    reply_relay: Optional[str] = None,
) -> list[list[str]]:
    """Return a copy of ``tags`` with the root marker, then the reply marker, appended."""
    result = [list(tag) for tag in tags]
    if root_id:
        result.append(["e", root_id, root_relay or "", "root"])
    if reply_id:
        result.append(["e", reply_id, reply_relay or "", "reply"])
    return result


def read_markers(event: Rumor) -> ThreadMarker:
    root_id = reply_id = root_relay = reply_relay = None
    for tag in event.tags:
        if len(tag) < 4 or tag[0] != "e":
            continue
        if tag[3] == "root" and root_id is None:
            root_id, root_relay = tag[1], tag[2] or None
        elif tag[3] == "reply" and reply_id is None:
            reply_id, reply_relay = tag[1], tag[2] or None
    # Foreign records may carry a reply without a root; read them as-is.
    return ThreadMarker.model_construct(
        root_id=root_id, reply_id=reply_id, root_relay=root_relay, reply_relay=reply_relay
    )


def is_root(event: Rumor) -> bool:
    return read_markers(event).is_root


def build_reply_tags(
    parent: Rumor,
    additional_pubkeys: Iterable[str] = (),
    relay: Optional[str] = None,
) -> list[list[str]]:
    """Markers and ``p`` tags for a reply to ``parent`` in the same thread."""
    root_id = read_markers(parent).root_id or parent.id
    tags = attach_markers([], root_id=root_id, reply_id=parent.id, root_relay=relay, reply_relay=relay)

    seen: set[str] = set()
    for pubkey in [parent.pubkey, *additional_pubkeys]:
        if pubkey not in seen:
            seen.add(pubkey)
            tags.append(["p", pubkey])
    return tags


def thread_root(event: Rumor) -> str:
    return read_markers(event).root_id or event.id


def group_by_thread(events: Iterable[R]) -> dict[str, list[R]]:
    """File each record under its root marker, or under its own id if it is a root."""
    threads: dict[str, list[R]] = {}
    for event in events:
        threads.setdefault(thread_root(event), []).append(event)
    return threads


def sort_thread(events: Iterable[R]) -> list[R]:
    return sorted(events, key=lambda e: e.created_at)
