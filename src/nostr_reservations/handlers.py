"""
NIP-89 handler discovery: advertise which reservation kinds a business handles.
"""

from typing import Iterable, Optional

from nostr_reservations.events import now
from nostr_reservations.models.event import EventTemplate
from nostr_reservations.models.kinds import RESERVATION_KINDS, EventKind

HANDLER_D_IDENTIFIER = "synvya-restaurants-v1.0"


def build_handler_information(
    kinds: Iterable[int] = RESERVATION_KINDS,
    created_at: Optional[int] = None,
) -> EventTemplate:
    """kind 31990 handler information listing the supported kinds as ``k`` tags."""
    tags = [["d", HANDLER_D_IDENTIFIER]] + [["k", str(int(kind))] for kind in kinds]
    return EventTemplate(
        kind=EventKind.HANDLER_INFORMATION,
        created_at=created_at if created_at is not None else now(),
        tags=tags,
        content="",
    )


def build_handler_recommendation(
    business_public_key: str,
    kind: int,
    relay_url: str,
    created_at: Optional[int] = None,
) -> EventTemplate:
    """kind 31989 recommendation pointing ``kind`` at the business's handler information."""
    address = f"{int(EventKind.HANDLER_INFORMATION)}:{business_public_key}:{HANDLER_D_IDENTIFIER}"
    return EventTemplate(
        kind=EventKind.HANDLER_RECOMMENDATION,
        created_at=created_at if created_at is not None else now(),
        tags=[["d", str(int(kind))], ["a", address, relay_url, "all"]],
        content="",
    )


def build_handler_events(
    business_public_key: str,
    relay_url: str,
    kinds: Iterable[int] = RESERVATION_KINDS,
) -> list[EventTemplate]:
    """Handler information followed by one recommendation per kind."""
    kinds = list(kinds)
    templates = [build_handler_information(kinds)]
    templates.extend(build_handler_recommendation(business_public_key, kind, relay_url) for kind in kinds)
    return templates


def supported_kinds(template: EventTemplate) -> list[int]:
    return [int(tag[1]) for tag in template.tags if len(tag) >= 2 and tag[0] == "k" and tag[1].isdigit()]
