"""
Reservation messages (kinds 9901-9904): build, validate and parse rumors.

Semantic fields travel as ``[name, value]`` tags; the free-text message is
the rumor content. Responses and modifications point at the original
request's rumor id with a ``root`` marker, never at a gift wrap id, so both
sides (and their Self-CC copies) thread to the same root.
"""

from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from nostr_reservations import pow, timecodec
from nostr_reservations.errors import (
    ConfirmedRequiresTime,
    InvalidPayload,
    MissingTag,
    MissingThreadRoot,
    UnexpectedKind,
)
from nostr_reservations.events import get_event_hash
from nostr_reservations.giftwrap import create_rumor
from nostr_reservations.models.event import EventTemplate, Rumor, SignedEvent, UnsignedEvent
from nostr_reservations.models.kinds import RESERVATION_KINDS, EventKind
from nostr_reservations.models.message import ReservationMessage
from nostr_reservations.models.reservation import (
    PAYLOAD_TYPES,
    ReservationModificationRequest,
    ReservationModificationResponse,
    ReservationPayload,
    ReservationRequest,
    ReservationResponse,
    ReservationStatus,
)
from nostr_reservations.threads import attach_markers, read_markers

PayloadInput = Union[BaseModel, Mapping[str, Any]]
Tags = Sequence[Sequence[str]]

REQUEST_OPTIONAL_TEXT = ("name", "telephone", "email")
REQUEST_OPTIONAL_INT = ("duration", "earliest_time", "latest_time")


# Payload coercion


def _invalid_from(error: ValidationError) -> InvalidPayload:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "payload"
    return InvalidPayload(field, first["msg"], first.get("input"))


def _coerce(payload_cls: type, payload: PayloadInput) -> Any:
    if type(payload) is payload_cls:
        return payload
    data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
    try:
        return payload_cls.model_validate(data)
    except ValidationError as e:
        raise _invalid_from(e)


def _check_status(payload: ReservationResponse) -> None:
    if payload.status not in payload.ALLOWED_STATUSES:
        allowed = ", ".join(sorted(s.value for s in payload.ALLOWED_STATUSES))
        raise InvalidPayload("status", f"must be one of {allowed}", payload.status.value)
    if payload.status is ReservationStatus.CONFIRMED:
        missing = [name for name in ("time", "tzid") if getattr(payload, name) is None]
        if missing:
            raise ConfirmedRequiresTime(missing)


# Tag helpers


def _has_root(tags: Tags) -> bool:
    return any(len(tag) >= 4 and tag[0] == "e" and tag[3] == "root" for tag in tags)


def _thread_tags(
    kind: EventKind,
    extra_tags: Tags,
    root_id: Optional[str],
    reply_id: Optional[str],
    relay_hint: Optional[str],
) -> tuple[list[list[str]], list[list[str]]]:
    """Split into (markers to place after ``p``, remaining extra tags); require a root."""
    extra = [list(tag) for tag in extra_tags]
    if root_id:
        return attach_markers([], root_id, reply_id, relay_hint, relay_hint), extra
    if _has_root(extra):
        return [], extra
    raise MissingThreadRoot(kind)


def _request_tags(payload: ReservationRequest, recipient_public_key: str) -> list[list[str]]:
    tags = [
        ["p", recipient_public_key],
        ["party_size", str(payload.party_size)],
        ["time", str(payload.time)],
        ["tzid", payload.tzid],
    ]
    for name in REQUEST_OPTIONAL_TEXT:
        value = getattr(payload, name)
        if value is not None:
            tags.append([name, value])
    for name in REQUEST_OPTIONAL_INT:
        value = getattr(payload, name)
        if value is not None:
            tags.append([name, str(value)])
    return tags


def _response_tags(payload: ReservationResponse) -> list[list[str]]:
    tags = [["status", payload.status.value]]
    if payload.time is not None:
        tags.append(["time", str(payload.time)])
    if payload.tzid is not None:
        tags.append(["tzid", payload.tzid])
    if payload.duration is not None:
        tags.append(["duration", str(payload.duration)])
    return tags


def _tag_values(rumor: UnsignedEvent) -> dict[str, str]:
    values: dict[str, str] = {}
    for tag in rumor.tags:
        if len(tag) >= 2 and tag[0] not in values:
            values[tag[0]] = tag[1]
    return values


def _required(values: Mapping[str, str], name: str, kind: int) -> str:
    if name not in values:
        raise MissingTag(name, kind)
    return values[name]


def _as_int(name: str, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidPayload(name, "must be an integer", value)


def _finish(
    kind: EventKind,
    tags: list[list[str]],
    payload: Any,
    sender_private_key: bytes,
    created_at: Optional[int],
    pow_difficulty: Optional[int],
) -> Rumor:
    template = EventTemplate(kind=kind, created_at=created_at, tags=tags, content=payload.message or "")
    rumor = create_rumor(template, sender_private_key)
    if pow_difficulty:
        rumor = pow.mine(rumor, pow_difficulty).event
    PARSERS[kind](rumor)
    return rumor


# Build


def build_reservation_request(
    payload: PayloadInput,
    sender_private_key: bytes,
    recipient_public_key: str,
    *,
    extra_tags: Tags = (),
    created_at: Optional[int] = None,
    pow_difficulty: Optional[int] = None,
) -> Rumor:
    request = _coerce(ReservationRequest, payload)
    tags = _request_tags(request, recipient_public_key) + [list(tag) for tag in extra_tags]
    return _finish(EventKind.RESERVATION_REQUEST, tags, request, sender_private_key, created_at, pow_difficulty)


def build_reservation_modification_request(
    payload: PayloadInput,
    sender_private_key: bytes,
    recipient_public_key: str,
    *,
    root_id: Optional[str] = None,
    reply_id: Optional[str] = None,
    relay_hint: Optional[str] = None,
    extra_tags: Tags = (),
    created_at: Optional[int] = None,
    pow_difficulty: Optional[int] = None,
) -> Rumor:
    """Build a kind 9903 rumor; ``root_id`` (or a root marker in ``extra_tags``) is the original request id."""
    kind = EventKind.RESERVATION_MODIFICATION_REQUEST
    request = _coerce(ReservationModificationRequest, payload)
    markers, extra = _thread_tags(kind, extra_tags, root_id, reply_id, relay_hint)
    tags = _request_tags(request, recipient_public_key) + markers + extra
    return _finish(kind, tags, request, sender_private_key, created_at, pow_difficulty)


def _build_response(
    kind: EventKind,
    payload_cls: type,
    payload: PayloadInput,
    sender_private_key: bytes,
    recipient_public_key: str,
    root_id: Optional[str],
    reply_id: Optional[str],
    relay_hint: Optional[str],
    extra_tags: Tags,
    created_at: Optional[int],
    pow_difficulty: Optional[int],
) -> Rumor:
    response = _coerce(payload_cls, payload)
    _check_status(response)
    markers, extra = _thread_tags(kind, extra_tags, root_id, reply_id, relay_hint)
    tags = [["p", recipient_public_key]] + markers + _response_tags(response) + extra
    return _finish(kind, tags, response, sender_private_key, created_at, pow_difficulty)


def build_reservation_response(
    payload: PayloadInput,
    sender_private_key: bytes,
    recipient_public_key: str,
    *,
    root_id: Optional[str] = None,
    reply_id: Optional[str] = None,
    relay_hint: Optional[str] = None,
    extra_tags: Tags = (),
    created_at: Optional[int] = None,
    pow_difficulty: Optional[int] = None,
) -> Rumor:
    return _build_response(
        EventKind.RESERVATION_RESPONSE, ReservationResponse, payload,
        sender_private_key, recipient_public_key,
        root_id, reply_id, relay_hint, extra_tags, created_at, pow_difficulty,
    )


def build_reservation_modification_response(
    payload: PayloadInput,
    sender_private_key: bytes,
    recipient_public_key: str,
    *,
    root_id: Optional[str] = None,
    reply_id: Optional[str] = None,
    relay_hint: Optional[str] = None,
    extra_tags: Tags = (),
    created_at: Optional[int] = None,
    pow_difficulty: Optional[int] = None,
) -> Rumor:
    return _build_response(
        EventKind.RESERVATION_MODIFICATION_RESPONSE, ReservationModificationResponse, payload,
        sender_private_key, recipient_public_key,
        root_id, reply_id, relay_hint, extra_tags, created_at, pow_difficulty,
    )


BUILDERS: dict[EventKind, Callable[..., Rumor]] = {
    EventKind.RESERVATION_REQUEST: build_reservation_request,
    EventKind.RESERVATION_RESPONSE: build_reservation_response,
    EventKind.RESERVATION_MODIFICATION_REQUEST: build_reservation_modification_request,
    EventKind.RESERVATION_MODIFICATION_RESPONSE: build_reservation_modification_response,
}


# Parse


def _expect_kind(rumor: UnsignedEvent, kind: EventKind) -> None:
    if rumor.kind != kind:
        raise UnexpectedKind(int(kind), rumor.kind)


def _validate(payload_cls: type, data: dict[str, Any]) -> Any:
    try:
        return payload_cls.model_validate(data)
    except ValidationError as e:
        raise _invalid_from(e)


def _parse_request(rumor: UnsignedEvent, kind: EventKind, payload_cls: type) -> Any:
    _expect_kind(rumor, kind)
    values = _tag_values(rumor)
    _required(values, "p", kind)
    data: dict[str, Any] = {
        "party_size": _as_int("party_size", _required(values, "party_size", kind)),
        "time": _as_int("time", _required(values, "time", kind)),
        "tzid": _required(values, "tzid", kind),
        "message": rumor.content or None,
    }
    for name in REQUEST_OPTIONAL_TEXT:
        if name in values:
            data[name] = values[name]
    for name in REQUEST_OPTIONAL_INT:
        if name in values:
            data[name] = _as_int(name, values[name])
    return _validate(payload_cls, data)


def _parse_response(rumor: UnsignedEvent, kind: EventKind, payload_cls: type) -> Any:
    _expect_kind(rumor, kind)
    values = _tag_values(rumor)
    _required(values, "p", kind)
    status = _required(values, "status", kind)
    if status not in {s.value for s in payload_cls.ALLOWED_STATUSES}:
        allowed = ", ".join(sorted(s.value for s in payload_cls.ALLOWED_STATUSES))
        raise InvalidPayload("status", f"must be one of {allowed}", status)
    if read_markers(rumor).root_id is None:
        raise MissingThreadRoot(kind)
    data = {
        "status": status,
        "time": _as_int("time", values.get("time")),
        "tzid": values.get("tzid"),
        "duration": _as_int("duration", values.get("duration")),
        "message": rumor.content or None,
    }
    response = _validate(payload_cls, data)
    _check_status(response)
    return response


def parse_reservation_request(rumor: UnsignedEvent) -> ReservationRequest:
    return _parse_request(rumor, EventKind.RESERVATION_REQUEST, ReservationRequest)


def parse_reservation_modification_request(rumor: UnsignedEvent) -> ReservationModificationRequest:
    request = _parse_request(rumor, EventKind.RESERVATION_MODIFICATION_REQUEST, ReservationModificationRequest)
    if read_markers(rumor).root_id is None:
        raise MissingThreadRoot(EventKind.RESERVATION_MODIFICATION_REQUEST)
    return request


def parse_reservation_response(rumor: UnsignedEvent) -> ReservationResponse:
    return _parse_response(rumor, EventKind.RESERVATION_RESPONSE, ReservationResponse)


def parse_reservation_modification_response(rumor: UnsignedEvent) -> ReservationModificationResponse:
    return _parse_response(rumor, EventKind.RESERVATION_MODIFICATION_RESPONSE, ReservationModificationResponse)


PARSERS: dict[EventKind, Callable[[UnsignedEvent], Any]] = {
    EventKind.RESERVATION_REQUEST: parse_reservation_request,
    EventKind.RESERVATION_RESPONSE: parse_reservation_response,
    EventKind.RESERVATION_MODIFICATION_REQUEST: parse_reservation_modification_request,
    EventKind.RESERVATION_MODIFICATION_RESPONSE: parse_reservation_modification_response,
}


def is_reservation_kind(kind: int) -> bool:
    return kind in RESERVATION_KINDS


def parse_message(rumor: UnsignedEvent) -> ReservationPayload:
    """Parse any of the four reservation kinds into its payload model."""
    if not is_reservation_kind(rumor.kind):
        raise UnexpectedKind([int(k) for k in RESERVATION_KINDS], rumor.kind)
    return PARSERS[EventKind(rumor.kind)](rumor)


def to_reservation_message(rumor: Rumor, gift_wrap: Optional[SignedEvent] = None) -> ReservationMessage:
    payload = parse_message(rumor)
    if get_event_hash(rumor) != rumor.id:
        raise InvalidPayload("id", "does not match the record content", rumor.id)
    return ReservationMessage(
        rumor=rumor,
        kind=EventKind(rumor.kind),
        payload=payload,
        sender_pubkey=rumor.pubkey,
        gift_wrap=gift_wrap,
    )


def payload_kind(payload: BaseModel) -> EventKind:
    for kind, payload_cls in PAYLOAD_TYPES.items():
        if type(payload) is payload_cls:
            return kind
    raise InvalidPayload("payload", f"unsupported payload type {type(payload).__name__}")


# Legacy ISO payloads
#
# Older clients sent JSON bodies with ISO-8601 times:
#   request:  {party_size, iso_time, notes, contact{name, phone, email},
#              constraints{earliest_iso_time, latest_iso_time}}
#   response: {status, iso_time, message, table}


def _encode_time(field: str, iso_time: Optional[str]) -> Optional[timecodec.TimeAndZone]:
    if iso_time is None:
        return None
    if not isinstance(iso_time, str):
        raise InvalidPayload(field, "must be an ISO-8601 string", iso_time)
    return timecodec.encode(iso_time)


def _with_scheme(scheme: str, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value if value.startswith(scheme) else scheme + value


def _without_scheme(scheme: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value[len(scheme):] if value.startswith(scheme) else value


def convert_legacy_request(legacy: Mapping[str, Any]) -> ReservationRequest:
    if "iso_time" not in legacy:
        raise InvalidPayload("iso_time", "is required")
    when = _encode_time("iso_time", legacy["iso_time"])
    if when is None:
        raise InvalidPayload("iso_time", "is required")
    contact = legacy.get("contact") or {}
    constraints = legacy.get("constraints") or {}
    earliest = _encode_time("constraints.earliest_iso_time", constraints.get("earliest_iso_time"))
    latest = _encode_time("constraints.latest_iso_time", constraints.get("latest_iso_time"))
    return _coerce(ReservationRequest, {
        "party_size": legacy.get("party_size"),
        "time": when.unix_timestamp,
        "tzid": when.tzid,
        "name": contact.get("name") or None,
        "telephone": _with_scheme("tel:", contact.get("phone")),
        "email": _with_scheme("mailto:", contact.get("email")),
        "earliest_time": earliest.unix_timestamp if earliest else None,
        "latest_time": latest.unix_timestamp if latest else None,
        "message": legacy.get("notes"),
    })


def to_legacy_request(request: ReservationRequest) -> dict[str, Any]:
    legacy: dict[str, Any] = {
        "party_size": request.party_size,
        "iso_time": timecodec.decode(request.time, request.tzid),
    }
    if request.message:
        legacy["notes"] = request.message
    contact = {
        key: value for key, value in (
            ("name", request.name),
            ("phone", _without_scheme("tel:", request.telephone)),
            ("email", _without_scheme("mailto:", request.email)),
        ) if value is not None
    }
    if contact:
        legacy["contact"] = contact
    constraints = {}
    if request.earliest_time is not None:
        constraints["earliest_iso_time"] = timecodec.decode(request.earliest_time, request.tzid)
    if request.latest_time is not None:
        constraints["latest_iso_time"] = timecodec.decode(request.latest_time, request.tzid)
    if constraints:
        legacy["constraints"] = constraints
    return legacy


def convert_legacy_response(legacy: Mapping[str, Any]) -> ReservationResponse:
    status = legacy.get("status")
    if status not in {s.value for s in ReservationStatus}:
        # "suggested" and "expired" have no counterpart in the tag protocol
        raise InvalidPayload("status", "unsupported legacy status", status)
    when = _encode_time("iso_time", legacy.get("iso_time"))
    response = _coerce(ReservationResponse, {
        "status": status,
        "time": when.unix_timestamp if when else None,
        "tzid": when.tzid if when else None,
        "message": legacy.get("message"),
    })
    _check_status(response)
    return response


def to_legacy_response(response: ReservationResponse) -> dict[str, Any]:
    legacy: dict[str, Any] = {
        "status": response.status.value,
        "iso_time": (
            timecodec.decode(response.time, response.tzid)
            if response.time is not None and response.tzid else None
        ),
    }
    if response.message:
        legacy["message"] = response.message
    return legacy
