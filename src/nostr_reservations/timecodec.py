"""
ISO-8601 <-> (unix seconds, IANA tzid) conversion.

Reservation tags carry a plain unix timestamp plus a zone identifier so the
wall-clock meaning survives. Going from an ISO string to a zone is lossy:
many zones share an offset and DST rules differ, so ``encode`` infers the
zone heuristically (system zone, then a fixed table, then ``Etc/GMT±N``).
Treat an inferred tzid as reduced-confidence data; callers that know the
real zone should pass it explicitly instead.
"""

import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nostr_reservations.errors import InvalidTimestamp, InvalidTimezone, MalformedTimestamp

UTC_ZONES = {"UTC", "Etc/UTC", "Etc/UCT", "UCT", "Zulu", "Etc/Zulu", "Universal", "Etc/Universal"}

# Offset (minutes east of UTC) -> candidate zones; first entry wins.
COMMON_TIMEZONES: dict[int, list[str]] = {
    -480: ["America/Los_Angeles", "America/Vancouver", "America/Tijuana"],
    -420: ["America/Denver", "America/Phoenix", "America/Edmonton"],
    -360: ["America/Chicago", "America/Mexico_City", "America/Winnipeg"],
    -300: ["America/New_York", "America/Toronto", "America/Montreal"],
    -240: ["America/Halifax", "America/Santiago"],
    0: ["UTC", "Europe/London", "Africa/Casablanca"],
    60: ["Europe/Paris", "Europe/Berlin", "Europe/Rome"],
    120: ["Europe/Athens", "Africa/Cairo", "Europe/Helsinki"],
    330: ["Asia/Kolkata"],
    480: ["Asia/Shanghai", "Asia/Hong_Kong", "Asia/Singapore"],
    540: ["Asia/Tokyo", "Asia/Seoul"],
}


class TimeAndZone(NamedTuple):
    unix_timestamp: int
    tzid: str


def is_valid_tzid(tzid: object) -> bool:
    if not tzid or not isinstance(tzid, str):
        return False
    try:
        ZoneInfo(tzid)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def system_tzid() -> str:
    """Best-effort IANA name of the host zone: $TZ, then /etc/localtime, then UTC."""
    env = os.environ.get("TZ", "").lstrip(":")
    if is_valid_tzid(env):
        return env
    try:
        target = str(Path("/etc/localtime").resolve())
    except OSError:
        return "UTC"
    marker = "zoneinfo/"
    if marker in target:
        candidate = target.split(marker, 1)[1]
        if is_valid_tzid(candidate):
            return candidate
    return "UTC"


def _offset_minutes(dt: datetime) -> int:
    offset = dt.utcoffset()
    return int(offset.total_seconds() // 60) if offset is not None else 0


def infer_tzid(offset_minutes: int, instant: datetime, local_tzid: Optional[str] = None) -> str:
    local_tzid = local_tzid or system_tzid()
    if is_valid_tzid(local_tzid):
        if _offset_minutes(instant.astimezone(ZoneInfo(local_tzid))) == offset_minutes:
            return local_tzid

    candidates = COMMON_TIMEZONES.get(offset_minutes)
    if candidates:
        return candidates[0]

    hours = round(offset_minutes / 60)
    if hours == 0:
        return "UTC"
    # POSIX-style names: Etc/GMT+8 is UTC-08:00
    return f"Etc/GMT{'-' if hours > 0 else '+'}{abs(hours)}"


def encode(iso8601: str, local_tzid: Optional[str] = None) -> TimeAndZone:
    """Parse an ISO-8601 datetime into a unix timestamp and an (inferred) tzid."""
    if not iso8601 or not isinstance(iso8601, str):
        raise MalformedTimestamp(iso8601, "ISO-8601 string is required")
    text = iso8601.strip()
    zulu = text.endswith(("Z", "z"))
    if zulu:
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise MalformedTimestamp(iso8601)

    if parsed.tzinfo is None:
        tzid = local_tzid if is_valid_tzid(local_tzid) else system_tzid()
        parsed = parsed.replace(tzinfo=ZoneInfo(tzid))
        return TimeAndZone(math.floor(parsed.timestamp()), tzid)

    unix_timestamp = math.floor(parsed.timestamp())
    if zulu:
        return TimeAndZone(unix_timestamp, "UTC")
    return TimeAndZone(unix_timestamp, infer_tzid(_offset_minutes(parsed), parsed, local_tzid))


def format_offset(offset_minutes: int) -> str:
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def decode(unix_timestamp: float, tzid: str) -> str:
    """Format a unix timestamp as local ISO-8601 in ``tzid`` with its offset at that instant."""
    if isinstance(unix_timestamp, bool) or not isinstance(unix_timestamp, (int, float)) \
            or not math.isfinite(unix_timestamp):
        raise InvalidTimestamp(unix_timestamp)
    if not is_valid_tzid(tzid):
        raise InvalidTimezone(tzid)

    try:
        local = datetime.fromtimestamp(unix_timestamp, tz=timezone.utc).astimezone(ZoneInfo(tzid))
    except (OverflowError, OSError, ValueError):
        raise InvalidTimestamp(unix_timestamp)
    stamp = local.strftime("%Y-%m-%dT%H:%M:%S")
    if tzid in UTC_ZONES:
        return stamp + "Z"
    return stamp + format_offset(_offset_minutes(local))
