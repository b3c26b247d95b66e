"""ISO-8601 <-> (unix seconds, tzid) conversion."""

from datetime import datetime

import pytest

from nostr_reservations import timecodec
from nostr_reservations.errors import InvalidTimestamp, InvalidTimezone, MalformedTimestamp

# 2025-10-20T19:00:00-07:00
DINNER = 1761012000


class TestEncode:
    def test_offset_matching_system_zone(self):
        result = timecodec.encode("2025-10-20T19:00:00-07:00", local_tzid="America/Los_Angeles")
        assert result == (DINNER, "America/Los_Angeles")

    def test_zulu_is_utc(self):
        assert timecodec.encode("2025-10-21T02:00:00Z", local_tzid="Europe/Paris") == (DINNER, "UTC")

    def test_falls_back_to_offset_table(self):
        result = timecodec.encode("2025-10-20T19:00:00-07:00", local_tzid="UTC")
        assert result == (DINNER, "America/Denver")

    def test_zero_offset_without_system_match(self):
        result = timecodec.encode("2025-10-21T02:00:00+00:00", local_tzid="America/New_York")
        assert result.tzid == "UTC"

    def test_synthetic_etc_zone(self):
        result = timecodec.encode("2025-10-21T05:00:00+03:00", local_tzid="UTC")
        assert result == (DINNER, "Etc/GMT-3")

    def test_negative_synthetic_zone(self):
        result = timecodec.encode("2025-10-20T16:00:00-10:00", local_tzid="UTC")
        assert result.tzid == "Etc/GMT+10"

    def test_fractional_seconds_are_floored(self):
        assert timecodec.encode("2025-10-21T02:00:00.900Z").unix_timestamp == DINNER

    def test_naive_string_uses_system_zone(self):
        result = timecodec.encode("2025-10-20T19:00:00", local_tzid="America/Los_Angeles")
        assert result == (DINNER, "America/Los_Angeles")

    @pytest.mark.parametrize("value", ["", "   ", "not a date", "2025-13-40T99:00:00Z", None])
    def test_malformed(self, value):
        with pytest.raises(MalformedTimestamp):
            timecodec.encode(value)


class TestDecode:
    def test_local_with_offset(self):
        assert timecodec.decode(DINNER, "America/Los_Angeles") == "2025-10-20T19:00:00-07:00"

    def test_utc_uses_z(self):
        assert timecodec.decode(DINNER, "UTC") == "2025-10-21T02:00:00Z"

    def test_daylight_saving_is_applied(self):
        # 2025-01-01T00:00:00Z, standard time in Los Angeles
        assert timecodec.decode(1735689600, "America/Los_Angeles") == "2024-12-31T16:00:00-08:00"

    def test_half_hour_zone(self):
        assert timecodec.decode(DINNER, "Asia/Kolkata") == "2025-10-21T07:30:00+05:30"

    @pytest.mark.parametrize("tzid", ["", "Mars/Olympus_Mons", None])
    def test_invalid_timezone(self, tzid):
        with pytest.raises(InvalidTimezone):
            timecodec.decode(DINNER, tzid)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "1761012000", True])
    def test_invalid_timestamp(self, value):
        with pytest.raises(InvalidTimestamp):
            timecodec.decode(value, "UTC")


@pytest.mark.parametrize("iso", [
    "2025-10-20T19:00:00-07:00",
    "2025-03-09T02:30:00-08:00",
    "2025-10-21T02:00:00Z",
    "2024-02-29T23:59:59+05:45",
    "2025-06-01T12:00:00+09:00",
    "2025-12-31T23:30:00-03:30",
])
def test_round_trip_denotes_same_instant(iso):
    encoded = timecodec.encode(iso, local_tzid="UTC")
    decoded = timecodec.decode(encoded.unix_timestamp, encoded.tzid)
    original = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    restored = datetime.fromisoformat(decoded.replace("Z", "+00:00"))
    assert abs((restored - original).total_seconds()) < 60


def test_is_valid_tzid():
    assert timecodec.is_valid_tzid("America/Los_Angeles")
    assert not timecodec.is_valid_tzid("Nowhere/Special")
    assert not timecodec.is_valid_tzid("")


def test_system_tzid_from_environment(monkeypatch):
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    assert timecodec.system_tzid() == "Asia/Tokyo"


def test_format_offset():
    assert timecodec.format_offset(-420) == "-07:00"
    assert timecodec.format_offset(330) == "+05:30"
    assert timecodec.format_offset(0) == "+00:00"
