"""
Event kind constants used by the reservation protocol.
"""

from enum import IntEnum


class EventKind(IntEnum):
    SEAL = 13
    GIFT_WRAP = 1059
    RESERVATION_REQUEST = 9901
    RESERVATION_RESPONSE = 9902
    RESERVATION_MODIFICATION_REQUEST = 9903
    RESERVATION_MODIFICATION_RESPONSE = 9904
    HANDLER_RECOMMENDATION = 31989
    HANDLER_INFORMATION = 31990


RESERVATION_KINDS = (
    EventKind.RESERVATION_REQUEST,
    EventKind.RESERVATION_RESPONSE,
    EventKind.RESERVATION_MODIFICATION_REQUEST,
    EventKind.RESERVATION_MODIFICATION_RESPONSE,
)
