"""
Reservation SDK error types.

Every error carries a stable ``code`` and a ``details`` dict with enough
context (expected vs. actual kind, missing tag, best difficulty reached)
for a caller to render an actionable message.
"""

from typing import Any, Optional


class ReservationError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


# Input validation


class InvalidPayload(ReservationError):
    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__("invalid_payload", f"{field}: {message}", {"field": field, "value": value})
        self.field = field


class ConfirmedRequiresTime(ReservationError):
    def __init__(self, missing: list[str]):
        super().__init__(
            "confirmed_requires_time",
            f"status 'confirmed' requires {' and '.join(missing)}",
            {"missing": missing},
        )


class MalformedTimestamp(ReservationError):
    def __init__(self, value: Any, reason: str = "not a valid ISO-8601 datetime"):
        super().__init__("malformed_timestamp", f"{value!r}: {reason}", {"value": value})


class InvalidTimezone(ReservationError):
    def __init__(self, tzid: Any):
        super().__init__("invalid_timezone", f"Unknown IANA timezone identifier: {tzid!r}", {"tzid": tzid})


class InvalidTimestamp(ReservationError):
    def __init__(self, value: Any):
        super().__init__("invalid_timestamp", f"Unix timestamp must be a finite number, got {value!r}", {"value": value})


class InvalidKey(ReservationError):
    def __init__(self, message: str):
        super().__init__("invalid_key", message)


# Structural


class UnexpectedKind(ReservationError):
    def __init__(self, expected: Any, actual: int):
        super().__init__(
            "unexpected_kind",
            f"Expected kind {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class MissingTag(ReservationError):
    def __init__(self, tag: str, kind: Optional[int] = None):
        super().__init__("missing_tag", f"Missing required tag '{tag}'", {"tag": tag, "kind": kind})
        self.tag = tag


class MissingThreadRoot(ReservationError):
    def __init__(self, kind: int):
        super().__init__(
            "missing_thread_root",
            f"Kind {kind} requires a root thread marker referencing the original request",
            {"kind": kind},
        )


# Cryptographic


class DecryptionFailed(ReservationError):
    def __init__(self, reason: str, event_id: Optional[str] = None):
        super().__init__("decryption_failed", f"Failed to unwrap event {event_id}: {reason}",
                         {"event_id": event_id, "reason": reason})
        self.event_id = event_id


# Resource exhaustion


class PowNotReached(ReservationError):
    def __init__(self, target: int, best_difficulty: int, iterations: int):
        super().__init__(
            "pow_not_reached",
            f"Failed to mine event with difficulty {target} after {iterations} iterations. Best: {best_difficulty}",
            {"target": target, "best_difficulty": best_difficulty, "iterations": iterations},
        )
        self.best_difficulty = best_difficulty


class PowCancelled(ReservationError):
    def __init__(self, nonce: int, best_difficulty: int):
        super().__init__(
            "pow_cancelled",
            f"Mining cancelled at nonce {nonce}. Best: {best_difficulty}",
            {"nonce": nonce, "best_difficulty": best_difficulty},
        )
        self.best_difficulty = best_difficulty


# Transport


class RelayError(ReservationError):
    def __init__(self, message: str, relay: Optional[str] = None):
        super().__init__("relay_error", message, {"relay": relay})
        self.relay = relay


class PublishError(ReservationError):
    def __init__(self, message: str, failures: Optional[dict[str, str]] = None):
        super().__init__("publish_error", message, {"failures": failures or {}})
        self.failures = failures or {}
