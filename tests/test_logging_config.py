"""Secret redaction in log output."""

import logging

from nostr_reservations.crypto.keys import generate_keypair
from nostr_reservations.logging_config import REDACTED, SecretFilter, get_secret_filter, setup_logging


def _record(msg, *args):
    return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)


def test_redacts_nsec():
    pair = generate_keypair()
    record = _record("loaded key %s", pair.nsec)
    SecretFilter().filter(record)
    assert record.getMessage() == f"loaded key {REDACTED}"


def test_redacts_registered_hex_secret_only():
    pair = generate_keypair()
    secret_filter = SecretFilter([pair.private_key.hex()])
    record = _record("sk=%s pk=%s", pair.private_key.hex().upper(), pair.public_key)
    secret_filter.filter(record)
    assert pair.private_key.hex() not in record.getMessage().lower()
    assert pair.public_key in record.getMessage()


def test_leaves_ordinary_records_alone():
    record = _record("published %s", "a" * 64)
    assert SecretFilter().filter(record)
    assert record.args == ("a" * 64,)


def test_setup_logging_installs_filter():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        secret_filter = setup_logging(logging.DEBUG, secrets=["ab" * 32])
        assert get_secret_filter() is secret_filter
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp").level == logging.WARNING
        secret_filter.add_secret("cd" * 32)
        assert secret_filter.redact("x " + "cd" * 32) == f"x {REDACTED}"
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
