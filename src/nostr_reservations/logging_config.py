"""
Logging configuration for command-line use.

Library modules only create ``logging.getLogger(__name__)`` loggers; this
module installs a handler, and is what the CLI calls. Private keys never
reach the output: nsec strings and any registered hex secret are redacted.
"""

import logging
import re
import sys
from typing import Iterable, Optional, Set

NSEC_PATTERN = re.compile(r"nsec1[02-9ac-hj-np-z]{20,}")
REDACTED = "[REDACTED]"


class SecretFilter(logging.Filter):
    """Filter that redacts private keys from log records"""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: Set[str] = {s.lower() for s in secrets if s}

    def add_secret(self, secret: str) -> None:
        self._secrets.add(secret.lower())

    def redact(self, text: str) -> str:
        text = NSEC_PATTERN.sub(REDACTED, text)
        for secret in self._secrets:
            text = re.sub(re.escape(secret), REDACTED, text, flags=re.IGNORECASE)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: int = logging.WARNING, secrets: Iterable[str] = ()) -> SecretFilter:
    """Configure root logging to stderr; returns the filter so more secrets can be added"""
    secret_filter = SecretFilter(secrets)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    handler.addFilter(secret_filter)

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers to avoid duplicates
    root.handlers = []
    root.addHandler(handler)

    # Reduce noise from libraries
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return secret_filter


def get_secret_filter() -> Optional[SecretFilter]:
    for handler in logging.getLogger().handlers:
        for f in handler.filters:
            if isinstance(f, SecretFilter):
                return f
    return None
