"""
Reservation CLI: `nostr-reserve` command.

Commands:
  nostr-reserve keys <cmd>        Generate, import or show the identity key
  nostr-reserve relays <cmd>      Manage and inspect relays
  nostr-reserve request <npub>    Send a reservation request
  nostr-reserve respond ...       Answer a request (and modify / modify-respond)
  nostr-reserve inbox             Show negotiation threads
  nostr-reserve listen            Stream incoming reservation messages
  nostr-reserve announce          Advertise this key as a reservation handler (NIP-89)
  nostr-reserve time <cmd>        ISO-8601 <-> unix/tzid conversion
  nostr-reserve pow <cmd>         Proof-of-work estimates and mining
"""

import asyncio
import json
import logging
import os
from pathlib import Path

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install nostr-reservations[cli]")

from nostr_reservations.client import AsyncReservationClient, DEFAULT_RELAYS
from nostr_reservations.crypto.keys import normalize_private_key
from nostr_reservations.errors import InvalidKey
from nostr_reservations.logging_config import setup_logging

console = Console()
CONFIG_FILE = Path.home() / ".nostr-reservations" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))
    # the file holds the nsec
    os.chmod(CONFIG_FILE, 0o600)


def _private_key(cfg: dict) -> bytes:
    if not cfg.get("nsec"):
        console.print("[red]No key configured. Run `nostr-reserve keys generate` or `keys import` first.[/red]")
        raise SystemExit(1)
    return normalize_private_key(cfg["nsec"])


def _get_client() -> AsyncReservationClient:
    cfg = _load_config()
    return AsyncReservationClient(
        _private_key(cfg),
        relays=cfg.get("relays") or DEFAULT_RELAYS,
        pow_difficulty=cfg.get("pow_difficulty"),
        auto_pow=cfg.get("pow_difficulty") is None,
    )


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", count=True, help="-v for INFO, -vv for DEBUG logging")
def main(verbose: int):
    """Private restaurant reservations over Nostr relays."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    secrets = []
    nsec = _load_config().get("nsec")
    if nsec:
        secrets.append(nsec)
        try:
            secrets.append(normalize_private_key(nsec).hex())
        except InvalidKey:
            # commands that need the key report it
            pass
    setup_logging(level, secrets)


# Register subcommands from separate modules
from nostr_reservations.cli.keys import keys
from nostr_reservations.cli.relays import relays
from nostr_reservations.cli.reservations import request_cmd, respond_cmd, modify_cmd, modify_respond_cmd, inbox_cmd, listen_cmd, announce_cmd
from nostr_reservations.cli.tools import time_group, pow_group

main.add_command(keys)
main.add_command(relays)
main.add_command(request_cmd)
main.add_command(respond_cmd)
main.add_command(modify_cmd)
main.add_command(modify_respond_cmd)
main.add_command(inbox_cmd)
main.add_command(listen_cmd)
main.add_command(announce_cmd)
main.add_command(time_group)
main.add_command(pow_group)


if __name__ == "__main__":
    main()
