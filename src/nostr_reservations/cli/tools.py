"""CLI: nostr-reserve time encode|decode, nostr-reserve pow estimate|mine"""

import json
import time as _time

import click
from rich.console import Console

from nostr_reservations import pow, timecodec
from nostr_reservations.crypto.keys import generate_private_key, get_public_key, normalize_private_key
from nostr_reservations.errors import ReservationError
from nostr_reservations.events import now
from nostr_reservations.models.event import UnsignedEvent

console = Console()


def _load_config() -> dict:
    from nostr_reservations.cli.main import _load_config
    return _load_config()


def _fail(e: ReservationError) -> None:
    console.print(f"[red]{e.code}: {e}[/red]")
    raise SystemExit(1)


@click.group("time")
def time_group():
    """Timestamp and timezone conversion."""


@time_group.command("encode")
@click.argument("iso8601")
def time_encode(iso8601: str):
    """ISO-8601 to unix seconds and an (inferred) IANA zone."""
    try:
        result = timecodec.encode(iso8601)
    except ReservationError as e:
        _fail(e)
    click.echo(json.dumps({"time": result.unix_timestamp, "tzid": result.tzid}))


@time_group.command("decode")
@click.argument("unix_timestamp", type=int)
@click.argument("tzid")
def time_decode(unix_timestamp: int, tzid: str):
    """Unix seconds in TZID to ISO-8601."""
    try:
        click.echo(timecodec.decode(unix_timestamp, tzid))
    except ReservationError as e:
        _fail(e)


@click.group("pow")
def pow_group():
    """Proof of work (NIP-13)."""


@pow_group.command("estimate")
@click.argument("difficulty", type=int)
@click.option("--rate", type=float, default=pow.DEFAULT_HASHES_PER_SECOND, help="Hashes per second")
def pow_estimate(difficulty: int, rate: float):
    """Expected time to mine DIFFICULTY leading zero bits."""
    seconds = pow.estimate_seconds(difficulty, rate)
    console.print(f"~{seconds:,.2f}s expected for difficulty {difficulty} at {rate:,.0f} H/s")


@pow_group.command("mine")
@click.argument("difficulty", type=int)
@click.option("--kind", type=int, default=1)
@click.option("--content", default="")
@click.option("--max-iterations", type=int, default=pow.DEFAULT_MAX_ITERATIONS)
def pow_mine(difficulty: int, kind: int, content: str, max_iterations: int):
    """Mine a sample event to DIFFICULTY and print it (not published)."""
    nsec = _load_config().get("nsec")
    if nsec:
        pubkey = get_public_key(normalize_private_key(nsec))
    else:
        pubkey = get_public_key(generate_private_key())
    draft = UnsignedEvent(kind=kind, pubkey=pubkey, created_at=now(), tags=[], content=content)

    started = _time.monotonic()
    try:
        with console.status(f"Mining difficulty {difficulty}...") as status:
            def progress(nonce: int, best: int) -> None:
                status.update(f"Mining difficulty {difficulty}... nonce {nonce:,}, best {best}")
            result = pow.mine(draft, difficulty, max_iterations=max_iterations, on_progress=progress)
    except ReservationError as e:
        _fail(e)
    elapsed = _time.monotonic() - started
    console.print(f"[green]Found[/green] nonce {result.nonce:,} difficulty {result.difficulty} in {elapsed:.2f}s")
    click.echo(json.dumps(result.event.model_dump(), indent=2))
