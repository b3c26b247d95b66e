"""CLI: nostr-reserve relays list|add|remove|info"""

import click
from rich.console import Console
from rich.table import Table

from nostr_reservations.client import DEFAULT_RELAYS
from nostr_reservations.errors import RelayError
from nostr_reservations.transport.http import RelayInfoClient
from nostr_reservations.transport.relay import normalize_relay_url

console = Console()


def _load_config() -> dict:
    from nostr_reservations.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from nostr_reservations.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from nostr_reservations.cli.main import _run
    return _run(coro)


def _normalized(url: str) -> str:
    try:
        return normalize_relay_url(url)
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)


@click.group()
def relays():
    """Relay configuration."""


@relays.command("list")
def relays_list():
    """List configured relays."""
    cfg = _load_config()
    configured = cfg.get("relays")
    for url in configured or DEFAULT_RELAYS:
        console.print(url)
    if not configured:
        console.print("[dim](defaults)[/dim]")


@relays.command("add")
@click.argument("url")
def relays_add(url: str):
    """Add a relay."""
    url = _normalized(url)
    cfg = _load_config()
    current = cfg.get("relays") or list(DEFAULT_RELAYS)
    if url in current:
        console.print(f"[yellow]{url} is already configured.[/yellow]")
        return
    cfg["relays"] = current + [url]
    _save_config(cfg)
    console.print(f"[green]Added {url}[/green]")


@relays.command("remove")
@click.argument("url")
def relays_remove(url: str):
    """Remove a relay."""
    url = _normalized(url)
    cfg = _load_config()
    current = cfg.get("relays") or list(DEFAULT_RELAYS)
    if url not in current:
        console.print(f"[red]{url} is not configured.[/red]")
        raise SystemExit(1)
    cfg["relays"] = [r for r in current if r != url]
    _save_config(cfg)
    console.print(f"[green]Removed {url}[/green]")


@relays.command("info")
@click.argument("url")
def relays_info(url: str):
    """Show a relay's NIP-11 information document."""

    async def _info():
        client = RelayInfoClient()
        try:
            with console.status(f"Fetching {url}..."):
                info = await client.get(url)
        finally:
            await client.close()
        table = Table(title=info.name or url, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Description", info.description or "")
        table.add_row("Software", f"{info.software or ''} {info.version or ''}".strip())
        table.add_row("NIPs", ", ".join(str(n) for n in info.supported_nips))
        table.add_row("Min PoW", str(info.min_pow_difficulty))
        console.print(table)

    try:
        _run(_info())
    except RelayError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
