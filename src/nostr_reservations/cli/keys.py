"""CLI: nostr-reserve keys generate|import|show"""

import click
from rich.console import Console

from nostr_reservations.crypto.keys import (
    generate_keypair,
    get_public_key,
    normalize_private_key,
    npub_encode,
    nsec_encode,
)
from nostr_reservations.errors import InvalidKey

console = Console()


def _load_config() -> dict:
    from nostr_reservations.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from nostr_reservations.cli.main import _save_config
    _save_config(cfg)


@click.group()
def keys():
    """Identity key management."""


@keys.command("generate")
@click.option("--force", is_flag=True, help="Overwrite an existing key")
def keys_generate(force: bool):
    """Generate a new keypair and store it in the config file."""
    cfg = _load_config()
    if cfg.get("nsec") and not force:
        console.print("[red]A key is already configured. Use --force to replace it.[/red]")
        raise SystemExit(1)
    keypair = generate_keypair()
    cfg["nsec"] = keypair.nsec
    _save_config(cfg)
    console.print(f"[green]Key generated.[/green] npub: {keypair.npub}")
    console.print(f"[dim]pubkey: {keypair.public_key}[/dim]")


@keys.command("import")
@click.argument("secret")
def keys_import(secret: str):
    """Import an existing nsec or 64-char hex private key."""
    try:
        sk = normalize_private_key(secret.strip())
    except InvalidKey as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    cfg = _load_config()
    cfg["nsec"] = nsec_encode(sk)
    _save_config(cfg)
    console.print(f"[green]Key imported.[/green] npub: {npub_encode(get_public_key(sk))}")


@keys.command("show")
@click.option("--secret", is_flag=True, help="Also print the nsec")
def keys_show(secret: bool):
    """Show the configured identity."""
    cfg = _load_config()
    if not cfg.get("nsec"):
        console.print("[yellow]No key configured.[/yellow]")
        raise SystemExit(1)
    sk = normalize_private_key(cfg["nsec"])
    pk = get_public_key(sk)
    console.print(f"npub:   {npub_encode(pk)}")
    console.print(f"pubkey: {pk}")
    if secret:
        click.echo(f"nsec:   {cfg['nsec']}")
