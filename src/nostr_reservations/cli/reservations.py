"""CLI: nostr-reserve request|respond|modify|modify-respond|inbox|listen|announce"""

import json
from contextlib import nullcontext
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from nostr_reservations import timecodec
from nostr_reservations.errors import InvalidTimezone, MalformedTimestamp, ReservationError
from nostr_reservations.events import now
from nostr_reservations.models.kinds import EventKind
from nostr_reservations.models.message import ReservationMessage
from nostr_reservations.negotiation import ConversationThread
from nostr_reservations.publisher import SendResult

console = Console()


def _get_client():
    from nostr_reservations.cli.main import _get_client
    return _get_client()


def _run(coro):
    from nostr_reservations.cli.main import _run
    return _run(coro)


def _execute(coro) -> Any:
    try:
        return _run(coro)
    except ReservationError as e:
        console.print(f"[red]{e.code}: {e}[/red]")
        raise SystemExit(1)


def _encode(iso: str, param_hint: str) -> timecodec.TimeAndZone:
    try:
        return timecodec.encode(iso)
    except MalformedTimestamp as e:
        raise click.BadParameter(str(e), param_hint=param_hint)


def _when(iso: str, tzid: Optional[str]) -> timecodec.TimeAndZone:
    """ISO time to (unix, tzid); an explicit --tzid beats the inferred one."""
    encoded = _encode(iso, "--time")
    if tzid:
        if not timecodec.is_valid_tzid(tzid):
            raise click.BadParameter(f"unknown timezone {tzid!r}", param_hint="--tzid")
        return timecodec.TimeAndZone(encoded.unix_timestamp, tzid)
    return encoded


def _request_payload(party_size, time, tzid, name, phone, email, duration, earliest, latest, message) -> dict:
    when = _when(time, tzid)
    payload: dict[str, Any] = {
        "party_size": party_size,
        "time": when.unix_timestamp,
        "tzid": when.tzid,
        "name": name,
        "telephone": f"tel:{phone}" if phone and not phone.startswith("tel:") else phone,
        "email": f"mailto:{email}" if email and not email.startswith("mailto:") else email,
        "duration": duration * 60 if duration else None,
        "earliest_time": _encode(earliest, "--earliest").unix_timestamp if earliest else None,
        "latest_time": _encode(latest, "--latest").unix_timestamp if latest else None,
        "message": message,
    }
    return payload


def _response_payload(status, time, tzid, duration, message) -> dict:
    when = _when(time, tzid) if time else None
    return {
        "status": status,
        "time": when.unix_timestamp if when else None,
        "tzid": when.tzid if when else None,
        "duration": duration * 60 if duration else None,
        "message": message,
    }


def _request_options(f):
    options = [
        click.option("--party-size", "-n", type=int, required=True),
        click.option("--time", "-t", "time", required=True, help="ISO-8601, e.g. 2025-10-20T19:00:00-07:00"),
        click.option("--tzid", default=None, help="IANA zone; inferred from the offset if omitted"),
        click.option("--name", default=None),
        click.option("--phone", default=None),
        click.option("--email", default=None),
        click.option("--duration", type=int, default=None, help="Minutes"),
        click.option("--earliest", default=None, help="Earliest acceptable ISO-8601 time"),
        click.option("--latest", default=None, help="Latest acceptable ISO-8601 time"),
        click.option("--message", "-m", default=None),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _response_options(statuses: list[str]):
    def decorate(f):
        options = [
            click.option("--status", "-s", type=click.Choice(statuses), required=True),
            click.option("--time", "-t", "time", default=None, help="ISO-8601; required when confirming"),
            click.option("--tzid", default=None),
            click.option("--duration", type=int, default=None, help="Minutes"),
            click.option("--message", "-m", default=None),
            click.option("--reply-to", default=None, help="Id of the message being answered, if not the root"),
        ]
        for option in reversed(options):
            f = option(f)
        return f
    return decorate


def _report(result: SendResult) -> None:
    console.print(f"[green]Sent.[/green] id: {result.inner_id}")
    if result.recipient_error:
        console.print(f"[yellow]Recipient copy failed: {result.recipient_error}[/yellow]")
    if result.self_error:
        console.print(f"[yellow]Self copy failed: {result.self_error}[/yellow]")


async def _send(kind: EventKind, payload: dict, recipient: str, root_id=None, reply_id=None) -> SendResult:
    client = _get_client()
    try:
        with console.status("Wrapping and publishing..."):
            return await client.send(payload, recipient, kind, root_id=root_id, reply_id=reply_id)
    finally:
        await client.close()


@click.command("request")
@click.argument("recipient")
@_request_options
def request_cmd(recipient, party_size, time, tzid, name, phone, email, duration, earliest, latest, message):
    """Send a reservation request to RECIPIENT (npub or hex)."""
    payload = _request_payload(party_size, time, tzid, name, phone, email, duration, earliest, latest, message)
    _report(_execute(_send(EventKind.RESERVATION_REQUEST, payload, recipient)))


@click.command("respond")
@click.argument("root_id")
@click.argument("recipient")
@_response_options(["confirmed", "declined", "cancelled"])
def respond_cmd(root_id, recipient, status, time, tzid, duration, message, reply_to):
    """Respond to the request ROOT_ID from RECIPIENT."""
    payload = _response_payload(status, time, tzid, duration, message)
    _report(_execute(_send(EventKind.RESERVATION_RESPONSE, payload, recipient, root_id, reply_to)))


@click.command("modify")
@click.argument("root_id")
@click.argument("recipient")
@_request_options
def modify_cmd(root_id, recipient, party_size, time, tzid, name, phone, email, duration, earliest, latest, message):
    """Ask RECIPIENT to change the reservation ROOT_ID."""
    payload = _request_payload(party_size, time, tzid, name, phone, email, duration, earliest, latest, message)
    _report(_execute(_send(EventKind.RESERVATION_MODIFICATION_REQUEST, payload, recipient, root_id)))


@click.command("modify-respond")
@click.argument("root_id")
@click.argument("recipient")
@_response_options(["confirmed", "declined"])
def modify_respond_cmd(root_id, recipient, status, time, tzid, duration, message, reply_to):
    """Accept or decline a modification of ROOT_ID."""
    payload = _response_payload(status, time, tzid, duration, message)
    _report(_execute(_send(EventKind.RESERVATION_MODIFICATION_RESPONSE, payload, recipient, root_id, reply_to)))


def _describe(message: ReservationMessage) -> str:
    payload = message.payload
    parts = [message.type]
    status = getattr(payload, "status", None)
    if status is not None:
        parts.append(status.value)
    party_size = getattr(payload, "party_size", None)
    if party_size is not None:
        parts.append(f"party of {party_size}")
    if payload.time is not None and payload.tzid:
        try:
            parts.append(timecodec.decode(payload.time, payload.tzid))
        except InvalidTimezone:
            parts.append(f"{payload.time} ({payload.tzid})")
    if payload.message:
        parts.append(f'"{payload.message}"')
    return " · ".join(parts)


def _thread_json(thread: ConversationThread) -> dict:
    return {
        "root_id": thread.root_id,
        "state": thread.state.value,
        "messages": [
            {
                "id": m.rumor.id,
                "type": m.type,
                "from": m.sender_pubkey,
                "created_at": m.rumor.created_at,
                "payload": m.payload.model_dump(mode="json"),
            }
            for m in thread.messages
        ],
    }


@click.command("inbox")
@click.option("--days", type=int, default=30, help="How far back to look")
@click.option("--json-output", "--json", is_flag=True)
def inbox_cmd(days, json_output):
    """Show reservation threads, newest activity first."""

    async def _inbox():
        client = _get_client()
        try:
            # keep --json output machine-readable
            with nullcontext() if json_output else console.status("Fetching..."):
                return await client.fetch_threads(since=now() - days * 86400)
        finally:
            await client.close()

    threads = sorted(
        _execute(_inbox()).values(),
        key=lambda t: t.latest.rumor.created_at if t.latest else 0,
        reverse=True,
    )
    if json_output:
        click.echo(json.dumps([_thread_json(t) for t in threads], indent=2))
        return
    table = Table(title=f"Reservations ({len(threads)} threads)")
    table.add_column("Root", style="bold")
    table.add_column("State")
    table.add_column("Msgs", justify="right")
    table.add_column("Latest")
    for thread in threads:
        latest = _describe(thread.latest) if thread.latest else ""
        table.add_row(thread.root_id[:12], thread.state.value, str(len(thread.messages)), latest)
    console.print(table)


@click.command("listen")
def listen_cmd():
    """Stream incoming reservation messages (Ctrl+C to stop)."""

    async def _listen():
        client = _get_client()
        console.print(f"[cyan]Listening as {client.npub}[/cyan]")
        try:
            async for message in client.listen(since=now()):
                sender = "me" if message.sender_pubkey == client.public_key else message.sender_pubkey[:12]
                console.print(f"[dim]{message.rumor.id[:12]}[/dim] {sender}: {_describe(message)}")
        finally:
            await client.close()

    try:
        _execute(_listen())
    except KeyboardInterrupt:
        pass


@click.command("announce")
@click.option("--relay-url", default=None, help="Relay hint for recommendations (default: first configured relay)")
def announce_cmd(relay_url):
    """Advertise this key as a reservation handler (NIP-89)."""

    async def _announce():
        client = _get_client()
        try:
            with console.status("Publishing handler events..."):
                return await client.announce(relay_url)
        finally:
            await client.close()

    for event in _execute(_announce()):
        console.print(f"[green]Published[/green] kind {event.kind} {event.id}")
