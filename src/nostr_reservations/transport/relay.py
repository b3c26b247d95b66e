"""
Relay connections over websockets (aiohttp).

RelayConnection owns one websocket and a reader task that fans parsed frames
out to registered handlers. RelayPool opens connections lazily per relay URL
and implements publish (wait for OK) and subscribe (stream EVENTs until
EOSE or forever).

No retries: a relay that fails is reported and left alone.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator, Callable, Iterable, NamedTuple, Optional
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from nostr_reservations.errors import PublishError, RelayError
from nostr_reservations.events import verify_event
from nostr_reservations.models.event import SignedEvent
from nostr_reservations.models.frames import ClosedFrame, EoseFrame, EventFrame, NoticeFrame, OkFrame, RelayFrame
from nostr_reservations.transport.frames import build_close, build_event, build_req, new_subscription_id, parse_frame

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_PUBLISH_TIMEOUT = 10.0

FrameHandler = Callable[[RelayFrame], None]

# Dispatched to handlers when the socket goes away.
DISCONNECTED = ClosedFrame(subscription_id="", message="connection closed")


def normalize_relay_url(url: str) -> str:
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("ws", "wss") or not parts.netloc:
        raise RelayError(f"Relay URL must be ws:// or wss://: {url!r}", url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def normalize_relays(relays: Iterable[str]) -> list[str]:
    """Normalize and dedupe, keeping first-seen order."""
    seen: dict[str, None] = {}
    for url in relays:
        seen.setdefault(normalize_relay_url(url), None)
    return list(seen)


class RelayConnection:
    def __init__(
        self,
        url: str,
        session: aiohttp.ClientSession,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.url = url
        self._session = session
        self._connect_timeout = connect_timeout
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._handlers: list[FrameHandler] = []

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def add_handler(self, handler: FrameHandler) -> Callable[[], None]:
        """Add a frame handler. Returns a cleanup function."""
        self._handlers.append(handler)
        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    async def connect(self) -> None:
        if self.connected:
            return
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.url, heartbeat=30.0), timeout=self._connect_timeout,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(f"Could not connect to {self.url}: {e}", self.url)
        self._reader = asyncio.create_task(self._read_loop())
        logger.debug("Connected to %s", self.url)

    async def send(self, text: str) -> None:
        if not self.connected:
            raise RelayError(f"Not connected to {self.url}", self.url)
        try:
            await self._ws.send_str(text)  # type: ignore[union-attr]
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise RelayError(f"Send to {self.url} failed: {e}", self.url)

    def _dispatch(self, frame: RelayFrame) -> None:
        for handler in list(self._handlers):
            handler(frame)

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    frame = parse_frame(msg.data)
                    if frame is None:
                        logger.debug("Ignoring unparsable frame from %s", self.url)
                    elif isinstance(frame, NoticeFrame):
                        logger.info("NOTICE from %s: %s", self.url, frame.message)
                    else:
                        self._dispatch(frame)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Websocket error from %s: %s", self.url, self._ws.exception())
                    break
        finally:
            logger.debug("Disconnected from %s", self.url)
            self._dispatch(DISCONNECTED)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None


class PublishResult(NamedTuple):
    accepted: list[str]
    failures: dict[str, str]


class RelayPool:
    """Lazily connected relays shared by publish and subscribe."""

    def __init__(
        self,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._publish_timeout = publish_timeout
        self._connect_timeout = connect_timeout
        self._session = session
        self._owns_session = session is None
        self._connections: dict[str, RelayConnection] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def _connection(self, url: str) -> RelayConnection:
        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            if self._session is None:
                self._session = aiohttp.ClientSession()
            conn = self._connections.get(url)
            if conn is None:
                conn = RelayConnection(url, self._session, self._connect_timeout)
                self._connections[url] = conn
            await conn.connect()
            return conn

    async def _publish_one(self, url: str, event: SignedEvent) -> None:
        conn = await self._connection(url)
        loop = asyncio.get_running_loop()
        result: asyncio.Future[OkFrame] = loop.create_future()

        def on_frame(frame: RelayFrame) -> None:
            if result.done():
                return
            if isinstance(frame, OkFrame) and frame.event_id == event.id:
                result.set_result(frame)
            elif frame is DISCONNECTED:
                result.set_exception(RelayError(f"{url} closed the connection", url))

        remove = conn.add_handler(on_frame)
        try:
            await conn.send(build_event(event))
            ok = await asyncio.wait_for(result, timeout=self._publish_timeout)
        except asyncio.TimeoutError:
            raise RelayError(f"Timed out waiting for OK from {url}", url)
        finally:
            remove()
        if not ok.accepted:
            raise RelayError(f"{url} rejected event: {ok.message}", url)

    async def publish(self, event: SignedEvent, relays: Iterable[str]) -> PublishResult:
        """Send ``event`` to every relay; raise PublishError only if none accepted it."""
        urls = normalize_relays(relays)
        if not urls:
            raise PublishError("No relays to publish to")
        outcomes = await asyncio.gather(*(self._publish_one(url, event) for url in urls), return_exceptions=True)

        accepted, failures = [], {}
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, RelayError):
                failures[url] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                accepted.append(url)
        if not accepted:
            raise PublishError(f"Event {event.id} was rejected by all {len(urls)} relays", failures)
        for url, reason in failures.items():
            logger.warning("Publish of %s to %s failed: %s", event.id, url, reason)
        return PublishResult(accepted, failures)

    async def subscribe(
        self,
        filters: list[dict[str, Any]],
        relays: Iterable[str],
        close_on_eose: bool = False,
    ) -> AsyncGenerator[SignedEvent, None]:
        """Stream events matching ``filters``, each id at most once across relays."""
        urls = normalize_relays(relays)
        sub_id = new_subscription_id()
        queue: asyncio.Queue[tuple[str, RelayFrame]] = asyncio.Queue()
        removers: list[Callable[[], None]] = []
        live: list[RelayConnection] = []

        for url in urls:
            try:
                conn = await self._connection(url)
            except RelayError as e:
                logger.warning("Skipping relay %s: %s", url, e)
                continue

            def on_frame(frame: RelayFrame, url: str = url) -> None:
                if frame is DISCONNECTED or getattr(frame, "subscription_id", None) == sub_id:
                    queue.put_nowait((url, frame))

            removers.append(conn.add_handler(on_frame))
            live.append(conn)
        if not live:
            raise RelayError("Could not connect to any relay")

        pending = {conn.url for conn in live}
        seen: set[str] = set()
        try:
            for conn in live:
                await conn.send(build_req(sub_id, filters))
            while live and (pending or not close_on_eose):
                url, frame = await queue.get()
                if isinstance(frame, EventFrame):
                    event = frame.event
                    if event.id in seen:
                        continue
                    if not verify_event(event):
                        logger.debug("Dropping event %s from %s: id or signature does not verify", event.id, url)
                        continue
                    seen.add(event.id)
                    yield event
                elif isinstance(frame, EoseFrame):
                    pending.discard(url)
                elif isinstance(frame, ClosedFrame):
                    if frame.message:
                        logger.info("Subscription closed by %s: %s", url, frame.message)
                    pending.discard(url)
                    live = [conn for conn in live if conn.url != url]
        finally:
            for remove in removers:
                remove()
            for conn in live:
                if conn.connected:
                    try:
                        await conn.send(build_close(sub_id))
                    except RelayError as e:
                        logger.debug("CLOSE to %s failed: %s", conn.url, e)

    async def close(self) -> None:
        for conn in self._connections.values():
            await conn.close()
        self._connections.clear()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
