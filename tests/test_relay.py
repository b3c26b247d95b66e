"""Relay frames, the relay pool and a websocket round trip against a local relay."""

import json
import logging

import pytest
from aiohttp import web
from aiohttp import test_utils

from nostr_reservations.errors import PublishError, RelayError
from nostr_reservations.events import finalize_event
from nostr_reservations.models.event import EventTemplate, SignedEvent
from nostr_reservations.models.frames import ClosedFrame, EoseFrame, EventFrame, NoticeFrame, OkFrame
from nostr_reservations.transport.frames import build_close, build_event, build_req, new_subscription_id, parse_frame
from nostr_reservations.transport.relay import DISCONNECTED, RelayPool, normalize_relay_url, normalize_relays


def _event(sk, content="hi", kind=1):
    return finalize_event(EventTemplate(kind=kind, created_at=1700000000, content=content), sk)


class TestUrls:
    def test_normalize(self):
        assert normalize_relay_url(" WSS://Relay.Example.COM/ ") == "wss://relay.example.com"
        assert normalize_relay_url("ws://localhost:7777/path/") == "ws://localhost:7777/path"

    @pytest.mark.parametrize("url", ["https://relay.example.com", "relay.example.com", "wss://", ""])
    def test_rejects(self, url):
        with pytest.raises(RelayError):
            normalize_relay_url(url)

    def test_dedupe_keeps_order(self):
        assert normalize_relays(["wss://b.test", "wss://a.test/", "WSS://B.test"]) == ["wss://b.test", "wss://a.test"]


class TestFrames:
    def test_build(self, alice):
        event = _event(alice.private_key)
        assert json.loads(build_event(event)) == ["EVENT", event.model_dump()]
        assert json.loads(build_req("sub1", [{"kinds": [1059]}, {"#p": ["x"]}])) == [
            "REQ", "sub1", {"kinds": [1059]}, {"#p": ["x"]},
        ]
        assert json.loads(build_close("sub1")) == ["CLOSE", "sub1"]

    def test_subscription_ids_are_unique(self):
        assert new_subscription_id() != new_subscription_id()

    def test_parse(self, alice):
        event = _event(alice.private_key)
        frame = parse_frame(json.dumps(["EVENT", "sub1", event.model_dump()]))
        assert isinstance(frame, EventFrame)
        assert frame.event == event

        assert parse_frame(json.dumps(["OK", event.id, False, "blocked: pow"])) == OkFrame(
            event_id=event.id, accepted=False, message="blocked: pow"
        )
        assert parse_frame('["EOSE","sub1"]') == EoseFrame(subscription_id="sub1")
        assert parse_frame('["NOTICE","slow down"]') == NoticeFrame(message="slow down")
        assert parse_frame('["CLOSED","sub1","auth-required: x"]') == ClosedFrame(
            subscription_id="sub1", message="auth-required: x"
        )

    @pytest.mark.parametrize("raw", [
        "not json",
        "{}",
        "[]",
        "[1, 2]",
        '["AUTH","challenge"]',
        '["EVENT","sub1",{"id":"nope"}]',
        '["OK"]',
    ])
    def test_parse_invalid(self, raw):
        assert parse_frame(raw) is None


class FakeConnection:
    """Answers EVENT with OK and REQ with its stored events then EOSE."""

    def __init__(self, url, stored=(), accept=True, reply=True, on_req=None):
        self.url = url
        self.stored = list(stored)
        self.accept = accept
        self.reply = reply
        self.on_req = on_req
        self.sent = []
        self.handlers = []
        self.connected = True

    def add_handler(self, handler):
        self.handlers.append(handler)
        return lambda: self.handlers.remove(handler)

    def dispatch(self, frame):
        for handler in list(self.handlers):
            handler(frame)

    async def send(self, text):
        frame = json.loads(text)
        self.sent.append(frame)
        if frame[0] == "EVENT" and self.reply:
            self.dispatch(OkFrame(event_id=frame[1]["id"], accepted=self.accept,
                                  message="" if self.accept else "blocked: not allowed"))
        elif frame[0] == "REQ":
            if self.on_req:
                self.on_req(self, frame[1])
                return
            for event in self.stored:
                self.dispatch(EventFrame(subscription_id=frame[1], event=event))
            self.dispatch(EoseFrame(subscription_id=frame[1]))


def _pool(connections, **kwargs):
    pool = RelayPool(**kwargs)

    async def connection(url):
        if url not in connections:
            raise RelayError(f"Could not connect to {url}", url)
        return connections[url]

    pool._connection = connection
    return pool


class TestPublish:
    @pytest.mark.asyncio
    async def test_accepted_everywhere(self, alice):
        conns = {"wss://a.test": FakeConnection("wss://a.test"), "wss://b.test": FakeConnection("wss://b.test")}
        event = _event(alice.private_key)
        result = await _pool(conns).publish(event, ["wss://a.test", "wss://b.test/"])
        assert result.accepted == ["wss://a.test", "wss://b.test"]
        assert result.failures == {}
        assert conns["wss://a.test"].sent == [["EVENT", event.model_dump()]]
        assert conns["wss://a.test"].handlers == []

    @pytest.mark.asyncio
    async def test_partial_rejection(self, alice, caplog):
        conns = {
            "wss://a.test": FakeConnection("wss://a.test"),
            "wss://b.test": FakeConnection("wss://b.test", accept=False),
        }
        with caplog.at_level(logging.WARNING, logger="nostr_reservations.transport.relay"):
            result = await _pool(conns).publish(_event(alice.private_key), list(conns))
        assert result.accepted == ["wss://a.test"]
        assert "blocked: not allowed" in result.failures["wss://b.test"]
        assert "wss://b.test" in caplog.text

    @pytest.mark.asyncio
    async def test_all_fail(self, alice):
        conns = {"wss://a.test": FakeConnection("wss://a.test", accept=False)}
        with pytest.raises(PublishError) as exc_info:
            await _pool(conns).publish(_event(alice.private_key), ["wss://a.test", "wss://down.test"])
        assert set(exc_info.value.failures) == {"wss://a.test", "wss://down.test"}

    @pytest.mark.asyncio
    async def test_timeout(self, alice):
        conns = {"wss://a.test": FakeConnection("wss://a.test", reply=False)}
        with pytest.raises(PublishError) as exc_info:
            await _pool(conns, publish_timeout=0.05).publish(_event(alice.private_key), ["wss://a.test"])
        assert "Timed out" in exc_info.value.failures["wss://a.test"]

    @pytest.mark.asyncio
    async def test_disconnect_while_waiting(self, alice):
        conn = FakeConnection("wss://a.test", reply=False)
        original_send = conn.send

        async def send_then_drop(text):
            await original_send(text)
            conn.dispatch(DISCONNECTED)

        conn.send = send_then_drop
        with pytest.raises(PublishError) as exc_info:
            await _pool({"wss://a.test": conn}).publish(_event(alice.private_key), ["wss://a.test"])
        assert "closed the connection" in exc_info.value.failures["wss://a.test"]

    @pytest.mark.asyncio
    async def test_no_relays(self, alice):
        with pytest.raises(PublishError):
            await _pool({}).publish(_event(alice.private_key), [])


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_dedupes_across_relays_and_stops_at_eose(self, alice):
        e1, e2, e3 = (_event(alice.private_key, str(i)) for i in range(3))
        conns = {
            "wss://a.test": FakeConnection("wss://a.test", stored=[e1, e2]),
            "wss://b.test": FakeConnection("wss://b.test", stored=[e2, e3]),
        }
        pool = _pool(conns)
        received = [e async for e in pool.subscribe([{"kinds": [1]}], list(conns), close_on_eose=True)]

        assert [e.id for e in received] == [e1.id, e2.id, e3.id]
        for conn in conns.values():
            req, close = conn.sent
            assert req[0] == "REQ" and req[2] == {"kinds": [1]}
            assert close == ["CLOSE", req[1]]
            assert conn.handlers == []

    @pytest.mark.asyncio
    async def test_skips_unreachable_relay(self, alice):
        e1 = _event(alice.private_key)
        conns = {"wss://a.test": FakeConnection("wss://a.test", stored=[e1])}
        received = [e async for e in _pool(conns).subscribe([{}], ["wss://down.test", "wss://a.test"], True)]
        assert received == [e1]

    @pytest.mark.asyncio
    async def test_no_reachable_relay(self):
        with pytest.raises(RelayError):
            async for _ in _pool({}).subscribe([{}], ["wss://down.test"]):
                pass

    @pytest.mark.asyncio
    async def test_closed_by_relay(self, alice):
        def refuse(conn, sub_id):
            conn.dispatch(ClosedFrame(subscription_id=sub_id, message="auth-required: sign in"))

        conn = FakeConnection("wss://a.test", on_req=refuse)
        received = [e async for e in _pool({"wss://a.test": conn}).subscribe([{}], ["wss://a.test"])]
        assert received == []
        assert [frame[0] for frame in conn.sent] == ["REQ"]

    @pytest.mark.asyncio
    async def test_drops_events_that_do_not_verify(self, alice, bob, caplog):
        genuine = _event(alice.private_key, "genuine")
        tampered = SignedEvent(**{**genuine.model_dump(), "content": "tampered"})
        other = _event(bob.private_key, "other")
        stolen_sig = SignedEvent(**{**other.model_dump(), "sig": genuine.sig})
        conn = FakeConnection("wss://a.test", stored=[tampered, stolen_sig, genuine, other])

        with caplog.at_level(logging.DEBUG, logger="nostr_reservations.transport.relay"):
            received = [e async for e in _pool({"wss://a.test": conn}).subscribe([{}], ["wss://a.test"], True)]

        assert received == [genuine, other]
        assert "does not verify" in caplog.text

    @pytest.mark.asyncio
    async def test_ignores_other_subscriptions(self, alice):
        e1, e2 = _event(alice.private_key, "1"), _event(alice.private_key, "2")

        def mixed(conn, sub_id):
            conn.dispatch(EventFrame(subscription_id="someone-else", event=e1))
            conn.dispatch(EventFrame(subscription_id=sub_id, event=e2))
            conn.dispatch(EoseFrame(subscription_id=sub_id))

        conn = FakeConnection("wss://a.test", on_req=mixed)
        received = [e async for e in _pool({"wss://a.test": conn}).subscribe([{}], ["wss://a.test"], True)]
        assert received == [e2]


def _local_relay():
    """Minimal in-process relay: stores EVENTs, answers REQ with everything stored."""
    stored = []

    async def handler(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for msg in ws:
            frame = json.loads(msg.data)
            if frame[0] == "EVENT":
                stored.append(frame[1])
                await ws.send_str(json.dumps(["OK", frame[1]["id"], True, ""]))
            elif frame[0] == "REQ":
                await ws.send_str(json.dumps(["NOTICE", "welcome"]))
                for event in stored:
                    await ws.send_str(json.dumps(["EVENT", frame[1], event]))
                await ws.send_str(json.dumps(["EOSE", frame[1]]))
        return ws

    app = web.Application()
    app.router.add_get("/", handler)
    return test_utils.TestServer(app)


@pytest.mark.asyncio
async def test_websocket_round_trip(alice):
    server = _local_relay()
    await server.start_server()
    url = f"ws://{server.host}:{server.port}"
    pool = RelayPool(publish_timeout=5, connect_timeout=5)
    try:
        event = _event(alice.private_key, "over the wire")
        result = await pool.publish(event, [url])
        assert result.accepted == [url]

        received = [e async for e in pool.subscribe([{"kinds": [1]}], [url], close_on_eose=True)]
        assert received == [event]
    finally:
        await pool.close()
        await server.close()


@pytest.mark.asyncio
async def test_unreachable_websocket(alice):
    pool = RelayPool(publish_timeout=1, connect_timeout=1)
    try:
        with pytest.raises(PublishError):
            await pool.publish(_event(alice.private_key), ["ws://127.0.0.1:9"])
    finally:
        await pool.close()
