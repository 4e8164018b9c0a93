import asyncio

import pytest

from enginepy.engine import EngineIo, WebSocketConnection
from enginepy.errors import (
    BadPacketError,
    HeartbeatTimeoutError,
    HttpErrorResponse,
    SerializeError,
    TransportMismatchError,
    UnknownSessionIdError,
    UpgradeError,
)
from enginepy.packet import Packet, PacketKind
from enginepy.sid import Sid
from enginepy.socket import EngineIoHandler, SocketReq
from enginepy.transport import ProtocolVersion

V3 = ProtocolVersion.V3
V4 = ProtocolVersion.V4


class RecordingHandler(EngineIoHandler):
    def __init__(self):
        self.events = []

    def on_connect(self, socket):
        self.events.append(("connect", socket.sid))

    def on_disconnect(self, socket):
        self.events.append(("disconnect", socket.sid))

    def on_message(self, msg, socket):
        self.events.append(("message", msg))
        socket.emit(msg)

    def on_binary(self, data, socket):
        self.events.append(("binary", data))
        socket.emit_binary(data)


class FakeWebSocket(WebSocketConnection):
    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.closed = False

    async def receive(self):
        return await self.incoming.get()

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True


def make_engine():
    handler = RecordingHandler()
    return EngineIo(handler), handler


def open_session(engine, protocol=V4):
    response = engine.on_open_http_req(protocol, SocketReq())
    text = response.body.decode()
    if protocol is V3:
        text = text.split(":", 1)[1]
    return Sid.parse(Packet.decode(text).data.sid)


async def wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def close_all(engine, *sids):
    for sid in sids:
        engine.close_session(sid)


@pytest.mark.asyncio
async def test_open_polling_request():
    engine, handler = make_engine()
    response = engine.on_open_http_req(V4, SocketReq())
    assert response.status == 200
    assert response.headers["Content-Type"] == "text/plain; charset=UTF-8"
    packet = Packet.decode(response.body)
    assert packet.kind is PacketKind.OPEN
    open_packet = packet.data
    assert open_packet.upgrades == ("websocket",)
    assert open_packet.ping_interval == 25000
    assert open_packet.ping_timeout == 20000
    assert open_packet.max_payload == 100000
    sid = Sid.parse(open_packet.sid)
    assert engine.get_socket(sid).is_http()
    assert handler.events == [("connect", sid)]
    engine.close_session(sid)
    assert engine.get_socket(sid) is None
    assert handler.events[-1] == ("disconnect", sid)


@pytest.mark.asyncio
async def test_open_polling_request_v3_is_length_prefixed():
    engine, _ = make_engine()
    response = engine.on_open_http_req(V3, SocketReq())
    prefix, rest = response.body.decode().split(":", 1)
    assert int(prefix) == len(rest)
    assert rest.startswith("0{")
    close_all(engine, Sid.parse(Packet.decode(rest).data.sid))


@pytest.mark.asyncio
async def test_ping_pong_text():
    engine, _ = make_engine()
    sid = open_session(engine)
    poll, post = await asyncio.gather(
        engine.on_polling_http_req(V4, sid),
        engine.on_post_http_req(V4, sid, b"4abcabc"),
    )
    assert post.status == 200
    assert post.body == b"ok"
    assert poll.status == 200
    assert poll.body == b"4abcabc"
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_ping_pong_binary():
    engine, handler = make_engine()
    sid = open_session(engine)
    poll, post = await asyncio.gather(
        engine.on_polling_http_req(V4, sid),
        engine.on_post_http_req(V4, sid, b"bYWJjYmFj"),
    )
    assert post.body == b"ok"
    assert poll.body == b"bYWJjYmFj"
    assert ("binary", b"abcbac") in handler.events
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_ping_pong_binary_v3():
    engine, _ = make_engine()
    sid = open_session(engine, V3)
    post = await engine.on_post_http_req(V3, sid, b"6:b4AQID")
    assert post.body == b"ok"
    poll = await engine.on_polling_http_req(V3, sid)
    assert poll.body == b"6:b4AQID"
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_polling_joins_buffered_packets_v4():
    engine, _ = make_engine()
    sid = open_session(engine)
    socket = engine.get_socket(sid)
    socket.emit("a")
    socket.emit("bc")
    poll = await engine.on_polling_http_req(V4, sid)
    assert poll.body == b"4a\x1e4bc"
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_polling_joins_buffered_packets_v3():
    engine, _ = make_engine()
    sid = open_session(engine, V3)
    socket = engine.get_socket(sid)
    socket.emit("a")
    socket.emit("bc")
    poll = await engine.on_polling_http_req(V3, sid)
    assert poll.body == b"2:4a3:4bc"
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_unknown_session():
    engine, _ = make_engine()
    with pytest.raises(UnknownSessionIdError) as info:
        await engine.on_polling_http_req(V4, Sid(123))
    assert info.value.sid == Sid(123)
    with pytest.raises(UnknownSessionIdError):
        await engine.on_post_http_req(V4, Sid(123), b"4x")


@pytest.mark.asyncio
async def test_post_close_packet_closes_session():
    engine, handler = make_engine()
    sid = open_session(engine)
    response = await engine.on_post_http_req(V4, sid, b"1")
    assert response.body == b"ok"
    assert engine.get_socket(sid) is None
    assert handler.events[-1] == ("disconnect", sid)


@pytest.mark.asyncio
async def test_post_bad_packet_keeps_session():
    engine, _ = make_engine()
    sid = open_session(engine)
    with pytest.raises(BadPacketError) as info:
        await engine.on_post_http_req(V4, sid, b"5")
    assert info.value.packet.kind is PacketKind.UPGRADE
    assert engine.get_socket(sid) is not None
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_post_invalid_packet_closes_session():
    engine, _ = make_engine()
    sid = open_session(engine)
    with pytest.raises(SerializeError):
        await engine.on_post_http_req(V4, sid, b"x")
    assert engine.get_socket(sid) is None


@pytest.mark.asyncio
async def test_post_invalid_v3_length_closes_session():
    engine, _ = make_engine()
    sid = open_session(engine, V3)
    with pytest.raises(HttpErrorResponse) as info:
        await engine.on_post_http_req(V3, sid, b"a:4x")
    assert info.value.status == 400
    assert engine.get_socket(sid) is None


@pytest.mark.asyncio
async def test_post_pong_signals_heartbeat():
    engine, _ = make_engine()
    sid = open_session(engine)
    socket = engine.get_socket(sid)
    await engine.on_post_http_req(V4, sid, b"3")
    assert socket.heartbeat_rx.qsize() == 1
    with pytest.raises(HeartbeatTimeoutError):
        await engine.on_post_http_req(V4, sid, b"3")
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_concurrent_polling_closes_session():
    engine, _ = make_engine()
    sid = open_session(engine)
    socket = engine.get_socket(sid)
    first = asyncio.get_running_loop().create_task(engine.on_polling_http_req(V4, sid))
    await wait_until(socket.outgoing_lock.locked)
    with pytest.raises(HttpErrorResponse) as info:
        await engine.on_polling_http_req(V4, sid)
    assert info.value.status == 400
    assert engine.get_socket(sid) is None
    response = await asyncio.wait_for(first, 1)
    assert response.body == b"1"


@pytest.mark.asyncio
async def test_new_websocket_connection():
    engine, handler = make_engine()
    ws = FakeWebSocket()
    task = asyncio.get_running_loop().create_task(
        engine.on_ws_connection(V4, None, ws, SocketReq())
    )
    await wait_until(lambda: ws.sent)
    open_packet = Packet.decode(ws.sent[0]).data
    assert open_packet.upgrades == ()
    sid = Sid.parse(open_packet.sid)
    assert engine.get_socket(sid).is_ws()
    with pytest.raises(TransportMismatchError):
        await engine.on_polling_http_req(V4, sid)

    await ws.incoming.put("4hello")
    await wait_until(lambda: "4hello" in ws.sent)
    await ws.incoming.put(b"\x01\x02")
    await wait_until(lambda: b"\x01\x02" in ws.sent)
    await ws.incoming.put(None)
    await asyncio.wait_for(task, 1)
    assert engine.get_socket(sid) is None
    assert handler.events == [
        ("connect", sid),
        ("message", "hello"),
        ("binary", b"\x01\x02"),
        ("disconnect", sid),
    ]


@pytest.mark.asyncio
async def test_websocket_close_packet_ends_connection():
    engine, handler = make_engine()
    ws = FakeWebSocket()
    await ws.incoming.put("1")
    await asyncio.wait_for(engine.on_ws_connection(V4, None, ws, SocketReq()), 1)
    sid = Sid.parse(Packet.decode(ws.sent[0]).data.sid)
    assert engine.get_socket(sid) is None
    assert handler.events == [("connect", sid), ("disconnect", sid)]


@pytest.mark.asyncio
async def test_server_close_closes_websocket():
    engine, _ = make_engine()
    ws = FakeWebSocket()
    task = asyncio.get_running_loop().create_task(
        engine.on_ws_connection(V4, None, ws, SocketReq())
    )
    await wait_until(lambda: ws.sent)
    sid = Sid.parse(Packet.decode(ws.sent[0]).data.sid)
    engine.get_socket(sid).close()
    await wait_until(lambda: ws.closed)
    assert engine.get_socket(sid) is None
    await ws.incoming.put(None)
    await asyncio.wait_for(task, 1)
    assert ws.closed is True


@pytest.mark.asyncio
async def test_websocket_upgrade_from_polling():
    engine, handler = make_engine()
    sid = open_session(engine)
    socket = engine.get_socket(sid)
    poll_task = asyncio.get_running_loop().create_task(engine.on_polling_http_req(V4, sid))
    await wait_until(socket.outgoing_lock.locked)

    ws = FakeWebSocket()
    ws_task = asyncio.get_running_loop().create_task(
        engine.on_ws_connection(V4, sid, ws, SocketReq())
    )
    poll_response = await asyncio.wait_for(poll_task, 1)
    assert poll_response.body == b"6"

    await ws.incoming.put("2probe")
    await wait_until(lambda: "3probe" in ws.sent)
    await ws.incoming.put("5")
    await wait_until(socket.is_ws)
    socket.emit("hi")
    await wait_until(lambda: "4hi" in ws.sent)

    await ws.incoming.put(None)
    await asyncio.wait_for(ws_task, 1)
    assert engine.get_socket(sid) is None
    assert handler.events.count(("connect", sid)) == 2


@pytest.mark.asyncio
async def test_upgrade_unknown_session():
    engine, _ = make_engine()
    with pytest.raises(UnknownSessionIdError):
        await engine.on_ws_connection(V4, Sid(7), FakeWebSocket(), SocketReq())


@pytest.mark.asyncio
async def test_upgrade_websocket_session_is_rejected():
    engine, _ = make_engine()
    ws = FakeWebSocket()
    task = asyncio.get_running_loop().create_task(
        engine.on_ws_connection(V4, None, ws, SocketReq())
    )
    await wait_until(lambda: ws.sent)
    sid = Sid.parse(Packet.decode(ws.sent[0]).data.sid)
    with pytest.raises(UpgradeError):
        await engine.on_ws_connection(V4, sid, FakeWebSocket(), SocketReq())
    await ws.incoming.put(None)
    await asyncio.wait_for(task, 1)
    assert engine.get_socket(sid) is None


@pytest.mark.asyncio
async def test_upgrade_with_bad_probe():
    engine, _ = make_engine()
    sid = open_session(engine)
    ws = FakeWebSocket()
    await ws.incoming.put("4x")
    with pytest.raises(BadPacketError) as info:
        await engine.on_ws_connection(V4, sid, ws, SocketReq())
    assert info.value.packet == Packet(PacketKind.MESSAGE, "x")
    assert engine.get_socket(sid).is_http()
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_upgrade_closed_before_upgrade_packet():
    engine, _ = make_engine()
    sid = open_session(engine, V3)
    ws = FakeWebSocket()
    await ws.incoming.put("2probe")
    await ws.incoming.put(None)
    with pytest.raises(UpgradeError):
        await engine.on_ws_connection(V3, sid, ws, SocketReq())
    assert ws.sent == ["3probe"]
    close_all(engine, sid)


@pytest.mark.asyncio
async def test_close_unknown_session_does_nothing():
    engine, handler = make_engine()
    engine.close_session(Sid(42))
    assert handler.events == []
    assert engine.get_socket(Sid(42)) is None