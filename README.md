# enginepy

The core of an Engine.IO server for asyncio. It covers protocol versions 3
and 4: encoding and decoding of packets and polling payloads, session ids,
per-session sockets with their heartbeat (ping/pong), and an engine that
handles HTTP long-polling requests, WebSocket connections and the upgrade of a
polling session to WebSocket. It depends on nothing outside the standard
library.

## Installation

```
pip install enginepy
```

For running the tests:

```
pip install "enginepy[test]"
pytest
```

## Writing a handler

Subclass `enginepy.socket.EngineIoHandler` and implement its four callbacks.
Each one receives the `Socket` of the session that raised the event.

```python
from enginepy.socket import EngineIoHandler


class Echo(EngineIoHandler):
    def on_connect(self, socket):
        print("connected", socket.sid)

    def on_disconnect(self, socket):
        print("disconnected", socket.sid)

    def on_message(self, msg, socket):
        socket.emit(msg)

    def on_binary(self, data, socket):
        socket.emit_binary(data)
```

`Socket.emit` and `Socket.emit_binary` queue a packet for the client. Over
polling, binary data goes out base64-encoded (prefixed `b4` for protocol 3 and
`b` for protocol 4). Over WebSocket, it goes out as binary frames. When a
session's buffer is full, emitting raises `ChannelFullError`. `Socket.close`
ends the session and queues a close packet.

## Driving the engine

`enginepy.engine.EngineIo` keeps the open sessions and turns requests into
`enginepy.responses.Response` objects (status, headers, body bytes):

- `on_open_http_req(protocol, req)` opens a polling session, starts its
  heartbeat and answers with the open packet. Call it inside a running event
  loop.
- `await on_polling_http_req(protocol, sid)` returns the buffered packets, or
  waits for the next one. A second concurrent poll on the same session closes
  it and raises `HttpErrorResponse(400)`.
- `await on_post_http_req(protocol, sid, body)` splits a request body into
  packets and dispatches them to the handler.
- `await on_ws_connection(protocol, sid, ws, req)` serves an accepted
  WebSocket until it closes. With `sid=None` it opens a new session. With a
  sid it runs the probe/upgrade exchange on an existing polling session. `ws`
  is any implementation of `enginepy.engine.WebSocketConnection`, which has
  async `receive`, `send` and `close` methods.
- `close_session(sid)` and `get_socket(sid)` manage sessions directly.

```python
import asyncio

from enginepy.engine import EngineIo
from enginepy.packet import OpenPacket
from enginepy.sid import Sid
from enginepy.socket import SocketReq
from enginepy.transport import ProtocolVersion


async def demo():
    engine = EngineIo(Echo())
    v4 = ProtocolVersion.V4
    opened = engine.on_open_http_req(v4, SocketReq(uri="/engine.io/?EIO=4&transport=polling"))
    sid = Sid.parse(OpenPacket.from_json(opened.body.decode()[1:]).sid)

    await engine.on_post_http_req(v4, sid, b"4hello")
    polled = await engine.on_polling_http_req(v4, sid)
    print(polled.body)  # b'4hello'

    engine.close_session(sid)


asyncio.run(demo())
```

Errors raised by these methods can be turned into the response for the client
with `enginepy.responses.error_response`. `ws_response(key)` builds the
`101 Switching Protocols` answer for a WebSocket handshake.

## Lower-level pieces

- `enginepy.packet`: `Packet` with `encode()` and `Packet.decode(text_or_bytes)`,
  `PacketKind`, `OpenPacket` (`create`, `to_json`, `from_json`) and
  `SendPacket`.
- `enginepy.payload`: `decode_payload(protocol, data)` yields the packets of a
  polling body. Version 4 separates packets with `\x1e`. Version 3 prefixes
  each packet with `length:`. `encode_payload(protocol, packets)` joins
  packets back into a body.
- `enginepy.sid`: `Sid` holds a 64-bit id written as 11 url-safe base64
  characters. It provides `Sid.parse` and `str(sid)`. `generate_sid()` returns
  a random id.
- `enginepy.transport`: `TransportType.parse` and `ProtocolVersion.parse`.

## Configuration

`enginepy.config.EngineIoConfig` is a dataclass. Durations are in seconds.

| field             | default       | meaning                                              |
|-------------------|---------------|------------------------------------------------------|
| `req_path`        | `/engine.io`  | path prefix for Engine.IO requests                   |
| `ping_interval`   | 25.0          | interval between heartbeats                          |
| `ping_timeout`    | 20.0          | time allowed for the peer to answer a heartbeat      |
| `max_buffer_size` | 128           | packets buffered per session before emitting fails   |
| `max_payload`     | 100000        | largest request body, in bytes, advertised to clients |

Negative durations, a buffer size below 1 or a negative payload raise
`ValueError`.

## Errors

Every error is a subclass of `enginepy.errors.EngineIoError`.
`error_response` maps them as follows:

- `UnknownTransportError` returns 400 with code 0.
- `UnknownSessionIdError` returns 400 with code 1.
- `BadHandshakeMethodError` returns 400 with code 2.
- `TransportMismatchError` returns 400 with code 3.
- `UnsupportedProtocolVersionError` returns 400 with code 5.
- `HttpErrorResponse` returns an empty response with its status.
- `BadPacketError` returns an empty 400 response.

Anything else returns 500.

## What this package does not do

It has no HTTP server, no ASGI application and no command-line program. It
does not parse request URLs or query strings into a protocol version,
transport and sid. It does not route requests by path, and it does not accept
WebSocket connections itself. To serve clients, you connect `EngineIo` to a
web server of your choice: you map requests onto its methods and supply a
`WebSocketConnection` implementation.