"""The Engine.IO engine: session bookkeeping and transport handling."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Optional, Union

from .config import EngineIoConfig
from .errors import (
    BadPacketError,
    EngineIoError,
    HeartbeatTimeoutError,
    HttpErrorResponse,
    TransportMismatchError,
    UnknownSessionIdError,
    UpgradeError,
)
from .packet import OpenPacket, Packet, PacketKind
from .payload import decode_payload, encode_payload
from .responses import Response, http_response
from .sid import Sid, generate_sid
from .socket import ConnectionType, EngineIoHandler, Socket, SocketReq
from .transport import ProtocolVersion, TransportType

logger = logging.getLogger(__name__)

_BINARY_KINDS = (PacketKind.BINARY, PacketKind.BINARY_V3)
_HEARTBEAT_KINDS = (PacketKind.PING, PacketKind.PONG)


class WebSocketConnection(ABC):
    """An accepted websocket connection to a client."""

    @abstractmethod
    async def receive(self) -> Union[str, bytes, None]:
        """Return the next message: text, binary, or None once the peer has closed."""

    @abstractmethod
    async def send(self, message: Union[str, bytes]) -> None:
        """Send a text or binary frame."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""


def _drain(queue: asyncio.Queue[Packet]) -> Iterator[Packet]:
    while True:
        try:
            yield queue.get_nowait()
        except asyncio.QueueEmpty:
            return


def _signal_heartbeat(socket: Socket) -> None:
    try:
        socket.heartbeat_rx.put_nowait(None)
    except asyncio.QueueFull:
        raise HeartbeatTimeoutError() from None


class EngineIo:
    """Engine.IO server for http polling and websocket.

    Holds the open sessions and dispatches received packets to the handler.
    """

    def __init__(self, handler: EngineIoHandler, config: Optional[EngineIoConfig] = None) -> None:
        self.handler = handler
        self.config = config if config is not None else EngineIoConfig()
        self._sockets: dict[Sid, Socket] = {}

    def _new_socket(self, protocol: ProtocolVersion, conn: ConnectionType, req: SocketReq) -> Socket:
        sid = generate_sid()
        socket = Socket(sid, protocol, conn, self.config, req, self.close_session)
        self._sockets[sid] = socket
        return socket

    def _polling_socket(self, sid: Sid) -> Socket:
        socket = self.get_socket(sid)
        if socket is None:
            raise UnknownSessionIdError(sid)
        if not socket.is_http():
            raise TransportMismatchError()
        return socket

    def on_open_http_req(self, protocol: ProtocolVersion, req: SocketReq) -> Response:
        """Open a polling session, start its heartbeat and answer with the open packet.

        Must be called while an event loop is running.
        """
        socket = self._new_socket(protocol, ConnectionType.HTTP, req)
        socket.spawn_heartbeat(self.config.ping_interval, self.config.ping_timeout)
        self.handler.on_connect(socket)
        packet = Packet(
            PacketKind.OPEN, OpenPacket.create(TransportType.POLLING, socket.sid, self.config)
        )
        return http_response(200, encode_payload(protocol, [packet]))

    async def on_polling_http_req(self, protocol: ProtocolVersion, sid: Sid) -> Response:
        """Answer a polling request with the buffered packets, waiting for one if none are buffered.

        A second concurrent polling request closes the session.
        """
        socket = self._polling_socket(sid)
        if socket.outgoing_lock.locked():
            socket.close()
            raise HttpErrorResponse(400)

        async with socket.outgoing_lock:
            logger.debug("[sid=%s] polling request", sid)
            packets = list(_drain(socket.outgoing))
            if not packets:
                packets.append(await socket.outgoing.get())
        return http_response(200, encode_payload(protocol, packets))

    async def on_post_http_req(self, protocol: ProtocolVersion, sid: Sid, body: bytes) -> Response:
        """Split a polling request body into packets and dispatch them."""
        socket = self._polling_socket(sid)
        raw_packets = decode_payload(protocol, body)
        while True:
            try:
                raw = next(raw_packets, None)
            except EngineIoError as exc:
                logger.debug("error parsing packets: %s", exc)
                self.close_session(sid)
                raise HttpErrorResponse(400) from exc
            if raw is None:
                break

            try:
                packet = Packet.decode(raw)
            except EngineIoError as exc:
                logger.debug("[sid=%s] error parsing packet: %s", sid, exc)
                self.close_session(sid)
                raise

            kind = packet.kind
            if kind is PacketKind.CLOSE:
                logger.debug("[sid=%s] closing session", sid)
                socket.send(Packet(PacketKind.NOOP))
                self.close_session(sid)
                break
            if kind in _HEARTBEAT_KINDS:
                _signal_heartbeat(socket)
            elif kind is PacketKind.MESSAGE:
                self.handler.on_message(packet.data, socket)  # type: ignore[arg-type]
            elif kind in _BINARY_KINDS:
                self.handler.on_binary(packet.data, socket)  # type: ignore[arg-type]
            else:
                logger.debug("[sid=%s] bad packet received: %r", sid, packet)
                raise BadPacketError(packet)
        return http_response(200, "ok")

    async def on_ws_connection(
        self,
        protocol: ProtocolVersion,
        sid: Optional[Sid],
        ws: WebSocketConnection,
        req: SocketReq,
    ) -> None:
        """Serve an accepted websocket until it closes.

        With a sid, an existing polling session is upgraded; otherwise a new
        session is opened and the open packet is sent.
        """
        if sid is not None:
            socket = self.get_socket(sid)
            if socket is None:
                raise UnknownSessionIdError(sid)
            if socket.is_ws():
                raise UpgradeError()
            logger.debug("[sid=%s] websocket connection upgrade", sid)
            await self._ws_upgrade_handshake(protocol, socket, ws)
        else:
            socket = self._new_socket(protocol, ConnectionType.WEBSOCKET, req)
            logger.debug("[sid=%s] new websocket connection", socket.sid)
            packet = Packet(
                PacketKind.OPEN,
                OpenPacket.create(TransportType.WEBSOCKET, socket.sid, self.config),
            )
            try:
                await ws.send(packet.encode())
            except BaseException:
                self.close_session(socket.sid)
                raise
            socket.spawn_heartbeat(self.config.ping_interval, self.config.ping_timeout)

        pipe = asyncio.get_running_loop().create_task(self._pipe_to_ws(socket, ws))
        try:
            self.handler.on_connect(socket)
            try:
                await self._ws_forward_to_handler(ws, socket)
            except EngineIoError as exc:
                logger.debug("[sid=%s] error when handling packet: %s", socket.sid, exc)
        finally:
            self.close_session(socket.sid)
            pipe.cancel()

    async def _pipe_to_ws(self, socket: Socket, ws: WebSocketConnection) -> None:
        async with socket.outgoing_lock:
            while True:
                packet = await socket.outgoing.get()
                try:
                    if packet.kind in _BINARY_KINDS:
                        await ws.send(packet.data)  # type: ignore[arg-type]
                    elif packet.kind is PacketKind.CLOSE:
                        await ws.close()
                    else:
                        await ws.send(packet.encode())
                except Exception as exc:  # transport failure ends the pipe
                    logger.debug("[sid=%s] error sending packet: %s", socket.sid, exc)
                    return
                logger.debug("[sid=%s] sent packet", socket.sid)
                if packet.kind is PacketKind.CLOSE:
                    return

    async def _ws_forward_to_handler(self, ws: WebSocketConnection, socket: Socket) -> None:
        while True:
            try:
                message = await ws.receive()
            except Exception as exc:  # transport failure ends the session
                logger.debug("[sid=%s] websocket receive error: %s", socket.sid, exc)
                return
            if message is None:
                return
            if isinstance(message, (bytes, bytearray, memoryview)):
                self.handler.on_binary(bytes(message), socket)
                continue

            packet = Packet.decode(message)
            kind = packet.kind
            if kind is PacketKind.CLOSE:
                logger.debug("[sid=%s] closing session", socket.sid)
                self.close_session(socket.sid)
                return
            if kind in _HEARTBEAT_KINDS:
                _signal_heartbeat(socket)
            elif kind is PacketKind.MESSAGE:
                self.handler.on_message(packet.data, socket)  # type: ignore[arg-type]
            else:
                raise BadPacketError(packet)

    async def _ws_upgrade_handshake(
        self, protocol: ProtocolVersion, socket: Socket, ws: WebSocketConnection
    ) -> None:
        """Run the probe/upgrade exchange that moves a polling session to websocket."""
        if protocol is ProtocolVersion.V4:
            # Let a pending polling request finish gracefully.
            socket.send(Packet(PacketKind.NOOP))

        message = await ws.receive()
        if not isinstance(message, str):
            raise UpgradeError()
        packet = Packet.decode(message)
        if packet.kind is not PacketKind.PING_UPGRADE:
            raise BadPacketError(packet)
        await ws.send(Packet(PacketKind.PONG_UPGRADE).encode())

        if protocol is ProtocolVersion.V3:
            # Version 3 pauses polling and closes it after the probe exchange.
            socket.send(Packet(PacketKind.NOOP))

        message = await ws.receive()
        if message is None:
            logger.debug("ws stream closed before upgrade")
            raise UpgradeError()
        if not isinstance(message, str):
            logger.debug("unexpected ws message before upgrade")
            raise UpgradeError()
        packet = Packet.decode(message)
        if packet.kind is not PacketKind.UPGRADE:
            raise BadPacketError(packet)
        logger.debug("[sid=%s] ws upgraded successful", socket.sid)

        # Wait for any polling request to release the socket.
        async with socket.outgoing_lock:
            pass
        socket.upgrade_to_websocket()

    def close_session(self, sid: Sid) -> None:
        """Remove a session, notify the handler and stop its heartbeat."""
        socket = self._sockets.pop(sid, None)
        if socket is None:
            logger.debug("[sid=%s] socket not found", sid)
            return
        self.handler.on_disconnect(socket)
        socket.abort_heartbeat()
        logger.debug("remaining sockets: %d", len(self._sockets))

    def get_socket(self, sid: Sid) -> Optional[Socket]:
        """Return the socket of a session, or None if there is none."""
        return self._sockets.get(sid)