"""Engine.IO sockets, their handler interface and the heartbeat job."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

from .config import EngineIoConfig
from .errors import ChannelFullError, HeartbeatTimeoutError
from .packet import Packet, PacketKind
from .sid import Sid
from .transport import ProtocolVersion

logger = logging.getLogger(__name__)


class ConnectionType(IntEnum):
    """The transport a socket is currently bound to."""

    HTTP = 0b01
    WEBSOCKET = 0b10


@dataclass(frozen=True)
class SocketReq:
    """Data of the http request that created a socket."""

    uri: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)


class EngineIoHandler(ABC):
    """Receives the engine.io events of every socket."""

    @abstractmethod
    def on_connect(self, socket: Socket) -> None:
        """Called when a new socket is connected."""

    @abstractmethod
    def on_disconnect(self, socket: Socket) -> None:
        """Called when a socket is disconnected."""

    @abstractmethod
    def on_message(self, msg: str, socket: Socket) -> None:
        """Called when a text message is received from the client."""

    @abstractmethod
    def on_binary(self, data: bytes, socket: Socket) -> None:
        """Called when a binary message is received from the client."""


class Socket:
    """A connection to a client, whatever its transport.

    Outgoing packets are buffered in ``outgoing``; the engine drains it,
    holding ``outgoing_lock`` while it reads. Pings (v3) or pongs (v4)
    received from the client are pushed into ``heartbeat_rx``.
    """

    def __init__(
        self,
        sid: Sid,
        protocol: ProtocolVersion,
        conn: ConnectionType,
        config: EngineIoConfig,
        req_data: SocketReq,
        close_fn: Callable[[Sid], None],
        data: Any = None,
    ) -> None:
        self.sid = sid
        self.protocol = protocol
        self.conn = conn
        self.req_data = req_data
        self.data = data
        self.outgoing: asyncio.Queue[Packet] = asyncio.Queue(maxsize=config.max_buffer_size)
        self.outgoing_lock = asyncio.Lock()
        self.heartbeat_rx: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._close_fn = close_fn
        self._heartbeat_task: Optional[asyncio.Task[None]] = None

    def __repr__(self) -> str:
        return f"Socket(sid={self.sid}, protocol={self.protocol.name}, conn={self.conn.name})"

    def send(self, packet: Packet) -> None:
        """Queue a packet for the connection, raising ChannelFullError if the buffer is full."""
        logger.debug("[sid=%s] sending packet: %r", self.sid, packet)
        try:
            self.outgoing.put_nowait(packet)
        except asyncio.QueueFull:
            raise ChannelFullError("buffer full") from None

    def emit(self, msg: str) -> None:
        """Send a text message to the client."""
        self.send(Packet(PacketKind.MESSAGE, msg))

    def emit_binary(self, data: bytes) -> None:
        """Send binary data to the client."""
        kind = PacketKind.BINARY_V3 if self.protocol is ProtocolVersion.V3 else PacketKind.BINARY
        self.send(Packet(kind, bytes(data)))

    def close(self) -> None:
        """Close the session and tell the connection to close."""
        self._close_fn(self.sid)
        try:
            self.send(Packet(PacketKind.CLOSE))
        except ChannelFullError:
            pass

    def is_ws(self) -> bool:
        """Return True if the socket uses the websocket transport."""
        return self.conn is ConnectionType.WEBSOCKET

    def is_http(self) -> bool:
        """Return True if the socket uses the polling transport."""
        return self.conn is ConnectionType.HTTP

    def upgrade_to_websocket(self) -> None:
        """Switch the socket to the websocket transport."""
        self.conn = ConnectionType.WEBSOCKET

    def spawn_heartbeat(self, interval: float, timeout: float) -> None:
        """Start the heartbeat job on the running event loop."""
        self._heartbeat_task = asyncio.get_running_loop().create_task(
            self._run_heartbeat(interval, timeout)
        )

    def abort_heartbeat(self) -> None:
        """Cancel the heartbeat job if it is running."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()

    async def _run_heartbeat(self, interval: float, timeout: float) -> None:
        try:
            if self.protocol is ProtocolVersion.V3:
                await self._heartbeat_v3(interval, timeout)
            else:
                await self._heartbeat_v4(interval, timeout)
        except HeartbeatTimeoutError as exc:
            self.close()
            logger.debug("[sid=%s] heartbeat error: %s", self.sid, exc)

    def _queue_heartbeat_packet(self, kind: PacketKind) -> None:
        try:
            self.outgoing.put_nowait(Packet(kind))
        except asyncio.QueueFull:
            raise HeartbeatTimeoutError() from None

    async def _heartbeat_v4(self, interval: float, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        await asyncio.sleep(max(0.0, interval - 0.015 - (loop.time() - start)))
        logger.debug("[sid=%s] heartbeat sender routine started", self.sid)

        tick = 1
        while True:
            # Some clients send the pong first; consume it.
            try:
                self.heartbeat_rx.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self._queue_heartbeat_packet(PacketKind.PING)
            try:
                await asyncio.wait_for(self.heartbeat_rx.get(), timeout)
            except asyncio.TimeoutError:
                raise HeartbeatTimeoutError() from None
            target = start + tick * interval
            tick += 1
            await asyncio.sleep(max(0.0, target - loop.time()))

    async def _heartbeat_v3(self, interval: float, timeout: float) -> None:
        logger.debug("[sid=%s] heartbeat receiver routine started", self.sid)
        while True:
            try:
                await asyncio.wait_for(self.heartbeat_rx.get(), interval + timeout)
            except asyncio.TimeoutError:
                raise HeartbeatTimeoutError() from None
            logger.debug("[sid=%s] ping received, sending pong", self.sid)
            self._queue_heartbeat_packet(PacketKind.PONG)