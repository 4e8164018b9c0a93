"""Engine.IO packets and their text encoding."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .config import EngineIoConfig
from .errors import Base64DecodeError, SerializeError, Utf8DecodeError
from .sid import Sid
from .transport import TransportType


class PacketKind(Enum):
    """The kinds of packet exchanged with a client."""

    OPEN = "open"
    CLOSE = "close"
    PING = "ping"
    PONG = "pong"
    PING_UPGRADE = "ping_upgrade"
    PONG_UPGRADE = "pong_upgrade"
    MESSAGE = "message"
    UPGRADE = "upgrade"
    NOOP = "noop"
    BINARY = "binary"
    BINARY_V3 = "binary_v3"


_SIMPLE_CODES = {
    PacketKind.CLOSE: "1",
    PacketKind.PING: "2",
    PacketKind.PONG: "3",
    PacketKind.PING_UPGRADE: "2probe",
    PacketKind.PONG_UPGRADE: "3probe",
    PacketKind.UPGRADE: "5",
    PacketKind.NOOP: "6",
}

_BINARY_KINDS = (PacketKind.BINARY, PacketKind.BINARY_V3)


@dataclass(frozen=True)
class OpenPacket:
    """The handshake packet sent when a connection opens."""

    sid: str
    upgrades: tuple[str, ...] = field(default_factory=tuple)
    ping_interval: int = 0
    ping_timeout: int = 0
    max_payload: int = 0

    @classmethod
    def create(cls, transport: TransportType, sid: Sid, config: EngineIoConfig) -> OpenPacket:
        """Build the open packet for a new session.

        A polling session is always offered an upgrade to websocket.
        """
        upgrades = ("websocket",) if transport is TransportType.POLLING else ()
        return cls(
            sid=str(sid),
            upgrades=upgrades,
            ping_interval=int(round(config.ping_interval * 1000)),
            ping_timeout=int(round(config.ping_timeout * 1000)),
            max_payload=config.max_payload,
        )

    def to_json(self) -> str:
        """Serialize to the compact camelCase JSON form."""
        return json.dumps(
            {
                "sid": self.sid,
                "upgrades": list(self.upgrades),
                "pingInterval": self.ping_interval,
                "pingTimeout": self.ping_timeout,
                "maxPayload": self.max_payload,
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, text: str) -> OpenPacket:
        """Parse the JSON form, raising SerializeError if it is malformed."""
        try:
            obj = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SerializeError(exc) from exc
        if not isinstance(obj, dict):
            raise SerializeError("open packet must be a JSON object")

        def required(key: str) -> Any:
            if key not in obj:
                raise SerializeError(f"missing field `{key}`")
            return obj[key]

        def unsigned(key: str) -> int:
            value = required(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise SerializeError(f"invalid value for `{key}`")
            return value

        sid = required("sid")
        if not isinstance(sid, str):
            raise SerializeError("invalid value for `sid`")
        upgrades = required("upgrades")
        if not isinstance(upgrades, list) or not all(isinstance(u, str) for u in upgrades):
            raise SerializeError("invalid value for `upgrades`")
        return cls(
            sid=sid,
            upgrades=tuple(upgrades),
            ping_interval=unsigned("pingInterval"),
            ping_timeout=unsigned("pingTimeout"),
            max_payload=unsigned("maxPayload"),
        )


@dataclass(frozen=True)
class SendPacket:
    """Data sent to a client through the public API: text or binary."""

    data: Union[str, bytes]

    def __post_init__(self) -> None:
        if isinstance(self.data, (bytearray, memoryview)):
            object.__setattr__(self, "data", bytes(self.data))
        elif not isinstance(self.data, (str, bytes)):
            raise TypeError("send packet data must be str or bytes")


@dataclass(frozen=True)
class Packet:
    """A packet exchanged with a client."""

    kind: PacketKind
    data: Union[OpenPacket, str, bytes, None] = None

    def __post_init__(self) -> None:
        if self.kind is PacketKind.OPEN:
            expected: Any = OpenPacket
        elif self.kind is PacketKind.MESSAGE:
            expected = str
        elif self.kind in _BINARY_KINDS:
            if isinstance(self.data, (bytearray, memoryview)):
                object.__setattr__(self, "data", bytes(self.data))
            expected = bytes
        else:
            expected = type(None)
        if not isinstance(self.data, expected):
            raise TypeError(f"invalid data for {self.kind.name} packet")

    def encode(self) -> str:
        """Serialize to the Engine.IO text form."""
        kind = self.kind
        if kind in _SIMPLE_CODES:
            return _SIMPLE_CODES[kind]
        if kind is PacketKind.OPEN:
            return "0" + self.data.to_json()  # type: ignore[union-attr]
        if kind is PacketKind.MESSAGE:
            return "4" + self.data  # type: ignore[operator]
        encoded = base64.b64encode(self.data).decode("ascii")  # type: ignore[arg-type]
        return ("b4" if kind is PacketKind.BINARY_V3 else "b") + encoded

    @classmethod
    def decode(cls, value: Union[str, bytes]) -> Packet:
        """Parse the Engine.IO text form; bytes are decoded as UTF-8 first."""
        if isinstance(value, (bytes, bytearray, memoryview)):
            try:
                value = bytes(value).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise Utf8DecodeError(exc) from exc
        if not value:
            raise SerializeError("Packet type not found in packet string")
        packet_type, packet_data = value[0], value[1:]
        is_upgrade = packet_data.startswith("probe")

        if packet_type == "0":
            return cls(PacketKind.OPEN, OpenPacket.from_json(packet_data))
        if packet_type == "1":
            return cls(PacketKind.CLOSE)
        if packet_type == "2":
            return cls(PacketKind.PING_UPGRADE if is_upgrade else PacketKind.PING)
        if packet_type == "3":
            return cls(PacketKind.PONG_UPGRADE if is_upgrade else PacketKind.PONG)
        if packet_type == "4":
            return cls(PacketKind.MESSAGE, packet_data)
        if packet_type == "5":
            return cls(PacketKind.UPGRADE)
        if packet_type == "6":
            return cls(PacketKind.NOOP)
        if packet_type == "b":
            if value.startswith("b4"):
                return cls(PacketKind.BINARY_V3, _b64decode(packet_data[1:]))
            return cls(PacketKind.BINARY, _b64decode(packet_data))
        raise SerializeError(f"Invalid packet type {packet_type}")

    @classmethod
    def from_send(cls, send_packet: SendPacket) -> Packet:
        """Convert a public send packet to a message or binary packet."""
        if isinstance(send_packet.data, str):
            return cls(PacketKind.MESSAGE, send_packet.data)
        return cls(PacketKind.BINARY, send_packet.data)


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise Base64DecodeError(exc) from exc