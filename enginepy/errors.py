"""Errors raised by the engine."""

from __future__ import annotations

from typing import Any


class EngineIoError(Exception):
    """Base class of every error raised by the engine."""

    description = "engine.io error"

    def __init__(self, detail: Any = None) -> None:
        self.detail = detail
        text = self.description if detail is None else f"{self.description}: {detail}"
        super().__init__(text)


class SerializeError(EngineIoError, ValueError):
    """A packet could not be serialized or parsed."""

    description = "error serializing json packet"


class Base64DecodeError(EngineIoError, ValueError):
    """A binary packet held invalid base64."""

    description = "error decoding binary packet from polling request"


class Utf8DecodeError(EngineIoError, ValueError):
    """A packet was not valid UTF-8."""

    description = "error decoding packet"


class BadPacketError(EngineIoError):
    """A packet arrived that is not allowed at this point."""

    description = "bad packet received"

    def __init__(self, packet: Any) -> None:
        self.packet = packet
        super().__init__()


class ChannelFullError(EngineIoError):
    """The socket buffer is full or closed."""

    description = "internal channel error"


class HeartbeatTimeoutError(EngineIoError):
    """The peer did not answer the heartbeat in time."""

    description = "heartbeat timeout"


class UpgradeError(EngineIoError):
    """A websocket upgrade failed."""

    description = "upgrade error"


class AbortedError(EngineIoError):
    """The connection was aborted."""

    description = "aborted connection"


class HttpErrorResponse(EngineIoError):
    """Answer the request with a bare status code."""

    description = "http error response"

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(status)


class UnknownTransportError(EngineIoError):
    """The requested transport is unknown."""

    description = "transport unknown"


class UnknownSessionIdError(EngineIoError):
    """No session exists with the given id."""

    description = "unknown session id"

    def __init__(self, sid: Any) -> None:
        self.sid = sid
        super().__init__()


class BadHandshakeMethodError(EngineIoError):
    """The handshake used a method other than GET."""

    description = "bad handshake method"


class TransportMismatchError(EngineIoError):
    """The request transport does not match the session transport."""

    description = "transport mismatch"


class UnsupportedProtocolVersionError(EngineIoError):
    """The requested protocol version is not supported."""

    description = "unsupported protocol version"


class InvalidPacketLengthError(EngineIoError, ValueError):
    """A length prefix in a payload was invalid."""

    description = "Invalid packet length"