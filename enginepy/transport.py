"""Transport types and protocol versions."""

from __future__ import annotations

from enum import Enum, IntEnum

from .errors import UnknownTransportError, UnsupportedProtocolVersionError


class TransportType(Enum):
    """The transport used by the client."""

    WEBSOCKET = "websocket"
    POLLING = "polling"

    @classmethod
    def parse(cls, text: str) -> TransportType:
        """Parse a transport name, raising UnknownTransportError if it is unknown."""
        try:
            return cls(text)
        except ValueError:
            raise UnknownTransportError() from None


class ProtocolVersion(IntEnum):
    """Engine.IO protocol versions."""

    V3 = 3
    V4 = 4

    @classmethod
    def parse(cls, text: str) -> ProtocolVersion:
        """Parse the EIO query value, raising UnsupportedProtocolVersionError."""
        if text == "3":
            return cls.V3
        if text == "4":
            return cls.V4
        raise UnsupportedProtocolVersionError()