"""HTTP responses produced by the engine."""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Union

from .errors import (
    BadHandshakeMethodError,
    BadPacketError,
    HttpErrorResponse,
    TransportMismatchError,
    UnknownSessionIdError,
    UnknownTransportError,
    UnsupportedProtocolVersionError,
)

logger = logging.getLogger(__name__)

_WS_GUID = b"258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

_CONNECTION_ERRORS: dict[type, str] = {
    UnknownTransportError: '{"code":"0","message":"Transport unknown"}',
    UnknownSessionIdError: '{"code":"1","message":"Session ID unknown"}',
    BadHandshakeMethodError: '{"code":"2","message":"Bad handshake method"}',
    TransportMismatchError: '{"code":"3","message":"Bad request"}',
    UnsupportedProtocolVersionError: '{"code":"5","message":"Unsupported protocol version"}',
}


@dataclass
class Response:
    """A complete HTTP response: status, headers and body."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def _to_bytes(data: Union[str, bytes, bytearray, memoryview]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def http_response(status: int, data: Union[str, bytes, bytearray, memoryview]) -> Response:
    """Build a plain-text response carrying ``data``."""
    return Response(
        status=status,
        headers={"Content-Type": "text/plain; charset=UTF-8"},
        body=_to_bytes(data),
    )


def empty_response(status: int) -> Response:
    """Build a response with only a status code."""
    return Response(status=status)


def derive_accept_key(key: Union[str, bytes]) -> str:
    """Compute the Sec-WebSocket-Accept value for a Sec-WebSocket-Key."""
    digest = hashlib.sha1(_to_bytes(key) + _WS_GUID).digest()
    return base64.b64encode(digest).decode("ascii")


def ws_response(ws_key: Union[str, bytes]) -> Response:
    """Build the 101 response that switches the connection to websocket."""
    return Response(
        status=101,
        headers={
            "Upgrade": "websocket",
            "Connection": "Upgrade",
            "Sec-WebSocket-Accept": derive_accept_key(ws_key),
        },
    )


def error_response(error: BaseException) -> Response:
    """Turn an error into the response sent to the client.

    Known errors get their protocol status and body; anything else is a 500.
    """
    if isinstance(error, HttpErrorResponse):
        return empty_response(error.status)
    if isinstance(error, BadPacketError):
        return empty_response(400)
    for error_type, message in _CONNECTION_ERRORS.items():
        if isinstance(error, error_type):
            return Response(
                status=400,
                headers={"Content-Type": "application/json"},
                body=message.encode("utf-8"),
            )
    logger.debug("uncaught error %r", error)
    return empty_response(500)