"""Splitting and joining of polling payloads."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Union

from .errors import InvalidPacketLengthError, Utf8DecodeError
from .packet import Packet
from .transport import ProtocolVersion

PACKET_SEPARATOR = "\x1e"

_SEPARATOR_BYTE = PACKET_SEPARATOR.encode("ascii")
_LENGTH_PATTERN = re.compile(rb"\+?[0-9]+")


def _to_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise Utf8DecodeError(exc) from exc


def _split_v4(data: bytes) -> Iterator[str]:
    position = 0
    while position < len(data):
        end = data.find(_SEPARATOR_BYTE, position)
        if end == -1:
            yield _to_text(data[position:])
            return
        yield _to_text(data[position:end])
        position = end + 1


def _split_v3(data: bytes) -> Iterator[str]:
    position = 0
    while position < len(data):
        colon = data.find(b":", position)
        if colon == -1:
            length_text, position = data[position:], len(data)
        else:
            length_text, position = data[position:colon], colon + 1
        if not _LENGTH_PATTERN.fullmatch(length_text):
            raise InvalidPacketLengthError()
        length = int(length_text)
        if position + length > len(data):
            raise InvalidPacketLengthError("unexpected end of payload")
        yield _to_text(data[position : position + length])
        position += length


def decode_payload(
    protocol: ProtocolVersion, data: Union[bytes, bytearray, memoryview, str]
) -> Iterator[str]:
    """Yield the encoded packets held in a polling request body.

    Version 4 payloads are separated by a record separator; version 3
    payloads prefix every packet with its length and a colon.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    data = bytes(data)
    if protocol is ProtocolVersion.V3:
        return _split_v3(data)
    return _split_v4(data)


def encode_payload(protocol: ProtocolVersion, packets: Iterable[Packet]) -> str:
    """Join packets into the body of a polling response."""
    encoded = [packet.encode() for packet in packets]
    if protocol is ProtocolVersion.V3:
        return "".join(f"{len(text)}:{text}" for text in encoded)
    return PACKET_SEPARATOR.join(encoded)