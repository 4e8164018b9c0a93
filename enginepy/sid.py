"""Session identifiers."""

from __future__ import annotations

import base64
import logging
import re
import secrets
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_MIN = -(1 << 63)
_MAX = (1 << 63) - 1
_SID_PATTERN = re.compile(r"[A-Za-z0-9_-]{11}")


@dataclass(frozen=True)
class Sid:
    """A 64-bit session id written as 11 url-safe base64 characters."""

    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError("sid value must be an int")
        if not _MIN <= self.value <= _MAX:
            raise ValueError("sid value out of 64-bit range")

    @classmethod
    def parse(cls, text: str) -> Sid:
        """Parse the textual form of a sid, raising ValueError if it is invalid."""
        if not _SID_PATTERN.fullmatch(text):
            raise ValueError(f"invalid sid: {text!r}")
        raw = base64.urlsafe_b64decode(text + "=")
        sid = cls(int.from_bytes(raw, "big", signed=True))
        if str(sid) != text:
            raise ValueError(f"invalid sid: {text!r}")
        return sid

    def __str__(self) -> str:
        raw = self.value.to_bytes(8, "big", signed=True)
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_sid() -> Sid:
    """Generate a new random session id."""
    sid = Sid(int.from_bytes(secrets.token_bytes(8), "big", signed=True))
    logger.debug("Generating new sid: %s", sid)
    return sid