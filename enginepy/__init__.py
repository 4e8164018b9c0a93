"""Engine.IO engine for asyncio: packets, payloads, sessions and transports."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "engine",
    "errors",
    "packet",
    "payload",
    "responses",
    "sid",
    "socket",
    "transport",
]