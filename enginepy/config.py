"""Server configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class EngineIoConfig:
    """Settings of an Engine.IO server.

    Durations are expressed in seconds.
    """

    #: The path to listen for engine.io requests on.
    req_path: str = "/engine.io"
    #: The interval at which the server sends a ping packet to the client.
    ping_interval: float = 25.0
    #: How long the server waits for a ping response before closing the connection.
    ping_timeout: float = 20.0
    #: Maximum number of packets buffered per connection before emitting fails.
    max_buffer_size: int = 128
    #: Maximum number of bytes that can be received per http request.
    max_payload: int = 100_000

    def __post_init__(self) -> None:
        if self.ping_interval < 0 or self.ping_timeout < 0:
            raise ValueError("ping durations must not be negative")
        if self.max_buffer_size < 1:
            raise ValueError("max_buffer_size must be at least 1")
        if self.max_payload < 0:
            raise ValueError("max_payload must not be negative")