"""
Tunnel configuration.

A global config instance that the CLI modifies before starting a role.

Usage:
    from peertunnel.config import config

    config.SERVICE_PORT = 8080
    config.LOG_LEVEL = LogLevel.DEBUG
"""

import uuid
from dataclasses import dataclass, field

from peertunnel.models.enums import LogLevel


@dataclass
class TunnelConfig:
    """
    Configuration shared by the host and client roles.

    Attributes:
        SERVICE_HOST: Local service the host dials for every new connection.
        SERVICE_PORT: Port of that local service.
        LISTEN_HOST: Address the client listens on for local TCP connections.
        LISTEN_PORT: Port the client listens on.
        TRANSPORT_BIND_IP: Address the host's peer transport listens on.
        TRANSPORT_PORT: Port the host's peer transport listens on.
        LOCAL_IDENTITY: Identity this process announces to peers.
        TUNNEL_CHANNEL: Transport channel carrying tunnel frames.
        POLL_INTERVAL_SECONDS: Period of the transport poll loop.
        MAX_PACKETS_PER_TICK: Upper bound on datagrams drained per tick.
        READ_CHUNK_SIZE: Bytes read from a local socket at a time.
        MAX_PENDING_BYTES: Cap on bytes queued toward one local socket.
        LOG_LEVEL: Logging verbosity level.
    """

    # Local service / listener
    SERVICE_HOST: str = "127.0.0.1"
    SERVICE_PORT: int = 25565
    LISTEN_HOST: str = "127.0.0.1"
    LISTEN_PORT: int = 25565

    # Peer transport
    TRANSPORT_BIND_IP: str = "0.0.0.0"
    TRANSPORT_PORT: int = 27015
    LOCAL_IDENTITY: str = field(default_factory=lambda: uuid.uuid4().hex)
    TUNNEL_CHANNEL: int = 0

    # Poll loop
    POLL_INTERVAL_SECONDS: float = 0.01
    MAX_PACKETS_PER_TICK: int = 256

    # Relay
    READ_CHUNK_SIZE: int = 65536
    MAX_PENDING_BYTES: int = 4 * 1024 * 1024

    # Logging
    LOG_LEVEL: LogLevel = LogLevel.INFO

    def get_service_address(self) -> tuple[str, int]:
        """Get the (host, port) the host role dials."""
        return self.SERVICE_HOST, self.SERVICE_PORT

    def get_listen_address(self) -> tuple[str, int]:
        """Get the (host, port) the client role listens on."""
        return self.LISTEN_HOST, self.LISTEN_PORT

    def get_transport_url(self) -> str:
        """Get the WebSocket URL peers use to reach this host."""
        host = "127.0.0.1" if self.TRANSPORT_BIND_IP == "0.0.0.0" else self.TRANSPORT_BIND_IP
        return f"ws://{host}:{self.TRANSPORT_PORT}"


# Global config instance
config = TunnelConfig()
