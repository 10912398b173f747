"""Tunnel exception classes."""


class TunnelError(Exception):
    """Base exception for tunnel operations."""

    pass


class TransportError(TunnelError):
    """Peer transport failure."""

    pass


class TransportReadError(TransportError):
    """Transport reported a datagram as available but failed to deliver it."""

    def __init__(self, message: str, channel: int, size: int):
        self.channel = channel
        self.size = size
        super().__init__(f"Read of {size} bytes on channel {channel} failed: {message}")


class TransportClosedError(TransportError):
    """Operation attempted on a transport that has been closed."""

    pass


class DialError(TunnelError):
    """Host could not reach its local service."""

    def __init__(self, message: str, host: str, port: int):
        self.host = host
        self.port = port
        super().__init__(f"Dial to {host}:{port} failed: {message}")
