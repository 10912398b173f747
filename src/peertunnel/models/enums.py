"""
Enumeration types for peertunnel.

This module defines the enumeration types used across the tunnel for
frame kinds, connection lifecycle tracking and configuration options.
"""

from enum import Enum, IntEnum


# =============================================================================
# Protocol Enums
# =============================================================================


class FrameKind(IntEnum):
    """
    Tunnel frame kind, stored in the first byte of every frame.

    - DATA: Relay bytes of one logical connection
    - CONNECT: Open request (client → host) or open acknowledgement (host → client)
    - DISCONNECT: Either side closed the logical connection
    """

    DATA = 0
    CONNECT = 1
    DISCONNECT = 2


# =============================================================================
# Connection Enums
# =============================================================================


class ConnectionState(str, Enum):
    """
    Lifecycle of a logical connection carried over the tunnel.

    State transitions:
        OPENING -> OPEN (local socket established)
        OPENING -> CLOSED (dial failed or peer disconnected)
        OPEN -> CLOSED (either side disconnected, or local socket error)
    """

    OPENING = "opening"  # Host is dialing the local service
    OPEN = "open"  # Local socket established, bytes flow both ways
    CLOSED = "closed"  # Terminal; entry is removed from the table


# =============================================================================
# Configuration Enums
# =============================================================================


class TunnelMode(str, Enum):
    """Role this process plays on its side of the tunnel."""

    HOST = "host"
    CLIENT = "client"


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Trace output with backtraces and variable diagnosis
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
