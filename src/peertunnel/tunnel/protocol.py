"""
Tunnel protocol definitions and utilities.

Wire format (binary, little-endian):
┌──────────┬──────────────────┬─────────────────────┐
│ Kind (1B)│ Connection ID(4B)│  Payload (var)      │
└──────────┴──────────────────┴─────────────────────┘

Total header: 5 bytes
"""

import struct
from dataclasses import dataclass

from peertunnel.models.enums import FrameKind

# =============================================================================
# Frame Kinds
# =============================================================================

MSG_DATA: int = FrameKind.DATA  # Bidirectional: relay data
MSG_CONNECT: int = FrameKind.CONNECT  # Client → Host: open; Host → Client: opened
MSG_DISCONNECT: int = FrameKind.DISCONNECT  # Bidirectional: close connection

# =============================================================================
# Header Format
# =============================================================================

# Header: kind(1) + connection_id(4) = 5 bytes
HEADER_FORMAT = "<BI"  # Little-endian: byte, uint32
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 5 bytes

MAX_CONNECTION_ID = 0xFFFFFFFF
VALID_KINDS = frozenset(int(kind) for kind in FrameKind)


@dataclass(frozen=True)
class Frame:
    """Decoded tunnel frame."""

    kind: FrameKind
    connection_id: int
    payload: bytes = b""


@dataclass(frozen=True)
class MalformedFrame:
    """A received datagram that could not be decoded into a Frame."""

    data: bytes
    reason: str


def kind_name(kind: int) -> str:
    """Readable name of a frame kind, for log lines."""
    try:
        return FrameKind(kind).name
    except ValueError:
        return f"UNKNOWN({kind})"


def encode(kind: int, connection_id: int, payload: bytes | None = None) -> bytes:
    """
    Build a tunnel frame.

    Args:
        kind: Frame kind (MSG_DATA, MSG_CONNECT, MSG_DISCONNECT)
        connection_id: Logical connection identifier (uint32)
        payload: Frame payload; None is treated as empty

    Returns:
        Complete frame as bytes
    """
    if kind not in VALID_KINDS:
        raise ValueError(f"Unknown frame kind: {kind}")
    if not 0 <= connection_id <= MAX_CONNECTION_ID:
        raise ValueError(f"Connection id out of range: {connection_id}")

    header = struct.pack(HEADER_FORMAT, kind, connection_id)
    if payload:
        return header + bytes(payload)
    return header


def decode(data: bytes) -> Frame | MalformedFrame:
    """
    Decode a received datagram.

    Args:
        data: Raw datagram bytes

    Returns:
        The decoded Frame, or MalformedFrame if the datagram is shorter than
        the header or carries an unknown kind
    """
    if len(data) < HEADER_SIZE:
        return MalformedFrame(data=bytes(data), reason=f"too short ({len(data)} bytes)")

    kind, connection_id = struct.unpack_from(HEADER_FORMAT, data)
    if kind not in VALID_KINDS:
        return MalformedFrame(data=bytes(data), reason=f"unknown kind {kind}")

    return Frame(
        kind=FrameKind(kind),
        connection_id=connection_id,
        payload=bytes(data[HEADER_SIZE:]),
    )
