"""
Peer transports.

The tunnel core only depends on the Transport contract in
peertunnel.transport.base; concrete transports live beside it.
"""

from peertunnel.transport.base import Packet, Transport
from peertunnel.transport.memory import MemoryHub, MemoryTransport
from peertunnel.transport.websocket import WebSocketTransport

__all__ = [
    "MemoryHub",
    "MemoryTransport",
    "Packet",
    "Transport",
    "WebSocketTransport",
]
