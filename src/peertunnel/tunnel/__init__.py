"""
Tunnel core: wire codec, connection table, dispatchers and poll loop.

Multiple TCP connections are multiplexed over a single peer link; each
datagram on the link carries exactly one frame.
"""

from peertunnel.tunnel.protocol import (
    HEADER_SIZE,
    MSG_CONNECT,
    MSG_DATA,
    MSG_DISCONNECT,
    Frame,
    MalformedFrame,
    decode,
    encode,
)

__all__ = [
    "HEADER_SIZE",
    "MSG_CONNECT",
    "MSG_DATA",
    "MSG_DISCONNECT",
    "Frame",
    "MalformedFrame",
    "decode",
    "encode",
]
