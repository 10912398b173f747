"""
peertunnel - TCP over peer-to-peer datagram links.

A host exposes one local TCP service to remote peers; a client exposes a
local listening port that forwards every accepted connection to one host.
Many TCP connections are multiplexed over a single peer link using the
framing defined in peertunnel.tunnel.protocol.
"""

__version__ = "0.1.0"
