"""Fakes and local services shared by the tunnel tests."""

from __future__ import annotations

import asyncio
import socket
from collections import deque

from peertunnel.exceptions import TransportReadError
from peertunnel.models.enums import FrameKind
from peertunnel.transport.base import Packet, Transport
from peertunnel.tunnel.protocol import Frame, decode


# ---------------------------------------------------------------------------
# Peer transport fake
# ---------------------------------------------------------------------------

class RecordingTransport(Transport):
    """Transport that records sends and serves datagrams fed by the test."""

    def __init__(self, identity: str = "self"):
        super().__init__(identity)
        self.sent: list[tuple[str, int, bytes]] = []
        self.accepted: set[str] = set()
        self.inbound: deque[Packet] = deque()

    def accept_session(self, peer):
        self.accepted.add(peer)

    def send(self, peer, channel, data):
        self.sent.append((peer, channel, bytes(data)))
        return True

    def packet_available(self, channel):
        return len(self.inbound[0].data) if self.inbound else 0

    def read_packet(self, size, channel):
        if not self.inbound:
            raise TransportReadError("empty", channel, size)
        return self.inbound.popleft()

    def feed(self, sender: str, data: bytes) -> None:
        self.inbound.append(Packet(data=data, sender=sender))

    def frames(self, peer: str | None = None) -> list[Frame]:
        return [
            decode(data) for to, _, data in self.sent if peer is None or to == peer
        ]


class StalledTransport(RecordingTransport):
    """Recording transport whose sends stay queued until released."""

    def __init__(self, identity: str = "self"):
        super().__init__(identity)
        self.stalled = True

    def pending_bytes(self, peer):
        if not self.stalled:
            return 0
        return sum(len(data) for to, _, data in self.sent if to == peer)

    def data_sent(self, peer: str) -> bytes:
        return b"".join(
            frame.payload
            for frame in self.frames(peer)
            if frame.kind == FrameKind.DATA
        )


# ---------------------------------------------------------------------------
# Local socket fakes
# ---------------------------------------------------------------------------

class FakeSocketTransport:
    def __init__(self):
        self.aborted = 0
        self.buffer_size = 0

    def abort(self):
        self.aborted += 1

    def get_write_buffer_size(self):
        return self.buffer_size


class ResettingReader:
    """Stream reader for a local socket the other end reset."""

    async def read(self, n=-1):
        raise ConnectionResetError(104, "Connection reset by peer")


class FakeStreamWriter:
    def __init__(self):
        self.transport = FakeSocketTransport()
        self.chunks: list[bytes] = []

    def write(self, data):
        self.chunks.append(bytes(data))

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return ("127.0.0.1", 50000)
        return default

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


# ---------------------------------------------------------------------------
# Real local TCP service
# ---------------------------------------------------------------------------

class ServiceConnection:
    def __init__(self, reader, writer):
        self.reader = reader
        self.writer = writer
        self.received = bytearray()
        self.eof = False


class LocalService:
    """TCP service on 127.0.0.1 recording what each connection receives."""

    def __init__(self, echo: bool = False):
        self.echo = echo
        self.connections: list[ServiceConnection] = []
        self.server: asyncio.Server | None = None
        self.port: int | None = None

    async def start(self) -> "LocalService":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def stop(self) -> None:
        for conn in self.connections:
            conn.writer.transport.abort()
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader, writer):
        conn = ServiceConnection(reader, writer)
        self.connections.append(conn)
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                conn.received.extend(data)
                if self.echo:
                    writer.write(data)
                    await writer.drain()
        except OSError:
            pass
        conn.eof = True


def free_port() -> int:
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    """Poll a predicate on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)
