"""
In-process datagram transport.

Endpoints registered on the same MemoryHub exchange datagrams directly.
Session semantics follow the usual P2P model: datagrams from a peer that
has not been accepted are held back and a session request is raised;
accepting the session releases them in arrival order. Sending to a peer
implicitly accepts that peer's replies.
"""

from collections import defaultdict, deque

from peertunnel.exceptions import TransportClosedError, TransportReadError
from peertunnel.transport.base import Packet, Transport
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)


class MemoryHub:
    """Registry routing datagrams between MemoryTransport endpoints."""

    def __init__(self):
        self._endpoints: dict[str, "MemoryTransport"] = {}

    def register(self, transport: "MemoryTransport") -> None:
        if transport.identity in self._endpoints:
            raise ValueError(f"Identity already registered: {transport.identity}")
        self._endpoints[transport.identity] = transport

    def unregister(self, identity: str) -> None:
        self._endpoints.pop(identity, None)

    def deliver(self, sender: str, recipient: str, channel: int, data: bytes) -> bool:
        endpoint = self._endpoints.get(recipient)
        if endpoint is None:
            logger.debug(f"[MemoryHub] No endpoint for {recipient}, dropping")
            return False
        endpoint._receive(sender, channel, data)
        return True


class MemoryTransport(Transport):
    """Transport endpoint living on a MemoryHub."""

    def __init__(self, hub: MemoryHub, identity: str):
        super().__init__(identity)
        self.hub = hub
        self._inbox: dict[int, deque[Packet]] = defaultdict(deque)
        self._held: dict[str, list[tuple[int, Packet]]] = {}
        self._sessions: set[str] = set()
        self._closed = False
        hub.register(self)

    @property
    def sessions(self) -> frozenset[str]:
        return frozenset(self._sessions)

    async def close(self) -> None:
        self._closed = True
        self.hub.unregister(self.identity)
        self._inbox.clear()
        self._held.clear()
        self._sessions.clear()

    def accept_session(self, peer: str) -> None:
        self._sessions.add(peer)
        for channel, packet in self._held.pop(peer, []):
            self._inbox[channel].append(packet)

    def send(self, peer: str, channel: int, data: bytes) -> bool:
        if self._closed:
            raise TransportClosedError(f"Transport {self.identity} is closed")
        if not data:
            return False
        self._sessions.add(peer)
        return self.hub.deliver(self.identity, peer, channel, bytes(data))

    def packet_available(self, channel: int) -> int:
        queue = self._inbox.get(channel)
        if not queue:
            return 0
        return len(queue[0].data)

    def read_packet(self, size: int, channel: int) -> Packet:
        queue = self._inbox.get(channel)
        if not queue:
            raise TransportReadError("no datagram buffered", channel, size)
        packet = queue.popleft()
        if len(packet.data) > size:
            raise TransportReadError(
                f"datagram of {len(packet.data)} bytes discarded", channel, size
            )
        return packet

    def _receive(self, sender: str, channel: int, data: bytes) -> None:
        if self._closed:
            return
        packet = Packet(data=data, sender=sender)
        if sender in self._sessions:
            self._inbox[channel].append(packet)
            return

        first = sender not in self._held
        self._held.setdefault(sender, []).append((channel, packet))
        if first:
            self._request_session(sender)
