"""
Transport contract consumed by the tunnel core.

A transport exchanges discrete datagrams with remote peers over numbered
channels. It must deliver each datagram intact or not at all, and the
channel carrying tunnel frames must preserve order.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)

SessionRequestHandler = Callable[[str], None]


@dataclass(frozen=True)
class Packet:
    """A datagram read from the transport."""

    data: bytes
    sender: str


class Transport(ABC):
    """
    Datagram transport between peers.

    Provides:
    - Session requests from unknown peers, answered with accept_session
    - Ordered sends on a channel, with the send backlog per peer
    - Non-blocking availability checks and reads for polling
    """

    def __init__(self, identity: str):
        self.identity = identity
        self.session_request_handler: SessionRequestHandler | None = None

    async def start(self) -> None:
        """Start background I/O, if the transport has any."""

    async def close(self) -> None:
        """Stop background I/O and drop all sessions."""

    @abstractmethod
    def accept_session(self, peer: str) -> None:
        """Accept a pending session request from a peer."""

    @abstractmethod
    def send(self, peer: str, channel: int, data: bytes) -> bool:
        """
        Queue a datagram for a peer. Never blocks.

        Returns:
            True if the datagram was queued for delivery.
        """

    def pending_bytes(self, peer: str) -> int:
        """Bytes queued toward a peer but not yet handed to the network."""
        return 0

    @abstractmethod
    def packet_available(self, channel: int) -> int:
        """Size of the next datagram on a channel, or 0 if none is buffered."""

    @abstractmethod
    def read_packet(self, size: int, channel: int) -> Packet:
        """
        Read the next datagram on a channel.

        Raises:
            TransportReadError: The datagram could not be delivered.
        """

    def _request_session(self, peer: str) -> None:
        """Raise a session request for a peer we have not accepted yet."""
        logger.info(f"[Transport] Session request from {peer}")
        if self.session_request_handler is None:
            logger.warning(f"[Transport] No session handler, ignoring {peer}")
            return
        self.session_request_handler(peer)
