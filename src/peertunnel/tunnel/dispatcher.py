"""
Behaviour shared by the host and client dispatchers.

A dispatcher translates between tunnel frames and local TCP socket events
for one role. Frame handlers are synchronous: they never await, so a
handler always runs to completion before any other event is processed.
Socket I/O runs in tasks that re-enter the dispatcher through the same
synchronous methods.
"""

import asyncio
from abc import ABC, abstractmethod

from peertunnel.exceptions import TransportError
from peertunnel.models.enums import FrameKind
from peertunnel.transport.base import Transport
from peertunnel.tunnel.connection import Connection, ConnectionTable
from peertunnel.tunnel.protocol import Frame, encode, kind_name
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_READ_CHUNK_SIZE = 65536
DEFAULT_MAX_PENDING_BYTES = 4 * 1024 * 1024
BACKLOG_CHECK_SECONDS = 0.01


class Dispatcher(ABC):
    """
    Base dispatcher owning one connection table.

    Args:
        transport: Peer transport used to send frames.
        channel: Transport channel carrying tunnel frames.
        read_chunk_size: Bytes read from a local socket at a time.
        max_pending_bytes: Cap on bytes queued toward one local socket,
            where exceeding it tears the connection down. The same cap on a
            peer's transport backlog pauses reads from its local sockets.
    """

    log_prefix = "[Dispatcher]"

    def __init__(
        self,
        transport: Transport,
        channel: int = 0,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        max_pending_bytes: int | None = DEFAULT_MAX_PENDING_BYTES,
    ):
        self.transport = transport
        self.channel = channel
        self.read_chunk_size = read_chunk_size
        self.max_pending_bytes = max_pending_bytes
        self.table = ConnectionTable()

    def handle_frame(self, peer: str, frame: Frame) -> None:
        """Route one inbound frame from a peer."""
        logger.trace(
            f"{self.log_prefix} {peer}: {kind_name(frame.kind)} "
            f"id={frame.connection_id} payload_len={len(frame.payload)}"
        )
        if frame.kind == FrameKind.CONNECT:
            self.on_connect(peer, frame.connection_id)
        elif frame.kind == FrameKind.DATA:
            self.on_data(peer, frame.connection_id, frame.payload)
        elif frame.kind == FrameKind.DISCONNECT:
            self.on_disconnect(peer, frame.connection_id)

    @abstractmethod
    def on_connect(self, peer: str, connection_id: int) -> None:
        """Handle a Connect frame."""

    def on_data(self, peer: str, connection_id: int, payload: bytes) -> None:
        """Write a Data payload to the local socket, or drop it if unknown."""
        conn = self.table.get(peer, connection_id)
        if conn is None:
            logger.debug(
                f"{self.log_prefix} Dropping {len(payload)} bytes for unknown "
                f"connection {peer}-{connection_id}"
            )
            return

        if not conn.write(payload, self.max_pending_bytes):
            logger.warning(
                f"{self.log_prefix} Connection {conn.label} exceeded "
                f"{self.max_pending_bytes} pending bytes, closing"
            )
            self.close_local(conn)

    def on_disconnect(self, peer: str, connection_id: int) -> None:
        """Forcibly close a connection the peer has closed. Unknown ids are a no-op."""
        conn = self.table.remove(peer, connection_id)
        if conn is None:
            return
        logger.info(f"{self.log_prefix} Peer {peer} closed connection {connection_id}")
        conn.abort()

    def send_frame(
        self, peer: str, kind: int, connection_id: int, payload: bytes | None = None
    ) -> bool:
        """Encode and send one frame. Transport failures are logged, not raised."""
        try:
            return self.transport.send(
                peer, self.channel, encode(kind, connection_id, payload)
            )
        except TransportError as e:
            logger.error(
                f"{self.log_prefix} Failed to send {kind_name(kind)} "
                f"for {peer}-{connection_id}: {e}"
            )
            return False

    def peer_backlogged(self, peer: str) -> bool:
        """True while the transport holds more than the cap for a peer."""
        if self.max_pending_bytes is None:
            return False
        return self.transport.pending_bytes(peer) > self.max_pending_bytes

    async def relay_local(self, conn: Connection) -> None:
        """
        Forward bytes from the local socket as Data frames until it closes.

        Reading pauses while the peer's send backlog is over the cap.
        """
        try:
            while True:
                while self.peer_backlogged(conn.peer) and not conn.is_closed:
                    await asyncio.sleep(BACKLOG_CHECK_SECONDS)
                if conn.is_closed:
                    return
                data = await conn.reader.read(self.read_chunk_size)
                if not data:
                    break
                conn.bytes_from_local += len(data)
                self.send_frame(conn.peer, FrameKind.DATA, conn.connection_id, data)
        except OSError as e:
            logger.warning(f"{self.log_prefix} Local socket error for {conn.label}: {e}")
        self.close_local(conn)

    def close_local(self, conn: Connection) -> None:
        """
        Tear down a connection whose local side ended.

        Sends exactly one Disconnect: only the caller that still finds the
        connection in the table notifies the peer.
        """
        if self.table.get(conn.peer, conn.connection_id) is not conn:
            return
        self.table.remove(conn.peer, conn.connection_id)
        conn.abort()
        logger.info(
            f"{self.log_prefix} Local side closed connection {conn.label} "
            f"(in={conn.bytes_to_local} out={conn.bytes_from_local})"
        )
        self.send_frame(conn.peer, FrameKind.DISCONNECT, conn.connection_id)

    def close_all(self) -> None:
        """Abort every local socket without notifying peers."""
        closed = self.table.close_all()
        if closed:
            logger.info(f"{self.log_prefix} Closed {closed} connections")
