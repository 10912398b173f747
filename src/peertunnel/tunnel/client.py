"""
Client-side dispatcher.

Exposes a local TCP listener and proxies every accepted connection to one
fixed peer. Connection ids come from a counter starting at 1 and are never
reused within a process run.
"""

import asyncio

from peertunnel.models.enums import FrameKind
from peertunnel.transport.base import Transport
from peertunnel.tunnel.connection import Connection
from peertunnel.tunnel.dispatcher import Dispatcher
from peertunnel.tunnel.protocol import MAX_CONNECTION_ID, Frame
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)


class ClientDispatcher(Dispatcher):
    """
    Multiplexes local TCP connections onto one peer.

    Args:
        transport: Peer transport used to send frames.
        peer: Identity of the host peer every connection is forwarded to.
        **kwargs: Passed to Dispatcher.
    """

    log_prefix = "[Client]"

    def __init__(self, transport: Transport, peer: str, **kwargs):
        super().__init__(transport, **kwargs)
        self.peer = peer
        self._next_connection_id = 1

    def allocate_connection_id(self) -> int:
        """Allocate the next connection id."""
        if self._next_connection_id > MAX_CONNECTION_ID:
            raise RuntimeError("Connection id space exhausted")
        connection_id = self._next_connection_id
        self._next_connection_id += 1
        return connection_id

    def open_local(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> Connection:
        """Register an accepted local socket and announce it to the peer."""
        conn = Connection(peer=self.peer, connection_id=self.allocate_connection_id())
        conn.attach(reader, writer)
        self.table.add_if_absent(conn)

        logger.info(
            f"[Client] New local connection {conn.connection_id} from "
            f"{writer.get_extra_info('peername')}"
        )
        self.send_frame(self.peer, FrameKind.CONNECT, conn.connection_id)
        return conn

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """asyncio.start_server callback for one accepted local connection."""
        conn = self.open_local(reader, writer)
        await self.relay_local(conn)

    async def serve(self, host: str, port: int) -> asyncio.Server:
        """Start the local listener."""
        server = await asyncio.start_server(self.handle_client, host, port)
        for sock in server.sockets:
            logger.info(f"[Client] Listening locally on {sock.getsockname()}")
        return server

    def handle_frame(self, peer: str, frame: Frame) -> None:
        if peer != self.peer:
            logger.warning(f"[Client] Ignoring frame from unexpected peer {peer}")
            return
        super().handle_frame(peer, frame)

    def on_connect(self, peer: str, connection_id: int) -> None:
        """Host acknowledged a connection. Informational only."""
        conn = self.table.get(peer, connection_id)
        if conn is None:
            return
        conn.acknowledged = True
        logger.info(f"[Client] Host acknowledged connection {connection_id}")
