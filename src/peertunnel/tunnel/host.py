"""
Host-side dispatcher.

Serves one fixed local TCP service to any number of peers. Every Connect
from a peer opens a fresh connection to the service; bytes the service
sends back are wrapped as Data frames for that peer.
"""

import asyncio

from peertunnel.exceptions import DialError
from peertunnel.models.enums import FrameKind
from peertunnel.transport.base import Transport
from peertunnel.tunnel.connection import Connection
from peertunnel.tunnel.dispatcher import Dispatcher
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)


class HostDispatcher(Dispatcher):
    """
    Demultiplexes peer frames onto connections to a local service.

    Args:
        transport: Peer transport used to send frames.
        service_host: Address of the local service.
        service_port: Port of the local service.
        **kwargs: Passed to Dispatcher.
    """

    log_prefix = "[Host]"

    def __init__(
        self,
        transport: Transport,
        service_host: str,
        service_port: int,
        **kwargs,
    ):
        super().__init__(transport, **kwargs)
        self.service_host = service_host
        self.service_port = service_port
        self._tasks: set[asyncio.Task] = set()

    def on_connect(self, peer: str, connection_id: int) -> None:
        """Open a connection to the local service, once per (peer, id)."""
        conn = Connection(peer=peer, connection_id=connection_id)
        if not self.table.add_if_absent(conn):
            logger.debug(f"[Host] Duplicate Connect for {conn.label}, ignoring")
            return

        logger.info(
            f"[Host] Peer {peer} requests connection {connection_id} to "
            f"{self.service_host}:{self.service_port}"
        )
        task = asyncio.create_task(self._open(conn))
        conn.dial = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def dial_service(
        self,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """
        Open a connection to the local service.

        Raises:
            DialError: The service could not be reached.
        """
        try:
            return await asyncio.open_connection(self.service_host, self.service_port)
        except OSError as e:
            raise DialError(str(e), self.service_host, self.service_port) from e

    async def _open(self, conn: Connection) -> None:
        """
        Dial the local service, acknowledge the peer, then relay.

        A Disconnect that arrives while dialing cancels this task through
        Connection.abort.
        """
        try:
            reader, writer = await self.dial_service()
        except DialError as e:
            conn.dial = None
            logger.error(f"[Host] {e} ({conn.label})")
            if self.table.get(conn.peer, conn.connection_id) is conn:
                self.table.remove(conn.peer, conn.connection_id)
                conn.abort()
                self.send_frame(conn.peer, FrameKind.DISCONNECT, conn.connection_id)
            return

        conn.dial = None
        conn.attach(reader, writer)
        logger.info(f"[Host] Connected {conn.label} to local service")
        self.send_frame(conn.peer, FrameKind.CONNECT, conn.connection_id)
        await self.relay_local(conn)

    async def wait_idle(self) -> None:
        """Wait for in-flight dials and relays to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Close every connection and cancel outstanding tasks."""
        self.close_all()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
