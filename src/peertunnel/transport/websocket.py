"""
WebSocket peer transport.

Each peer link is a single WebSocket. The host role listens for inbound
links; the client role dials a peer lazily on the first send, using the
peer identity as the URL (ws://host:port).

Link protocol:
    1. The dialer sends its identity as the first text message.
    2. Every following binary message is one datagram:
       [channel: 1B][datagram: var]

Sends are queued per link and written by a single writer task, so
datagrams on a link arrive in the order they were sent. The bytes still
queued on a link are reported as its send backlog.
"""

import asyncio
from collections import defaultdict, deque

import websockets

from peertunnel.exceptions import TransportClosedError, TransportReadError
from peertunnel.transport.base import Packet, Transport
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)

HELLO_TIMEOUT_SECONDS = 10.0
MAX_MESSAGE_SIZE = 2 * 1024 * 1024
URL_SCHEMES = ("ws://", "wss://")


class PeerLink:
    """Outgoing queue and socket of one peer link."""

    def __init__(self, peer: str, outbound: bool = False):
        self.peer = peer
        self.outbound = outbound
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()
        self.queued_bytes = 0
        self.task: asyncio.Task | None = None


class WebSocketTransport(Transport):
    """
    Transport carrying datagrams over WebSockets.

    Args:
        identity: Identity announced when dialing peers.
        bind_host: Listen address; None means this endpoint only dials.
        bind_port: Listen port (0 picks a free port).
    """

    def __init__(
        self,
        identity: str,
        bind_host: str | None = None,
        bind_port: int | None = None,
    ):
        super().__init__(identity)
        self.bind_host = bind_host
        self.bind_port = bind_port
        self._server = None
        self._links: dict[str, PeerLink] = {}
        self._accepted: set[str] = set()
        self._inbox: dict[int, deque[Packet]] = defaultdict(deque)
        self._closed = False

    @property
    def port(self) -> int | None:
        """Actual listening port once started."""
        if self._server is None:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def url(self) -> str | None:
        """URL peers dial to reach this endpoint."""
        if self.port is None:
            return None
        host = self.bind_host if self.bind_host not in (None, "0.0.0.0") else "127.0.0.1"
        return f"ws://{host}:{self.port}"

    async def start(self) -> None:
        if self.bind_port is None:
            return
        self._server = await websockets.serve(
            self._handle_inbound,
            self.bind_host,
            self.bind_port,
            max_size=MAX_MESSAGE_SIZE,
        )
        logger.info(f"[WebSocket] Listening for peers on {self.url}")

    async def close(self) -> None:
        self._closed = True
        # Inbound links end when the server closes their sockets
        links = [link for link in self._links.values() if link.outbound]
        self._links.clear()
        for link in links:
            if link.task:
                link.task.cancel()
        await asyncio.gather(
            *(link.task for link in links if link.task), return_exceptions=True
        )
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    # -------------------------------------------------------------------------
    # Transport contract
    # -------------------------------------------------------------------------

    def accept_session(self, peer: str) -> None:
        self._accepted.add(peer)

    def send(self, peer: str, channel: int, data: bytes) -> bool:
        if self._closed:
            raise TransportClosedError(f"Transport {self.identity} is closed")

        link = self._links.get(peer)
        if link is None:
            if not peer.startswith(URL_SCHEMES):
                logger.warning(f"[WebSocket] No link to {peer}, dropping datagram")
                return False
            link = self._dial(peer)

        message = bytes([channel]) + bytes(data)
        link.queued_bytes += len(message)
        link.queue.put_nowait(message)
        return True

    def pending_bytes(self, peer: str) -> int:
        link = self._links.get(peer)
        return link.queued_bytes if link else 0

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

    # -------------------------------------------------------------------------
    # Link handling
    # -------------------------------------------------------------------------

    def _dial(self, peer: str) -> PeerLink:
        link = PeerLink(peer, outbound=True)
        self._links[peer] = link
        link.task = asyncio.create_task(self._run_outbound(link))
        return link

    async def _run_outbound(self, link: PeerLink) -> None:
        """Dial a peer and serve the link until it closes."""
        logger.info(f"[WebSocket] Connecting to {link.peer}")
        try:
            async with websockets.connect(link.peer, max_size=MAX_MESSAGE_SIZE) as ws:
                await ws.send(self.identity)
                self._accepted.add(link.peer)
                logger.info(f"[WebSocket] Link to {link.peer} established")
                await self._serve_link(link, ws)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error(f"[WebSocket] Link to {link.peer} failed: {e}")
        finally:
            self._drop_link(link)
            logger.info(f"[WebSocket] Link to {link.peer} closed")

    async def _handle_inbound(self, ws) -> None:
        """Handle a link dialed by a remote peer."""
        try:
            hello = await asyncio.wait_for(ws.recv(), timeout=HELLO_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"[WebSocket] No identity from {ws.remote_address}")
            await ws.close(code=1002, reason="identity expected")
            return
        except websockets.exceptions.ConnectionClosed:
            return

        if not isinstance(hello, str) or not hello:
            logger.warning(f"[WebSocket] Invalid identity from {ws.remote_address}")
            await ws.close(code=1002, reason="identity expected")
            return

        peer = hello
        if peer not in self._accepted:
            self._request_session(peer)
        if peer not in self._accepted:
            logger.warning(f"[WebSocket] Session from {peer} rejected")
            await ws.close(code=1008, reason="session rejected")
            return

        if peer in self._links:
            logger.warning(f"[WebSocket] Replacing existing link for {peer}")
        link = PeerLink(peer)
        self._links[peer] = link
        logger.info(f"[WebSocket] Peer {peer} connected from {ws.remote_address}")

        try:
            await self._serve_link(link, ws)
        finally:
            self._drop_link(link)
            logger.info(f"[WebSocket] Peer {peer} disconnected")

    async def _serve_link(self, link: PeerLink, ws) -> None:
        """Run the writer and reader of a link until either stops."""
        tasks = [
            asyncio.create_task(self._write_loop(link, ws)),
            asyncio.create_task(self._read_loop(link.peer, ws)),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _write_loop(self, link: PeerLink, ws) -> None:
        try:
            while True:
                data = await link.queue.get()
                await ws.send(data)
                link.queued_bytes -= len(data)
        except websockets.exceptions.ConnectionClosed:
            logger.debug(f"[WebSocket] Writer for {link.peer} stopped: link closed")

    async def _read_loop(self, peer: str, ws) -> None:
        try:
            async for message in ws:
                if isinstance(message, str):
                    logger.debug(f"[WebSocket] Ignoring text message from {peer}")
                    continue
                if not message:
                    continue
                channel = message[0]
                self._inbox[channel].append(Packet(data=message[1:], sender=peer))
        except websockets.exceptions.ConnectionClosed:
            logger.debug(f"[WebSocket] Reader for {peer} stopped: link closed")

    def _drop_link(self, link: PeerLink) -> None:
        if self._links.get(link.peer) is link:
            del self._links[link.peer]
