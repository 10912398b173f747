"""
Transport poll loop.

On every tick, drains datagrams buffered by the transport and hands each
decoded frame to the role's dispatcher. The drain is capped per tick so a
flood of datagrams cannot starve local socket I/O; whatever remains is
picked up on the next tick.
"""

import asyncio

from peertunnel.exceptions import TransportReadError
from peertunnel.transport.base import Transport
from peertunnel.tunnel.dispatcher import Dispatcher
from peertunnel.tunnel.protocol import MalformedFrame, decode
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.01
DEFAULT_MAX_PACKETS_PER_TICK = 256


class TransportPoller:
    """
    Periodically drains a transport channel into a dispatcher.

    Args:
        transport: Transport to poll.
        dispatcher: Receives every decoded frame.
        channel: Channel carrying tunnel frames.
        interval: Seconds between ticks.
        max_packets_per_tick: Upper bound on datagrams handled per tick.
    """

    def __init__(
        self,
        transport: Transport,
        dispatcher: Dispatcher,
        channel: int = 0,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_packets_per_tick: int = DEFAULT_MAX_PACKETS_PER_TICK,
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.channel = channel
        self.interval = interval
        self.max_packets_per_tick = max_packets_per_tick
        self._stopped = asyncio.Event()

    def poll_once(self) -> int:
        """
        Run one tick.

        Returns:
            Number of datagrams taken off the transport, including skipped ones.
        """
        handled = 0
        while handled < self.max_packets_per_tick:
            size = self.transport.packet_available(self.channel)
            if size <= 0:
                break
            handled += 1

            try:
                packet = self.transport.read_packet(size, self.channel)
            except TransportReadError as e:
                logger.error(f"[Poller] Ignored read packet error for size {size}: {e}")
                continue

            frame = decode(packet.data)
            if isinstance(frame, MalformedFrame):
                logger.warning(
                    f"[Poller] Dropping malformed datagram from {packet.sender}: "
                    f"{frame.reason}"
                )
                continue

            try:
                self.dispatcher.handle_frame(packet.sender, frame)
            except Exception as e:
                logger.exception(
                    f"[Poller] Dispatcher failed on frame from {packet.sender}: {e}"
                )

        return handled

    async def run(self) -> None:
        """Tick until stop() is called."""
        logger.debug(
            f"[Poller] Polling channel {self.channel} every {self.interval * 1000:.0f}ms"
        )
        while not self._stopped.is_set():
            self.poll_once()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopped.set()
