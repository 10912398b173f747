"""
Runtime wiring for the host and client roles.

Each role builds its transport, dispatcher and poll loop from the global
config and runs until cancelled.
"""

import asyncio

from peertunnel.config import TunnelConfig, config
from peertunnel.transport.base import Transport
from peertunnel.transport.websocket import WebSocketTransport
from peertunnel.tunnel.client import ClientDispatcher
from peertunnel.tunnel.host import HostDispatcher
from peertunnel.tunnel.poller import TransportPoller
from peertunnel.utils.logger import get_logger

logger = get_logger(__name__)


def _make_poller(cfg: TunnelConfig, transport: Transport, dispatcher) -> TransportPoller:
    return TransportPoller(
        transport,
        dispatcher,
        channel=cfg.TUNNEL_CHANNEL,
        interval=cfg.POLL_INTERVAL_SECONDS,
        max_packets_per_tick=cfg.MAX_PACKETS_PER_TICK,
    )


async def run_host(
    cfg: TunnelConfig = config, transport: Transport | None = None
) -> None:
    """
    Run the host role.

    Args:
        cfg: Configuration to use.
        transport: Peer transport; defaults to a listening WebSocketTransport.
    """
    if transport is None:
        transport = WebSocketTransport(
            cfg.LOCAL_IDENTITY,
            bind_host=cfg.TRANSPORT_BIND_IP,
            bind_port=cfg.TRANSPORT_PORT,
        )

    def on_session_request(peer: str) -> None:
        logger.info(f"[Host] P2P session request from {peer}. Accepting.")
        transport.accept_session(peer)

    transport.session_request_handler = on_session_request
    await transport.start()

    service_host, service_port = cfg.get_service_address()
    dispatcher = HostDispatcher(
        transport,
        service_host,
        service_port,
        channel=cfg.TUNNEL_CHANNEL,
        read_chunk_size=cfg.READ_CHUNK_SIZE,
        max_pending_bytes=cfg.MAX_PENDING_BYTES,
    )
    poller = _make_poller(cfg, transport, dispatcher)

    logger.info(
        f"[Host] Forwarding peer connections to {service_host}:{service_port}"
    )
    try:
        await poller.run()
    finally:
        await dispatcher.aclose()
        await transport.close()
        logger.info("[Host] Stopped")


async def run_client(
    peer: str,
    cfg: TunnelConfig = config,
    transport: Transport | None = None,
) -> None:
    """
    Run the client role.

    Args:
        peer: Identity of the host peer to forward to.
        cfg: Configuration to use.
        transport: Peer transport; defaults to a dialing WebSocketTransport.
    """
    if transport is None:
        transport = WebSocketTransport(cfg.LOCAL_IDENTITY)
    await transport.start()

    dispatcher = ClientDispatcher(
        transport,
        peer,
        channel=cfg.TUNNEL_CHANNEL,
        read_chunk_size=cfg.READ_CHUNK_SIZE,
        max_pending_bytes=cfg.MAX_PENDING_BYTES,
    )
    poller = _make_poller(cfg, transport, dispatcher)

    try:
        server = await dispatcher.serve(*cfg.get_listen_address())
    except OSError:
        await transport.close()
        raise

    logger.info(f"[Client] Forwarding local connections to {peer}")
    async with server:
        poll_task = asyncio.create_task(poller.run())
        serve_task = asyncio.create_task(server.serve_forever())

        try:
            await asyncio.wait(
                [poll_task, serve_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for t in [poll_task, serve_task]:
                t.cancel()
            await asyncio.gather(poll_task, serve_task, return_exceptions=True)
            dispatcher.close_all()
            await transport.close()
            logger.info("[Client] Stopped")
