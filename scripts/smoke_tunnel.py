#!/usr/bin/env python3
"""
Smoke test for a full peertunnel host/client pair.

This script sets up:
1. A TCP echo server (simulates the host's local service)
2. A peertunnel host listening for peers over WebSocket
3. A peertunnel client listening for local TCP connections

Then performs tests to verify:
- Data flows correctly through the tunnel
- Multiple packets on one connection arrive in order
- Multiple concurrent connections stay separate
- Closing a local connection reaches the service

Usage:
    python scripts/smoke_tunnel.py [--echo-port PORT] [--peer-port PORT] [--listen-port PORT]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from peertunnel.app import run_client, run_host
from peertunnel.config import TunnelConfig
from peertunnel.models.enums import LogLevel
from peertunnel.transport.websocket import WebSocketTransport
from peertunnel.utils.logger import configure_logging

# Colors for output
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{CYAN}[INFO]{RESET} {msg}")


def log_ok(msg: str) -> None:
    print(f"{GREEN}[PASS]{RESET} {msg}")


def log_fail(msg: str) -> None:
    print(f"{RED}[FAIL]{RESET} {msg}")


# =============================================================================
# Echo Server (simulates the host's local service)
# =============================================================================


class EchoServer:
    """Simple TCP echo server counting closed connections."""

    def __init__(self, port: int):
        self.port = port
        self.server = None
        self.closed = 0

    async def start(self) -> None:
        self.server = await asyncio.start_server(
            self._handle_client, "127.0.0.1", self.port
        )
        log_info(f"Echo server listening on 127.0.0.1:{self.port}")

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except OSError:
            pass
        finally:
            self.closed += 1
            writer.close()


# =============================================================================
# Tests
# =============================================================================


async def echo_once(port: int, payload: bytes) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(payload)
        await writer.drain()
        return await asyncio.wait_for(reader.readexactly(len(payload)), timeout=5.0)
    finally:
        writer.close()


async def run_tests(echo: EchoServer, listen_port: int) -> bool:
    all_passed = True

    log_info("Test 1: Basic TCP echo through tunnel")
    try:
        reply = await echo_once(listen_port, b"Hello, Tunnel World!")
        if reply == b"Hello, Tunnel World!":
            log_ok("Test 1: Data echoed correctly through tunnel")
        else:
            log_fail(f"Test 1: Echo mismatch - got {reply!r}")
            all_passed = False
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
        log_fail(f"Test 1: Error - {e}")
        all_passed = False

    log_info("Test 2: Multiple packets on one connection")
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", listen_port)
        expected = b""
        for i in range(5):
            packet = f"Packet {i};".encode()
            expected += packet
            writer.write(packet)
            await writer.drain()
            await asyncio.sleep(0.05)
        reply = await asyncio.wait_for(reader.readexactly(len(expected)), timeout=5.0)
        writer.close()
        if reply == expected:
            log_ok("Test 2: Packets arrived in order")
        else:
            log_fail(f"Test 2: Got {reply!r}")
            all_passed = False
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
        log_fail(f"Test 2: Error - {e}")
        all_passed = False

    log_info("Test 3: Concurrent connections")
    try:
        payloads = [f"conn-{i}".encode() * 100 for i in range(10)]
        replies = await asyncio.gather(*(echo_once(listen_port, p) for p in payloads))
        if replies == payloads:
            log_ok("Test 3: 10 concurrent connections echoed independently")
        else:
            log_fail("Test 3: Replies were mixed up")
            all_passed = False
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
        log_fail(f"Test 3: Error - {e}")
        all_passed = False

    log_info("Test 4: Connection close reaches the service")
    await asyncio.sleep(0.3)
    opened = 1 + 1 + 10
    if echo.closed == opened:
        log_ok(f"Test 4: All {opened} service connections closed")
    else:
        log_fail(f"Test 4: {echo.closed}/{opened} service connections closed")
        all_passed = False

    return all_passed


async def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test a peertunnel pair")
    parser.add_argument("--echo-port", type=int, default=19876)
    parser.add_argument("--peer-port", type=int, default=19877)
    parser.add_argument("--listen-port", type=int, default=19878)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(LogLevel.DEBUG if args.verbose else LogLevel.WARNING)

    echo = EchoServer(args.echo_port)
    await echo.start()

    host_cfg = TunnelConfig(
        SERVICE_PORT=args.echo_port,
        TRANSPORT_BIND_IP="127.0.0.1",
        TRANSPORT_PORT=args.peer_port,
        LOCAL_IDENTITY="smoke-host",
    )
    client_cfg = TunnelConfig(LISTEN_PORT=args.listen_port, LOCAL_IDENTITY="smoke-client")
    peer_url = host_cfg.get_transport_url()

    host_task = asyncio.create_task(run_host(host_cfg))
    await asyncio.sleep(0.2)
    client_task = asyncio.create_task(
        run_client(peer_url, client_cfg, WebSocketTransport(client_cfg.LOCAL_IDENTITY))
    )
    await asyncio.sleep(0.2)
    log_info(f"Host at {peer_url}, client listening on 127.0.0.1:{args.listen_port}")

    try:
        success = await run_tests(echo, args.listen_port)
    finally:
        for task in (client_task, host_task):
            task.cancel()
        await asyncio.gather(client_task, host_task, return_exceptions=True)
        await echo.stop()

    print()
    if success:
        log_ok("All tests passed!")
        return 0
    log_fail("Some tests failed!")
    return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
