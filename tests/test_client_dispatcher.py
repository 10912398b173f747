"""
Tests for the client dispatcher.

Local connections are real TCP sockets against the dispatcher's listener;
the peer side is a recording transport.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from peertunnel.models.enums import ConnectionState, FrameKind
from peertunnel.tunnel.client import ClientDispatcher
from peertunnel.tunnel.protocol import Frame

from helpers import (
    FakeStreamWriter,
    RecordingTransport,
    ResettingReader,
    StalledTransport,
    wait_until,
)

HOST = "host-peer"


def kinds(transport):
    return [(f.kind, f.connection_id) for f in transport.frames(HOST)]


class ClientHarness:
    """Client dispatcher listening on an ephemeral port."""

    async def start(self, transport=None, **kwargs):
        self.transport = transport or RecordingTransport("client")
        self.dispatcher = ClientDispatcher(self.transport, HOST, **kwargs)
        self.server = await self.dispatcher.serve("127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def connect(self):
        """Open a local connection and wait until the peer has been told."""
        count = len(self.dispatcher.table)
        reader, writer = await asyncio.open_connection("127.0.0.1", self.port)
        await wait_until(lambda: len(self.dispatcher.table) > count)
        return reader, writer

    async def stop(self):
        self.dispatcher.close_all()
        self.server.close()
        await self.server.wait_closed()


class TestConnectionIds:
    def test_ids_start_at_one_and_increase(self):
        dispatcher = ClientDispatcher(RecordingTransport(), HOST)
        assert [dispatcher.allocate_connection_id() for _ in range(3)] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_ids_are_not_reused_after_close(self):
        transport = RecordingTransport()
        dispatcher = ClientDispatcher(transport, HOST)

        first = dispatcher.open_local(AsyncMock(), FakeStreamWriter())
        dispatcher.close_local(first)
        second = dispatcher.open_local(AsyncMock(), FakeStreamWriter())

        assert (first.connection_id, second.connection_id) == (1, 2)
        assert kinds(transport) == [
            (FrameKind.CONNECT, 1),
            (FrameKind.DISCONNECT, 1),
            (FrameKind.CONNECT, 2),
        ]

    @pytest.mark.asyncio
    async def test_concurrent_connections_get_distinct_ids(self):
        harness = await ClientHarness().start()
        try:
            sockets = [await harness.connect() for _ in range(5)]
            ids = sorted(conn.connection_id for conn in harness.dispatcher.table)
            assert ids == [1, 2, 3, 4, 5]
            for _, writer in sockets:
                writer.close()
        finally:
            await harness.stop()


class TestClientRelay:
    @pytest.mark.asyncio
    async def test_accept_registers_open_and_sends_connect(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            conn = harness.dispatcher.table.get(HOST, 1)

            assert conn.state == ConnectionState.OPEN
            assert not conn.acknowledged
            assert kinds(harness.transport) == [(FrameKind.CONNECT, 1)]
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_local_bytes_become_data_frames(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            writer.write(b"hello")
            await writer.drain()

            await wait_until(lambda: len(harness.transport.sent) == 2)
            frame = harness.transport.frames()[1]
            assert (frame.kind, frame.connection_id, frame.payload) == (
                FrameKind.DATA,
                1,
                b"hello",
            )
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_inbound_data_reaches_local_socket(self):
        harness = await ClientHarness().start()
        try:
            reader, writer = await harness.connect()
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DATA, 1, b"po"))
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DATA, 1, b"ng"))

            assert await asyncio.wait_for(reader.readexactly(4), 3) == b"pong"
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_inbound_data_for_unknown_id_is_dropped(self):
        harness = await ClientHarness().start()
        try:
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DATA, 42, b"x"))
            assert harness.transport.sent == []
            assert len(harness.dispatcher.table) == 0
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_connect_ack_marks_acknowledged_only(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.CONNECT, 1))
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.CONNECT, 9))

            conn = harness.dispatcher.table.get(HOST, 1)
            assert conn.acknowledged
            assert conn.state == ConnectionState.OPEN
            assert len(harness.dispatcher.table) == 1
            assert len(harness.transport.sent) == 1
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_frames_from_other_peers_are_ignored(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            harness.dispatcher.handle_frame("stranger", Frame(FrameKind.DISCONNECT, 1))
            assert harness.dispatcher.table.get(HOST, 1) is not None
            writer.close()
        finally:
            await harness.stop()


class TestClientClose:
    @pytest.mark.asyncio
    async def test_local_close_sends_disconnect_once(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            writer.close()

            await wait_until(lambda: len(harness.dispatcher.table) == 0)
            await asyncio.sleep(0.05)
            assert kinds(harness.transport) == [
                (FrameKind.CONNECT, 1),
                (FrameKind.DISCONNECT, 1),
            ]
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_inbound_disconnect_closes_local_socket(self):
        harness = await ClientHarness().start()
        try:
            reader, writer = await harness.connect()
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DISCONNECT, 1))
            assert len(harness.dispatcher.table) == 0

            try:
                data = await asyncio.wait_for(reader.read(), 3)
            except ConnectionResetError:
                data = b""
            assert data == b""

            await asyncio.sleep(0.05)
            assert kinds(harness.transport) == [(FrameKind.CONNECT, 1)]
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_a_no_op(self):
        harness = await ClientHarness().start()
        try:
            _, writer = await harness.connect()
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DISCONNECT, 1))
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DISCONNECT, 1))
            harness.dispatcher.handle_frame(HOST, Frame(FrameKind.DISCONNECT, 77))
            assert len(harness.dispatcher.table) == 0
            writer.close()
        finally:
            await harness.stop()

    @pytest.mark.asyncio
    async def test_local_reset_sends_disconnect_once(self):
        transport = RecordingTransport()
        dispatcher = ClientDispatcher(transport, HOST)
        writer = FakeStreamWriter()

        await dispatcher.handle_client(ResettingReader(), writer)

        assert kinds(transport) == [
            (FrameKind.CONNECT, 1),
            (FrameKind.DISCONNECT, 1),
        ]
        assert len(dispatcher.table) == 0
        assert writer.transport.aborted == 1


class TestClientBackpressure:
    @pytest.mark.asyncio
    async def test_reads_pause_while_peer_backlog_is_over_cap(self):
        transport = StalledTransport("client")
        harness = await ClientHarness().start(
            transport, read_chunk_size=512, max_pending_bytes=1024
        )
        try:
            _, writer = await harness.connect()
            payload = bytes(range(256)) * 1024
            writer.write(payload)

            await wait_until(lambda: transport.pending_bytes(HOST) > 1024)
            await asyncio.sleep(0.1)
            assert len(transport.data_sent(HOST)) <= 1024 + 512
            assert len(harness.dispatcher.table) == 1
            assert (FrameKind.DISCONNECT, 1) not in kinds(transport)

            transport.stalled = False
            await wait_until(lambda: len(transport.data_sent(HOST)) == len(payload))
            assert transport.data_sent(HOST) == payload
            writer.close()
        finally:
            await harness.stop()
