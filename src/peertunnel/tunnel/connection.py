"""
Logical connections and the connection table.

Each logical connection multiplexed over the tunnel owns exactly one local
TCP socket. The table maps (peer identity, connection id) to the connection;
ids alone collide across peers, so every lookup uses the composite key.

The table is only ever touched from the event loop thread, and none of its
methods await, so lookup-and-insert is a single atomic step.
"""

import asyncio
from dataclasses import dataclass, field

from peertunnel.models.enums import ConnectionState

ConnectionKey = tuple[str, int]


@dataclass(eq=False)
class Connection:
    """One logical TCP stream carried over the tunnel."""

    peer: str
    connection_id: int
    state: ConnectionState = ConnectionState.OPENING
    reader: asyncio.StreamReader | None = None
    writer: asyncio.StreamWriter | None = None

    # Client role: host answered our Connect with its own Connect
    acknowledged: bool = False

    # Host role: task dialing the local service while Opening
    dial: asyncio.Task | None = None

    # Payloads received while the local socket is still being dialed
    pending: list[bytes] = field(default_factory=list)

    bytes_to_local: int = 0
    bytes_from_local: int = 0

    @property
    def key(self) -> ConnectionKey:
        return self.peer, self.connection_id

    @property
    def label(self) -> str:
        """Short identifier for log lines."""
        return f"{self.peer}-{self.connection_id}"

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def attach(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Bind the established local socket and flush queued payloads in order."""
        self.reader = reader
        self.writer = writer
        self.state = ConnectionState.OPEN
        pending, self.pending = self.pending, []
        for chunk in pending:
            writer.write(chunk)

    def pending_bytes(self) -> int:
        """Bytes accepted for the local socket but not yet sent by the OS."""
        if self.writer is None:
            return sum(len(chunk) for chunk in self.pending)
        return self.writer.transport.get_write_buffer_size()

    def write(self, data: bytes, max_pending_bytes: int | None = None) -> bool:
        """
        Queue bytes toward the local socket.

        Args:
            data: Payload from the peer.
            max_pending_bytes: Cap on buffered bytes; None disables the check.

        Returns:
            False if the connection is closed or the cap would be exceeded.
        """
        if self.is_closed:
            return False
        if (
            max_pending_bytes is not None
            and self.pending_bytes() + len(data) > max_pending_bytes
        ):
            return False

        self.bytes_to_local += len(data)
        if self.writer is None:
            self.pending.append(data)
        else:
            self.writer.write(data)
        return True

    def abort(self) -> None:
        """
        Forcibly close the local socket, or cancel its dial while Opening.

        Safe to call more than once.
        """
        self.state = ConnectionState.CLOSED
        self.pending.clear()
        if self.dial is not None:
            self.dial.cancel()
            self.dial = None
        if self.writer is not None:
            self.writer.transport.abort()


class ConnectionTable:
    """Mapping of (peer, connection id) to live connections."""

    def __init__(self):
        self._connections: dict[ConnectionKey, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self):
        return iter(list(self._connections.values()))

    def get(self, peer: str, connection_id: int) -> Connection | None:
        return self._connections.get((peer, connection_id))

    def add_if_absent(self, connection: Connection) -> bool:
        """
        Insert a connection unless its key is already present.

        Returns:
            True if inserted, False if an entry with the same key exists.
        """
        if connection.key in self._connections:
            return False
        self._connections[connection.key] = connection
        return True

    def remove(self, peer: str, connection_id: int) -> Connection | None:
        """Remove and return an entry. Unknown keys are a no-op returning None."""
        return self._connections.pop((peer, connection_id), None)

    def close_all(self) -> int:
        """Abort every local socket and empty the table. Returns the count closed."""
        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            conn.abort()
        return len(connections)
