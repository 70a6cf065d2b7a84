"""
=============================================================================
CONSOLE CONNECTION
=============================================================================

Wraps one accepted client socket: snapshot reads, line framing, serialized
line writes with retry, and close.

=============================================================================
SNAPSHOT READS
=============================================================================

A data-available callback must never wait for more bytes. read_available()
first asks the OS whether anything is readable RIGHT NOW (a zero-timeout
poll, which has no descriptor-number limit) and, only if so, performs
exactly one recv():

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    read_available() outcomes                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   nothing readable           → None        (no suspension)           │
    │   recv() returned bytes      → those bytes (never padded)            │
    │   recv() returned b""        → b"", peer_closed = True  (EOF)        │
    │   reset / broken pipe        → b"", peer_closed = True               │
    │   any other socket error     → b""         (treated as no data)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The bytes feed this connection's LineFramer, so a command split across two
reads is still dispatched exactly once, complete.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    CONNECTED ──first line──► ACTIVE ──► CLOSING ──► CLOSED
        │                                  ▲
        └──────────────────────────────────┘
          peer EOF, fatal I/O error, or server shutdown

=============================================================================
"""

import select
import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional

from ..protocol.framer import ENCODING, LineFramer


logger = logging.getLogger(__name__)

# Errors meaning the peer is gone for good
_PEER_GONE = (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)


def _readable_now(sock) -> bool:
    """Zero-timeout readiness check (readable, hung up or in error)."""
    if hasattr(select, "poll"):
        poller = select.poll()
        poller.register(sock, select.POLLIN)
        return bool(poller.poll(0))

    # Windows: select() limits the number of sockets, not descriptor values
    readable, _, _ = select.select([sock], [], [], 0)
    return bool(readable)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    CONNECTED = "connected"  # Accepted, no complete line yet
    ACTIVE = "active"        # Exchanging lines
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    One client session.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current lifecycle state.
        peer_closed: The client hung up (EOF or reset).
        lines_received: Complete lines framed on this connection.
        lines_sent: Lines written successfully.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.CONNECTED
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    peer_closed: bool = False
    lines_received: int = 0
    lines_sent: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    max_line_length: int = 1024
    send_timeout: Optional[float] = 5.0

    # Set by the listener while an event for this connection is in flight
    claimed: bool = field(default=False, repr=False)

    _framer: LineFramer = field(init=False, repr=False)
    _read_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _state_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self._framer = LineFramer(self.max_line_length)
        self.socket.settimeout(self.send_timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def remote_endpoint(self) -> str:
        """'ip:port' of the client, for logs."""
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def is_open(self) -> bool:
        return self.state in (ConnectionState.CONNECTED, ConnectionState.ACTIVE)

    @property
    def pending_fragment(self) -> bytes:
        """Partial line waiting for its terminator."""
        return self._framer.pending

    # =========================================================================
    # READING
    # =========================================================================

    def read_available(self) -> Optional[bytes]:
        """
        Read whatever is available right now, in a single pass.

        Returns:
            None if no data is available, otherwise exactly the bytes read
            (empty on EOF or a swallowed read error).
        """
        if not self.is_open:
            return None

        try:
            if not _readable_now(self.socket):
                return None
        except (OSError, ValueError):
            # Descriptor already closed underneath us
            return None

        try:
            data = self.socket.recv(self.buffer_size)
        except _PEER_GONE:
            self.peer_closed = True
            return b""
        except OSError as e:
            logger.debug(f"[{self.id}] Read error treated as no data: {e}")
            return b""

        if not data:
            self.peer_closed = True
            return b""

        self.last_activity = time.time()
        return data

    def read_lines(self) -> List[str]:
        """
        Snapshot-read and return the complete lines now available.

        Serialized per connection, so concurrent callers never interleave
        bytes in the framing buffer.
        """
        with self._read_lock:
            data = self.read_available()
            if not data:
                return []

            lines = self._framer.feed(data)

        if lines:
            self.lines_received += len(lines)
            with self._state_lock:
                if self.state == ConnectionState.CONNECTED:
                    self.state = ConnectionState.ACTIVE
        return lines

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_line(self, text: str, max_attempts: int = 3) -> bool:
        """
        Write one line, terminated by LF.

        Lines from concurrent callers never interleave. A failed write is
        retried up to max_attempts times in total, then dropped. A retry
        resumes after the bytes already accepted by the socket, so the peer
        never sees part of a line twice.

        Args:
            text: Line content without terminator.
            max_attempts: Write attempts before giving up.

        Returns:
            True if the line was written, False if it was dropped.
        """
        data = (text + "\n").encode(ENCODING, errors="replace")

        view = memoryview(data)
        offset = 0

        with self._write_lock:
            for attempt in range(1, max_attempts + 1):
                if not self.is_open:
                    return False
                try:
                    while offset < len(data):
                        offset += self.socket.send(view[offset:])
                except OSError as e:
                    logger.debug(f"[{self.id}] Send attempt {attempt}/{max_attempts} failed: {e}")
                    continue

                self.lines_sent += 1
                self.last_activity = time.time()
                return True

        logger.warning(f"[{self.id}] Dropping line after {max_attempts} failed send attempts")
        return False

    # =========================================================================
    # LIVENESS & CLOSING
    # =========================================================================

    def check_alive(self) -> bool:
        """
        Cheap liveness check: pending socket error or closed descriptor.

        EOF is detected by the read path, not here.
        """
        if not self.is_open or self.peer_closed:
            return False
        try:
            return self.socket.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR) == 0
        except OSError:
            return False

    def close(self) -> bool:
        """
        Close the connection. Idempotent.

        Returns:
            True if this call closed it, False if it was already closing.
        """
        with self._state_lock:
            if not self.is_open:
                return False
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        with self._state_lock:
            self.state = ConnectionState.CLOSED

        logger.debug(
            f"[{self.id}] Connection closed after {self.lines_received} lines in, "
            f"{self.lines_sent} lines out"
        )
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
