"""
=============================================================================
SESSION LISTENER
=============================================================================

Owns the listening socket and every accepted connection, and turns socket
readiness into discrete connection events:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      Listener Thread Loop                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while running:                                                     │
    │       │                                                              │
    │       ├──► sync registrations   (re-arm released connections)        │
    │       │                                                              │
    │       ├──► selector.select(idle_time)                                │
    │       │       │                                                      │
    │       │       ├── listening socket readable → accept() all pending   │
    │       │       │       └── emit CONNECTED                             │
    │       │       │                                                      │
    │       │       └── client socket readable → claim connection          │
    │       │               └── emit DATA_AVAILABLE                        │
    │       │                                                              │
    │       ├──► liveness sweep        (verify_connection_interval)        │
    │       │                                                              │
    │       └──► hung-up connections → unregister, emit CLOSED             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Events go to a single callback (the console server), which queues them on
the worker pool and returns immediately. The listener never reads or writes
client data itself.

=============================================================================
ONE EVENT IN FLIGHT PER CONNECTION
=============================================================================

When a connection becomes readable it is CLAIMED and removed from the
selector. The handler releases it when done, and the next loop iteration
arms it again. Two workers therefore never read the same connection at
once, and a level-triggered selector does not flood the pool with repeat
events for bytes a worker is already about to read.

All selector registration happens on the listener thread.
=============================================================================
"""

import logging
import selectors
import socket
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..config import ServerConfig
from ..errors import StartupError
from .connection import Connection


logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Logical connection events delivered to the per-connection handler."""
    CONNECTED = "connected"
    DATA_AVAILABLE = "data_available"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionEvent:
    kind: EventKind
    connection: Connection


EventHandler = Callable[[ConnectionEvent], bool]


class SocketServer:
    """
    Listening socket plus poll loop for the console.

    Usage:
        def on_event(event: ConnectionEvent) -> bool:
            return pool.submit(handle, args=(event,), block=False)

        listener = SocketServer(config)
        listener.bind()               # raises StartupError
        listener.start(on_event)      # returns immediately
        ...
        listener.shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._thread: Optional[threading.Thread] = None
        self._on_event: Optional[EventHandler] = None

        self._running = False
        self._closed = False
        self._shutdown_event = threading.Event()

        # Open connections, and the subset currently armed in the selector
        self._connections: Dict[Connection, None] = {}
        self._armed: set = set()
        self._lock = threading.Lock()

        self._last_verify = time.monotonic()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port when config.port is 0."""
        if self._socket is not None:
            try:
                host, port = self._socket.getsockname()[:2]
                return (host, port)
            except OSError:
                pass
        return (self.config.host, self.config.port)

    @property
    def connections(self) -> List[Connection]:
        """Snapshot of open connections."""
        with self._lock:
            return [c for c in self._connections if c.is_open]

    # =========================================================================
    # STARTUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Reply lines are tiny; send them immediately
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() is only called after select() reports readiness, but a
        # client may vanish in between
        sock.setblocking(False)
        return sock

    def bind(self) -> None:
        """
        Create, bind and listen.

        Raises:
            StartupError: If the socket cannot be configured or bound.
        """
        if self._socket is not None:
            return

        try:
            sock = self._create_socket()
        except OSError as e:
            raise StartupError(f"Failed to create listening socket: {e}") from e

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except (OSError, OverflowError) as e:
            sock.close()
            raise StartupError(
                f"Failed to bind to {self.config.host}:{self.config.port}: {e}"
            ) from e

        self._socket = sock
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def start(self, on_event: EventHandler) -> None:
        """
        Start the listener thread. Binds first if bind() was not called.

        Args:
            on_event: Receives every ConnectionEvent. Returns True if the
                      event was taken for processing, False if it could not
                      be queued (a DATA_AVAILABLE event is then re-raised on
                      a later poll).

        Raises:
            StartupError: If binding fails.
            RuntimeError: If the listener was already shut down.
        """
        if self._closed:
            raise RuntimeError("Listener was shut down; create a new one")
        if self._running:
            return

        self.bind()

        self._on_event = on_event
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._socket, selectors.EVENT_READ, None)

        self._running = True
        self._shutdown_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="tcpconsole-listener", daemon=True
        )
        self._thread.start()

    # =========================================================================
    # POLL LOOP
    # =========================================================================

    def _poll_loop(self) -> None:
        try:
            while self._running:
                self._sync_registrations()

                try:
                    ready = self._selector.select(timeout=self.config.idle_time)
                except (OSError, ValueError) as e:
                    if self._running:
                        logger.error(f"Poll error: {e}")
                        time.sleep(self.config.idle_time)
                    continue

                for key, _ in ready:
                    if not self._running:
                        break
                    if key.data is None:
                        self._accept_pending()
                    else:
                        self._data_available(key.data)

                self._verify_connections()
                self._reap_closed()
        except Exception as e:
            logger.exception(f"Listener loop crashed: {e}")
        finally:
            self._shutdown_event.set()

    def _accept_pending(self) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                return

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    max_line_length=self.config.max_line_length,
                    send_timeout=self.config.send_timeout,
                )
            except OSError as e:
                logger.warning(f"Could not set up connection from {client_address}: {e}")
                client_socket.close()
                continue

            logger.debug(f"[{conn.id}] Accepted connection from {conn.remote_endpoint}")

            with self._lock:
                self._connections[conn] = None

            self._emit(ConnectionEvent(EventKind.CONNECTED, conn))

    def _data_available(self, conn: Connection) -> None:
        self._disarm(conn)
        if not conn.is_open or conn.claimed:
            return

        conn.claimed = True
        if not self._emit(ConnectionEvent(EventKind.DATA_AVAILABLE, conn)):
            conn.claimed = False

    def _sync_registrations(self) -> None:
        with self._lock:
            connections = list(self._connections)

        for conn in connections:
            wanted = conn.is_open and not conn.claimed and not conn.peer_closed
            if wanted and conn not in self._armed:
                try:
                    self._selector.register(conn.socket, selectors.EVENT_READ, conn)
                    self._armed.add(conn)
                except (KeyError, ValueError, OSError) as e:
                    logger.debug(f"[{conn.id}] Could not arm connection: {e}")
                    conn.peer_closed = True
            elif not wanted and conn in self._armed:
                self._disarm(conn)

    def _disarm(self, conn: Connection) -> None:
        if conn not in self._armed:
            return
        self._armed.discard(conn)
        try:
            self._selector.unregister(conn.socket)
        except (KeyError, ValueError, OSError):
            pass

    def _verify_connections(self) -> None:
        interval = self.config.verify_connection_interval
        if interval <= 0:
            return

        now = time.monotonic()
        if now - self._last_verify < interval:
            return
        self._last_verify = now

        for conn in self.connections:
            if not conn.claimed and not conn.check_alive():
                logger.debug(f"[{conn.id}] Liveness check failed")
                conn.peer_closed = True

    def _reap_closed(self) -> None:
        with self._lock:
            gone = [
                c for c in self._connections
                if not c.claimed and (c.peer_closed or not c.is_open)
            ]
            for conn in gone:
                del self._connections[conn]

        for conn in gone:
            self._disarm(conn)
            if not self._emit(ConnectionEvent(EventKind.CLOSED, conn)):
                conn.close()

    def _emit(self, event: ConnectionEvent) -> bool:
        try:
            return bool(self._on_event(event))
        except Exception as e:
            logger.exception(f"[{event.connection.id}] Event handler rejected {event.kind.value}: {e}")
            return False

    # =========================================================================
    # HANDLER SIDE
    # =========================================================================

    def release(self, conn: Connection) -> None:
        """Hand a claimed connection back to the poll loop."""
        conn.claimed = False

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self) -> None:
        """
        Stop polling, close the listening socket and every connection.

        Idempotent, and safe to call on a listener that never started.
        """
        if self._closed:
            return
        self._closed = True

        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(2.0, self.config.idle_time * 4))

        if self._selector is not None:
            try:
                self._selector.close()
            except OSError:
                pass

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed

        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
        self._armed.clear()

        for conn in connections:
            conn.close()

        if self._thread is not None:
            logger.info(f"Listener stopped, closed {len(connections)} connection(s)")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the poll loop to exit.

        Returns:
            True if it exited, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
