"""
=============================================================================
CONSOLE SERVER
=============================================================================

The orchestrator: wires the listener, the callback pool and the command
pipeline together, and owns the start/stop lifecycle.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONSOLE SERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │  ConsoleServer  │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐    │
    │    │ SocketServer │    │  ThreadPool  │    │ CommandProcessor │    │
    │    │  (listener)  │    │ (callbacks)  │    │ parse → dispatch │    │
    │    └──────┬───────┘    └──────────────┘    └────────┬─────────┘    │
    │           ▼                                         ▼              │
    │    ┌──────────────┐                        ┌──────────────────┐    │
    │    │  Connection  │                        │  StateMachine /  │    │
    │    │ read / write │                        │  RecorderState   │    │
    │    └──────────────┘                        └──────────────────┘    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
COMMAND LIFECYCLE
=============================================================================

    1. Listener reports DATA_AVAILABLE for a connection
    2. Event queued on the callback pool
    3. Worker snapshot-reads and frames complete lines
    4. Each line: parse → dispatch → post input / status report / error
    5. Reply lines written on the same connection, one output() each
    6. Connection released back to the listener

=============================================================================
DISABLED MODE
=============================================================================

If the console is switched off, misconfigured, or cannot bind its port, the
server logs why and stays DISABLED. output(), broadcast() and stop() are
then no-ops. The host process keeps running without its console.
=============================================================================
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .collaborators import RecorderStateProvider, StateMachine
from .config import ServerConfig
from .core import Connection, ConnectionEvent, EventKind, SocketServer, ThreadPool
from .errors import StartupError
from .protocol import CommandProcessor, Dispatcher, StatusReporter
from .protocol.status import utc_now


logger = logging.getLogger(__name__)


class ConsoleServer:
    """
    Line-oriented TCP control console for a recording controller.

    Usage:
        server = ConsoleServer(config, state_machine, recorder)
        if server.start():
            ...
        server.stop()

    or as a context manager:

        with ConsoleServer(config, state_machine, recorder) as server:
            ...
    """

    def __init__(
        self,
        config: Optional[ServerConfig],
        state_machine: StateMachine,
        recorder: RecorderStateProvider,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            config: Server configuration; defaults when None.
            state_machine: Receives inputs, reports the current state.
            recorder: Reports current and next recordings. Required.
            clock: "Now" for status reports.

        Raises:
            ValueError: If recorder is None.
        """
        if recorder is None:
            raise ValueError("recorder cannot be None")

        self.config = config or ServerConfig()
        self.state_machine = state_machine
        self.recorder = recorder

        self.reporter = StatusReporter(
            state_machine,
            recorder,
            clock=clock,
            time_format=self.config.time_format,
        )
        self.processor = CommandProcessor(state_machine, self.reporter, Dispatcher())

        self._listener: Optional[SocketServer] = None
        self._pool: Optional[ThreadPool] = None
        self._enabled = False
        self._stopped = False
        self._lifecycle_lock = threading.Lock()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_enabled(self) -> bool:
        """True while the console is listening."""
        return self._enabled

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port), or None while disabled."""
        if not self._enabled or self._listener is None:
            return None
        return self._listener.address

    @property
    def connections(self) -> List[Connection]:
        if not self._enabled or self._listener is None:
            return []
        return self._listener.connections

    def start(self) -> bool:
        """
        Bind the port and start serving.

        Never raises: a switched-off, invalid or unbindable configuration
        leaves the server disabled.

        Returns:
            True if the console is now listening.
        """
        with self._lifecycle_lock:
            if self._enabled:
                return True

            if not self.config.enabled:
                logger.info("TCP console disabled by configuration")
                return False

            try:
                self.config.validate()
            except ValueError as e:
                logger.error(f"TCP console disabled, invalid configuration: {e}")
                return False

            listener = SocketServer(self.config)
            try:
                listener.bind()
            except StartupError as e:
                logger.error(f"TCP console disabled: {e}")
                listener.shutdown()
                return False

            pool = ThreadPool(
                min_workers=min(4, self.config.max_worker_threads),
                max_workers=self.config.max_worker_threads,
            )
            pool.start()

            self._listener = listener
            self._pool = pool
            self._stopped = False
            self._enabled = True

            try:
                listener.start(self._on_event)
            except (StartupError, RuntimeError) as e:
                logger.error(f"TCP console disabled: {e}")
                self._teardown()
                return False

        host, port = listener.address
        logger.info(f"Starting TCP console on {host}:{port}")
        return True

    def stop(self) -> None:
        """
        Close the listener and every connection, stop the callback pool.

        Idempotent; safe if never started or disabled.
        """
        with self._lifecycle_lock:
            if self._stopped or self._listener is None:
                self._enabled = False
                return
            self._teardown()

        logger.info("TCP console stopped")

    def _teardown(self) -> None:
        self._enabled = False
        self._stopped = True

        if self._listener is not None:
            self._listener.shutdown()
        if self._pool is not None:
            self._pool.shutdown(wait=False)

    def __enter__(self) -> "ConsoleServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def output(self, connection: Connection, text: str) -> None:
        """
        Write one line to a connection.

        Best effort: a no-op when disabled or when the connection has gone,
        and a line that still fails after max_send_attempts is dropped.
        Never raises.
        """
        if not self._enabled or not connection.is_open:
            return

        logger.debug(f"[{connection.id}] Tx: {text}")
        connection.send_line(text, self.config.max_send_attempts)

    def broadcast(self, text: str) -> int:
        """
        Write one line to every open connection.

        Returns:
            Number of connections the line was offered to.
        """
        if not self._enabled:
            return 0

        connections = self.connections
        for conn in connections:
            self.output(conn, text)
        return len(connections)

    # =========================================================================
    # EVENT HANDLING
    # =========================================================================

    def _on_event(self, event: ConnectionEvent) -> bool:
        # Listener thread: queue and return, never block
        pool = self._pool
        if pool is None or not pool.is_running:
            return False
        return pool.submit(self._handle_event, args=(event,), block=False)

    def _handle_event(self, event: ConnectionEvent) -> None:
        conn = event.connection

        if event.kind is EventKind.CONNECTED:
            logger.info(f"[{conn.id}] New client connection from {conn.remote_endpoint}")

        elif event.kind is EventKind.DATA_AVAILABLE:
            try:
                self._handle_data(conn)
            finally:
                if self._listener is not None:
                    self._listener.release(conn)

        elif event.kind is EventKind.CLOSED:
            if conn.close() or conn.peer_closed:
                logger.info(f"[{conn.id}] Client {conn.remote_endpoint} disconnected")

    def _handle_data(self, conn: Connection) -> None:
        lines = conn.read_lines()

        for line in lines:
            if not conn.is_open or not self._enabled:
                return

            logger.debug(f"[{conn.id}] Rx: {line}")

            for reply in self.processor.process(line):
                self.output(conn, reply)
