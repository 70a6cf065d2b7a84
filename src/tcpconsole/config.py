"""
=============================================================================
CONSOLE SERVER CONFIGURATION
=============================================================================

Centralized configuration for the TCP control console.

The configuration is read ONCE at startup and never reloaded. Every
component that needs a setting receives the same ServerConfig value
explicitly - there is no process-wide settings object.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m tcpconsole --port 3001                           │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TCPCONSOLE_PORT=3001 python -m tcpconsole                  │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass(frozen=True)
class ServerConfig:
    """
    Immutable configuration snapshot for the console server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SWITCH
    - enabled

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, send_timeout

    TRANSPORT POLICY
    - idle_time_ms, max_send_attempts, verify_connection_interval_ms

    THREADING
    - max_worker_threads

    PROTOCOL
    - max_line_length, time_format

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SWITCH
    # ─────────────────────────────────────────────────────────────────────

    enabled: bool = True
    """
    Run the console server at all.
    When False, start() leaves the server disabled and every protocol
    operation becomes a no-op.
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Local operators only
    - "0.0.0.0" - Any interface (monitoring hosts on the network)
    """

    port: int = 3000
    """
    TCP port to listen on. 0 lets the OS pick a free port (tests).
    """

    backlog: int = 16
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 4096
    """Largest single snapshot read from a client socket, in bytes."""

    send_timeout: Optional[float] = 5.0
    """
    Socket timeout for one write attempt, in seconds.
    A slow consumer fails the attempt instead of stalling a worker.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT POLICY
    # ─────────────────────────────────────────────────────────────────────

    idle_time_ms: int = 50
    """
    Poll interval of the listener thread in milliseconds.
    This is how long the listener sleeps waiting for a new connection or
    for data before checking again.
    """

    max_send_attempts: int = 3
    """Write attempts per outbound line before it is dropped."""

    verify_connection_interval_ms: int = 0
    """
    Interval of the connection liveness sweep in milliseconds.
    0 disables the sweep.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    max_worker_threads: int = 100
    """
    Maximum number of connection callbacks running concurrently.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL
    # ─────────────────────────────────────────────────────────────────────

    max_line_length: int = 1024
    """
    Longest partial command line kept while waiting for its terminator.
    A longer fragment is discarded.
    """

    time_format: str = "%Y-%m-%d %H:%M:%S"
    """strftime format for recording start/end times in status reports."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    @property
    def idle_time(self) -> float:
        """Poll interval in seconds."""
        return self.idle_time_ms / 1000.0

    @property
    def verify_connection_interval(self) -> float:
        """Liveness sweep interval in seconds (0.0 = disabled)."""
        return self.verify_connection_interval_ms / 1000.0

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TCPCONSOLE_ENABLED            Run the server (default: true)
        TCPCONSOLE_HOST               Bind address (default: 127.0.0.1)
        TCPCONSOLE_PORT               Port (default: 3000)
        TCPCONSOLE_IDLE_TIME_MS       Poll interval (default: 50)
        TCPCONSOLE_MAX_WORKERS        Worker threads (default: 100)
        TCPCONSOLE_MAX_SEND_ATTEMPTS  Write attempts (default: 3)
        TCPCONSOLE_VERIFY_INTERVAL_MS Liveness sweep (default: 0, off)
        TCPCONSOLE_LOG_LEVEL          Logging level (default: INFO)

        =====================================================================

        Raises:
            ValueError: If a numeric variable is not an integer.
        """
        return cls(
            enabled=_env_bool(os.getenv("TCPCONSOLE_ENABLED", "true")),
            host=os.getenv("TCPCONSOLE_HOST", "127.0.0.1"),
            port=_env_int("TCPCONSOLE_PORT", 3000),
            idle_time_ms=_env_int("TCPCONSOLE_IDLE_TIME_MS", 50),
            max_worker_threads=_env_int("TCPCONSOLE_MAX_WORKERS", 100),
            max_send_attempts=_env_int("TCPCONSOLE_MAX_SEND_ATTEMPTS", 3),
            verify_connection_interval_ms=_env_int("TCPCONSOLE_VERIFY_INTERVAL_MS", 0),
            log_level=os.getenv("TCPCONSOLE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by the server before binding. An invalid configuration
        disables the console instead of crashing the host process.

        Raises:
            ValueError: Describing the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.idle_time_ms < 1:
            raise ValueError("idle_time_ms must be >= 1")

        if self.max_worker_threads < 1:
            raise ValueError("max_worker_threads must be >= 1")

        if self.max_send_attempts < 1:
            raise ValueError("max_send_attempts must be >= 1")

        if self.verify_connection_interval_ms < 0:
            raise ValueError("verify_connection_interval_ms must be >= 0")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 64:
            raise ValueError("buffer_size must be >= 64")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        if self.send_timeout is not None and self.send_timeout <= 0:
            raise ValueError("send_timeout must be > 0")
