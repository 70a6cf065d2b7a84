"""
=============================================================================
CORE TRANSPORT COMPONENTS
=============================================================================

The networking plumbing under the console protocol:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds and listens on the console port                            │
    │  • One listener thread polls the listening socket and every         │
    │    connection every idle_time_ms                                    │
    │  • Emits CONNECTED / DATA_AVAILABLE / CLOSED events                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ events
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Runs event handlers, at most max_worker_threads at once          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ handler reads / writes
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Snapshot reads into a per-connection line framer                 │
    │  • Serialized line writes with retry                                │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer, ConnectionEvent, EventKind
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Listening socket + poll loop
    "ConnectionEvent",  # One connection event, handed to the pool
    "EventKind",        # CONNECTED / DATA_AVAILABLE / CLOSED
    "Connection",       # Client socket wrapper: framing, writes, close
    "ConnectionState",  # Connection lifecycle states
    "ThreadPool",       # Bounded callback workers
]
