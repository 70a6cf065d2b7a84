"""
=============================================================================
TCPCONSOLE - Line-Oriented TCP Control Console for a Recording Controller
=============================================================================

Operators and monitoring tools connect over TCP, send one command per line,
and get line-terminated replies:

    $ nc 127.0.0.1 3000
    status
    Recorder-Status: Idle
    start
    bogus
    TCP-Error: Command not found: bogus

Commands either become inputs for the controller's state machine (start,
stop, pause, resume, extend) or are answered directly (status).

=============================================================================
QUICK START
=============================================================================

    from tcpconsole import ConsoleServer, ServerConfig
    from tcpconsole.collaborators import InMemoryStateMachine, StaticRecorderState

    server = ConsoleServer(
        ServerConfig(port=3000),
        InMemoryStateMachine(),
        StaticRecorderState(),
    )
    server.start()          # False if disabled or the port is taken
    ...
    server.stop()

=============================================================================
PACKAGE LAYOUT
=============================================================================

    tcpconsole/
    ├── __init__.py        This file - package exports
    ├── __main__.py        python -m tcpconsole
    ├── config.py          ServerConfig
    ├── errors.py          StartupError, CommandParseError, ...
    ├── collaborators.py   RecordingInfo, collaborator protocols
    ├── client.py          One-shot and interactive line client
    ├── server.py          ConsoleServer - lifecycle and output
    ├── core/
    │   ├── socket_server.py   Listener thread, connection events
    │   ├── connection.py      Snapshot reads, framing, writes
    │   └── thread_pool.py     Bounded callback pool
    └── protocol/
        ├── framer.py          CR / LF / CRLF line framing
        ├── commands.py        Command, Input, mapping table, parser
        ├── dispatcher.py      Routing and command execution
        └── status.py          Status report lines

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import StartupError, CommandParseError, CommandDispatchError
from .collaborators import RecordingInfo, StateMachine, RecorderStateProvider
from .protocol import Command, Input, INPUT_FOR_COMMAND, parse_command
from .server import ConsoleServer

__all__ = [
    "ConsoleServer",
    "ServerConfig",
    "StartupError",
    "CommandParseError",
    "CommandDispatchError",
    "RecordingInfo",
    "StateMachine",
    "RecorderStateProvider",
    "Command",
    "Input",
    "INPUT_FOR_COMMAND",
    "parse_command",
    "__version__",
]
