"""
pytest configuration and fixtures.
"""

import socket
import time
from datetime import datetime, timedelta, timezone
from typing import Generator, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tcpconsole import ConsoleServer, ServerConfig
from tcpconsole.collaborators import InMemoryStateMachine, RecordingInfo, StaticRecorderState
from tcpconsole.protocol import CommandProcessor, StatusReporter


NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Frozen clock at NOW."""
    return lambda: NOW


@pytest.fixture
def current_recording() -> RecordingInfo:
    """Recording that started 10 minutes ago and ends in 50."""
    return RecordingInfo(
        id="rec-001",
        name="Lecture 12",
        start_time=NOW - timedelta(minutes=10),
        end_time=NOW + timedelta(minutes=50),
    )


@pytest.fixture
def next_recording() -> RecordingInfo:
    """Recording starting in 90 seconds."""
    return RecordingInfo(
        id="rec-002",
        name="Lab Session",
        start_time=NOW + timedelta(seconds=90),
        end_time=NOW + timedelta(hours=1, seconds=90),
    )


@pytest.fixture
def state_machine() -> InMemoryStateMachine:
    return InMemoryStateMachine(initial_state="Idle")


@pytest.fixture
def recorder() -> StaticRecorderState:
    return StaticRecorderState()


@pytest.fixture
def processor(state_machine, recorder, clock) -> CommandProcessor:
    return CommandProcessor(state_machine, StatusReporter(state_machine, recorder, clock=clock))


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: OS-assigned port, fast polling."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        idle_time_ms=10,
        max_worker_threads=4,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class LineClient:
    """Blocking line client for talking to a running console."""

    def __init__(self, address, timeout: float = 2.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self._buffer = b""

    def send(self, data: bytes):
        self.sock.sendall(data)

    def send_line(self, text: str):
        self.send(text.encode("latin-1") + b"\n")

    def read_line(self) -> str:
        """Read one LF-terminated line; raises socket.timeout if none arrives."""
        while b"\n" not in self._buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError("server closed the connection")
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line.decode("latin-1")

    def read_lines(self, count: int) -> List[str]:
        return [self.read_line() for _ in range(count)]

    def expect_silence(self, wait: float = 0.3) -> bool:
        """True if nothing arrives within wait seconds."""
        if self._buffer:
            return False
        self.sock.settimeout(wait)
        try:
            chunk = self.sock.recv(4096)
        except socket.timeout:
            return True
        finally:
            self.sock.settimeout(2.0)
        self._buffer += chunk
        return False

    def close(self):
        self.sock.close()


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate until true or timeout."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def console_server(config, state_machine, recorder, clock) -> Generator[ConsoleServer, None, None]:
    """A started console server on a free port."""
    server = ConsoleServer(config, state_machine, recorder, clock=clock)
    assert server.start()

    yield server

    server.stop()


@pytest.fixture
def wait_until():
    return wait_for


@pytest.fixture
def connect(console_server):
    """Factory for additional clients; all are closed on teardown."""
    clients = []

    def _connect() -> LineClient:
        count = len(console_server.connections)
        line_client = LineClient(console_server.address)
        clients.append(line_client)
        assert wait_for(lambda: len(console_server.connections) > count)
        return line_client

    yield _connect

    for line_client in clients:
        line_client.close()


@pytest.fixture
def client(connect) -> LineClient:
    """A client connected to the running console."""
    return connect()
