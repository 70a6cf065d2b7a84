"""
Unit tests for Connection.
"""

import errno
import logging
import os
import socket
import sys

import pytest

from tcpconsole.core.connection import Connection, ConnectionState


class FailingSocket:
    """Socket stand-in whose writes fail a given number of times."""

    def __init__(self, failures: int = 10 ** 6):
        self.failures = failures
        self.attempts = 0
        self.sent = []
        self.closed = False

    def settimeout(self, timeout):
        pass

    def send(self, data):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise BrokenPipeError("peer went away")
        self.sent.append(bytes(data))
        return len(data)

    def getsockopt(self, level, option):
        return 0

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True


class PartialSocket(FailingSocket):
    """Accepts the first few bytes, fails once, then accepts the rest."""

    def __init__(self, first_chunk: int):
        super().__init__(failures=0)
        self.first_chunk = first_chunk

    def send(self, data):
        self.attempts += 1
        if self.attempts == 1:
            self.sent.append(bytes(data[:self.first_chunk]))
            return self.first_chunk
        if self.attempts == 2:
            raise socket.timeout("timed out")
        self.sent.append(bytes(data))
        return len(data)


class ErroringReadSocket(FailingSocket):
    """Readable socket stand-in whose recv fails with a non-fatal error."""

    def __init__(self, readable: socket.socket):
        super().__init__(failures=0)
        self.readable = readable

    def fileno(self):
        return self.readable.fileno()

    def recv(self, size):
        raise OSError(errno.EIO, "I/O error")


@pytest.fixture
def pair():
    """A connected socket pair: (Connection under test, peer socket)."""
    server_side, peer = socket.socketpair()
    conn = Connection(socket=server_side, address=("10.0.0.5", 4242))

    yield conn, peer

    conn.close()
    peer.close()


class TestProperties:
    """Tests for connection metadata."""

    def test_endpoint(self, pair):
        """Test address helpers."""
        conn, _ = pair

        assert conn.client_ip == "10.0.0.5"
        assert conn.client_port == 4242
        assert conn.remote_endpoint == "10.0.0.5:4242"

    def test_initial_state(self, pair):
        """Test a fresh connection."""
        conn, _ = pair

        assert conn.state == ConnectionState.CONNECTED
        assert conn.is_open
        assert not conn.peer_closed
        assert len(conn.id) == 8


class TestReading:
    """Tests for snapshot reads and framing."""

    def test_no_data_returns_none(self, pair):
        """Test that an idle socket reads as None without blocking."""
        conn, _ = pair

        assert conn.read_available() is None

    def test_returns_exact_bytes(self, pair):
        """Test the bytes read are the bytes sent."""
        conn, peer = pair
        peer.sendall(b"sta")

        assert conn.read_available() == b"sta"
        assert conn.read_available() is None

    def test_eof_marks_peer_closed(self, pair):
        """Test an orderly hang-up."""
        conn, peer = pair
        peer.close()

        assert conn.read_available() == b""
        assert conn.peer_closed

    def test_read_lines_split(self, pair):
        """Test a line split across two reads is framed once."""
        conn, peer = pair

        peer.sendall(b"sta")
        assert conn.read_lines() == []
        assert conn.pending_fragment == b"sta"

        peer.sendall(b"tus\n")
        assert conn.read_lines() == ["status"]
        assert conn.lines_received == 1

    def test_first_line_activates(self, pair):
        """Test CONNECTED -> ACTIVE on the first complete line."""
        conn, peer = pair
        peer.sendall(b"status\n")

        conn.read_lines()

        assert conn.state == ConnectionState.ACTIVE

    def test_read_lines_after_eof(self, pair):
        """Test that a hang-up mid-session yields no lines and no error."""
        conn, peer = pair
        peer.sendall(b"sta")
        conn.read_lines()
        peer.close()

        assert conn.read_lines() == []
        assert conn.peer_closed

    def test_closed_connection_reads_none(self, pair):
        """Test reads after close."""
        conn, peer = pair
        peer.sendall(b"status\n")
        conn.close()

        assert conn.read_available() is None

    def test_transient_read_error(self):
        """Test that a non-fatal recv error reads as empty without closing."""
        readable_end, peer = socket.socketpair()
        peer.sendall(b"x")
        conn = Connection(socket=ErroringReadSocket(readable_end), address=("127.0.0.1", 5000))

        try:
            assert conn.read_available() == b""
            assert conn.peer_closed is False
            assert conn.read_lines() == []
            assert conn.is_open
        finally:
            readable_end.close()
            peer.close()

    @pytest.mark.skipif(sys.platform == "win32", reason="needs dup2 and rlimits")
    def test_high_descriptor_number(self):
        """Test reads on a descriptor numbered above the select() limit."""
        resource = pytest.importorskip("resource")
        high_fd = 2000

        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        if soft <= high_fd:
            if hard != resource.RLIM_INFINITY and hard <= high_fd:
                pytest.skip("descriptor limit too low")
            resource.setrlimit(resource.RLIMIT_NOFILE, (high_fd + 1, hard))

        server_side, peer = socket.socketpair()
        try:
            os.dup2(server_side.fileno(), high_fd)
            high_sock = socket.socket(fileno=high_fd)
            server_side.close()
            conn = Connection(socket=high_sock, address=("127.0.0.1", 5000))

            assert conn.read_available() is None

            peer.sendall(b"status\n")
            assert conn.read_lines() == ["status"]

            conn.close()
        finally:
            server_side.close()
            peer.close()
            resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))


class TestWriting:
    """Tests for send_line."""

    def test_send_line(self, pair):
        """Test one LF-terminated line is written."""
        conn, peer = pair

        assert conn.send_line("Recorder-Status: Idle")

        assert peer.recv(1024) == b"Recorder-Status: Idle\n"
        assert conn.lines_sent == 1

    def test_latin1_encoding(self, pair):
        """Test outbound text uses the single-byte encoding."""
        conn, peer = pair

        conn.send_line("café")

        assert peer.recv(1024) == b"caf\xe9\n"

    def test_send_after_close(self, pair):
        """Test sending on a closed connection is dropped."""
        conn, _ = pair
        conn.close()

        assert conn.send_line("status") is False

    def test_retry_exhaustion(self, caplog):
        """Test that a persistently failing write is tried three times then dropped."""
        sock = FailingSocket()
        conn = Connection(socket=sock, address=("127.0.0.1", 5000))

        with caplog.at_level(logging.WARNING, logger="tcpconsole"):
            assert conn.send_line("Recorder-Status: Idle", max_attempts=3) is False

        assert sock.attempts == 3
        assert sock.sent == []
        assert "Dropping line" in caplog.text

    def test_retry_recovers(self):
        """Test that a transient failure is retried."""
        sock = FailingSocket(failures=2)
        conn = Connection(socket=sock, address=("127.0.0.1", 5000))

        assert conn.send_line("status", max_attempts=3) is True
        assert sock.attempts == 3
        assert sock.sent == [b"status\n"]

    def test_retry_resumes_partial_write(self):
        """Test that a retry after a partial write sends only the remainder."""
        sock = PartialSocket(first_chunk=3)
        conn = Connection(socket=sock, address=("127.0.0.1", 5000))

        assert conn.send_line("status", max_attempts=3) is True
        assert sock.attempts == 3
        assert b"".join(sock.sent) == b"status\n"


class TestLifecycle:
    """Tests for liveness and close."""

    def test_check_alive(self, pair):
        """Test the liveness check on a healthy socket."""
        conn, _ = pair

        assert conn.check_alive()

    def test_close_idempotent(self, pair):
        """Test that only the first close does anything."""
        conn, _ = pair

        assert conn.close() is True
        assert conn.close() is False
        assert conn.state == ConnectionState.CLOSED
        assert not conn.is_open
        assert not conn.check_alive()

    def test_close_reaches_peer(self, pair):
        """Test the peer sees EOF."""
        conn, peer = pair

        conn.close()

        assert peer.recv(1024) == b""

    def test_context_manager(self):
        """Test close on exiting the with block."""
        sock = FailingSocket()

        with Connection(socket=sock, address=("127.0.0.1", 5000)) as conn:
            assert conn.is_open

        assert sock.closed
        assert conn.state == ConnectionState.CLOSED
