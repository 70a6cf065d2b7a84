"""
Minimal client for the TCP console.

The protocol has no end-of-reply marker (state-machine commands get no
reply at all), so the client collects lines until the server has been quiet
for a short while.

    python -m tcpconsole.client status
    python -m tcpconsole.client --port 3001 start
    python -m tcpconsole.client              # interactive prompt
"""

import argparse
import socket
import sys
from typing import List


def _read_lines(sock: socket.socket, quiet_time: float) -> List[str]:
    sock.settimeout(quiet_time)
    data = b""
    while True:
        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            break
        if not chunk:
            break
        data += chunk
    return [line for line in data.decode("latin-1").split("\n") if line]


def send_command(
    command: str,
    host: str = "127.0.0.1",
    port: int = 3000,
    timeout: float = 5.0,
    quiet_time: float = 0.3,
) -> List[str]:
    """
    Send one command line and return the reply lines.

    Raises:
        OSError: If the server cannot be reached.
    """
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall((command + "\n").encode("latin-1"))
        return _read_lines(sock, quiet_time)


def interactive_client(host: str, port: int) -> None:
    print(f"TCP console client, connected to {host}:{port}")
    print("Commands: start, stop, pause, resume, extend, status. 'exit' quits.")

    with socket.create_connection((host, port), timeout=5.0) as sock:
        while True:
            try:
                command = input("console> ")
            except (EOFError, KeyboardInterrupt):
                print()
                return

            if command.strip().lower() in ("exit", "q"):
                return

            sock.sendall((command + "\n").encode("latin-1"))
            for line in _read_lines(sock, 0.3):
                print(line)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Send commands to a TCP console")
    parser.add_argument("--host", "-H", default="127.0.0.1")
    parser.add_argument("--port", "-p", type=int, default=3000)
    parser.add_argument("command", nargs="*", help="Command to send; omit for a prompt")
    args = parser.parse_args(argv)

    try:
        if not args.command:
            interactive_client(args.host, args.port)
            return 0

        for line in send_command(" ".join(args.command), args.host, args.port):
            print(line)
        return 0
    except OSError as e:
        print(f"Error: connection to {args.host}:{args.port} failed - {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
