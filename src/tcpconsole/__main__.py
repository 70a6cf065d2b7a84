"""
=============================================================================
TCP CONSOLE CLI ENTRY POINT
=============================================================================

Runs the console against the in-memory state machine and recorder state,
which is enough to exercise the protocol with nc, telnet or
`python -m tcpconsole.client`.

=============================================================================
USAGE
=============================================================================

    # Run with defaults (127.0.0.1:3000)
    python -m tcpconsole

    # Listen on all interfaces
    python -m tcpconsole --host 0.0.0.0 --port 3001

    # Verbose: log every received and sent line
    python -m tcpconsole --log-level DEBUG

Settings not given on the command line come from TCPCONSOLE_* environment
variables (see ServerConfig.from_env), then the defaults.

=============================================================================
"""

import argparse
import dataclasses
import logging
import os
import signal
import sys
import threading

from . import __version__
from .collaborators import InMemoryStateMachine, StaticRecorderState
from .config import ServerConfig
from .server import ConsoleServer


logger = logging.getLogger("tcpconsole")


def setup_logging(level_name: str) -> None:
    """Configure root logging the way the console expects."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("tcpconsole").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcpconsole",
        description="Line-oriented TCP control console for a recording controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tcpconsole                        # Run with defaults
  python -m tcpconsole --port 3001            # Custom port
  python -m tcpconsole --host 0.0.0.0         # Listen on all interfaces
  python -m tcpconsole -l DEBUG               # Log Rx/Tx lines
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 3000)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum concurrent connection callbacks (default: 100)"
    )

    parser.add_argument(
        "--idle-ms",
        type=int,
        default=None,
        help="Listener poll interval in milliseconds (default: 50)"
    )

    parser.add_argument(
        "--send-attempts",
        type=int,
        default=None,
        help="Write attempts per reply line (default: 3)"
    )

    parser.add_argument(
        "--verify-ms",
        type=int,
        default=None,
        help="Connection liveness sweep interval, 0 = off (default: 0)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--disabled",
        action="store_true",
        help="Start with the console switched off (process runs, port stays closed)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tcpconsole {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Overlay command-line arguments on the environment configuration."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "max_worker_threads": args.workers,
        "idle_time_ms": args.idle_ms,
        "max_send_attempts": args.send_attempts,
        "verify_connection_interval_ms": args.verify_ms,
        "log_level": args.log_level,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if args.disabled:
        overrides["enabled"] = False

    return dataclasses.replace(ServerConfig.from_env(), **overrides)


def load_config(args: argparse.Namespace) -> ServerConfig:
    """
    Build the configuration, falling back to a disabled console when the
    environment holds an unusable value.
    """
    try:
        return config_from_args(args)
    except ValueError as e:
        logger.error(f"TCP console disabled, invalid configuration: {e}")
        return ServerConfig(enabled=False, log_level=args.log_level or "INFO")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or os.getenv("TCPCONSOLE_LOG_LEVEL", "INFO"))
    config = load_config(args)

    server = ConsoleServer(config, InMemoryStateMachine(), StaticRecorderState())
    stop_requested = threading.Event()

    def shutdown_handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
        stop_requested.set()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    if not server.start():
        logger.warning("Console is not listening; waiting for shutdown signal")

    try:
        # Short waits keep the main thread responsive to signals
        while not stop_requested.wait(0.5):
            pass
    finally:
        server.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
