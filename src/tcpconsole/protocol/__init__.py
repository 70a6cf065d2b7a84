"""
Wire protocol: line framing, command vocabulary, dispatch and status
reports. Nothing in this package touches sockets.
"""

from .commands import Command, Input, INPUT_FOR_COMMAND, parse_command
from .framer import LineFramer
from .status import StatusReporter, minutes_until
from .dispatcher import (
    Action,
    CommandProcessor,
    Dispatcher,
    PostInput,
    RejectUnhandled,
    ReportStatus,
)

__all__ = [
    "Command",
    "Input",
    "INPUT_FOR_COMMAND",
    "parse_command",
    "LineFramer",
    "StatusReporter",
    "minutes_until",
    "Action",
    "CommandProcessor",
    "Dispatcher",
    "PostInput",
    "RejectUnhandled",
    "ReportStatus",
]
