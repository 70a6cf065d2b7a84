"""
=============================================================================
CONSOLE COMMANDS
=============================================================================

The closed vocabulary of the wire protocol, and the state-machine inputs a
subset of it maps to.

    ┌───────────────┬────────────────────┐
    │ Command       │ Input              │
    ├───────────────┼────────────────────┤
    │ Start         │ CommandStart       │
    │ Stop          │ CommandStop        │
    │ Pause         │ CommandPause       │
    │ Resume        │ CommandResume      │
    │ Extend        │ CommandExtend      │
    │ Status        │ (status report)    │
    │ Quit          │ (unhandled)        │
    └───────────────┴────────────────────┘

The mapping is an explicit table. Adding a Command without adding a row
fails at import time.
=============================================================================
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from ..errors import CommandParseError


class Command(Enum):
    """Protocol verbs accepted on the wire (matched case-insensitively)."""
    START = "Start"
    STOP = "Stop"
    PAUSE = "Pause"
    RESUME = "Resume"
    EXTEND = "Extend"
    STATUS = "Status"
    QUIT = "Quit"

    @property
    def text(self) -> str:
        """Canonical spelling of the command."""
        return self.value


class Input(Enum):
    """Inputs accepted by the recording state machine."""
    COMMAND_START = "CommandStart"
    COMMAND_STOP = "CommandStop"
    COMMAND_PAUSE = "CommandPause"
    COMMAND_RESUME = "CommandResume"
    COMMAND_EXTEND = "CommandExtend"


_INPUT_TABLE: Dict[Command, Optional[Input]] = {
    Command.START: Input.COMMAND_START,
    Command.STOP: Input.COMMAND_STOP,
    Command.PAUSE: Input.COMMAND_PAUSE,
    Command.RESUME: Input.COMMAND_RESUME,
    Command.EXTEND: Input.COMMAND_EXTEND,
    Command.STATUS: None,
    Command.QUIT: None,
}

_missing = set(Command) - set(_INPUT_TABLE)
if _missing:
    raise RuntimeError(f"No input mapping for commands: {sorted(c.name for c in _missing)}")

INPUT_FOR_COMMAND: Mapping[Command, Optional[Input]] = MappingProxyType(_INPUT_TABLE)

# Lowercased spelling -> Command, for case-insensitive exact matching
_BY_TEXT: Dict[str, Command] = {command.value.lower(): command for command in Command}


def parse_command(line: str) -> Command:
    """
    Map a framed line to a Command.

    The match is exact apart from letter case: no trimming, no prefixes,
    no surrounding whitespace.

    Args:
        line: Command text with its line terminator already removed.

    Returns:
        The matching Command.

    Raises:
        CommandParseError: If the line is not a recognized command.
    """
    command = _BY_TEXT.get(line.lower())
    if command is None:
        raise CommandParseError(line)
    return command
