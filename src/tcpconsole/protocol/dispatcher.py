"""
=============================================================================
COMMAND DISPATCH
=============================================================================

Turns a framed line into reply lines, in two steps:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   line ──parse_command()──► Command ──Dispatcher──► Action           │
    │    │                                                 │               │
    │    └── CommandParseError                             ├─ PostInput    │
    │        "TCP-Error: Command not found: <line>"        ├─ ReportStatus │
    │                                                      └─ RejectUnhandled
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Dispatcher decides, CommandProcessor executes. Keeping the decision a plain
value makes the routing rules testable without collaborators.

Resolution order, first match wins:

    1. Command has a state-machine Input    → PostInput(input)
    2. Command is Status                    → ReportStatus
    3. Anything else                        → RejectUnhandled

"Not a command" and "a command this console does not handle" get
different replies.
=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Mapping, Optional, Union

from ..errors import CommandDispatchError, CommandParseError
from .commands import INPUT_FOR_COMMAND, Command, Input, parse_command
from .status import StatusReporter

if TYPE_CHECKING:
    from ..collaborators import StateMachine


logger = logging.getLogger(__name__)

NOT_FOUND_PREFIX = "TCP-Error: Command not found: "
UNHANDLED_PREFIX = "Error: Unhandled console command: "


@dataclass(frozen=True)
class PostInput:
    """Deliver an input to the state machine. No reply."""
    input: Input


@dataclass(frozen=True)
class ReportStatus:
    """Answer with a status report."""


@dataclass(frozen=True)
class RejectUnhandled:
    """Valid command with no behavior on this console."""
    command: Command


Action = Union[PostInput, ReportStatus, RejectUnhandled]


class Dispatcher:
    """
    Routes a parsed Command to an Action.

    Args:
        input_table: Command -> Optional[Input] mapping. Defaults to the
                     protocol's INPUT_FOR_COMMAND table.
    """

    def __init__(self, input_table: Optional[Mapping[Command, Optional[Input]]] = None):
        self.input_table = INPUT_FOR_COMMAND if input_table is None else input_table

    def dispatch(self, command: Command) -> Action:
        mapped = self.input_table.get(command)
        if mapped is not None:
            return PostInput(mapped)

        if command is Command.STATUS:
            return ReportStatus()

        return RejectUnhandled(command)

    def require_handled(self, command: Command, text: Optional[str] = None) -> Action:
        """
        Like dispatch(), but raise for commands with no behavior.

        Raises:
            CommandDispatchError: If the command would be rejected.
        """
        action = self.dispatch(command)
        if isinstance(action, RejectUnhandled):
            raise CommandDispatchError(command, text if text is not None else command.text)
        return action


class CommandProcessor:
    """
    Executes one framed line against the collaborators.

    Shared by every connection; holds no per-connection state.
    """

    def __init__(
        self,
        state_machine: "StateMachine",
        reporter: StatusReporter,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.state_machine = state_machine
        self.reporter = reporter
        self.dispatcher = dispatcher or Dispatcher()

    def process(self, line: str) -> List[str]:
        """
        Handle one command line.

        Args:
            line: Framed line, terminator removed.

        Returns:
            Reply lines to write back, possibly none.
        """
        try:
            command = parse_command(line)
        except CommandParseError as e:
            logger.info(f"Command '{e.text}' not found")
            return [NOT_FOUND_PREFIX + e.text]

        action = self.dispatcher.dispatch(command)

        try:
            return self._execute(action, line)
        except Exception as e:
            # Collaborator failure: log it, reply nothing, keep the session
            logger.exception(f"Command '{line}' failed: {e}")
            return []

    def _execute(self, action: Action, line: str) -> List[str]:
        if isinstance(action, PostInput):
            logger.debug(f"Posting {action.input.value} for '{line}'")
            self.state_machine.post_input(action.input)
            return []

        if isinstance(action, ReportStatus):
            return self.reporter.report()

        logger.warning(f"Unhandled command '{line}'")
        return [UNHANDLED_PREFIX + line]
