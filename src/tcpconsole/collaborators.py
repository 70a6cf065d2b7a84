"""
=============================================================================
EXTERNAL COLLABORATORS
=============================================================================

The console server drives and queries two components it does not own:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   STATE MACHINE                                                      │
    │     post_input(input)        fire-and-forget, owns its own queue     │
    │     get_current_state()      name of the current state               │
    │                                                                      │
    │   RECORDER-STATE PROVIDER                                            │
    │     get_current_recording()  RecordingInfo or None                   │
    │     get_next_recording()     RecordingInfo or None                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Both are treated as already synchronized and fast. They are described here
as typing Protocols so any object with the right methods plugs in.

The small in-memory implementations at the bottom of this module back the
command-line entry point and the tests. They are not a recorder.
=============================================================================
"""

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Protocol

from .protocol.commands import Input


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingInfo:
    """
    Read-only view of a scheduled recording.

    Attributes:
        id: Recording identifier.
        name: Human readable recording name.
        start_time: Scheduled start. Naive values are taken as UTC.
        end_time: Scheduled end. Naive values are taken as UTC.
    """
    id: str
    name: str
    start_time: datetime
    end_time: datetime


class StateMachine(Protocol):
    """Input sink and state source of the recording controller."""

    def post_input(self, input: Input) -> None:
        ...

    def get_current_state(self) -> str:
        ...


class RecorderStateProvider(Protocol):
    """Source of the current and next scheduled recordings."""

    def get_current_recording(self) -> Optional[RecordingInfo]:
        ...

    def get_next_recording(self) -> Optional[RecordingInfo]:
        ...


# =============================================================================
# IN-MEMORY IMPLEMENTATIONS
# =============================================================================


class InMemoryStateMachine:
    """
    Minimal state machine that records inputs and tracks a state name.

    Inputs are kept in a queue (so tests can inspect what was posted) and
    applied to a small transition table.
    """

    TRANSITIONS: Dict[Input, str] = {
        Input.COMMAND_START: "Recording",
        Input.COMMAND_STOP: "Stopped",
        Input.COMMAND_PAUSE: "Paused",
        Input.COMMAND_RESUME: "Recording",
        Input.COMMAND_EXTEND: "Recording",
    }

    def __init__(self, initial_state: str = "Idle"):
        self._state = initial_state
        self._lock = threading.Lock()
        self.inputs: "queue.Queue[Input]" = queue.Queue()

    def post_input(self, input: Input) -> None:
        self.inputs.put(input)
        with self._lock:
            self._state = self.TRANSITIONS.get(input, self._state)
        logger.debug(f"State machine input {input.value}, state now {self._state}")

    def get_current_state(self) -> str:
        with self._lock:
            return self._state

    def posted_inputs(self) -> list:
        """Drain and return every input posted so far."""
        posted = []
        while True:
            try:
                posted.append(self.inputs.get_nowait())
            except queue.Empty:
                return posted


class StaticRecorderState:
    """Recorder-state provider returning fixed recordings."""

    def __init__(
        self,
        current: Optional[RecordingInfo] = None,
        next: Optional[RecordingInfo] = None,
    ):
        self._lock = threading.Lock()
        self._current = current
        self._next = next

    def set_recordings(
        self,
        current: Optional[RecordingInfo],
        next: Optional[RecordingInfo],
    ) -> None:
        with self._lock:
            self._current = current
            self._next = next

    def get_current_recording(self) -> Optional[RecordingInfo]:
        with self._lock:
            return self._current

    def get_next_recording(self) -> Optional[RecordingInfo]:
        with self._lock:
            return self._next
