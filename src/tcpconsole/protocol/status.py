"""
Status report rendering.

A report is the current state-machine state followed by an optional block
for the current recording and an optional block for the next one:

    Recorder-Status: Recording
    CurrentRecording-Id: 8d2f...
    CurrentRecording-Name: Lecture 12
    CurrentRecording-StartTime: 2026-10-19 09:00:00
    CurrentRecording-EndTime: 2026-10-19 10:00:00
    CurrentRecording-MinutesUntilStartTime: -14
    CurrentRecording-MinutesUntilEndTime: 45
    NextRecording-...  (same six keys)
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, List, Optional

if TYPE_CHECKING:
    from ..collaborators import RecorderStateProvider, RecordingInfo, StateMachine


DEFAULT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_MINUTE = timedelta(minutes=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def minutes_until(target: datetime, now: datetime) -> int:
    """
    Whole minutes from now until target, truncated toward zero.

    Negative once the target is in the past. 90 seconds ahead is 1,
    90 seconds ago is -1.
    """
    return int((_as_aware(target) - _as_aware(now)) / _MINUTE)


class StatusReporter:
    """
    Builds the multi-line answer to the Status command.

    Args:
        state_machine: Source of the current state name.
        recorder: Source of the current and next recordings.
        clock: Returns "now"; injectable for tests.
        time_format: strftime format for localized start/end times.
    """

    def __init__(
        self,
        state_machine: "StateMachine",
        recorder: "RecorderStateProvider",
        clock: Callable[[], datetime] = utc_now,
        time_format: str = DEFAULT_TIME_FORMAT,
    ):
        self.state_machine = state_machine
        self.recorder = recorder
        self.clock = clock
        self.time_format = time_format

    def report(self) -> List[str]:
        current = self.recorder.get_current_recording()
        upcoming = self.recorder.get_next_recording()
        now = self.clock()

        lines = [f"Recorder-Status: {self.state_machine.get_current_state()}"]
        lines.extend(self._recording_block("CurrentRecording", current, now))
        lines.extend(self._recording_block("NextRecording", upcoming, now))
        return lines

    def _recording_block(
        self,
        prefix: str,
        recording: Optional["RecordingInfo"],
        now: datetime,
    ) -> List[str]:
        if recording is None:
            return []

        return [
            f"{prefix}-Id: {recording.id}",
            f"{prefix}-Name: {recording.name}",
            f"{prefix}-StartTime: {self._localize(recording.start_time)}",
            f"{prefix}-EndTime: {self._localize(recording.end_time)}",
            f"{prefix}-MinutesUntilStartTime: {minutes_until(recording.start_time, now)}",
            f"{prefix}-MinutesUntilEndTime: {minutes_until(recording.end_time, now)}",
        ]

    def _localize(self, value: datetime) -> str:
        # astimezone() with no argument converts to the host's local zone
        return _as_aware(value).astimezone().strftime(self.time_format)
