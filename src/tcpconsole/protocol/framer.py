"""
=============================================================================
LINE FRAMING
=============================================================================

TCP is a byte stream, not a message protocol. A client that writes
"status\\n" once may be read as:

    recv() → "status\\n"          (whole line)
    recv() → "sta"  then "tus\\n"  (split across reads)
    recv() → "start\\nstat"        (one line plus the start of the next)

The framer accumulates bytes per connection and only emits COMPLETE lines.
Whatever follows the last terminator stays in the buffer until more data
arrives.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  feed(b"sta")         → []            buffer: b"sta"                │
    │  feed(b"tus\\r")       → ["status"]    buffer: b""  (pending CR)     │
    │  feed(b"\\nstop\\n")    → ["stop"]      LF completes the CRLF pair    │
    └─────────────────────────────────────────────────────────────────────┘

Terminators: CR, LF and CRLF. Lines are decoded as latin-1, a single-byte
encoding that maps every byte, so decoding never fails.
=============================================================================
"""

import logging
import re
from typing import List


logger = logging.getLogger(__name__)

ENCODING = "latin-1"

_TERMINATOR = re.compile(rb"\r\n|\r|\n")


class LineFramer:
    """
    Accumulating line splitter for one connection.

    Not thread-safe: the owning Connection serializes calls to feed().

    Attributes:
        max_line_length: Largest fragment kept while waiting for a
                         terminator. Longer fragments are dropped.
        lines_framed: Number of complete lines emitted.
        fragments_dropped: Number of oversize fragments discarded.
    """

    def __init__(self, max_line_length: int = 1024):
        self.max_line_length = max_line_length
        self.lines_framed = 0
        self.fragments_dropped = 0
        self._buffer = b""
        # The previous chunk ended with CR, so a leading LF belongs to it
        self._pending_cr = False
        # Inside an oversize fragment, skipping until the next terminator
        self._discarding = False

    @property
    def pending(self) -> bytes:
        """The partial line carried between reads."""
        return self._buffer

    def feed(self, data: bytes) -> List[str]:
        """
        Add received bytes and return every line they complete.

        Args:
            data: Bytes exactly as read from the socket.

        Returns:
            Complete lines, terminators removed, in arrival order.
        """
        if not data:
            return []

        if self._pending_cr and data.startswith(b"\n"):
            data = data[1:]
        self._pending_cr = False

        buffer = self._buffer + data
        lines: List[str] = []
        start = 0

        for match in _TERMINATOR.finditer(buffer):
            raw = buffer[start:match.start()]
            start = match.end()

            if self._discarding:
                # Tail end of an oversize fragment
                self._discarding = False
                continue

            lines.append(raw.decode(ENCODING))

        rest = buffer[start:]
        if buffer.endswith(b"\r") and start == len(buffer):
            # CRLF may be split across two reads
            self._pending_cr = True

        if len(rest) > self.max_line_length:
            logger.warning(
                f"Discarding {len(rest)}-byte fragment with no line terminator "
                f"(limit {self.max_line_length})"
            )
            self.fragments_dropped += 1
            self._discarding = True
            rest = b""

        self._buffer = rest
        self.lines_framed += len(lines)
        return lines

    def reset(self) -> None:
        """Forget any buffered fragment."""
        self._buffer = b""
        self._pending_cr = False
        self._discarding = False
