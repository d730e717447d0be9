"""Encoding progress parsed from FFmpeg diagnostic output.

FFmpeg announces the input duration once ("Duration: 00:02:00.00, start: ...")
and then rewrites a status line ("... time=00:01:00.00 bitrate=...") with a
carriage return. Chunks are buffered into logical lines so announcements split
across reads are still seen.
"""

import logging
import re
from typing import Callable, Optional

from action_encode.modules.transcoding.models import ProgressState


DURATION_PATTERN = re.compile(r"(\d+):(\d+):(\d+)\.(\d+), start:")
POSITION_PATTERN = re.compile(r"time=(\d+):(\d+):(\d+)\.(\d+) bitrate=")

_LINE_BREAK = re.compile(r"\r\n|\r|\n")

# Longest unterminated line kept while waiting for a line break
MAX_PENDING_CHARS = 64 * 1024


def to_milliseconds(hours: int, minutes: int, seconds: int) -> int:
    return ((hours * 60 + minutes) * 60 + seconds) * 1000


def _match_milliseconds(match: re.Match) -> int:
    hours, minutes, seconds = (int(group) for group in match.groups()[:3])
    return to_milliseconds(hours, minutes, seconds)


class ProgressTracker:
    """Tracks progress of one FFmpeg invocation.

    Args:
        job_uid: Job identifier used in progress log lines
        output: Output file being produced
        logger: Logging sink
        on_progress: Optional callback receiving each emitted percentage
    """

    def __init__(
        self,
        job_uid: str,
        output: str,
        logger: logging.Logger,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.job_uid = job_uid
        self.output = output
        self.logger = logger
        self.on_progress = on_progress
        self.state = ProgressState()
        self._pending = ""
        # Offsets into the pending line already consumed by each pattern
        self._duration_offset = 0
        self._position_offset = 0

    def on_data(self, chunk: str) -> None:
        """Consume one chunk of diagnostic output."""
        self._pending += chunk
        *lines, self._pending = _LINE_BREAK.split(self._pending)

        for line in lines:
            self._scan(line)
            self._duration_offset = 0
            self._position_offset = 0

        if len(self._pending) > MAX_PENDING_CHARS:
            self._pending = ""
            self._duration_offset = 0
            self._position_offset = 0
            return

        self._scan(self._pending)

    def flush(self) -> None:
        """Discard any unterminated line at end of stream.

        The tail has already been scanned by on_data.
        """
        self._pending = ""
        self._duration_offset = 0
        self._position_offset = 0

    def _scan(self, text: str) -> None:
        if self.state.total_duration_ms == 0:
            match = DURATION_PATTERN.search(text, self._duration_offset)
            if match:
                self._duration_offset = match.end()
                self.state.total_duration_ms = _match_milliseconds(match)

        for match in POSITION_PATTERN.finditer(text, self._position_offset):
            self._position_offset = match.end()
            self.state.current_position_ms = _match_milliseconds(match)
            self._emit()

    def _emit(self) -> None:
        percentage = self.state.percentage
        if percentage is None:
            return

        self.logger.info(
            f"[{self.job_uid}] [{self.output}] encoding progress {percentage}%..."
        )
        if self.on_progress:
            self.on_progress(percentage)
