"""Line classifiers that watch yt-dlp output while it runs.

Every detector owns a set-only flag. Reader threads call :meth:`feed` for
each line of stdout and stderr; the supervisor reads the flags after (or,
for aborting detectors, during) the run. A flag never clears within an
attempt, so concurrent readers cannot lose a detection.
"""

from __future__ import annotations

import threading

from config.settings import (
    LIVE_STREAM_LINE_PREFIX,
    LIVE_STREAM_MARKERS,
    LIVE_STREAM_STDOUT_MARKERS,
    YTDLP_DECODE_MARKER,
    YTDLP_NONE_DECODE_ERROR,
    YTDLP_TITLE_WARNING,
    YTDLP_UPCOMING_MARKER,
)

STREAM_STDOUT = "stdout"
STREAM_STDERR = "stderr"


class MonotonicFlag:
    """A flag that can only go from unset to set."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def __bool__(self) -> bool:
        return self._event.is_set()


class Detector:
    name = "detector"
    # Aborting detectors end the attempt as soon as they fire.
    aborts = False

    def __init__(self) -> None:
        self.flag = MonotonicFlag()

    @property
    def fired(self) -> bool:
        return self.flag.is_set()

    def matches(self, line: str, stream: str) -> bool:
        raise NotImplementedError

    def feed(self, line: str, stream: str) -> bool:
        if not self.flag.is_set() and self.matches(line, stream):
            self.flag.set()
            return True
        return False


class WarningDetector(Detector):
    name = "warning"

    def __init__(self, marker: str = YTDLP_TITLE_WARNING) -> None:
        super().__init__()
        self.marker = marker

    def matches(self, line, stream):
        return self.marker in line


class TransientErrorDetector(Detector):
    """Tracks the two halves of the NoneType decode crash, which may land on different lines."""

    name = "transient"

    def __init__(self) -> None:
        super().__init__()
        self._saw_none_type = MonotonicFlag()
        self._saw_decode = MonotonicFlag()

    def matches(self, line, stream):
        if YTDLP_NONE_DECODE_ERROR in line:
            self._saw_none_type.set()
        if YTDLP_DECODE_MARKER in line:
            self._saw_decode.set()
        return self._saw_none_type.is_set() and self._saw_decode.is_set()


class LiveStreamDetector(Detector):
    name = "live"
    aborts = True

    def matches(self, line, stream):
        if line.lstrip().startswith(LIVE_STREAM_LINE_PREFIX):
            return True
        if any(marker in line for marker in LIVE_STREAM_MARKERS):
            return True
        return stream == STREAM_STDOUT and any(marker in line for marker in LIVE_STREAM_STDOUT_MARKERS)


class UpcomingEventDetector(Detector):
    name = "upcoming"

    def matches(self, line, stream):
        return YTDLP_UPCOMING_MARKER in line


def default_download_detectors():
    return [WarningDetector(), TransientErrorDetector()]


def default_info_detectors():
    return [WarningDetector(), TransientErrorDetector(), LiveStreamDetector(), UpcomingEventDetector()]
