"""Application settings constants."""

from __future__ import annotations

# yt-dlp prints this when the player response lacks a title; a rerun usually fixes it.
YTDLP_TITLE_WARNING = "No title found in player responses; falling back to title from initial data"
YTDLP_WARNING_RETRY_MAX = 10
YTDLP_WARNING_RETRY_SLEEP_SECONDS = 0.5

# Sporadic decode crash inside yt-dlp ("'NoneType' object ... decode").
YTDLP_NONE_DECODE_ERROR = "NoneType"
YTDLP_DECODE_MARKER = "decode"
YTDLP_NONE_DECODE_RETRY_MAX = 2
YTDLP_NONE_DECODE_RETRY_SLEEP_SECONDS = 10.0

YTDLP_UPCOMING_MARKER = "This live event will begin"

# Markers of an HLS/DASH live stream being recorded instead of a finished video.
LIVE_STREAM_MARKERS = (
    "live/1",
    "live_broadcast",
    "/live_",
    "playlist_type/DVR",
)
LIVE_STREAM_STDOUT_MARKERS = ("Output #0, mpegts,",)
LIVE_STREAM_LINE_PREFIX = "frame="

INFO_STAGE_TIMEOUT_SECONDS = 30.0
COMMENTS_STAGE_TIMEOUT_SECONDS = 120.0
PROCESS_KILL_GRACE_SECONDS = 2.0
PROCESS_POLL_INTERVAL_SECONDS = 0.1
READER_JOIN_TIMEOUT_SECONDS = 1.0

METADATA_LOOKUP_SOCKET_TIMEOUT_SECONDS = 15.0
TOOL_CHECK_TIMEOUT_SECONDS = 10.0
YTDLP_UPDATE_TIMEOUT_SECONDS = 300.0

DEFAULT_DOWNLOAD_QUALITY = "best"
LIVE_WAIT_FOR_VIDEO_SECONDS = 60

SETTINGS_SCHEMA_VERSION = 1
