"""Wrapper utilities for retrieving media information using ffprobe."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass

FFPROBE_TIMEOUT_SECONDS = 15


@dataclass
class MediaInfo:
    video_codec: str | None = None
    audio_codec: str | None = None
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    container: str | None = None

    def to_dict(self) -> dict:
        return {
            "videoCodec": self.video_codec,
            "audioCodec": self.audio_codec,
            "width": self.width,
            "height": self.height,
            "duration": self.duration,
            "container": self.container,
        }


def _first_text(*values) -> str | None:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def _dimension(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


def parse_probe_payload(payload: dict) -> MediaInfo:
    """Reduce ffprobe's JSON to the first video stream, the first audio stream and the container."""
    info = MediaInfo()
    fmt = payload.get("format") or {}
    try:
        info.duration = float(fmt.get("duration"))
    except (TypeError, ValueError):
        info.duration = None
    info.container = _first_text(fmt.get("format_name"))

    for stream in payload.get("streams") or []:
        if not isinstance(stream, dict):
            continue
        codec_type = stream.get("codec_type")
        if codec_type == "video" and info.video_codec is None:
            info.video_codec = _first_text(
                stream.get("codec_name"),
                stream.get("codec_tag_string"),
                stream.get("codec_long_name"),
            )
            info.width = _dimension(stream.get("width"))
            info.height = _dimension(stream.get("height"))
        elif codec_type == "audio" and info.audio_codec is None:
            info.audio_codec = _first_text(stream.get("codec_name"), stream.get("codec_long_name"))
    return info


def probe_media(file_path: str, ffprobe_path: str | None = None) -> MediaInfo:
    """Return codec, resolution, duration and container details for ``file_path``.

    Raises:
        RuntimeError: If ``ffprobe`` execution fails or the command is missing.
        ValueError: If ffprobe output is not valid JSON.
    """
    command = [
        ffprobe_path or "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "stream=codec_type,codec_name,codec_tag_string,codec_long_name,width,height",
        "-show_entries",
        "format=duration,format_name",
        "-of",
        "json",
        str(file_path),
    ]

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=True,
            timeout=FFPROBE_TIMEOUT_SECONDS,
        )
    except FileNotFoundError as exc:
        raise RuntimeError("ffprobe is not installed or not available in PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise RuntimeError(f"ffprobe timed out while probing: {file_path}") from exc
    except subprocess.CalledProcessError as exc:
        stderr_text = (exc.stderr or "").strip()
        raise RuntimeError(f"ffprobe failed for {file_path}: {stderr_text or exc}") from exc

    try:
        payload = json.loads(completed.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError(f"ffprobe returned invalid JSON for {file_path}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"ffprobe returned unexpected output for {file_path}")
    return parse_probe_payload(payload)
