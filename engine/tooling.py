"""Locate, verify and update the external yt-dlp / ffmpeg / ffprobe binaries."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path

from config.settings import TOOL_CHECK_TIMEOUT_SECONDS, YTDLP_UPDATE_TIMEOUT_SECONDS
from engine.paths import TOOLS_DIR

logger = logging.getLogger(__name__)

UPDATE_STATUS_SKIPPED = "skipped"
UPDATE_STATUS_FAILED = "failed"
UPDATE_STATUS_UP_TO_DATE = "up-to-date"
UPDATE_STATUS_UPDATED = "updated"

_UP_TO_DATE_MARKERS = ("up to date", "up-to-date")


def resolve_override(value: str | None) -> str | None:
    """Trim a user override; blank means "not set"."""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def _exe(name: str) -> str:
    return f"{name}.exe" if sys.platform.startswith("win") else name


def _tool_candidates(name: str) -> list[Path]:
    binary = _exe(name)
    candidates = [TOOLS_DIR / name / binary, TOOLS_DIR / binary]
    if name in {"ffmpeg", "ffprobe"}:
        candidates.append(TOOLS_DIR / "ffmpeg" / "bin" / binary)
    candidates.append(Path.home() / ".local" / "bin" / binary)
    return candidates


def _resolve_tool(name: str, env_key: str, override: str | None = None) -> str:
    explicit = resolve_override(override)
    if explicit:
        return explicit
    env_value = resolve_override(os.environ.get(env_key))
    if env_value and Path(env_value).exists():
        return env_value
    for candidate in _tool_candidates(name):
        if candidate.is_file():
            return str(candidate)
    return shutil.which(_exe(name)) or _exe(name)


def resolve_yt_dlp(override: str | None = None) -> str:
    return _resolve_tool("yt-dlp", "YTDLP_PATH", override)


def resolve_ffmpeg(override: str | None = None) -> str:
    return _resolve_tool("ffmpeg", "FFMPEG_PATH", override)


def resolve_ffprobe(override: str | None = None) -> str:
    return _resolve_tool("ffprobe", "FFPROBE_PATH", override)


def can_run_tool(tool: str, args: list[str]) -> bool:
    try:
        completed = subprocess.run(
            [tool, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=TOOL_CHECK_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return completed.returncode == 0


def check_tooling(yt_dlp_path=None, ffmpeg_path=None, ffprobe_path=None) -> dict:
    yt_dlp = resolve_yt_dlp(yt_dlp_path)
    ffmpeg = resolve_ffmpeg(ffmpeg_path)
    ffprobe = resolve_ffprobe(ffprobe_path)
    return {
        "ytDlp": {"ok": can_run_tool(yt_dlp, ["--version"]), "path": yt_dlp},
        "ffmpeg": {"ok": can_run_tool(ffmpeg, ["-version"]), "path": ffmpeg},
        "ffprobe": {"ok": can_run_tool(ffprobe, ["-version"]), "path": ffprobe},
    }


def update_yt_dlp(yt_dlp_path=None) -> dict:
    """Run ``yt-dlp -U`` and classify the result as updated, up-to-date, failed or skipped."""
    yt_dlp = resolve_yt_dlp(yt_dlp_path)
    if not can_run_tool(yt_dlp, ["--version"]):
        return {"status": UPDATE_STATUS_SKIPPED, "stdout": "", "stderr": ""}
    try:
        completed = subprocess.run(
            [yt_dlp, "-U"],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=YTDLP_UPDATE_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("yt_dlp_update_failed error=%s", exc)
        return {"status": UPDATE_STATUS_FAILED, "stdout": "", "stderr": f"yt-dlp update failed: {exc}"}
    stdout = (completed.stdout or "").strip()
    stderr = (completed.stderr or "").strip()
    if completed.returncode != 0:
        status = UPDATE_STATUS_FAILED
    elif any(marker in f"{stdout}\n{stderr}".lower() for marker in _UP_TO_DATE_MARKERS):
        status = UPDATE_STATUS_UP_TO_DATE
    else:
        status = UPDATE_STATUS_UPDATED
    logger.info("yt_dlp_update status=%s", status)
    return {"status": status, "stdout": stdout, "stderr": stderr}
