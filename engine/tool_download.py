"""Fetch yt-dlp and ffmpeg release binaries into the local tools directory."""

from __future__ import annotations

import logging
import os
import stat
import sys
import tarfile
import zipfile
from pathlib import Path
from typing import Callable

import requests

from engine.paths import TOOLS_DIR, ensure_dir

logger = logging.getLogger(__name__)

YTDLP_RELEASE_BASE = "https://github.com/yt-dlp/yt-dlp/releases/latest/download"
FFMPEG_RELEASE_BASE = "https://github.com/BtbN/FFmpeg-Builds/releases/download/latest"

DOWNLOAD_CHUNK_SIZE = 64 * 1024
PROGRESS_EMIT_BYTES = 256 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 30

ProgressCallback = Callable[[dict], None]


class ToolDownloadError(RuntimeError):
    pass


def _emit(progress: ProgressCallback | None, tool, status, downloaded=0, total=None, message=""):
    if progress is None:
        return
    try:
        progress(
            {
                "tool": tool,
                "status": status,
                "bytesDownloaded": downloaded,
                "bytesTotal": total,
                "message": message,
            }
        )
    except Exception:
        logger.exception("tool_download_progress_callback_failed tool=%s", tool)


def _ytdlp_asset() -> str:
    if sys.platform.startswith("win"):
        return "yt-dlp.exe"
    if sys.platform == "darwin":
        return "yt-dlp_macos"
    return "yt-dlp"


def _ffmpeg_asset() -> str:
    if sys.platform.startswith("win"):
        return "ffmpeg-master-latest-win64-gpl.zip"
    if sys.platform.startswith("linux"):
        return "ffmpeg-master-latest-linux64-gpl.tar.xz"
    raise ToolDownloadError(f"no prebuilt ffmpeg for platform {sys.platform}")


def download_file_with_progress(url, target, tool, progress=None, session=None):
    """Stream ``url`` into a tmp sibling of ``target`` and rename it into place."""
    target = Path(target)
    ensure_dir(target.parent)
    _emit(progress, tool, "downloading", message="download started")
    http = session or requests
    try:
        response = http.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS, allow_redirects=True)
    except requests.RequestException as exc:
        raise ToolDownloadError(f"download failed to start: {exc}") from exc
    with response:
        if not response.ok:
            raise ToolDownloadError(f"HTTP error {response.status_code} for {url}")
        total = response.headers.get("Content-Length")
        total = int(total) if total and total.isdigit() else None
        tmp_path = target.with_name(f"{target.name}.tmp")
        downloaded = 0
        last_emit = 0
        try:
            with open(tmp_path, "wb") as handle:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    downloaded += len(chunk)
                    if downloaded - last_emit > PROGRESS_EMIT_BYTES:
                        last_emit = downloaded
                        _emit(progress, tool, "downloading", downloaded, total, f"{downloaded / 1_048_576:.1f}MB")
        except requests.RequestException as exc:
            raise ToolDownloadError(f"download interrupted: {exc}") from exc
    os.replace(tmp_path, target)
    _emit(progress, tool, "done", downloaded, total, "download complete")
    return target


def _make_executable(path: Path) -> None:
    if not sys.platform.startswith("win"):
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def extract_ffmpeg_binaries(archive_path, target_dir) -> list[Path]:
    """Copy ``bin/ffmpeg`` and ``bin/ffprobe`` out of a release archive."""
    target_dir = Path(target_dir)
    ensure_dir(target_dir)
    wanted = {}
    for name in ("ffmpeg", "ffprobe"):
        binary = f"{name}.exe" if str(archive_path).endswith(".zip") else name
        wanted[f"/bin/{binary}"] = target_dir / binary
    written = []

    def _store(member_name, reader):
        for suffix, target in wanted.items():
            if member_name.replace("\\", "/").endswith(suffix):
                tmp_path = target.with_name(f"{target.name}.tmp")
                with open(tmp_path, "wb") as out:
                    out.write(reader())
                os.replace(tmp_path, target)
                _make_executable(target)
                written.append(target)

    if str(archive_path).endswith(".zip"):
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                _store(info.filename, lambda info=info: archive.read(info))
    else:
        with tarfile.open(archive_path) as archive:
            for member in archive.getmembers():
                if member.isfile():
                    _store(member.name, lambda member=member: archive.extractfile(member).read())
    missing = [target.name for target in wanted.values() if target not in written]
    if missing:
        raise ToolDownloadError(f"archive is missing {', '.join(missing)}")
    return written


def download_yt_dlp(progress=None, session=None, tools_dir=None) -> Path:
    base = Path(tools_dir or TOOLS_DIR) / "yt-dlp"
    target = base / ("yt-dlp.exe" if sys.platform.startswith("win") else "yt-dlp")
    download_file_with_progress(f"{YTDLP_RELEASE_BASE}/{_ytdlp_asset()}", target, "yt-dlp", progress, session)
    _make_executable(target)
    return target


def download_ffmpeg(progress=None, session=None, tools_dir=None) -> list[Path]:
    asset = _ffmpeg_asset()
    base = Path(tools_dir or TOOLS_DIR) / "ffmpeg"
    archive_path = base / asset
    download_file_with_progress(f"{FFMPEG_RELEASE_BASE}/{asset}", archive_path, "ffmpeg", progress, session)
    _emit(progress, "ffmpeg", "extracting", message="extracting")
    try:
        written = extract_ffmpeg_binaries(archive_path, base / "bin")
    finally:
        archive_path.unlink(missing_ok=True)
    _emit(progress, "ffmpeg", "done", message="ffmpeg and ffprobe installed")
    return written


def download_tools(tools, progress=None, session=None, tools_dir=None) -> None:
    handlers = {"yt-dlp": download_yt_dlp, "ffmpeg": download_ffmpeg}
    for tool in tools:
        handler = handlers.get(tool)
        if handler is None:
            raise ToolDownloadError(f"unknown tool: {tool}")
        try:
            handler(progress=progress, session=session, tools_dir=tools_dir)
        except ToolDownloadError as exc:
            _emit(progress, tool, "error", message=str(exc))
            raise
