"""yt-dlp argv construction for the video, info and comments modes, plus in-process lookup options."""

from __future__ import annotations

import shlex
from dataclasses import dataclass

from config.settings import LIVE_WAIT_FOR_VIDEO_SECONDS, METADATA_LOOKUP_SOCKET_TIMEOUT_SECONDS
from engine.paths import ArtifactKind
from engine.tooling import resolve_override
from media.path_builder import build_output_template, quality_to_format

COOKIE_SOURCE_BROWSER = "browser"
COOKIE_SOURCE_FILE = "file"

_REDACTED_OPTIONS = {"--cookies"}


@dataclass(frozen=True)
class InvocationOptions:
    yt_dlp_path: str = "yt-dlp"
    ffmpeg_path: str | None = None
    cookies_file: str | None = None
    cookies_source: str | None = None
    cookies_browser: str | None = None
    remote_components: str | None = None


def _cookie_choice(source: str | None, cookies_file: str | None, browser: str | None) -> tuple[str, str] | None:
    source = str(source or "").strip()
    if source == COOKIE_SOURCE_BROWSER:
        browser_name = resolve_override(browser)
        if browser_name:
            return COOKIE_SOURCE_BROWSER, browser_name
    use_file = source == COOKIE_SOURCE_FILE or (not source and cookies_file is not None)
    if use_file:
        path = resolve_override(cookies_file)
        if path:
            return COOKIE_SOURCE_FILE, path
    return None


def cookies_args(source: str | None, cookies_file: str | None, browser: str | None) -> list[str]:
    choice = _cookie_choice(source, cookies_file, browser)
    if choice is None:
        return []
    kind, value = choice
    if kind == COOKIE_SOURCE_BROWSER:
        return ["--cookies-from-browser", value]
    return ["--cookies", value]


def _shared_args(options: InvocationOptions) -> list[str]:
    argv = []
    if options.ffmpeg_path:
        argv.extend(["--ffmpeg-location", str(options.ffmpeg_path)])
    argv.extend(cookies_args(options.cookies_source, options.cookies_file, options.cookies_browser))
    remote = resolve_override(options.remote_components)
    if remote:
        argv.extend(["--remote-components", remote])
    return argv


def build_video_argv(
    options: InvocationOptions,
    url: str,
    output_dir,
    quality: str | None = None,
    is_live: bool = False,
) -> list[str]:
    argv = [
        options.yt_dlp_path,
        "--no-playlist",
        "--newline",
        "--progress",
        "--sleep-subtitles", "5",
        "--sleep-requests", "0.75",
        "--sleep-interval", "10",
        "--max-sleep-interval", "20",
        "-f", quality_to_format(quality),
        "--merge-output-format", "mp4",
        "-o", build_output_template(output_dir, ArtifactKind.VIDEO),
    ]
    if is_live:
        argv.extend(["--live-from-start", "--wait-for-video", str(LIVE_WAIT_FOR_VIDEO_SECONDS)])
    argv.extend(_shared_args(options))
    argv.append(str(url))
    return argv


def build_info_argv(options: InvocationOptions, url: str, output_dir) -> list[str]:
    argv = [
        options.yt_dlp_path,
        "--no-playlist",
        "--newline",
        "--progress",
        "--skip-download",
        "--write-info-json",
        "-o", build_output_template(output_dir, ArtifactKind.METADATA),
    ]
    argv.extend(_shared_args(options))
    argv.append(str(url))
    return argv


def build_comments_argv(options: InvocationOptions, url: str, output_dir) -> list[str]:
    argv = [
        options.yt_dlp_path,
        "--no-playlist",
        "--newline",
        "--progress",
        "--skip-download",
        "--write-comments",
        "--write-subs",
        "--sub-langs", "live_chat",
        "--sub-format", "json",
        "-o", build_output_template(output_dir, ArtifactKind.COMMENTS),
    ]
    argv.extend(_shared_args(options))
    argv.append(str(url))
    return argv


def build_lookup_opts(options: InvocationOptions) -> dict:
    """``YoutubeDL`` params for a metadata lookup that downloads nothing."""
    opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "cachedir": False,
        "socket_timeout": METADATA_LOOKUP_SOCKET_TIMEOUT_SECONDS,
    }
    choice = _cookie_choice(options.cookies_source, options.cookies_file, options.cookies_browser)
    if choice is not None:
        kind, value = choice
        if kind == COOKIE_SOURCE_BROWSER:
            opts["cookiesfrombrowser"] = (value,)
        else:
            opts["cookiefile"] = value
    return opts


def redact_argv(argv) -> str:
    """Render argv as a single shell-escaped command, hiding the cookies file path."""
    redacted = []
    i = 0
    while i < len(argv):
        token = str(argv[i])
        if token in _REDACTED_OPTIONS and i + 1 < len(argv):
            redacted.extend([token, "<redacted>"])
            i += 2
            continue
        redacted.append(token)
        i += 1
    return shlex.join(redacted)
