from __future__ import annotations

from pathlib import Path

from download.commands import (
    InvocationOptions,
    build_comments_argv,
    build_info_argv,
    build_lookup_opts,
    build_video_argv,
    cookies_args,
    redact_argv,
)

URL = "https://www.youtube.com/watch?v=abc123"


def test_info_argv_skips_download_and_writes_info(tmp_path: Path) -> None:
    argv = build_info_argv(InvocationOptions(yt_dlp_path="/bin/yt-dlp"), URL, tmp_path)

    assert argv[0] == "/bin/yt-dlp"
    assert argv[-1] == URL
    assert "--skip-download" in argv
    assert "--write-info-json" in argv
    template = argv[argv.index("-o") + 1]
    assert template.startswith(str(tmp_path / "metadata"))
    assert template.endswith("%(title)s [%(id)s].%(ext)s")


def test_comments_argv_requests_live_chat_as_json(tmp_path: Path) -> None:
    argv = build_comments_argv(InvocationOptions(), URL, tmp_path)

    assert "--write-comments" in argv
    assert argv[argv.index("--sub-langs") + 1] == "live_chat"
    assert argv[argv.index("--sub-format") + 1] == "json"
    assert argv[argv.index("-o") + 1].startswith(str(tmp_path / "metadata"))


def test_video_argv_live_recording_flags(tmp_path: Path) -> None:
    regular = build_video_argv(InvocationOptions(), URL, tmp_path, quality="720p")
    live = build_video_argv(InvocationOptions(), URL, tmp_path, is_live=True)

    assert "--live-from-start" not in regular
    assert "height<=720" in regular[regular.index("-f") + 1]
    assert live[live.index("--wait-for-video") + 1] == "60"
    assert "--live-from-start" in live
    assert regular[regular.index("-o") + 1].startswith(str(tmp_path / "videos"))


def test_shared_options_are_passed_through(tmp_path: Path) -> None:
    options = InvocationOptions(
        ffmpeg_path="/opt/ffmpeg",
        cookies_source="browser",
        cookies_browser="firefox",
        remote_components="ejs:github",
    )

    argv = build_info_argv(options, URL, tmp_path)

    assert argv[argv.index("--ffmpeg-location") + 1] == "/opt/ffmpeg"
    assert argv[argv.index("--cookies-from-browser") + 1] == "firefox"
    assert argv[argv.index("--remote-components") + 1] == "ejs:github"


def test_cookie_sources() -> None:
    assert cookies_args(None, None, None) == []
    assert cookies_args("file", " /tmp/c.txt ", None) == ["--cookies", "/tmp/c.txt"]
    assert cookies_args(None, "/tmp/c.txt", None) == ["--cookies", "/tmp/c.txt"]
    assert cookies_args("browser", "/tmp/c.txt", "  ") == []
    assert cookies_args("none", "/tmp/c.txt", "chrome") == []


def test_lookup_opts_download_nothing() -> None:
    opts = build_lookup_opts(InvocationOptions(cookies_file="/tmp/c.txt"))

    assert opts["skip_download"] is True
    assert opts["noplaylist"] is True
    assert opts["quiet"] is True
    assert opts["cookiefile"] == "/tmp/c.txt"
    assert "cookiesfrombrowser" not in opts


def test_lookup_opts_follow_cookie_source() -> None:
    browser = build_lookup_opts(InvocationOptions(cookies_source="browser", cookies_browser="firefox"))
    disabled = build_lookup_opts(InvocationOptions(cookies_source="none", cookies_file="/tmp/c.txt"))

    assert browser["cookiesfrombrowser"] == ("firefox",)
    assert "cookiefile" not in browser
    assert "cookiefile" not in disabled
    assert "cookiesfrombrowser" not in disabled


def test_redact_argv_hides_cookie_file() -> None:
    rendered = redact_argv(["yt-dlp", "--cookies", "/home/me/secret.txt", URL])

    assert "secret" not in rendered
    assert "--cookies '<redacted>'" in rendered
