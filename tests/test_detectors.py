from __future__ import annotations

from download.detectors import (
    STREAM_STDERR,
    STREAM_STDOUT,
    LiveStreamDetector,
    MonotonicFlag,
    TransientErrorDetector,
    UpcomingEventDetector,
    WarningDetector,
    default_download_detectors,
    default_info_detectors,
)


def test_flag_only_moves_forward() -> None:
    flag = MonotonicFlag()
    assert not flag

    flag.set()
    flag.set()

    assert flag.is_set()


def test_warning_detector_reports_first_fire_only() -> None:
    detector = WarningDetector()
    line = "WARNING: [youtube] No title found in player responses; falling back to title from initial data"

    assert detector.feed(line, STREAM_STDERR) is True
    assert detector.feed(line, STREAM_STDERR) is False
    assert detector.fired


def test_transient_detector_needs_both_markers_across_lines() -> None:
    detector = TransientErrorDetector()

    detector.feed("ERROR: 'NoneType' object has no attribute", STREAM_STDERR)
    assert not detector.fired

    detector.feed("while trying to decode response", STREAM_STDOUT)

    assert detector.fired


def test_live_detector_markers() -> None:
    for line, stream in (
        ("[hlsnative] Downloading m3u8 manifest live/1", STREAM_STDERR),
        ("frame=  120 fps= 30", STREAM_STDERR),
        ("Output #0, mpegts, to 'pipe:'", STREAM_STDOUT),
        ("https://example/playlist_type/DVR/index.m3u8", STREAM_STDERR),
    ):
        detector = LiveStreamDetector()
        assert detector.feed(line, stream), line


def test_live_detector_ignores_mpegts_on_stderr() -> None:
    detector = LiveStreamDetector()

    detector.feed("Output #0, mpegts, to 'pipe:'", STREAM_STDERR)

    assert not detector.fired
    assert detector.aborts is True


def test_upcoming_detector() -> None:
    detector = UpcomingEventDetector()

    detector.feed("ERROR: [youtube] abc: This live event will begin in 3 hours.", STREAM_STDERR)

    assert detector.fired
    assert detector.aborts is False


def test_factories_build_fresh_detectors() -> None:
    first = default_info_detectors()
    second = default_info_detectors()

    assert [d.name for d in first] == ["warning", "transient", "live", "upcoming"]
    assert [d.name for d in default_download_detectors()] == ["warning", "transient"]
    assert first[0] is not second[0]
