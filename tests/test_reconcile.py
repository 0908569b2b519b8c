from __future__ import annotations

import json
from pathlib import Path

from library.identity import IdentityIndex
from library.reconcile import LocalFileCheckItem, scan_library, verify_batch


def _touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_empty_library_fails_requested_checks_without_scanning(tmp_path: Path, monkeypatch) -> None:
    def _fail_scan(_root):
        raise AssertionError("library should not be scanned")

    monkeypatch.setattr("library.reconcile.scan_library", _fail_scan)
    items = [
        LocalFileCheckItem(id="a"),
        LocalFileCheckItem(id="b", check_video=False),
        LocalFileCheckItem(id="c", check_comments=False),
    ]

    results = verify_batch(tmp_path / "missing", items)

    assert [(r.id, r.video_ok, r.comments_ok) for r in results] == [
        ("a", False, False),
        ("b", True, False),
        ("c", False, True),
    ]


def test_embedded_ids_satisfy_both_checks(tmp_path: Path) -> None:
    _touch(tmp_path / "videos" / "chan" / "Clip [ABC123].mp4")
    _touch(tmp_path / "metadata" / "chan" / "Clip [ABC123].live_chat.json")
    _touch(tmp_path / "metadata" / "chan" / "Other [zzz].comments.json")

    result = verify_batch(tmp_path, [LocalFileCheckItem(id="abc123")])[0]

    assert result.video_ok is True
    assert result.comments_ok is True


def test_info_base_links_renamed_video_and_comments(tmp_path: Path) -> None:
    _touch(tmp_path / "videos" / "Renamed.mp4")
    _touch(tmp_path / "videos" / "Unrelated.mp4")
    _touch(tmp_path / "metadata" / "Renamed.info.json", json.dumps({"video_id": "xyz789"}))
    _touch(tmp_path / "metadata" / "Renamed.comments.json", "[]")
    _touch(tmp_path / "comments" / "Unrelated.comments.json", "[]")

    result = verify_batch(tmp_path, [LocalFileCheckItem(id="xyz789")])[0]

    assert result.video_ok is True
    assert result.comments_ok is True


def test_title_match_is_lenient(tmp_path: Path) -> None:
    _touch(tmp_path / "videos" / "My Long Title.mp4")
    _touch(tmp_path / "videos" / "Another.mp4")

    results = verify_batch(
        tmp_path,
        [
            LocalFileCheckItem(id="q1", title="long title", check_comments=False),
            LocalFileCheckItem(id="q2", title="nothing alike", check_comments=False),
            LocalFileCheckItem(id="q3", check_comments=False),
        ],
    )

    assert [r.video_ok for r in results] == [True, False, False]


def test_single_comment_file_is_accepted_for_any_id(tmp_path: Path) -> None:
    _touch(tmp_path / "comments" / "Something.comments.json", "[]")

    result = verify_batch(tmp_path, [LocalFileCheckItem(id="whatever", check_video=False)])[0]

    assert result.comments_ok is True


def test_no_videos_means_video_not_ok(tmp_path: Path) -> None:
    (tmp_path / "videos").mkdir()

    result = verify_batch(tmp_path, [LocalFileCheckItem(id="a", title="a", check_comments=False)])[0]

    assert result.video_ok is False
    assert result.to_dict() == {"id": "a", "videoOk": False, "commentsOk": True}


def test_scan_primes_identity_index(tmp_path: Path) -> None:
    clip = _touch(tmp_path / "videos" / "Clip [abc123].mp4")
    renamed = _touch(tmp_path / "videos" / "Renamed.mp4")
    _touch(tmp_path / "metadata" / "Renamed.info.json", json.dumps({"id": "def456"}))
    index = IdentityIndex()

    verify_batch(tmp_path, [LocalFileCheckItem(id="abc123")], index=index)

    assert index.cached("video", "abc123") == clip
    assert index.cached("video", "def456") == renamed
    assert index.resolve_video(tmp_path, "abc123") == clip
    assert index.cache_hits == 1


def test_scan_library_collects_tables(tmp_path: Path) -> None:
    _touch(tmp_path / "videos" / "Clip [abc].webm")
    _touch(tmp_path / "videos" / "notes.txt")
    _touch(tmp_path / "metadata" / "Clip [abc].info.json", "{}")
    _touch(tmp_path / "metadata" / "Clip [abc].live_chat.json")

    scan = scan_library(tmp_path)

    assert scan.video_count == 1
    assert scan.video_ids.keys() == {"abc"}
    assert scan.comment_ids == {"abc"}
    assert scan.info_bases_by_id == {"abc": {"clip [abc]"}}
