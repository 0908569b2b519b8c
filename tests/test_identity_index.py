from __future__ import annotations

import json
import os
from pathlib import Path

from library.identity import IdentityIndex, find_comments_file, match_video_file, sniff_info_id


def _touch(path: Path, content: str = "", mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def test_resolve_info_matches_id_in_filename_case_insensitively(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "Other [zzz999].info.json", "{}")
    wanted = _touch(metadata / "chan" / "Show [abc123].info.json", "{}")

    index = IdentityIndex()

    assert index.resolve_info(metadata, "ABC123") == wanted


def test_resolve_info_falls_back_to_content_sniff(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "Renamed.info.json", json.dumps({"id": "abc123"}))
    _touch(metadata / "Another.info.json", json.dumps({"id": "nope"}))

    found = IdentityIndex().resolve_info(metadata, "abc123")

    assert found == metadata / "Renamed.info.json"


def test_second_resolution_is_cache_hit(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "Show [abc123].info.json", "{}")
    index = IdentityIndex()

    first = index.resolve_info(metadata, "abc123")
    second = index.resolve_info(metadata, "abc123")

    assert first == second
    assert index.cache_hits == 1


def test_stale_cache_entry_is_evicted_and_rescanned(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    old = _touch(metadata / "Show [abc123].info.json", "{}")
    index = IdentityIndex()
    assert index.resolve_info(metadata, "abc123") == old

    old.unlink()
    replacement = _touch(metadata / "Show again [abc123].info.json", "{}")

    assert index.resolve_info(metadata, "abc123") == replacement


def test_switching_root_clears_cache(tmp_path: Path) -> None:
    first_root = tmp_path / "one"
    second_root = tmp_path / "two"
    _touch(first_root / "metadata" / "Show [abc123].info.json", "{}")
    _touch(second_root / "metadata" / "Show [abc123].info.json", "{}")
    index = IdentityIndex()

    index.resolve_info(first_root / "metadata", "abc123")
    index.resolve_info(second_root / "metadata", "abc123")

    assert index.root == str(second_root)
    assert index.cache_hits == 0


def test_comments_prefer_live_chat_over_comments_and_info(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "Show [abc123].info.json", "{}")
    _touch(metadata / "Show [abc123].comments.json", "[]")
    chat = _touch(metadata / "Show [abc123].live_chat.json", "")

    assert find_comments_file(metadata, "abc123") == chat


def test_comments_sniff_chat_video_id(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "a.live_chat.json", json.dumps({"video_id": "other"}) + "\n")
    wanted = _touch(metadata / "b.live_chat.json", json.dumps({"video_id": "abc123"}) + "\n")

    assert find_comments_file(metadata, "abc123") == wanted


def test_comments_fall_back_to_sibling_of_sniffed_info(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    _touch(metadata / "Renamed.info.json", json.dumps({"id": "abc123"}))
    sibling = _touch(metadata / "Renamed.comments.json", "[]")
    _touch(metadata / "Unrelated.comments.json", "[]")

    assert find_comments_file(metadata, "abc123") == sibling


def test_comments_single_candidate_is_accepted(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    only = _touch(metadata / "Whatever.comments.json", "[]")

    assert find_comments_file(metadata, "abc123") == only
    assert find_comments_file(tmp_path / "missing", "abc123") is None


def test_video_tiers_named_then_info_base_then_title(tmp_path: Path) -> None:
    videos = tmp_path / "videos"
    metadata = tmp_path / "metadata"
    named = _touch(videos / "Clip [abc123].mp4")
    renamed = _touch(videos / "Renamed.mp4")
    titled = _touch(videos / "My Great Title.webm")
    _touch(metadata / "Renamed.info.json", json.dumps({"id": "def456"}))

    assert match_video_file(videos, "abc123") == (named, True)
    assert match_video_file(videos, "def456", info_dirs=[metadata]) == (renamed, True)
    assert match_video_file(videos, "ghi789", title="my great title") == (titled, True)
    assert match_video_file(videos, "ghi789", title="great") == (titled, True)


def test_video_newest_file_fallback_is_not_cached(tmp_path: Path) -> None:
    videos = tmp_path / "videos"
    _touch(videos / "a.mp4", mtime=1_000)
    newest = _touch(videos / "b.mp4", mtime=2_000)
    index = IdentityIndex()

    assert index.resolve_video(tmp_path, "unknown") == newest
    assert index.cached("video", "unknown") is None


def test_video_named_match_is_cached_and_evictable(tmp_path: Path) -> None:
    named = _touch(tmp_path / "videos" / "Clip [abc123].mp4")
    index = IdentityIndex()

    assert index.resolve_video(tmp_path, "abc123") == named
    assert index.cached("video", "ABC123") == named

    index.evict("abc123")

    assert index.cached("video", "abc123") is None


def test_sniff_info_id_prefers_video_id(tmp_path: Path) -> None:
    path = _touch(tmp_path / "x.info.json", json.dumps({"id": "b", "video_id": "a"}))

    assert sniff_info_id(path) == "a"
    assert sniff_info_id(_touch(tmp_path / "bad.info.json", "{not json")) is None


def test_deeply_nested_sidecars_are_non_matches(tmp_path: Path) -> None:
    metadata = tmp_path / "metadata"
    deep = "[" * 100_000 + "]" * 100_000
    _touch(metadata / "Broken one.live_chat.json", deep)
    _touch(metadata / "Broken two.info.json", deep)
    index = IdentityIndex()

    assert index.resolve_comments(metadata, "zzz999") is None
    assert index.resolve_info(metadata, "zzz999") is None
    assert sniff_info_id(metadata / "Broken two.info.json") is None

    wanted = _touch(metadata / "Renamed.comments.json", json.dumps({"video_id": "zzz999", "comments": []}))

    assert index.resolve_comments(metadata, "zzz999") == wanted
