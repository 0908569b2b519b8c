from __future__ import annotations

import json
from pathlib import Path

import pytest

from comments.reader import CommentsNotFoundError, comments_file_exists, find_comments_path, get_comments
from library.identity import IdentityIndex


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _chat_line(text: str, offset: int) -> str:
    return json.dumps(
        {
            "replayChatItemAction": {
                "actions": [
                    {
                        "addChatItemAction": {
                            "item": {
                                "liveChatTextMessageRenderer": {
                                    "authorName": {"simpleText": "viewer"},
                                    "message": {"simpleText": text},
                                }
                            }
                        }
                    }
                ],
                "videoOffsetTimeMsec": str(offset),
            }
        }
    )


def test_live_chat_in_metadata_dir_is_parsed_as_chat(tmp_path: Path) -> None:
    lines = [_chat_line("one", 10), _chat_line("two", 20), _chat_line("three", 30)]
    _write(tmp_path / "metadata" / "chan" / "Stream [abc123].live_chat.json", "\n".join(lines))

    items = get_comments(tmp_path, "abc123", IdentityIndex())

    assert [item.text for item in items] == ["one", "two", "three"]
    assert [item.offset_ms for item in items] == [10, 20, 30]


def test_limit_truncates_items(tmp_path: Path) -> None:
    comments = [{"author": "a", "text": str(n)} for n in range(5)]
    _write(tmp_path / "metadata" / "Show [abc123].comments.json", json.dumps(comments))

    items = get_comments(tmp_path, "abc123", IdentityIndex(), limit=2)

    assert [item.text for item in items] == ["0", "1"]


def test_legacy_comments_dir_is_searched_after_metadata(tmp_path: Path) -> None:
    legacy = _write(tmp_path / "comments" / "Show [abc123].comments.json", json.dumps([{"text": "old"}]))

    assert find_comments_path(tmp_path, "abc123", IdentityIndex()) == legacy
    assert get_comments(tmp_path, "abc123", IdentityIndex())[0].text == "old"


def test_missing_comments_raise(tmp_path: Path) -> None:
    (tmp_path / "metadata").mkdir()

    with pytest.raises(CommentsNotFoundError):
        get_comments(tmp_path, "abc123", IdentityIndex())


def test_info_record_alone_is_not_a_comments_file(tmp_path: Path) -> None:
    _write(tmp_path / "metadata" / "Show [abc123].info.json", json.dumps({"id": "abc123"}))
    index = IdentityIndex()

    assert comments_file_exists(tmp_path, "abc123", index) is False

    _write(tmp_path / "metadata" / "Show [abc123].live_chat.json", _chat_line("hi", 1))
    index.invalidate()

    assert comments_file_exists(tmp_path, "abc123", index) is True
