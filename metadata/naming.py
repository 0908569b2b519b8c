"""On-disk naming conventions for archived artifacts.

Downloaded files follow ``<title> [<id>].<ext>``; sidecars append
``.info.json``, ``.comments.json`` or ``.live_chat.json`` to the same base
name. All comparisons are case-insensitive.
"""

from __future__ import annotations

import re
from pathlib import Path

INFO_JSON_SUFFIX = ".info.json"
COMMENTS_JSON_SUFFIX = ".comments.json"
LIVE_CHAT_JSON_SUFFIX = ".live_chat.json"

VIDEO_EXTENSIONS = ("mp4", "webm", "mkv", "m4v")

_BRACKETED_ID_RE = re.compile(r"\[[^\]]*\]")


def _name_of(path: str | Path) -> str:
    return Path(path).name


def extract_id_from_filename(name: str | Path) -> str | None:
    """Return the id between the last ``[`` and the last ``]`` of ``name``."""
    text = _name_of(name)
    start = text.rfind("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return None
    candidate = text[start + 1 : end].strip()
    return candidate or None


def info_base_name(path: str | Path) -> str:
    """Return the base shared by an info record and its media (``Show [id]``)."""
    stem = Path(path).stem
    if stem.lower().endswith(".info"):
        return stem[: -len(".info")]
    return stem


def sidecar_base_name(path: str | Path) -> str:
    name = _name_of(path)
    lowered = name.lower()
    for suffix in (LIVE_CHAT_JSON_SUFFIX, COMMENTS_JSON_SUFFIX, INFO_JSON_SUFFIX):
        if lowered.endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


def is_info_file(path: str | Path) -> bool:
    return _name_of(path).lower().endswith(INFO_JSON_SUFFIX)


def is_comments_file(path: str | Path) -> bool:
    return _name_of(path).lower().endswith(COMMENTS_JSON_SUFFIX)


def is_live_chat_file(path: str | Path) -> bool:
    return _name_of(path).lower().endswith(LIVE_CHAT_JSON_SUFFIX)


def is_comment_artifact(path: str | Path) -> bool:
    return is_live_chat_file(path) or is_comments_file(path)


def is_video_file(path: str | Path) -> bool:
    suffix = Path(path).suffix.lower().lstrip(".")
    return suffix in VIDEO_EXTENSIONS


def name_contains_id(path: str | Path, video_id: str) -> bool:
    needle = str(video_id or "").lower()
    return bool(needle) and needle in _name_of(path).lower()


def has_timestamp_marker(name: str | Path) -> bool:
    """True for names stamped with a capture time, e.g. ``Show 2026-02-14 02_09 [id].info.json``."""
    text = _BRACKETED_ID_RE.sub("", _name_of(name))
    digits = sum(1 for ch in text if ch.isdigit())
    return digits >= 8 and ("_" in text or "-" in text)
