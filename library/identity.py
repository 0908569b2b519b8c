"""Map a content id to the artifact that belongs to it.

Downloaded files are not always named ``<title> [<id>].<ext>``: legacy
imports lost the id, renames dropped it, repeated live fetches added
timestamps. Each resolver walks a fixed ladder of tiers and stops at the
first tier with a match; inside a tier the most recently modified file
wins.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable

from engine.json_utils import iter_json_lines, parse_json_text
from engine.paths import (
    collect_files_recursive,
    file_mtime,
    library_metadata_dir,
    library_videos_dir,
    normalized_library_root,
)
from metadata.naming import (
    COMMENTS_JSON_SUFFIX,
    LIVE_CHAT_JSON_SUFFIX,
    info_base_name,
    is_comments_file,
    is_info_file,
    is_live_chat_file,
    is_video_file,
    name_contains_id,
)

logger = logging.getLogger(__name__)

KIND_VIDEO = "video"
KIND_COMMENTS = "comments"
KIND_INFO = "info"

INFO_ID_KEYS = ("id", "display_id")
CHAT_ID_KEYS = ("video_id",)


def _normalize_id(video_id: str) -> str:
    return str(video_id or "").strip().lower()


def latest_path(paths: Iterable[Path]) -> Path | None:
    best = None
    best_mtime = None
    for path in paths:
        mtime = file_mtime(path)
        if best is None or mtime > best_mtime:
            best = path
            best_mtime = mtime
    return best


def _value_mentions_id(value, keys, id_lower: str) -> bool:
    if not isinstance(value, dict):
        return False
    for key in keys:
        field = value.get(key)
        if isinstance(field, str) and field.strip().lower() == id_lower:
            return True
    return False


def file_mentions_id(path: Path, keys, video_id: str) -> bool:
    """Content-sniff ``path`` for one of ``keys`` equal to ``video_id``.

    The whole document is tried first, then each line as its own JSON value.
    Unreadable or malformed files simply do not match.
    """
    id_lower = _normalize_id(video_id)
    if not id_lower:
        return False
    try:
        raw = path.read_bytes()
    except OSError:
        return False
    document = parse_json_text(raw)
    if _value_mentions_id(document, keys, id_lower):
        return True
    if document is not None:
        return False
    return any(_value_mentions_id(line, keys, id_lower) for line in iter_json_lines(raw))


def sniff_info_id(path: Path, keys=("video_id",) + INFO_ID_KEYS) -> str | None:
    """Return the first id-like field of a JSON record, or ``None``."""
    try:
        raw = path.read_bytes()
    except OSError:
        return None
    document = parse_json_text(raw)
    if not isinstance(document, dict):
        return None
    for key in keys:
        value = document.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class IdentityIndex:
    """Resolver for video, comments and info artifacts with a per-root cache.

    The cache maps ``(kind, id)`` to the resolved path for the currently
    active library root. Switching roots drops every entry; a hit is
    re-checked on disk and evicted when the file has gone away.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._root: str | None = None
        self._entries: dict[tuple[str, str], Path] = {}
        self.cache_hits = 0
        self.cache_misses = 0

    @property
    def root(self) -> str | None:
        with self._lock:
            return self._root

    def ensure_root(self, output_dir) -> str:
        root = normalized_library_root(output_dir)
        with self._lock:
            if self._root != root:
                if self._root is not None:
                    logger.info("identity_index_root_switched old=%s new=%s", self._root, root)
                self._root = root
                self._entries.clear()
        return root

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def evict(self, video_id: str) -> None:
        id_lower = _normalize_id(video_id)
        with self._lock:
            for key in [key for key in self._entries if key[1] == id_lower]:
                del self._entries[key]

    def prime(self, output_dir, kind: str, entries: dict[str, Path]) -> None:
        """Record ``id -> path`` pairs discovered by a bulk scan."""
        self.ensure_root(output_dir)
        with self._lock:
            for video_id, path in entries.items():
                id_lower = _normalize_id(video_id)
                if id_lower:
                    self._entries[(kind, id_lower)] = Path(path)

    def cached(self, kind: str, video_id: str) -> Path | None:
        with self._lock:
            return self._entries.get((kind, _normalize_id(video_id)))

    def _lookup(self, kind: str, id_lower: str) -> Path | None:
        with self._lock:
            path = self._entries.get((kind, id_lower))
            if path is None:
                self.cache_misses += 1
                return None
            if path.is_file():
                self.cache_hits += 1
                return path
            del self._entries[(kind, id_lower)]
            self.cache_misses += 1
        logger.debug("identity_index_stale_entry kind=%s id=%s path=%s", kind, id_lower, path)
        return None

    def _store(self, kind: str, id_lower: str, path: Path | None) -> Path | None:
        if path is not None:
            with self._lock:
                self._entries[(kind, id_lower)] = path
        return path

    def resolve_info(self, directory, video_id: str) -> Path | None:
        id_lower = _normalize_id(video_id)
        directory = Path(directory)
        if not id_lower or not directory.is_dir():
            return None
        self.ensure_root(directory)
        cache_kind = f"{KIND_INFO}:{directory.name.lower()}"
        cached = self._lookup(cache_kind, id_lower)
        if cached is not None:
            return cached
        return self._store(cache_kind, id_lower, find_info_file(directory, video_id))

    def resolve_comments(self, directory, video_id: str) -> Path | None:
        id_lower = _normalize_id(video_id)
        directory = Path(directory)
        if not id_lower or not directory.is_dir():
            return None
        self.ensure_root(directory)
        cache_kind = f"{KIND_COMMENTS}:{directory.name.lower()}"
        cached = self._lookup(cache_kind, id_lower)
        if cached is not None:
            return cached
        return self._store(cache_kind, id_lower, find_comments_file(directory, video_id))

    def resolve_video(self, output_dir, video_id: str, title: str | None = None) -> Path | None:
        id_lower = _normalize_id(video_id)
        videos_dir = library_videos_dir(output_dir)
        if not id_lower or not videos_dir.is_dir():
            return None
        self.ensure_root(output_dir)
        cached = self._lookup(KIND_VIDEO, id_lower)
        if cached is not None:
            return cached
        found, identified = match_video_file(
            videos_dir,
            video_id,
            title,
            info_dirs=(videos_dir, library_metadata_dir(output_dir)),
        )
        if not identified:
            return found
        return self._store(KIND_VIDEO, id_lower, found)


def find_info_file(directory: Path, video_id: str) -> Path | None:
    infos = [path for path in collect_files_recursive(directory) if is_info_file(path)]
    named = [path for path in infos if name_contains_id(path, video_id)]
    if named:
        return latest_path(named)
    sniffed = [path for path in infos if file_mentions_id(path, INFO_ID_KEYS + CHAT_ID_KEYS, video_id)]
    return latest_path(sniffed)


def _sibling_comment_file(info_path: Path, directory: Path) -> Path | None:
    base = info_base_name(info_path)
    for suffix in (LIVE_CHAT_JSON_SUFFIX, COMMENTS_JSON_SUFFIX):
        for parent in (info_path.parent, directory):
            candidate = parent / f"{base}{suffix}"
            if candidate.is_file():
                return candidate
    return None


def find_comments_file(directory: Path, video_id: str) -> Path | None:
    files = collect_files_recursive(directory)
    chats = [path for path in files if is_live_chat_file(path)]
    comments = [path for path in files if is_comments_file(path)]
    infos = [path for path in files if is_info_file(path)]

    for group in (chats, comments, infos):
        named = [path for path in group if name_contains_id(path, video_id)]
        if named:
            return latest_path(named)

    for group in (chats, comments):
        sniffed = [path for path in group if file_mentions_id(path, CHAT_ID_KEYS, video_id)]
        if sniffed:
            return latest_path(sniffed)

    matched_infos = [path for path in infos if file_mentions_id(path, INFO_ID_KEYS, video_id)]
    if matched_infos:
        info_path = latest_path(matched_infos)
        return _sibling_comment_file(info_path, directory) or info_path

    candidates = chats + comments + infos
    if len(candidates) == 1:
        return candidates[0]
    return None


def _info_bases_for(video_id: str, info_dirs: Iterable[Path]) -> set[str]:
    bases = set()
    for directory in info_dirs:
        for path in collect_files_recursive(directory):
            if not is_info_file(path):
                continue
            if name_contains_id(path, video_id) or file_mentions_id(path, ("video_id", "id"), video_id):
                bases.add(info_base_name(path).lower())
    return bases


def match_video_file(
    videos_dir: Path,
    video_id: str,
    title: str | None = None,
    info_dirs: Iterable[Path] = (),
) -> tuple[Path | None, bool]:
    """Return ``(path, identified)``; ``identified`` is False for the newest-file guess."""
    videos = [path for path in collect_files_recursive(videos_dir) if is_video_file(path)]
    if not videos:
        return None, False

    named = [path for path in videos if name_contains_id(path, video_id)]
    if named:
        return latest_path(named), True

    info_bases = _info_bases_for(video_id, info_dirs)
    if info_bases:
        by_info = [path for path in videos if path.stem.lower() in info_bases]
        if by_info:
            return latest_path(by_info), True

    title_lower = str(title or "").strip().lower()
    if title_lower:
        exact = [path for path in videos if path.stem.lower() == title_lower]
        if exact:
            return latest_path(exact), True
        partial = [
            path
            for path in videos
            if path.stem and (title_lower in path.stem.lower() or path.stem.lower() in title_lower)
        ]
        if partial:
            return latest_path(partial), True

    # A lone file is taken as-is; otherwise the newest download is the best guess.
    return latest_path(videos), len(videos) == 1
