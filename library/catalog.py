"""Library-wide lookups and deletions built on the identity index."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from engine.json_utils import read_json_file
from engine.paths import (
    collect_files_recursive,
    file_mtime,
    library_comments_dir,
    library_metadata_dir,
    library_thumbnails_dir,
    library_videos_dir,
)
from library.identity import IdentityIndex, sniff_info_id
from metadata.naming import (
    extract_id_from_filename,
    has_timestamp_marker,
    is_comment_artifact,
    is_info_file,
    name_contains_id,
)
from metadata.types import parse_video_metadata_value

logger = logging.getLogger(__name__)


def _sidecar_dirs(output_dir) -> list[Path]:
    return [library_metadata_dir(output_dir), library_comments_dir(output_dir)]


def get_metadata_index(output_dir) -> dict[str, list[str]]:
    """Ids that have an info record and ids that have a comments/chat file."""
    info_ids: set[str] = set()
    chat_ids: set[str] = set()
    for directory in _sidecar_dirs(output_dir):
        for path in collect_files_recursive(directory):
            is_info = is_info_file(path)
            is_chat = is_comment_artifact(path)
            if not is_info and not is_chat:
                continue
            video_id = extract_id_from_filename(path.name) or sniff_info_id(path, ("id", "video_id", "display_id"))
            if not video_id:
                continue
            if is_info:
                info_ids.add(video_id)
            if is_chat:
                chat_ids.add(video_id)
    return {"infoIds": sorted(info_ids), "chatIds": sorted(chat_ids)}


def get_local_metadata_by_ids(output_dir, ids) -> list[dict]:
    """Parse the stored info record of each requested id; ids without one are left out."""
    remaining = {str(video_id).strip().lower(): str(video_id) for video_id in ids if str(video_id).strip()}
    results = []
    for directory in _sidecar_dirs(output_dir):
        for path in collect_files_recursive(directory):
            if not remaining:
                return results
            if not is_info_file(path):
                continue
            extracted = extract_id_from_filename(path.name)
            if extracted is not None and extracted.lower() not in remaining:
                continue
            document = read_json_file(path)
            if not isinstance(document, dict):
                continue
            video_id = extracted or document.get("id") or document.get("display_id")
            if not isinstance(video_id, str) or video_id.lower() not in remaining:
                continue
            remaining.pop(video_id.lower())
            results.append({"id": video_id, "metadata": parse_video_metadata_value(document).to_dict()})
    return results


def info_json_exists(output_dir, video_id: str, index: IdentityIndex) -> bool:
    return any(index.resolve_info(directory, video_id) is not None for directory in _sidecar_dirs(output_dir))


def video_file_exists(output_dir, video_id: str, index: IdentityIndex, title: str | None = None) -> bool:
    return index.resolve_video(output_dir, video_id, title) is not None


def delete_video_files(output_dir, video_id: str, index: IdentityIndex) -> int:
    """Remove every artifact whose name carries ``video_id``; returns the number deleted."""
    deleted = 0
    directories = [
        library_videos_dir(output_dir),
        library_metadata_dir(output_dir),
        library_comments_dir(output_dir),
        library_thumbnails_dir(output_dir),
    ]
    for directory in directories:
        for path in collect_files_recursive(directory):
            if not name_contains_id(path, video_id):
                continue
            try:
                os.remove(path)
            except OSError:
                logger.warning("delete_failed path=%s", path, exc_info=True)
                continue
            deleted += 1
    index.evict(video_id)
    logger.info("video_files_deleted id=%s count=%d", video_id, deleted)
    return deleted


def _timestamped_info_files(output_dir, video_id: str) -> dict[Path, tuple[list[Path], list[Path]]]:
    grouped = {}
    for directory in _sidecar_dirs(output_dir):
        stamped: list[Path] = []
        plain: list[Path] = []
        for path in collect_files_recursive(directory):
            if not is_info_file(path) or not name_contains_id(path, video_id):
                continue
            (stamped if has_timestamp_marker(path.name) else plain).append(path)
        grouped[directory] = (stamped, plain)
    return grouped


def _remove_all(paths) -> int:
    deleted = 0
    for path in paths:
        try:
            os.remove(path)
        except OSError:
            logger.warning("delete_failed path=%s", path, exc_info=True)
            continue
        deleted += 1
    return deleted


def delete_live_metadata_files(output_dir, video_id: str, index: IdentityIndex | None = None) -> int:
    """Delete every timestamped info record left behind by live captures of ``video_id``."""
    deleted = 0
    for stamped, _plain in _timestamped_info_files(output_dir, video_id).values():
        deleted += _remove_all(stamped)
    if index is not None and deleted:
        index.evict(video_id)
    return deleted


def cleanup_old_live_metadata_files(output_dir, video_id: str, index: IdentityIndex | None = None) -> int:
    """Keep one info record per directory.

    When an unstamped record exists every timestamped copy is stale;
    otherwise only the newest timestamped copy survives.
    """
    deleted = 0
    for stamped, plain in _timestamped_info_files(output_dir, video_id).values():
        if plain:
            deleted += _remove_all(stamped)
        elif len(stamped) >= 2:
            newest_first = sorted(stamped, key=file_mtime, reverse=True)
            deleted += _remove_all(newest_first[1:])
    if index is not None and deleted:
        index.evict(video_id)
    return deleted
