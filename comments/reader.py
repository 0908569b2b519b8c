"""Load the stored comments for one video from the library."""

from __future__ import annotations

import logging
from pathlib import Path

from comments.models import CommentItem
from comments.parser import parse
from engine.paths import library_comments_dir, library_metadata_dir
from library.identity import IdentityIndex
from metadata.naming import is_info_file, is_live_chat_file

logger = logging.getLogger(__name__)


class CommentsNotFoundError(LookupError):
    """No comments, chat or info record could be matched to the requested id."""


def find_comments_path(output_dir, video_id: str, index: IdentityIndex) -> Path | None:
    # Comments used to be written to their own directory; newer runs use metadata/.
    for directory in (library_metadata_dir(output_dir), library_comments_dir(output_dir)):
        found = index.resolve_comments(directory, video_id)
        if found is not None:
            return found
    return None


def get_comments(output_dir, video_id: str, index: IdentityIndex, limit: int | None = None) -> list[CommentItem]:
    path = find_comments_path(output_dir, video_id, index)
    if path is None:
        raise CommentsNotFoundError(f"comments not found for {video_id}")
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise CommentsNotFoundError(f"comments unreadable for {video_id}: {exc}") from exc
    items = parse(raw, is_chat_format=is_live_chat_file(path))
    logger.debug("comments_loaded id=%s path=%s count=%d", video_id, path, len(items))
    if limit is not None and limit >= 0:
        return items[:limit]
    return items


def comments_file_exists(output_dir, video_id: str, index: IdentityIndex) -> bool:
    """True when a dedicated comments or chat file exists; an info record alone does not count."""
    path = find_comments_path(output_dir, video_id, index)
    return path is not None and not is_info_file(path)
