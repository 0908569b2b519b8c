"""Bulk check of which ids already have a local video and local comments.

The whole library is swept once per batch; every per-id decision is then
made against the in-memory tables built by that sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from engine.paths import (
    collect_files_recursive,
    library_comments_dir,
    library_metadata_dir,
    library_videos_dir,
)
from library.identity import KIND_VIDEO, IdentityIndex, latest_path, sniff_info_id
from metadata.naming import (
    extract_id_from_filename,
    info_base_name,
    is_comment_artifact,
    is_info_file,
    is_video_file,
    sidecar_base_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFileCheckItem:
    id: str
    title: str | None = None
    check_video: bool = True
    check_comments: bool = True


@dataclass
class LocalFileCheckResult:
    id: str
    video_ok: bool
    comments_ok: bool

    def to_dict(self) -> dict:
        return {"id": self.id, "videoOk": self.video_ok, "commentsOk": self.comments_ok}


@dataclass
class LibraryScan:
    video_files: list[Path] = field(default_factory=list)
    video_stems: set[str] = field(default_factory=set)
    video_names: list[str] = field(default_factory=list)
    video_ids: dict[str, list[Path]] = field(default_factory=dict)
    comment_count: int = 0
    comment_ids: set[str] = field(default_factory=set)
    comment_bases: set[str] = field(default_factory=set)
    info_bases_by_id: dict[str, set[str]] = field(default_factory=dict)

    @property
    def video_count(self) -> int:
        return len(self.video_files)


def library_exists(library_root) -> bool:
    return any(
        directory.is_dir()
        for directory in (
            library_videos_dir(library_root),
            library_comments_dir(library_root),
            library_metadata_dir(library_root),
        )
    )


def scan_library(library_root) -> LibraryScan:
    scan = LibraryScan()
    for path in collect_files_recursive(library_videos_dir(library_root)):
        if not is_video_file(path):
            continue
        scan.video_files.append(path)
        scan.video_stems.add(path.stem.lower())
        scan.video_names.append(path.name.lower())
        embedded = extract_id_from_filename(path.name)
        if embedded:
            scan.video_ids.setdefault(embedded.lower(), []).append(path)

    for directory in (library_comments_dir(library_root), library_metadata_dir(library_root)):
        for path in collect_files_recursive(directory):
            if is_comment_artifact(path):
                scan.comment_count += 1
                scan.comment_bases.add(sidecar_base_name(path).lower())
                embedded = extract_id_from_filename(path.name)
                if embedded:
                    scan.comment_ids.add(embedded.lower())
            elif is_info_file(path):
                info_id = extract_id_from_filename(path.name) or sniff_info_id(path)
                if info_id:
                    scan.info_bases_by_id.setdefault(info_id.lower(), set()).add(info_base_name(path).lower())
    return scan


def _title_matches_stem(title_lower: str, stems: Iterable[str]) -> bool:
    return any(stem and (stem == title_lower or title_lower in stem or stem in title_lower) for stem in stems)


def _video_ok(scan: LibraryScan, id_lower: str, title: str | None) -> bool:
    if scan.video_count == 0:
        return False
    if id_lower in scan.video_ids:
        return True
    if scan.info_bases_by_id.get(id_lower, set()) & scan.video_stems:
        return True
    if any(id_lower in name for name in scan.video_names):
        return True
    title_lower = str(title or "").strip().lower()
    return bool(title_lower) and _title_matches_stem(title_lower, scan.video_stems)


def _comments_ok(scan: LibraryScan, id_lower: str) -> bool:
    if scan.comment_count == 0:
        return False
    if id_lower in scan.comment_ids:
        return True
    if scan.info_bases_by_id.get(id_lower, set()) & scan.comment_bases:
        return True
    return scan.comment_count == 1


def _prime_index(index: IdentityIndex, library_root, scan: LibraryScan) -> None:
    entries = {video_id: latest_path(paths) for video_id, paths in scan.video_ids.items()}
    by_stem = {path.stem.lower(): path for path in scan.video_files}
    for video_id, bases in scan.info_bases_by_id.items():
        if video_id in entries:
            continue
        matched = [by_stem[base] for base in bases if base in by_stem]
        if matched:
            entries[video_id] = latest_path(matched)
    index.prime(library_root, KIND_VIDEO, entries)


def verify_batch(
    library_root,
    items: Iterable[LocalFileCheckItem],
    index: IdentityIndex | None = None,
) -> list[LocalFileCheckResult]:
    """Report per id whether the requested video and comments checks pass.

    Checks that were not requested report ok. When none of the library
    directories exist every requested check fails without a scan.
    """
    items = list(items)
    if not library_exists(library_root):
        return [
            LocalFileCheckResult(id=item.id, video_ok=not item.check_video, comments_ok=not item.check_comments)
            for item in items
        ]

    scan = scan_library(library_root)
    if index is not None:
        _prime_index(index, library_root, scan)

    results = []
    for item in items:
        id_lower = str(item.id or "").strip().lower()
        results.append(
            LocalFileCheckResult(
                id=item.id,
                video_ok=_video_ok(scan, id_lower, item.title) if item.check_video else True,
                comments_ok=_comments_ok(scan, id_lower) if item.check_comments else True,
            )
        )
    logger.info(
        "verify_batch_finished root=%s items=%d videos=%d comments=%d",
        library_root,
        len(results),
        scan.video_count,
        scan.comment_count,
    )
    return results
