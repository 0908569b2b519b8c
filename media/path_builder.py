"""Output locations and format selectors handed to yt-dlp."""

from __future__ import annotations

import os
from pathlib import Path

from engine.paths import ArtifactKind, ensure_dir, library_dir

OUTPUT_TEMPLATE = "%(uploader_id)s/%(title)s [%(id)s].%(ext)s"

_AVC_MP4_HEIGHT_FORMAT = (
    "bestvideo[height<={h}][ext=mp4][vcodec^=avc1]+bestaudio[ext=m4a]"
    "/best[height<={h}][ext=mp4][vcodec^=avc1]"
)
_AVC_MP4_FORMAT = "bestvideo[ext=mp4][vcodec^=avc1]+bestaudio[ext=m4a]/best[ext=mp4][vcodec^=avc1]"
AUDIO_FORMAT = "bestaudio[ext=m4a]/bestaudio"

QUALITY_HEIGHTS = {"1080p": 1080, "720p": 720, "480p": 480, "360p": 360}


def quality_to_format(quality: str | None) -> str:
    """Map a quality preset to a yt-dlp ``-f`` selector; unknown presets get the best mp4/avc1 pair."""
    key = str(quality or "").strip().lower()
    if key == "audio":
        return AUDIO_FORMAT
    height = QUALITY_HEIGHTS.get(key)
    if height is not None:
        return _AVC_MP4_HEIGHT_FORMAT.format(h=height)
    return _AVC_MP4_FORMAT


def artifact_output_dir(output_dir, kind: ArtifactKind) -> Path:
    """Directory yt-dlp writes ``kind`` into; comments land beside the info record under metadata/."""
    if ArtifactKind(kind) is ArtifactKind.COMMENTS:
        kind = ArtifactKind.METADATA
    return library_dir(output_dir, kind)


def build_output_template(output_dir, kind: ArtifactKind, create: bool = True) -> str:
    directory = artifact_output_dir(output_dir, kind)
    if create:
        ensure_dir(directory)
    return os.path.join(str(directory), OUTPUT_TEMPLATE)
