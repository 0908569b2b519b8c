"""Structured video metadata parsed from downloader info records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

LIVE_STATUS_IS_LIVE = "is_live"
LIVE_STATUS_IS_UPCOMING = "is_upcoming"

CLASSIFICATION_LIVE = "live"
CLASSIFICATION_UPCOMING = "upcoming"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _count(value: Any) -> int | None:
    parsed = _int(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


def _bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str)]


@dataclass
class VideoMetadata:
    """The subset of an info record the library cares about; every field is optional."""

    id: str | None = None
    title: str | None = None
    channel: str | None = None
    thumbnail: str | None = None
    url: str | None = None
    webpage_url: str | None = None
    duration_sec: int | None = None
    upload_date: str | None = None
    release_timestamp: int | None = None
    timestamp: int | None = None
    live_status: str | None = None
    is_live: bool | None = None
    was_live: bool | None = None
    view_count: int | None = None
    like_count: int | None = None
    comment_count: int | None = None
    tags: list[str] | None = None
    categories: list[str] | None = None
    description: str | None = None
    channel_id: str | None = None
    uploader_id: str | None = None
    channel_url: str | None = None
    uploader_url: str | None = None
    availability: str | None = None
    language: str | None = None
    audio_language: str | None = None
    age_limit: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {_camel(key): value for key, value in asdict(self).items()}


def parse_video_metadata_value(value: Any) -> VideoMetadata:
    """Build a :class:`VideoMetadata` from a decoded info record; wrong-typed fields become ``None``."""
    if not isinstance(value, dict):
        return VideoMetadata()
    duration = value.get("duration")
    if isinstance(duration, float):
        duration = int(duration)
    return VideoMetadata(
        id=_str(value.get("id")),
        title=_str(value.get("title")),
        channel=_str(value.get("channel")) or _str(value.get("uploader")) or _str(value.get("channel_title")),
        thumbnail=_str(value.get("thumbnail")),
        url=_str(value.get("url")),
        webpage_url=_str(value.get("webpage_url")),
        duration_sec=_count(duration),
        upload_date=_str(value.get("upload_date")),
        release_timestamp=_int(value.get("release_timestamp")),
        timestamp=_int(value.get("timestamp")),
        live_status=_str(value.get("live_status")),
        is_live=_bool(value.get("is_live")),
        was_live=_bool(value.get("was_live")),
        view_count=_count(value.get("view_count")),
        like_count=_count(value.get("like_count")),
        comment_count=_count(value.get("comment_count")),
        tags=_str_list(value.get("tags")),
        categories=_str_list(value.get("categories")),
        description=_str(value.get("description")),
        channel_id=_str(value.get("channel_id")),
        uploader_id=_str(value.get("uploader_id")),
        channel_url=_str(value.get("channel_url")),
        uploader_url=_str(value.get("uploader_url")),
        availability=_str(value.get("availability")),
        language=_str(value.get("language")),
        audio_language=_str(value.get("audio_language")),
        age_limit=_count(value.get("age_limit")),
    )


def classify_live_status(value: Any) -> str | None:
    """Return ``live``/``upcoming`` for an info record describing a broadcast, else ``None``."""
    if not isinstance(value, dict):
        return None
    status = value.get("live_status") or value.get("liveStatus")
    if status == LIVE_STATUS_IS_UPCOMING:
        return CLASSIFICATION_UPCOMING
    if value.get("is_live") is True or status == LIVE_STATUS_IS_LIVE:
        return CLASSIFICATION_LIVE
    return None


def placeholder_metadata(video_id: str, classification: str) -> VideoMetadata:
    """Metadata stub reported for broadcasts whose info record was never fetched."""
    if classification == CLASSIFICATION_UPCOMING:
        return VideoMetadata(id=video_id, live_status=LIVE_STATUS_IS_UPCOMING, is_live=False)
    return VideoMetadata(id=video_id, live_status=LIVE_STATUS_IS_LIVE, is_live=True)
