"""Normalized comment and chat item types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

UNKNOWN_AUTHOR = "Unknown"


@dataclass(frozen=True)
class CommentEmoji:
    id: str | None = None
    url: str | None = None
    label: str | None = None
    is_custom: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "label": self.label, "isCustom": self.is_custom}


@dataclass(frozen=True)
class CommentRun:
    """One segment of a message: plain text or an emoji, never both."""

    text: str | None = None
    emoji: CommentEmoji | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "emoji": self.emoji.to_dict() if self.emoji is not None else None,
        }


@dataclass
class CommentItem:
    author: str
    text: str
    author_photo_url: str | None = None
    runs: list[CommentRun] | None = field(default=None)
    like_count: int | None = None
    published_at: str | None = None
    offset_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "authorPhotoUrl": self.author_photo_url,
            "text": self.text,
            "runs": [run.to_dict() for run in self.runs] if self.runs is not None else None,
            "likeCount": self.like_count,
            "publishedAt": self.published_at,
            "offsetMs": self.offset_ms,
        }
