"""Normalize downloaded comments and live-chat replays into :class:`CommentItem` lists.

Three on-disk shapes are accepted:

* a comments document: a JSON array of comment objects, or an object with a
  ``comments`` array (the info record written with ``--write-comments``);
* newline-delimited comment objects;
* live-chat replays, one action envelope per line or a JSON array of them.

Parsing never raises: units that fail to decode or carry nothing worth
showing are skipped.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple

from comments.models import UNKNOWN_AUTHOR, CommentEmoji, CommentItem, CommentRun
from engine.json_utils import decode_text, iter_json_lines, parse_json_text

# addChatItemAction / replayChatItemAction nest at most a few levels deep.
MAX_RENDERER_DEPTH = 6


class RendererKind(str, Enum):
    TEXT_MESSAGE = "liveChatTextMessageRenderer"
    PAID_MESSAGE = "liveChatPaidMessageRenderer"
    MEMBERSHIP_ITEM = "liveChatMembershipItemRenderer"
    PAID_STICKER = "liveChatPaidStickerRenderer"


_PAID_KINDS = frozenset({RendererKind.PAID_MESSAGE, RendererKind.PAID_STICKER})
_MESSAGE_FIELDS = ("message", "headerSubtext", "subtext")


class ChatRenderer(NamedTuple):
    kind: RendererKind
    body: dict


def parse(raw: bytes | str, is_chat_format: bool) -> list[CommentItem]:
    """Parse a comments or live-chat payload into normalized items."""
    content = decode_text(raw)
    if is_chat_format:
        return parse_live_chat_content(content)
    document = parse_json_text(content)
    if document is not None:
        return parse_comments_value(document)
    return parse_comments_lines(content)


def parse_comments_value(value: Any) -> list[CommentItem]:
    if isinstance(value, list):
        entries = value
    elif isinstance(value, dict) and isinstance(value.get("comments"), list):
        entries = value["comments"]
    elif isinstance(value, dict):
        entries = [value]
    else:
        return []
    return [item for item in (parse_comment_item(entry) for entry in entries) if item is not None]


def parse_comments_lines(content: str) -> list[CommentItem]:
    items = []
    for value in iter_json_lines(content):
        item = parse_comment_item(value)
        if item is not None:
            items.append(item)
    return items


def _non_negative_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def parse_comment_item(value: Any) -> CommentItem | None:
    if not isinstance(value, dict):
        return None
    text = value.get("text")
    if not isinstance(text, str):
        text = value.get("content")
    if not isinstance(text, str) or not text.strip():
        return None
    author = value.get("author")
    if not isinstance(author, str) or not author.strip():
        author = UNKNOWN_AUTHOR
    published_at = value.get("_time_text")
    if not isinstance(published_at, str):
        timestamp = value.get("timestamp")
        published_at = str(timestamp) if isinstance(timestamp, int) and not isinstance(timestamp, bool) else None
    photo = value.get("author_thumbnail")
    return CommentItem(
        author=author,
        text=text,
        author_photo_url=photo if isinstance(photo, str) and photo else None,
        like_count=_non_negative_int(value.get("like_count")),
        published_at=published_at,
    )


def parse_live_chat_content(content: str) -> list[CommentItem]:
    document = parse_json_text(content)
    if isinstance(document, list):
        items = [item for item in (parse_live_chat_item(entry) for entry in document) if item is not None]
        if items:
            return items
    elif document is not None:
        item = parse_live_chat_item(document)
        if item is not None:
            return [item]

    items = []
    for envelope in iter_json_lines(content):
        item = parse_live_chat_item(envelope)
        if item is not None:
            items.append(item)
    return items


def interpret_envelope(value: Any, depth: int = 0) -> ChatRenderer | None:
    """Locate the first known renderer inside a chat action envelope.

    ``None`` means the envelope holds nothing this parser understands
    (tickers, banners, deletions, ...).
    """
    if depth > MAX_RENDERER_DEPTH or not isinstance(value, dict):
        return None
    for kind in RendererKind:
        body = value.get(kind.value)
        if isinstance(body, dict):
            return ChatRenderer(kind, body)
    add_action = value.get("addChatItemAction")
    if isinstance(add_action, dict):
        found = interpret_envelope(add_action.get("item"), depth + 1)
        if found is not None:
            return found
    replay = value.get("replayChatItemAction")
    if isinstance(replay, dict) and isinstance(replay.get("actions"), list):
        for action in replay["actions"]:
            found = interpret_envelope(action, depth + 1)
            if found is not None:
                return found
    return None


def _last_thumbnail_url(value: Any) -> str | None:
    if not isinstance(value, dict):
        return None
    thumbnails = value.get("thumbnails")
    if not isinstance(thumbnails, list) or not thumbnails:
        return None
    for candidate in (thumbnails[-1], thumbnails[0]):
        if isinstance(candidate, dict) and isinstance(candidate.get("url"), str):
            return candidate["url"]
    return None


def _emoji_label(emoji: dict) -> str | None:
    image = emoji.get("image")
    if not isinstance(image, dict):
        return None
    label = ((image.get("accessibility") or {}).get("accessibilityData") or {}).get("label")
    return label if isinstance(label, str) else None


def extract_text(value: Any) -> str | None:
    """Flatten a ``simpleText`` or ``runs`` block into plain text; emoji become their id or label."""
    if not isinstance(value, dict):
        return None
    simple = value.get("simpleText")
    if isinstance(simple, str):
        return simple
    runs = value.get("runs")
    if not isinstance(runs, list):
        return None
    parts = []
    for run in runs:
        if not isinstance(run, dict):
            continue
        if isinstance(run.get("text"), str):
            parts.append(run["text"])
            continue
        emoji = run.get("emoji")
        if not isinstance(emoji, dict):
            continue
        shortcuts = emoji.get("shortcuts")
        shortcut = shortcuts[0] if isinstance(shortcuts, list) and shortcuts else None
        for candidate in (emoji.get("emojiId"), _emoji_label(emoji), shortcut):
            if isinstance(candidate, str):
                parts.append(candidate)
                break
    text = "".join(parts)
    return text or None


def extract_runs(value: Any) -> list[CommentRun] | None:
    if not isinstance(value, dict) or not isinstance(value.get("runs"), list):
        return None
    runs = []
    for run in value["runs"]:
        if not isinstance(run, dict):
            continue
        if isinstance(run.get("text"), str):
            runs.append(CommentRun(text=run["text"]))
            continue
        emoji = run.get("emoji")
        if not isinstance(emoji, dict):
            continue
        emoji_id = emoji.get("emojiId") if isinstance(emoji.get("emojiId"), str) else None
        label = _emoji_label(emoji)
        url = _last_thumbnail_url(emoji.get("image"))
        if emoji_id is None and label is None and url is None:
            continue
        is_custom = emoji.get("isCustomEmoji")
        runs.append(
            CommentRun(
                emoji=CommentEmoji(
                    id=emoji_id,
                    url=url,
                    label=label,
                    is_custom=is_custom if isinstance(is_custom, bool) else None,
                )
            )
        )
    return runs or None


def find_video_offset_ms(value: Any) -> int | None:
    """Depth-first search for ``videoOffsetTimeMsec`` anywhere in ``value``."""
    stack = [value]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            raw = node.get("videoOffsetTimeMsec")
            if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 0:
                return raw
            if isinstance(raw, str) and raw.strip().isdigit():
                return int(raw.strip())
            stack.extend(reversed(list(node.values())))
        elif isinstance(node, list):
            stack.extend(reversed(node))
    return None


def _published_at(body: dict) -> str | None:
    usec = body.get("timestampUsec")
    if isinstance(usec, str) and usec.strip().lstrip("-").isdigit():
        return str(int(usec.strip()) // 1000)
    if isinstance(usec, int) and not isinstance(usec, bool):
        return str(usec // 1000)
    return extract_text(body.get("timestampText"))


def parse_live_chat_item(envelope: Any) -> CommentItem | None:
    renderer = interpret_envelope(envelope)
    if renderer is None:
        return None
    kind, body = renderer
    fields = _MESSAGE_FIELDS + (("purchaseAmountText",) if kind in _PAID_KINDS else ())

    runs = None
    for name in fields:
        runs = extract_runs(body.get(name))
        if runs is not None:
            break
    text = None
    for name in fields:
        text = extract_text(body.get(name))
        if text is not None:
            break
    text = text or ""
    if not text.strip() and runs is None:
        return None

    return CommentItem(
        author=extract_text(body.get("authorName")) or UNKNOWN_AUTHOR,
        text=text,
        author_photo_url=_last_thumbnail_url(body.get("authorPhoto")),
        runs=runs,
        published_at=_published_at(body),
        offset_ms=find_video_offset_ms(envelope),
    )
