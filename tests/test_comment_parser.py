from __future__ import annotations

import json

from comments.models import UNKNOWN_AUTHOR
from comments.parser import (
    RendererKind,
    extract_text,
    find_video_offset_ms,
    interpret_envelope,
    parse,
)


def _text_renderer(**overrides) -> dict:
    body = {
        "authorName": {"simpleText": "Alice"},
        "message": {"simpleText": "hello"},
        "timestampUsec": "1700000000123456",
        "authorPhoto": {"thumbnails": [{"url": "small.jpg"}, {"url": "large.jpg"}]},
    }
    body.update(overrides)
    return {"liveChatTextMessageRenderer": body}


def _replay(renderer: dict, offset="1500") -> dict:
    return {
        "replayChatItemAction": {
            "actions": [{"addChatItemAction": {"item": renderer}}],
            "videoOffsetTimeMsec": offset,
        }
    }


def test_comments_array_document() -> None:
    raw = json.dumps(
        [
            {"author": "Bob", "text": "first", "like_count": 3, "_time_text": "2 days ago"},
            {"text": "anonymous", "timestamp": 1700000000},
        ]
    )

    items = parse(raw, is_chat_format=False)

    assert [item.text for item in items] == ["first", "anonymous"]
    assert items[0].like_count == 3
    assert items[0].published_at == "2 days ago"
    assert items[1].author == UNKNOWN_AUTHOR
    assert items[1].published_at == "1700000000"


def test_info_record_with_comments_array() -> None:
    raw = json.dumps(
        {
            "id": "abc123",
            "comments": [
                {"author": "Bob", "content": "from content", "author_thumbnail": "bob.jpg"},
                {"author": "Eve", "text": "   "},
            ],
        }
    )

    items = parse(raw.encode("utf-8"), is_chat_format=False)

    assert len(items) == 1
    assert items[0].text == "from content"
    assert items[0].author_photo_url == "bob.jpg"


def test_ndjson_skips_malformed_lines_and_keeps_order() -> None:
    lines = [
        json.dumps({"author": "A", "text": "one"}),
        "{broken",
        json.dumps({"author": "B", "text": "two"}),
        "",
        "not json at all",
        json.dumps({"author": "C", "text": "three"}),
    ]

    items = parse("\n".join(lines), is_chat_format=False)

    assert [item.text for item in items] == ["one", "two", "three"]


def test_byte_order_mark_is_ignored() -> None:
    raw = "\ufeff" + json.dumps([{"author": "A", "text": "bom"}])

    assert [item.text for item in parse(raw.encode("utf-8"), is_chat_format=False)] == ["bom"]


def test_replay_envelope_yields_author_text_and_offset() -> None:
    raw = json.dumps(_replay(_text_renderer())) + "\n"

    items = parse(raw, is_chat_format=True)

    assert len(items) == 1
    item = items[0]
    assert item.author == "Alice"
    assert item.text == "hello"
    assert item.offset_ms == 1500
    assert item.published_at == "1700000000123"
    assert item.author_photo_url == "large.jpg"


def test_runs_with_emoji_keep_text_and_image() -> None:
    message = {
        "runs": [
            {"text": "nice "},
            {
                "emoji": {
                    "emojiId": "UC/custom",
                    "isCustomEmoji": True,
                    "image": {
                        "thumbnails": [{"url": "emoji.png"}],
                        "accessibility": {"accessibilityData": {"label": ":wave:"}},
                    },
                }
            },
        ]
    }
    raw = json.dumps(_replay(_text_renderer(message=message), offset=42))

    item = parse(raw, is_chat_format=True)[0]

    assert item.text == "nice UC/custom"
    assert item.runs[0].text == "nice "
    assert item.runs[1].emoji.url == "emoji.png"
    assert item.runs[1].emoji.label == ":wave:"
    assert item.runs[1].emoji.is_custom is True
    assert item.offset_ms == 42


def test_emoji_without_id_uses_label_then_shortcut() -> None:
    labelled = {"runs": [{"emoji": {"image": {"accessibility": {"accessibilityData": {"label": "smile"}}}}}]}
    shortcut_only = {"runs": [{"emoji": {"shortcuts": [":heart:"]}}]}

    assert extract_text(labelled) == "smile"
    assert extract_text(shortcut_only) == ":heart:"


def test_paid_message_reads_purchase_amount_when_no_message() -> None:
    envelope = {
        "addChatItemAction": {
            "item": {
                "liveChatPaidMessageRenderer": {
                    "authorName": {"simpleText": "Donor"},
                    "purchaseAmountText": {"simpleText": "$5.00"},
                }
            }
        }
    }

    items = parse(json.dumps([envelope]), is_chat_format=True)

    assert items[0].text == "$5.00"
    assert items[0].offset_ms is None


def test_membership_item_uses_header_subtext() -> None:
    envelope = {
        "liveChatMembershipItemRenderer": {
            "headerSubtext": {"runs": [{"text": "Welcome to "}, {"text": "the club"}]},
        }
    }

    item = parse(json.dumps(envelope), is_chat_format=True)[0]

    assert item.text == "Welcome to the club"
    assert item.author == UNKNOWN_AUTHOR


def test_unrecognized_and_empty_envelopes_are_dropped() -> None:
    lines = [
        json.dumps({"addChatItemAction": {"item": {"liveChatTickerPaidMessageItemRenderer": {}}}}),
        json.dumps(_replay(_text_renderer(message={"simpleText": "   "}))),
        "garbage",
        json.dumps(_replay(_text_renderer(message={"simpleText": "kept"}))),
    ]

    items = parse("\n".join(lines), is_chat_format=True)

    assert [item.text for item in items] == ["kept"]


def test_interpret_envelope_reports_renderer_kind() -> None:
    renderer = interpret_envelope({"liveChatPaidStickerRenderer": {"authorName": {"simpleText": "x"}}})

    assert renderer.kind is RendererKind.PAID_STICKER
    assert interpret_envelope({"somethingElse": {}}) is None
    assert interpret_envelope("not a dict") is None


def test_offset_search_is_depth_first_and_accepts_strings() -> None:
    assert find_video_offset_ms({"a": [{"b": {"videoOffsetTimeMsec": "77"}}]}) == 77
    assert find_video_offset_ms({"videoOffsetTimeMsec": "abc"}) is None
    assert find_video_offset_ms([1, 2, {"videoOffsetTimeMsec": 5}]) == 5


def test_to_dict_uses_camel_case_keys() -> None:
    item = parse(json.dumps(_replay(_text_renderer())), is_chat_format=True)[0]

    payload = item.to_dict()

    assert payload["offsetMs"] == 1500
    assert payload["authorPhotoUrl"] == "large.jpg"
    assert payload["runs"] is None


def test_deeply_nested_input_yields_no_items() -> None:
    deep = "[" * 100_000 + "]" * 100_000

    assert parse(deep, is_chat_format=False) == []
    assert parse(deep, is_chat_format=True) == []


def test_deeply_nested_chat_line_is_skipped() -> None:
    good = json.dumps(_replay(_text_renderer(), offset="42"))
    content = "\n".join(["[" * 50_000 + "]" * 50_000, good])

    items = parse(content, is_chat_format=True)

    assert [(item.text, item.offset_ms) for item in items] == [("hello", 42)]


def test_offset_search_handles_deep_envelopes() -> None:
    envelope: dict = {"videoOffsetTimeMsec": "9"}
    for _ in range(5_000):
        envelope = {"wrapper": [envelope]}

    assert find_video_offset_ms(envelope) == 9
