"""JSON helpers shared by logging, the settings store and library scans."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def safe_json(value: Any) -> Any:
    """Return ``value`` converted into plain JSON-compatible structures."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return safe_json(value.value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(key): safe_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [safe_json(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return safe_json(to_dict())
    return str(value)


def safe_json_dumps(value: Any, **kwargs: Any) -> str:
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(safe_json(value), **kwargs)


def json_sanity_check() -> None:
    """Fail fast when the JSON helpers cannot round-trip a representative payload."""
    sample = {"path": Path("/tmp"), "items": (1, "two"), "flag": True}
    decoded = json.loads(safe_json_dumps(sample))
    if decoded != {"path": "/tmp", "items": [1, "two"], "flag": True}:
        raise RuntimeError("json_sanity_check_failed")


def decode_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        text = raw.decode("utf-8", errors="replace")
    else:
        text = str(raw)
    return text.lstrip("\ufeff")


def parse_json_text(text: bytes | str) -> Any:
    """Parse a whole JSON document, returning ``None`` when it is not valid JSON."""
    try:
        return json.loads(decode_text(text))
    except (TypeError, ValueError, RecursionError):
        return None


def iter_json_lines(text: bytes | str):
    """Yield each parseable JSON value of newline-delimited ``text``; bad lines are skipped."""
    for line in decode_text(text).splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except (ValueError, RecursionError):
            continue


def read_json_file(path: str | Path) -> Any:
    """Return the decoded JSON document at ``path`` or ``None`` when unreadable."""
    try:
        raw = Path(path).read_bytes()
    except OSError:
        logger.debug("json_read_failed path=%s", path)
        return None
    return parse_json_text(raw)
