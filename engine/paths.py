import logging
import os
import time
from enum import Enum
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def _default_root_paths():
    base = PROJECT_ROOT / "data"
    return {
        "data": base,
        "config": base / "config",
        "logs": base / "logs",
        "library": base / "library",
    }


_DEFAULTS = _default_root_paths()

DATA_DIR = Path(os.environ.get("VIDSHELF_DATA_DIR", _DEFAULTS["data"])).resolve()
CONFIG_DIR = Path(os.environ.get("VIDSHELF_CONFIG_DIR", _DEFAULTS["config"])).resolve()
LOG_DIR = Path(os.environ.get("VIDSHELF_LOG_DIR", _DEFAULTS["logs"])).resolve()
DEFAULT_LIBRARY_DIR = Path(os.environ.get("VIDSHELF_LIBRARY_DIR", _DEFAULTS["library"])).resolve()
TOOLS_DIR = DATA_DIR / "tools"

LIBRARY_VIDEOS_DIR_NAME = "videos"
LIBRARY_COMMENTS_DIR_NAME = "comments"
LIBRARY_METADATA_DIR_NAME = "metadata"
LIBRARY_THUMBNAILS_DIR_NAME = "thumbnails"
# Older layouts stored everything under "contents".
LEGACY_CONTENTS_DIR_NAME = "contents"

ERROR_LOG_DIR_NAME = "errorlogs"


class ArtifactKind(str, Enum):
    VIDEO = "video"
    COMMENTS = "comments"
    METADATA = "metadata"
    THUMBNAIL = "thumbnail"


_KIND_DIR_NAMES = {
    ArtifactKind.VIDEO: LIBRARY_VIDEOS_DIR_NAME,
    ArtifactKind.COMMENTS: LIBRARY_COMMENTS_DIR_NAME,
    ArtifactKind.METADATA: LIBRARY_METADATA_DIR_NAME,
    ArtifactKind.THUMBNAIL: LIBRARY_THUMBNAILS_DIR_NAME,
}

_LIBRARY_SUBDIR_NAMES = frozenset(
    list(_KIND_DIR_NAMES.values()) + [LEGACY_CONTENTS_DIR_NAME]
)


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def resolve_library_root_dir(output_dir):
    """Return the library root for ``output_dir``.

    Callers sometimes hand over one of the kind subdirectories instead of the
    root; those are folded back to their parent so every artifact kind is
    resolved against the same base.
    """
    path = Path(output_dir)
    if path.name.lower() in _LIBRARY_SUBDIR_NAMES and path.parent != path:
        return path.parent
    return path


def normalized_library_root(output_dir):
    return str(resolve_library_root_dir(output_dir))


def library_dir(output_dir, kind):
    return resolve_library_root_dir(output_dir) / _KIND_DIR_NAMES[ArtifactKind(kind)]


def library_videos_dir(output_dir):
    return library_dir(output_dir, ArtifactKind.VIDEO)


def library_comments_dir(output_dir):
    return library_dir(output_dir, ArtifactKind.COMMENTS)


def library_metadata_dir(output_dir):
    return library_dir(output_dir, ArtifactKind.METADATA)


def library_thumbnails_dir(output_dir):
    return library_dir(output_dir, ArtifactKind.THUMBNAIL)


def collect_files_recursive(directory):
    """Return every regular file below ``directory``; a missing directory yields []."""
    root = Path(directory)
    if not root.is_dir():
        return []
    files = []
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = list(os.scandir(current))
        except OSError:
            logger.debug("scan_skipped path=%s", current)
            continue
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
                elif entry.is_file():
                    files.append(Path(entry.path))
            except OSError:
                continue
    return files


def file_mtime(path):
    try:
        return os.stat(path).st_mtime
    except OSError:
        return 0.0


def sanitize_filename_component(value):
    cleaned = "".join(ch if (ch.isascii() and ch.isalnum()) or ch in "-_" else "_" for ch in str(value or ""))
    cleaned = cleaned.strip("_")[:60]
    return cleaned or "unknown"


def atomic_write(path, data):
    """Write ``data`` next to ``path`` and rename it into place once flushed."""
    target = Path(path)
    ensure_dir(target.parent)
    tmp_path = target.with_name(f"{target.name}.tmp")
    payload = data.encode("utf-8") if isinstance(data, str) else data
    with open(tmp_path, "wb") as handle:
        handle.write(payload)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, target)


def error_log_dir():
    return LOG_DIR / ERROR_LOG_DIR_NAME


def write_error_log(kind, video_id, stdout, stderr, log_dir=None):
    """Persist a failed run's captured output; returns the log path or None."""
    timestamp_ms = int(time.time() * 1000)
    directory = Path(log_dir) if log_dir else error_log_dir()
    filename = (
        f"{timestamp_ms}_{sanitize_filename_component(kind)}_"
        f"{sanitize_filename_component(video_id)}.log"
    )
    body = (
        f"kind: {kind}\n"
        f"video_id: {video_id}\n"
        f"timestamp_ms: {timestamp_ms}\n\n"
        f"[stdout]\n{stdout or ''}\n\n"
        f"[stderr]\n{stderr or ''}\n"
    )
    path = directory / filename
    try:
        ensure_dir(directory)
        path.write_text(body, encoding="utf-8")
    except OSError:
        logger.warning("error_log_write_failed path=%s", path, exc_info=True)
        return None
    return path
