"""Persisted user settings: download directory, cookies and tool overrides."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from config.settings import DEFAULT_DOWNLOAD_QUALITY, SETTINGS_SCHEMA_VERSION
from engine.json_utils import read_json_file, safe_json_dumps
from engine.paths import CONFIG_DIR, DEFAULT_LIBRARY_DIR, atomic_write

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "app.json"

COOKIE_SOURCES = {"none", "file", "browser"}
QUALITY_PRESETS = {"best", "1080p", "720p", "480p", "360p", "audio"}


class SettingsError(ValueError):
    """Raised when settings fail validation; ``errors`` lists every problem."""

    def __init__(self, errors):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


@dataclass
class AppSettings:
    download_dir: str = str(DEFAULT_LIBRARY_DIR)
    cookies_file: str | None = None
    cookies_source: str | None = None
    cookies_browser: str | None = None
    remote_components: str | None = None
    yt_dlp_path: str | None = None
    ffmpeg_path: str | None = None
    ffprobe_path: str | None = None
    download_quality: str = DEFAULT_DOWNLOAD_QUALITY

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "AppSettings":
        known = {field.name for field in fields(cls)}
        values = {key: value for key, value in (data or {}).items() if key in known}
        return cls(**values)


def settings_path(config_dir=None) -> Path:
    return Path(config_dir or CONFIG_DIR) / "settings" / SETTINGS_FILE_NAME


def validate_settings(data) -> list[str]:
    errors = []
    if not isinstance(data, dict):
        return ["settings must be a JSON object"]

    download_dir = data.get("download_dir")
    if download_dir is not None and (not isinstance(download_dir, str) or not download_dir.strip()):
        errors.append("download_dir must be a non-empty string")

    for key in (
        "cookies_file",
        "cookies_browser",
        "remote_components",
        "yt_dlp_path",
        "ffmpeg_path",
        "ffprobe_path",
    ):
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"{key} must be a string")

    source = data.get("cookies_source")
    if source is not None and source not in COOKIE_SOURCES:
        errors.append("cookies_source must be 'none', 'file', or 'browser'")
    if source == "browser" and not str(data.get("cookies_browser") or "").strip():
        errors.append("cookies_browser is required when cookies_source is 'browser'")
    if source == "file" and not str(data.get("cookies_file") or "").strip():
        errors.append("cookies_file is required when cookies_source is 'file'")

    quality = data.get("download_quality")
    if quality is not None and quality not in QUALITY_PRESETS:
        errors.append(f"download_quality must be one of {sorted(QUALITY_PRESETS)}")
    return errors


def load_settings(config_dir=None) -> AppSettings:
    """Read the stored settings, falling back to defaults when absent or unreadable."""
    path = settings_path(config_dir)
    if not path.is_file():
        return AppSettings()
    document = read_json_file(path)
    if not isinstance(document, dict):
        logger.warning("settings_unreadable path=%s", path)
        return AppSettings()

    if "version" in document and "data" in document:
        version = document.get("version")
        if not isinstance(version, int) or version > SETTINGS_SCHEMA_VERSION:
            logger.warning("settings_version_unsupported path=%s version=%s", path, version)
            return AppSettings()
        data = document.get("data")
    else:
        # Unversioned documents predate the envelope.
        data = document

    errors = validate_settings(data)
    if errors:
        logger.warning("settings_invalid path=%s errors=%s", path, errors)
        return AppSettings()
    return AppSettings.from_dict(data)


def save_settings(settings: AppSettings, config_dir=None) -> Path:
    data = settings.to_dict()
    errors = validate_settings(data)
    if errors:
        raise SettingsError(errors)
    path = settings_path(config_dir)
    document = {"version": SETTINGS_SCHEMA_VERSION, "data": data}
    atomic_write(path, safe_json_dumps(document, indent=2, sort_keys=True))
    logger.info("settings_saved path=%s", path)
    return path
