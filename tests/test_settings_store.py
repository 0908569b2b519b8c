from __future__ import annotations

import json
from pathlib import Path

import pytest

from config.store import AppSettings, SettingsError, load_settings, save_settings, settings_path, validate_settings


def test_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert load_settings(tmp_path) == AppSettings()


def test_save_then_load_keeps_values(tmp_path: Path) -> None:
    settings = AppSettings(download_dir="/srv/videos", cookies_source="browser", cookies_browser="firefox")

    path = save_settings(settings, tmp_path)

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert document["data"]["cookies_browser"] == "firefox"
    assert load_settings(tmp_path) == settings


def test_newer_version_falls_back_to_defaults(tmp_path: Path) -> None:
    path = settings_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"version": 99, "data": {"download_dir": "/elsewhere"}}), encoding="utf-8")

    assert load_settings(tmp_path) == AppSettings()


def test_legacy_unversioned_document_is_accepted(tmp_path: Path) -> None:
    path = settings_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"download_dir": "/legacy", "unknown_key": 1}), encoding="utf-8")

    assert load_settings(tmp_path).download_dir == "/legacy"


def test_corrupt_document_falls_back_to_defaults(tmp_path: Path) -> None:
    path = settings_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    assert load_settings(tmp_path) == AppSettings()


def test_validate_settings_reports_every_problem() -> None:
    errors = validate_settings(
        {
            "download_dir": "",
            "cookies_source": "browser",
            "download_quality": "8k",
            "yt_dlp_path": 5,
        }
    )

    assert "download_dir must be a non-empty string" in errors
    assert "cookies_browser is required when cookies_source is 'browser'" in errors
    assert "yt_dlp_path must be a string" in errors
    assert any(error.startswith("download_quality") for error in errors)
    assert validate_settings([]) == ["settings must be a JSON object"]


def test_save_rejects_invalid_settings(tmp_path: Path) -> None:
    with pytest.raises(SettingsError) as excinfo:
        save_settings(AppSettings(cookies_source="file"), tmp_path)

    assert excinfo.value.errors == ["cookies_file is required when cookies_source is 'file'"]
    assert not settings_path(tmp_path).exists()
