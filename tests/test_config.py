"""Tests for Config class — settings persistence and retrieval."""

import json
from pathlib import Path

import pytest

from pipetrak.config import Config, _load_settings, _save_settings


@pytest.fixture
def settings_file(tmp_path):
    """Temporary settings file for isolation."""
    return tmp_path / "settings.json"


@pytest.fixture(autouse=True)
def isolate_config(settings_file, monkeypatch):
    """Redirect settings I/O to temp file so tests don't touch real config."""
    import pipetrak.config as config_mod
    monkeypatch.setattr(config_mod, "_SETTINGS_FILE", settings_file)

    saved = {
        "SUPABASE_URL": Config.SUPABASE_URL,
        "SUPABASE_ANON_KEY": Config.SUPABASE_ANON_KEY,
        "REMOTE_TIMEOUT": Config.REMOTE_TIMEOUT,
        "QUEUE_STORAGE_BACKEND": Config.QUEUE_STORAGE_BACKEND,
        "QUEUE_STORAGE_PATH": Config.QUEUE_STORAGE_PATH,
        "SYNC_INTERVAL_SECONDS": Config.SYNC_INTERVAL_SECONDS,
    }
    yield
    for attr, val in saved.items():
        setattr(Config, attr, val)


class TestConfigDefaults:
    def test_storage_key(self):
        assert Config.QUEUE_STORAGE_KEY == "pipetrak:offline-queue"

    def test_storage_backend_known(self):
        assert Config.QUEUE_STORAGE_BACKEND in ("memory", "json", "sqlite")

    def test_timeout_is_float(self):
        assert isinstance(Config.REMOTE_TIMEOUT, float)

    def test_storage_path_is_path(self):
        assert isinstance(Config.QUEUE_STORAGE_PATH, Path)


class TestSettingsFile:
    def test_load_missing_returns_empty(self):
        assert _load_settings() == {}

    def test_load_corrupt_returns_empty(self, settings_file):
        settings_file.write_text("{oops", encoding="utf-8")
        assert _load_settings() == {}

    def test_save_then_load(self):
        _save_settings({"sync_interval_seconds": 30})
        assert _load_settings() == {"sync_interval_seconds": 30}


class TestUpdateRemoteSettings:
    def test_updates_and_persists(self, settings_file):
        Config.update_remote_settings("https://x.supabase.co", "key", 5.0)
        assert Config.SUPABASE_URL == "https://x.supabase.co"
        assert Config.is_remote_configured() is True
        saved = json.loads(settings_file.read_text(encoding="utf-8"))
        assert saved["supabase_anon_key"] == "key"
        assert saved["remote_timeout"] == 5.0

    def test_not_configured_without_key(self):
        Config.SUPABASE_URL = "https://x.supabase.co"
        Config.SUPABASE_ANON_KEY = ""
        assert Config.is_remote_configured() is False


class TestUpdateSyncSettings:
    def test_updates_and_persists(self, settings_file, tmp_path):
        Config.update_sync_settings("sqlite", str(tmp_path), 120)
        assert Config.QUEUE_STORAGE_BACKEND == "sqlite"
        assert Config.QUEUE_STORAGE_PATH == tmp_path
        saved = json.loads(settings_file.read_text(encoding="utf-8"))
        assert saved["sync_interval_seconds"] == 120

    def test_interval_has_floor(self, tmp_path):
        Config.update_sync_settings("json", str(tmp_path), 1)
        assert Config.SYNC_INTERVAL_SECONDS == 5

    def test_rejects_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            Config.update_sync_settings("redis", str(tmp_path), 60)
