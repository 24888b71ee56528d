"""Application configuration — loads .env, then overrides from settings.json."""

import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from pipetrak.utils.constants import QUEUE_STORAGE_KEY

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"

STORAGE_BACKENDS = ("memory", "json", "sqlite")


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT

    # Remote backend (settings.json overrides .env)
    SUPABASE_URL: str = _runtime.get(
        "supabase_url",
        os.getenv("SUPABASE_URL", ""),
    )
    SUPABASE_ANON_KEY: str = _runtime.get(
        "supabase_anon_key",
        os.getenv("SUPABASE_ANON_KEY", ""),
    )
    REMOTE_TIMEOUT: float = float(_runtime.get(
        "remote_timeout",
        os.getenv("REMOTE_TIMEOUT", "10"),
    ))

    # Offline queue storage
    QUEUE_STORAGE_BACKEND: str = _runtime.get(
        "queue_storage_backend",
        os.getenv("QUEUE_STORAGE_BACKEND", "json"),
    )
    QUEUE_STORAGE_PATH: Path = Path(_runtime.get(
        "queue_storage_path",
        os.getenv(
            "QUEUE_STORAGE_PATH", str(_PROJECT_ROOT / "data" / "offline_queue")
        ),
    ))
    QUEUE_STORAGE_KEY: str = os.getenv("QUEUE_STORAGE_KEY", QUEUE_STORAGE_KEY)

    # Background sync
    SYNC_INTERVAL_SECONDS: int = int(_runtime.get(
        "sync_interval_seconds",
        os.getenv("SYNC_INTERVAL_SECONDS", "60"),
    ))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_remote_settings(cls, url: str, anon_key: str,
                               timeout: float):
        """Update remote backend settings at runtime and persist to disk."""
        cls.SUPABASE_URL = url
        cls.SUPABASE_ANON_KEY = anon_key
        cls.REMOTE_TIMEOUT = timeout

        settings = _load_settings()
        settings["supabase_url"] = url
        settings["supabase_anon_key"] = anon_key
        settings["remote_timeout"] = timeout
        _save_settings(settings)

    @classmethod
    def update_sync_settings(cls, backend: str, storage_path: str,
                             interval_seconds: int):
        """Update queue storage and sync interval, then persist."""
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"Unknown storage backend: {backend}")
        cls.QUEUE_STORAGE_BACKEND = backend
        cls.QUEUE_STORAGE_PATH = Path(storage_path)
        cls.SYNC_INTERVAL_SECONDS = max(int(interval_seconds), 5)

        settings = _load_settings()
        settings["queue_storage_backend"] = backend
        settings["queue_storage_path"] = str(storage_path)
        settings["sync_interval_seconds"] = cls.SYNC_INTERVAL_SECONDS
        _save_settings(settings)

    @classmethod
    def is_remote_configured(cls) -> bool:
        """True when both the backend URL and the anon key are set."""
        return bool(cls.SUPABASE_URL and cls.SUPABASE_ANON_KEY)


def configure_logging(level: str | None = None):
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=(level or Config.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
