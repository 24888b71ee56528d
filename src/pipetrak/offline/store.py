"""Durable key/value storage for the offline queue snapshot.

Each store holds exactly one document under one storage key. The queue
layer only ever reads or replaces the whole document, so a store needs
three primitives: read, write and delete. Encoding lives on the base
class.

Backends:
    MemoryStore   : in-process dict, for tests and throwaway sessions
    JsonFileStore : one JSON file, replaced atomically on every write
    SqliteStore   : one row in a kv_store table
"""

import errno
import json
import logging
import os
import re
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

from pipetrak.utils.constants import MSG_STORAGE_FULL, QUEUE_STORAGE_KEY

logger = logging.getLogger(__name__)

_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageError(Exception):
    """Base exception for queue persistence."""


class StorageFullError(StorageError):
    """The backing store rejected a write for lack of space."""

    def __init__(self, message: str = MSG_STORAGE_FULL):
        super().__init__(message)


class KeyValueStore:
    """One JSON document under one key.

    ``lock`` serializes read-modify-write cycles of every queue built on
    this store instance.
    """

    def __init__(self, key: str = QUEUE_STORAGE_KEY,
                 quota_bytes: int | None = None):
        self.key = key
        self.quota_bytes = quota_bytes
        self.lock = threading.RLock()

    # ── Backend primitives ───────────────────────────────────────

    def read(self) -> str | None:
        raise NotImplementedError

    def write(self, text: str):
        raise NotImplementedError

    def delete(self):
        raise NotImplementedError

    # ── Document API ─────────────────────────────────────────────

    def load(self) -> dict | None:
        """Return the decoded document, or None if nothing is stored.

        Raises ValueError when the stored text is not valid JSON.
        """
        text = self.read()
        if text is None:
            return None
        return json.loads(text)

    def save(self, document: dict):
        """Encode and replace the stored document."""
        text = json.dumps(document, separators=(",", ":"))
        self._check_quota(text)
        self.write(text)

    def _check_quota(self, text: str):
        if self.quota_bytes is None:
            return
        size = len(text.encode("utf-8"))
        if size > self.quota_bytes:
            logger.warning(
                "Queue snapshot of %d bytes exceeds quota of %d bytes",
                size, self.quota_bytes,
            )
            raise StorageFullError()


class MemoryStore(KeyValueStore):
    """Dict-backed store; several instances may share one dict."""

    def __init__(self, key: str = QUEUE_STORAGE_KEY,
                 quota_bytes: int | None = None,
                 backing: dict | None = None):
        super().__init__(key, quota_bytes)
        self.backing = backing if backing is not None else {}

    def read(self) -> str | None:
        return self.backing.get(self.key)

    def write(self, text: str):
        self.backing[self.key] = text

    def delete(self):
        self.backing.pop(self.key, None)


class JsonFileStore(KeyValueStore):
    """Stores the document as ``<directory>/<key>.json``.

    Writes go to a temp file in the same directory and are moved into
    place with ``os.replace``, so readers see either the old or the new
    document, never a torn one.
    """

    def __init__(self, directory: str | Path, key: str = QUEUE_STORAGE_KEY,
                 quota_bytes: int | None = None):
        super().__init__(key, quota_bytes)
        self.directory = Path(directory)
        safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        self.path = self.directory / f"{safe_name}.json"

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

    def write(self, text: str):
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.directory), prefix=".queue_", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            if e.errno in _FULL_ERRNOS:
                raise StorageFullError() from e
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def delete(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not delete {self.path}: {e}") from e


class SqliteStore(KeyValueStore):
    """Keeps the document in a single-row-per-key SQLite table."""

    SCHEMA = (
        "CREATE TABLE IF NOT EXISTS kv_store ("
        " key TEXT PRIMARY KEY,"
        " value TEXT NOT NULL,"
        " updated_at TEXT DEFAULT CURRENT_TIMESTAMP"
        ")"
    )

    def __init__(self, db_path: str | Path, key: str = QUEUE_STORAGE_KEY,
                 quota_bytes: int | None = None):
        super().__init__(key, quota_bytes)
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.get_connection() as conn:
            conn.execute(self.SCHEMA)

    @contextmanager
    def get_connection(self):
        """Yield a connection that auto-commits or rolls back."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StorageError(f"Could not open {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            if "full" in str(e).lower():
                raise StorageFullError() from e
            raise StorageError(f"Queue storage failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def read(self) -> str | None:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self.key,)
            ).fetchone()
        return row[0] if row else None

    def write(self, text: str):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET "
                "value = excluded.value, updated_at = excluded.updated_at",
                (self.key, text),
            )

    def delete(self):
        with self.get_connection() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (self.key,))


def create_store(backend: str, path: str | Path | None = None,
                 key: str = QUEUE_STORAGE_KEY) -> KeyValueStore:
    """Build the store named by ``backend`` (memory, json or sqlite)."""
    if backend == "memory":
        return MemoryStore(key)
    if path is None:
        raise StorageError(f"The {backend} backend needs a storage path")
    if backend == "json":
        return JsonFileStore(path, key)
    if backend == "sqlite":
        return SqliteStore(Path(path) / "offline_queue.db", key)
    raise StorageError(f"Unknown storage backend: {backend}")
