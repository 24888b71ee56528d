"""Tests for wiring the queue and sync manager from Config."""

from unittest.mock import patch

import pytest

from pipetrak.config import Config
from pipetrak.offline.store import JsonFileStore, SqliteStore
from pipetrak.sync.factory import build_queue, build_sync_manager
from pipetrak.sync.remote import SupabaseMutationClient


class TestBuildQueue:
    def test_json_backend(self, tmp_path):
        with patch.object(Config, "QUEUE_STORAGE_BACKEND", "json"), \
             patch.object(Config, "QUEUE_STORAGE_PATH", tmp_path):
            queue = build_queue()
        assert isinstance(queue.store, JsonFileStore)
        queue.enqueue_update("comp-1", "Receive", True, "user-1")
        assert queue.store.path.exists()

    def test_sqlite_backend(self, tmp_path):
        with patch.object(Config, "QUEUE_STORAGE_BACKEND", "sqlite"), \
             patch.object(Config, "QUEUE_STORAGE_PATH", tmp_path):
            queue = build_queue()
        assert isinstance(queue.store, SqliteStore)


class TestBuildSyncManager:
    def test_requires_remote_settings(self, queue):
        with patch.object(Config, "SUPABASE_URL", ""), \
             patch.object(Config, "SUPABASE_ANON_KEY", ""):
            with pytest.raises(ValueError, match="not configured"):
                build_sync_manager(queue)

    def test_builds_supabase_client(self, queue):
        with patch.object(Config, "SUPABASE_URL", "https://x.supabase.co"), \
             patch.object(Config, "SUPABASE_ANON_KEY", "anon"):
            manager = build_sync_manager(queue, access_token="jwt")
        assert manager.queue is queue
        assert isinstance(manager.client, SupabaseMutationClient)
        assert manager.client.access_token == "jwt"
        assert manager.client.rpc_url.endswith(
            "/rest/v1/rpc/update_component_milestone"
        )
