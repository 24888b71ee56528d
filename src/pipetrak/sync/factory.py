"""Wire the offline queue and sync manager from Config."""

from pipetrak.config import Config
from pipetrak.offline.offline_queue import OfflineQueue
from pipetrak.offline.store import create_store
from pipetrak.sync.remote import SupabaseMutationClient
from pipetrak.sync.sync_manager import SyncManager


def build_queue() -> OfflineQueue:
    """OfflineQueue over the configured storage backend."""
    store = create_store(
        Config.QUEUE_STORAGE_BACKEND,
        Config.QUEUE_STORAGE_PATH,
        Config.QUEUE_STORAGE_KEY,
    )
    return OfflineQueue(store)


def build_sync_manager(queue: OfflineQueue,
                       access_token: str | None = None) -> SyncManager:
    """SyncManager draining ``queue`` into the configured Supabase project.

    Pass the same queue the app enqueues into, so both sides share its
    store lock.
    """
    if not Config.is_remote_configured():
        raise ValueError(
            "Remote backend is not configured. "
            "Set SUPABASE_URL and SUPABASE_ANON_KEY."
        )
    client = SupabaseMutationClient(
        base_url=Config.SUPABASE_URL,
        api_key=Config.SUPABASE_ANON_KEY,
        access_token=access_token,
        timeout=Config.REMOTE_TIMEOUT,
    )
    return SyncManager(queue, client)
