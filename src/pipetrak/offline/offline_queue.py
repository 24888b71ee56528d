"""OfflineQueue — durable outbox of milestone edits made while offline.

The queue is a single document (see ``OfflineQueueState``) kept in a
``KeyValueStore``. Every operation below is a full read-modify-write of
that document under the store's lock:

    1. load the snapshot (falling back to an empty queue if unreadable)
    2. apply one change in memory
    3. save the whole snapshot

Nothing is cached between calls and the lock belongs to the store, so
several ``OfflineQueue`` objects over one store instance see each
other's writes. A failed save leaves the last durable snapshot as the
truth.
"""

import logging
import math
import time
import uuid
from typing import Callable, Optional

from pipetrak.offline.models import (
    FailedUpdate,
    MilestoneValue,
    OfflineQueueState,
    QueuedUpdate,
    SyncStatus,
)
from pipetrak.offline.store import KeyValueStore
from pipetrak.utils.constants import (
    MAX_FAILED_UPDATES,
    MAX_MILESTONE_VALUE,
    MAX_QUEUE_SIZE,
    MAX_RETRIES,
    MIN_MILESTONE_VALUE,
    MSG_INVALID_VALUE,
    MSG_MAX_RETRIES,
    MSG_QUEUE_FULL,
)

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """An update was rejected before entering the queue."""


class QueueFullError(ValidationError):
    """The queue already holds MAX_QUEUE_SIZE distinct updates."""


class UpdateNotFoundError(KeyError):
    """No queued update has the given id."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def validate_milestone_value(value: MilestoneValue):
    """Reject values that are neither booleans nor percentages in 0-100."""
    if isinstance(value, bool):
        return
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(MSG_INVALID_VALUE)
    if not MIN_MILESTONE_VALUE <= value <= MAX_MILESTONE_VALUE:
        raise ValidationError(MSG_INVALID_VALUE)


def _edited_since(current: QueuedUpdate, sent: QueuedUpdate) -> bool:
    # bool is an int subclass, so True == 1 needs the type check
    return (
        current.timestamp != sent.timestamp
        or type(current.value) is not type(sent.value)
        or current.value != sent.value
    )


class OfflineQueue:
    """Operations over the persisted offline queue document."""

    def __init__(self, store: KeyValueStore,
                 now_ms: Optional[Callable[[], int]] = None,
                 id_factory: Optional[Callable[[], str]] = None):
        self.store = store
        self._now_ms = now_ms or _now_ms
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._lock = store.lock

    # ── Load / save ─────────────────────────────────────────────

    def init_queue(self) -> OfflineQueueState:
        """Load the persisted queue, or a fresh empty one.

        Never raises: missing, corrupt or unreadable snapshots all
        produce an idle, empty queue.
        """
        try:
            data = self.store.load()
        except Exception as e:
            logger.warning("Offline queue unreadable, starting empty: %s", e)
            return OfflineQueueState()
        if data is None:
            return OfflineQueueState()
        try:
            return OfflineQueueState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Offline queue corrupt, starting empty: %s", e)
            return OfflineQueueState()

    def save_queue(self, state: OfflineQueueState):
        """Persist the full snapshot.

        Raises StorageFullError when the store is out of space, and
        StorageError for any other persistence failure.
        """
        self.store.save(state.to_dict())

    # ── Mutations ───────────────────────────────────────────────

    def enqueue_update(self, component_id: str, milestone_name: str,
                       value: MilestoneValue, user_id: str) -> QueuedUpdate:
        """Queue a milestone edit, or refresh the pending one for the same milestone.

        A second edit to the same (component_id, milestone_name) replaces
        the value and timestamp of the existing entry in place; its id,
        retry count and queue position are kept and no capacity check
        applies. A new entry is rejected with QueueFullError once the
        queue holds MAX_QUEUE_SIZE updates.
        """
        validate_milestone_value(value)
        for name, field_value in (("component_id", component_id),
                                  ("milestone_name", milestone_name),
                                  ("user_id", user_id)):
            if not isinstance(field_value, str) or not field_value:
                raise ValidationError(f"{name} is required")

        with self._lock:
            state = self.init_queue()
            existing = state.find_by_key(component_id, milestone_name)
            if existing is not None:
                existing.value = value
                existing.timestamp = self._now_ms()
                self.save_queue(state)
                logger.debug(
                    "Replaced queued %s/%s with %r",
                    component_id, milestone_name, value,
                )
                return existing

            if len(state.updates) >= MAX_QUEUE_SIZE:
                raise QueueFullError(MSG_QUEUE_FULL)

            update = QueuedUpdate(
                id=self._new_id(),
                component_id=component_id,
                milestone_name=milestone_name,
                value=value,
                timestamp=self._now_ms(),
                retry_count=0,
                user_id=user_id,
            )
            state.updates.append(update)
            self.save_queue(state)
            logger.debug(
                "Queued %s/%s = %r (%d pending)",
                component_id, milestone_name, value, len(state.updates),
            )
            return update

    def dequeue_update(self, update_id: str,
                       sent: Optional[QueuedUpdate] = None) -> bool:
        """Remove an update by id; unknown ids are ignored.

        With ``sent``, the entry is removed only if it still holds the
        value and timestamp that were sent. An entry edited in the
        meantime stays queued. Returns True when something was removed.
        """
        with self._lock:
            state = self.init_queue()
            current = state.find(update_id)
            if current is None:
                return False
            if sent is not None and _edited_since(current, sent):
                logger.debug(
                    "Kept %s/%s: edited to %r while %r was in flight",
                    current.component_id, current.milestone_name,
                    current.value, sent.value,
                )
                return False
            state.updates = [u for u in state.updates if u.id != update_id]
            self.save_queue(state)
            return True

    def increment_retry(self, update_id: str) -> int:
        """Count one failed sync attempt and return the new retry count.

        Once the count exceeds MAX_RETRIES the update moves to
        failed_updates in the same write.
        """
        with self._lock:
            state = self.init_queue()
            update = state.find(update_id)
            if update is None:
                raise UpdateNotFoundError(update_id)
            update.retry_count += 1
            if update.retry_count > MAX_RETRIES:
                self._demote(state, update, MSG_MAX_RETRIES)
            self.save_queue(state)
            return update.retry_count

    def fail_update(self, update_id: str, error_message: str) -> FailedUpdate:
        """Move an update straight to failed_updates without retrying."""
        with self._lock:
            state = self.init_queue()
            update = state.find(update_id)
            if update is None:
                raise UpdateNotFoundError(update_id)
            failed = self._demote(state, update, error_message)
            self.save_queue(state)
            return failed

    def clear_queue(self):
        """Drop every pending update and reset the status to idle."""
        with self._lock:
            state = self.init_queue()
            dropped = len(state.updates)
            state.updates = []
            state.sync_status = SyncStatus.IDLE
            self.save_queue(state)
            if dropped:
                logger.warning("Cleared %d pending offline updates", dropped)

    def retry_failed_updates(self) -> int:
        """Move failed updates back into the queue with fresh retry counts.

        A failed update whose milestone has since been edited again is
        dropped, the newer pending edit wins. Updates that would push the
        queue past MAX_QUEUE_SIZE stay in failed_updates.

        Returns the number of updates restored.
        """
        with self._lock:
            state = self.init_queue()
            restored = 0
            still_failed = []
            for failed in state.failed_updates:
                update = failed.update
                if state.find_by_key(update.component_id,
                                     update.milestone_name) is not None:
                    continue
                if len(state.updates) >= MAX_QUEUE_SIZE:
                    still_failed.append(failed)
                    continue
                update.retry_count = 0
                state.updates.append(update)
                restored += 1
            if still_failed:
                logger.warning(
                    "Queue full, %d failed updates left for a later retry",
                    len(still_failed),
                )
            state.failed_updates = still_failed
            state.sync_status = SyncStatus.IDLE
            self.save_queue(state)
            return restored

    def set_sync_status(self, status: SyncStatus,
                        last_sync_attempt: Optional[int] = None):
        """Record the sync status, and optionally the attempt time."""
        with self._lock:
            state = self.init_queue()
            state.sync_status = SyncStatus(status)
            if last_sync_attempt is not None:
                state.last_sync_attempt = last_sync_attempt
            self.save_queue(state)

    # ── Reads ───────────────────────────────────────────────────

    def get_queue_size(self) -> int:
        return len(self.init_queue().updates)

    def get_pending_updates(self) -> list[QueuedUpdate]:
        return self.init_queue().updates

    def get_failed_updates(self) -> list[FailedUpdate]:
        return self.init_queue().failed_updates

    def get_update(self, update_id: str) -> Optional[QueuedUpdate]:
        return self.init_queue().find(update_id)

    # ── Helpers ─────────────────────────────────────────────────

    def _demote(self, state: OfflineQueueState, update: QueuedUpdate,
                error_message: str) -> FailedUpdate:
        state.updates = [u for u in state.updates if u.id != update.id]
        failed = FailedUpdate(
            update=update,
            error_message=error_message,
            failed_at=self._now_ms(),
        )
        state.failed_updates.append(failed)
        # Oldest failures go first
        if len(state.failed_updates) > MAX_FAILED_UPDATES:
            state.failed_updates = state.failed_updates[-MAX_FAILED_UPDATES:]
        logger.warning(
            "Update %s (%s/%s) moved to failed updates: %s",
            update.id, update.component_id, update.milestone_name,
            error_message,
        )
        return failed
