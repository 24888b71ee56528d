"""SyncManager — drains the offline queue against the remote backend.

One drain pass (``sync_queue``) works like this:
1. Take the per-instance guard; a second concurrent call returns an
   empty result straight away and touches nothing.
2. Snapshot the pending updates and mark the queue ``syncing``.
3. Attempt each update in enqueue order, one remote call at a time.
   Outcomes:
       success          : dequeue
       409 conflict     : server wins, dequeue silently
       401 unauthorized : purge the whole queue, stop
       500 / network    : count a retry and reschedule with backoff,
                           until the queue demotes it to failed_updates
       anything else    : demote immediately, no retry
4. Set the final status (``error`` if anything failed) and release.

Backoff is a schedule, not a sleep inside the error handler: a retry is
re-queued with a ready time and the loop runs whichever attempt is ready
first, so one component's backoff does not hold up other components.
Edits to the same component still go out in enqueue order.

A success or a 409 removes the entry only if it still holds the value
that was sent. If the user edited it during the call, the newer value
is sent again in the same pass.
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from pipetrak.offline.models import QueuedUpdate, SyncStatus
from pipetrak.offline.offline_queue import OfflineQueue, UpdateNotFoundError
from pipetrak.offline.store import StorageError
from pipetrak.sync.remote import (
    FailureKind,
    MilestoneUpdateRequest,
    MutationResult,
    RemoteFailure,
    RemoteMutationClient,
)
from pipetrak.utils.constants import (
    BACKOFF_BASE,
    BACKOFF_UNIT_SECONDS,
    MAX_RETRIES,
    MSG_AUTH_EXPIRED,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, QueuedUpdate, Optional[str]], None]


def backoff_delay(retry_count: int) -> float:
    """Seconds to wait before retry number ``retry_count`` (1-based).

    The first retry is immediate, then 3 s, then 9 s.
    """
    if retry_count <= 1:
        return 0.0
    return (BACKOFF_BASE ** (retry_count - 1)) * BACKOFF_UNIT_SECONDS


class Clock:
    """Time source for the drain loop; swapped for a fake in tests."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def wait(self, seconds: float, cancel_event: threading.Event) -> bool:
        """Block up to ``seconds``; return True if cancelled meanwhile."""
        return cancel_event.wait(seconds)


@dataclass
class SyncErrorEntry:
    update_id: Optional[str]
    component_id: Optional[str]
    milestone_name: Optional[str]
    message: str
    status: Optional[int] = None


@dataclass
class SyncResult:
    success: bool = True
    synced_count: int = 0
    failed_count: int = 0
    server_wins_count: int = 0
    errors: list[SyncErrorEntry] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def empty(cls) -> "SyncResult":
        return cls()

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Attempt:
    update_id: str
    component_id: str
    ready_at: float
    order: int


def _next_attempt(attempts: list[_Attempt]) -> _Attempt:
    """Earliest-ready attempt that is first in line for its component.

    A component's edits go out in enqueue order, so a later edit never
    overtakes one that is backing off. Other components may.
    """
    first_for_component: dict[str, _Attempt] = {}
    for a in attempts:
        head = first_for_component.get(a.component_id)
        if head is None or a.order < head.order:
            first_for_component[a.component_id] = a
    return min(first_for_component.values(),
               key=lambda a: (a.ready_at, a.order))


class SyncManager:
    """Drains one OfflineQueue through one RemoteMutationClient."""

    def __init__(self, queue: OfflineQueue, client: RemoteMutationClient,
                 clock: Clock | None = None,
                 on_progress: ProgressCallback | None = None):
        self.queue = queue
        self.client = client
        self.clock = clock or Clock()
        self.on_progress = on_progress
        self._guard = threading.Lock()
        self._cancel = threading.Event()

    @property
    def is_syncing(self) -> bool:
        return self._guard.locked()

    def cancel(self):
        """Stop the running pass after the current remote call.

        Pending retries are abandoned; their updates stay queued with
        the retry counts already recorded.
        """
        self._cancel.set()

    def sync_queue(self) -> SyncResult:
        """Run one drain pass. Never raises for sync-time failures."""
        if not self._guard.acquire(blocking=False):
            logger.debug("Sync already in progress, skipping")
            return SyncResult.empty()
        self._cancel.clear()
        try:
            return self._drain()
        finally:
            self._guard.release()

    def retry_sync(self) -> SyncResult:
        """Requeue every failed update, then sync."""
        self.queue.retry_failed_updates()
        return self.sync_queue()

    def get_sync_status(self) -> dict:
        """Current persisted status, for connectivity indicators."""
        state = self.queue.init_queue()
        return {
            "status": state.sync_status.value,
            "pending_count": len(state.updates),
            "failed_count": len(state.failed_updates),
            "last_sync_attempt": state.last_sync_attempt,
        }

    # ── Drain loop ──────────────────────────────────────────────

    def _drain(self) -> SyncResult:
        result = SyncResult()
        pending = self.queue.init_queue().updates

        try:
            if not pending:
                self.queue.set_sync_status(SyncStatus.IDLE)
                return result

            self.queue.set_sync_status(
                SyncStatus.SYNCING, last_sync_attempt=self.clock.now_ms()
            )
            logger.info("Syncing %d offline updates", len(pending))

            start = self.clock.monotonic()
            attempts = [
                _Attempt(update_id=u.id, component_id=u.component_id,
                         ready_at=start, order=i)
                for i, u in enumerate(pending)
            ]
            self._run_attempts(attempts, result)
        except StorageError as e:
            logger.error("Queue storage failed during sync: %s", e)
            result.success = False
            result.failed_count += 1
            result.errors.append(
                SyncErrorEntry(None, None, None, str(e))
            )

        final = SyncStatus.ERROR if result.failed_count > 0 else SyncStatus.IDLE
        try:
            self.queue.set_sync_status(final)
        except StorageError as e:
            logger.error("Could not record final sync status: %s", e)
            result.success = False

        logger.info(
            "Sync finished: %d synced, %d server wins, %d failed%s",
            result.synced_count, result.server_wins_count,
            result.failed_count, " (cancelled)" if result.cancelled else "",
        )
        return result

    def _run_attempts(self, attempts: list[_Attempt], result: SyncResult):
        while attempts:
            if self._cancel.is_set():
                result.cancelled = True
                return

            attempt = _next_attempt(attempts)
            delay = attempt.ready_at - self.clock.monotonic()
            if delay > 0 and self.clock.wait(delay, self._cancel):
                result.cancelled = True
                return
            attempts.remove(attempt)

            # Re-read so a newer value enqueued meanwhile is what we send
            update = self.queue.get_update(attempt.update_id)
            if update is None:
                continue

            outcome = self._call_remote(update)
            if outcome.ok:
                self._settle(update, attempt, attempts)
                result.synced_count += 1
                self._notify("synced", update)
                continue

            failure = outcome.failure
            if failure.kind is FailureKind.CONFLICT:
                self._settle(update, attempt, attempts)
                result.server_wins_count += 1
                logger.warning(
                    "Conflict on %s/%s, keeping server value",
                    update.component_id, update.milestone_name,
                )
                self._notify("server_wins", update, failure.message)

            elif failure.kind is FailureKind.AUTH:
                self.queue.clear_queue()
                attempts.clear()
                result.success = False
                result.errors.append(self._error_entry(
                    update, f"{MSG_AUTH_EXPIRED} ({failure.message})",
                    failure.status,
                ))
                self._notify("auth_failed", update, failure.message)

            elif failure.kind is FailureKind.TRANSIENT:
                self._handle_transient(update, attempt, failure,
                                       attempts, result)

            else:
                self.queue.fail_update(update.id, failure.message)
                result.failed_count += 1
                result.success = False
                result.errors.append(self._error_entry(
                    update, failure.message, failure.status
                ))
                self._notify("failed", update, failure.message)

    def _settle(self, update: QueuedUpdate, attempt: _Attempt,
                attempts: list[_Attempt]):
        """Dequeue what was sent, or send again if it was edited meanwhile."""
        if self.queue.dequeue_update(update.id, sent=update):
            return
        if self.queue.get_update(update.id) is not None:
            attempts.append(_Attempt(
                update_id=update.id,
                component_id=attempt.component_id,
                ready_at=self.clock.monotonic(),
                order=attempt.order,
            ))

    def _handle_transient(self, update: QueuedUpdate, attempt: _Attempt,
                          failure: RemoteFailure, attempts: list[_Attempt],
                          result: SyncResult):
        try:
            retry_count = self.queue.increment_retry(update.id)
        except UpdateNotFoundError:
            # Removed by someone else since we read it
            return

        if retry_count <= MAX_RETRIES:
            delay = backoff_delay(retry_count)
            logger.debug(
                "Retry %d/%d for %s in %.0fs: %s",
                retry_count, MAX_RETRIES, update.id, delay, failure.message,
            )
            attempts.append(_Attempt(
                update_id=update.id,
                component_id=attempt.component_id,
                ready_at=self.clock.monotonic() + delay,
                order=attempt.order,
            ))
            self._notify("retry_scheduled", update, failure.message)
            return

        result.failed_count += 1
        result.success = False
        result.errors.append(self._error_entry(
            update, failure.message, failure.status
        ))
        self._notify("failed", update, failure.message)

    def _call_remote(self, update: QueuedUpdate) -> MutationResult:
        request = MilestoneUpdateRequest.from_update(update)
        logger.debug(
            "Sending %s/%s = %r", request.component_id,
            request.milestone_name, request.new_value,
        )
        try:
            return self.client.apply_update(request)
        except Exception as e:
            logger.exception("Remote client raised for update %s", update.id)
            return MutationResult.failed(
                RemoteFailure(kind=FailureKind.UNKNOWN, message=str(e))
            )

    @staticmethod
    def _error_entry(update: QueuedUpdate, message: str,
                     status: Optional[int]) -> SyncErrorEntry:
        return SyncErrorEntry(
            update_id=update.id,
            component_id=update.component_id,
            milestone_name=update.milestone_name,
            message=message,
            status=status,
        )

    def _notify(self, event: str, update: QueuedUpdate,
                detail: Optional[str] = None):
        if self.on_progress is None:
            return
        try:
            self.on_progress(event, update, detail)
        except Exception:
            logger.exception("Sync progress callback failed")
