"""Background sync — drains the offline queue on a timer from a Qt app."""

from PySide6.QtCore import QObject, QThread, QTimer, Signal

from pipetrak.config import Config
from pipetrak.sync.connectivity import ConnectivityMonitor
from pipetrak.sync.sync_manager import SyncManager


class SyncWorker(QThread):
    """Runs one connectivity check and, if online, one drain pass."""

    completed = Signal(object)  # SyncResult
    offline = Signal()
    failed = Signal(str)

    def __init__(self, manager: SyncManager,
                 monitor: ConnectivityMonitor | None = None,
                 retry_failed: bool = False):
        super().__init__()
        self.manager = manager
        self.monitor = monitor
        self.retry_failed = retry_failed

    def run(self):
        try:
            if self.monitor is not None and not self.monitor.check():
                self.offline.emit()
                return
            if self.retry_failed:
                result = self.manager.retry_sync()
            else:
                result = self.manager.sync_queue()
            self.completed.emit(result)
        except Exception as e:
            self.failed.emit(str(e))


class AutoSyncController(QObject):
    """Syncs opportunistically: on a timer, on reconnect, or on demand."""

    sync_completed = Signal(object)  # SyncResult
    sync_failed = Signal(str)
    status_changed = Signal(dict)
    connectivity_changed = Signal(bool)

    def __init__(self, manager: SyncManager,
                 monitor: ConnectivityMonitor | None = None,
                 interval_seconds: int | None = None, parent=None):
        super().__init__(parent)
        self.manager = manager
        self.monitor = monitor
        self._interval_seconds = interval_seconds or Config.SYNC_INTERVAL_SECONDS
        self._worker: SyncWorker | None = None
        self._timer = QTimer(self)
        self._timer.timeout.connect(self.sync_now)
        self._was_online = monitor.is_online if monitor else True

    def start(self):
        """Start the periodic sync timer."""
        self._timer.start(max(self._interval_seconds, 1) * 1000)

    def stop(self):
        """Stop the timer and cancel any running pass."""
        self._timer.stop()
        if self._worker is not None:
            self.manager.cancel()

    @property
    def enabled(self) -> bool:
        return self._timer.isActive()

    def is_running(self) -> bool:
        return self._worker is not None

    def sync_now(self, retry_failed: bool = False) -> bool:
        """Start a pass unless one is already running.

        Returns False when a pass was already in flight or there is
        nothing to send.
        """
        if self._worker is not None:
            return False
        if not retry_failed and self.manager.queue.get_queue_size() == 0:
            return False

        worker = SyncWorker(self.manager, self.monitor, retry_failed)
        worker.completed.connect(self._on_completed)
        worker.offline.connect(self._on_offline)
        worker.failed.connect(self._on_failed)
        worker.finished.connect(self._on_thread_finished)
        self._worker = worker
        worker.start()
        return True

    def _on_completed(self, result):
        self._note_connectivity(True)
        self.sync_completed.emit(result)
        self.status_changed.emit(self.manager.get_sync_status())

    def _on_offline(self):
        self._note_connectivity(False)
        self.status_changed.emit(self.manager.get_sync_status())

    def _on_failed(self, error: str):
        self.sync_failed.emit(error)
        self.status_changed.emit(self.manager.get_sync_status())

    def _on_thread_finished(self):
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.deleteLater()

    def _note_connectivity(self, online: bool):
        if online != self._was_online:
            self._was_online = online
            self.connectivity_changed.emit(online)
