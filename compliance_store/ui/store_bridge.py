from __future__ import annotations

import logging
import traceback

from PySide6.QtCore import QObject, Signal, Slot

from compliance_store.application.integration_store import IntegrationStore
from compliance_store.application.state_container import Unsubscribe
from compliance_store.domain.state import IntegrationState

logger = logging.getLogger(__name__)


class StoreBridge(QObject):
    """Re-emits store changes as Qt signals.

    Store listeners may fire on the change-feed thread; Qt queues the signals
    to receivers living in the GUI thread.
    """

    state_changed = Signal(object)
    sync_status_changed = Signal(str)
    conflicts_changed = Signal(int)
    error_changed = Signal(object)
    records_changed = Signal(int)

    def __init__(self, store: IntegrationStore, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._store = store
        self._last: IntegrationState | None = None
        self._unsubscribe: Unsubscribe | None = None

    def attach(self) -> None:
        if self._unsubscribe is not None:
            return
        self._last = self._store.get_state()
        self._unsubscribe = self._store.subscribe(self._on_store_changed)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def _on_store_changed(self) -> None:
        current = self._store.get_state()
        previous = self._last
        self._last = current
        self.state_changed.emit(current)
        if previous is None or previous.sync_status != current.sync_status:
            self.sync_status_changed.emit(current.sync_status.value)
        if previous is None or len(previous.conflict_queue) != len(current.conflict_queue):
            self.conflicts_changed.emit(len(current.conflict_queue))
        if previous is None or previous.error != current.error:
            self.error_changed.emit(current.error)
        if previous is None or previous.user_compliance_records != current.user_compliance_records:
            self.records_changed.emit(len(current.user_compliance_records))


class SyncWorker(QObject):
    finished = Signal(bool)
    failed = Signal(object)

    def __init__(self, store: IntegrationStore) -> None:
        super().__init__()
        self._store = store

    @Slot()
    def run(self) -> None:
        try:
            loaded = self._store.force_sync_now()
        except Exception as exc:
            logger.exception("Compliance sync failed")
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(loaded)
