from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Callable, Mapping

from compliance_store.application.compliance_data_service import RECORDS_TABLE, ComplianceDataService
from compliance_store.application.conflict_queue import ConflictQueue
from compliance_store.application.error_log import ErrorLog
from compliance_store.application.performance_tracker import PerformanceTracker
from compliance_store.application.state_container import StateContainer
from compliance_store.core.errors import ValidationError
from compliance_store.core.observability import OperationContext, log_event
from compliance_store.core.operational_logging import log_operational_error
from compliance_store.domain.models import ComplianceRecord, ComplianceTier, SyncStatus, UserRole
from compliance_store.domain.ports import ChangeEvent, ChangeEventType, RemoteGateway, SubscriptionHandle
from compliance_store.domain.state import ConflictType, IntegrationState

logger = logging.getLogger(__name__)

REALTIME_SUBSCRIPTION = "compliance"
RECORD_COMPONENT = "ComplianceRecord"
INITIALIZE_ERROR = "Failed to initialize compliance integration"
LOAD_ERROR = "Failed to load compliance data"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def channel_name_for(user_id: str) -> str:
    return f"compliance-integration-{user_id}"


def _elapsed_ms(started: float) -> float:
    return (perf_counter() - started) * 1000


@dataclass
class _PendingWrite:
    in_flight: int = 0
    deferred: list[ChangeEvent] = field(default_factory=list)


class SyncEngine:
    """Keeps the cached records in step with the remote tables.

    Real-time UPDATE events for a record with a local write in flight are
    held back until the write settles, then replayed minus the echo of the
    write itself. Everything else goes straight into the snapshot.
    """

    def __init__(
        self,
        container: StateContainer,
        data_service: ComplianceDataService,
        gateway: RemoteGateway,
        conflicts: ConflictQueue,
        tracker: PerformanceTracker,
        errors: ErrorLog,
        *,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self._container = container
        self._data = data_service
        self._gateway = gateway
        self._conflicts = conflicts
        self._tracker = tracker
        self._errors = errors
        self._clock = clock
        self._subscriptions: dict[str, SubscriptionHandle] = {}
        self._pending: dict[str, _PendingWrite] = {}
        self._pending_lock = threading.Lock()
        self._periodic_stop: threading.Event | None = None
        self._periodic_thread: threading.Thread | None = None

    # Lifecycle

    def initialize(self, user_id: str, role: UserRole | str, tier: ComplianceTier | str) -> None:
        with OperationContext("initialize") as operation:
            resolved_role = UserRole(role)
            resolved_tier = ComplianceTier(tier)
            previous_user_id = self._current_user_id()
            switching_user = previous_user_id is not None and previous_user_id != user_id
            if switching_user:
                self.stop_real_time_sync()
                with self._pending_lock:
                    self._pending.clear()
                logger.info("store_user_switched previous=%s current=%s", previous_user_id, user_id)

            def _start(state: IntegrationState) -> None:
                if switching_user:
                    state.user_compliance_records = []
                    state.compliance_tiers = []
                    state.conflict_queue = []
                    state.is_resolving_conflicts = False
                state.current_user_id = user_id
                state.current_user_role = resolved_role
                state.current_user_tier = resolved_tier
                state.is_loading = True
                state.error = None

            self._container.set_state(_start)
            log_event(logger, "store_initialize_started", {"user_id": user_id, "role": resolved_role.value})
            try:
                if self.load_user_compliance_data(user_id):
                    self.start_real_time_sync()
            except Exception as exc:  # noqa: BLE001
                log_operational_error(
                    "Store initialization failed",
                    exc=exc,
                    operation=operation.operation_name,
                    user_id=user_id,
                )
                self._finish_initialize(error=INITIALIZE_ERROR)
                return
            self._finish_initialize(error=None)

    def _finish_initialize(self, *, error: str | None) -> None:
        def _finish(state: IntegrationState) -> None:
            state.is_loading = False
            if error is not None:
                state.error = error
            elif state.sync_status != SyncStatus.ERROR:
                state.last_sync_time = self._clock()

        self._container.set_state(_finish)

    def shutdown(self) -> None:
        self.stop_periodic_sync()
        self.stop_real_time_sync()
        with self._pending_lock:
            self._pending.clear()

    # Loading

    def load_user_compliance_data(self, user_id: str) -> bool:
        """Reloads records, templates and tier info; returns ``False`` on failure.

        Failures are recorded in the snapshot (status, error, sync error log)
        and the previously cached data is kept.
        """
        with OperationContext("load_user_compliance_data"):
            started = perf_counter()
            self._set_sync_status(SyncStatus.SYNCING)
            try:
                records = self._data.get_user_compliance_records(user_id)
                requirements = self._data.get_all_role_templates()
                tier_info = self._data.get_user_compliance_tier_info(user_id)
            except Exception as exc:  # noqa: BLE001
                log_operational_error(
                    "Compliance data load failed",
                    exc=exc,
                    operation="load_user_compliance_data",
                    user_id=user_id,
                )

                def _failed(state: IntegrationState) -> None:
                    state.sync_status = SyncStatus.ERROR
                    state.error = LOAD_ERROR

                self._container.set_state(_failed)
                self._errors.add_sync_error(f"Failed to load data: {exc}")
                self._tracker.record_sync_outcome(_elapsed_ms(started), succeeded=False)
                return False

            def _loaded(state: IntegrationState) -> None:
                state.user_compliance_records = list(records)
                state.compliance_requirements = list(requirements)
                state.compliance_tiers = [tier_info] if tier_info is not None else []
                state.sync_status = SyncStatus.IDLE
                state.last_sync_time = self._clock()

            self._container.set_state(_loaded)
            duration_ms = _elapsed_ms(started)
            self._tracker.track_state_update("load_user_compliance_data", duration_ms)
            self._tracker.record_sync_outcome(duration_ms, succeeded=True)
            logger.info("compliance_data_loaded user_id=%s records=%s", user_id, len(records))
            return True

    def force_sync_now(self) -> bool:
        user_id = self._current_user_id()
        if user_id is None:
            return False
        return self.load_user_compliance_data(user_id)

    def refresh_all_data(self) -> bool:
        return self.force_sync_now()

    # Writes

    def update_compliance_record(
        self,
        record_id: str,
        updates: Mapping[str, Any],
        *,
        base_version: str | None = None,
    ) -> ComplianceRecord | None:
        """Optimistic write with a compare-and-swap on ``updated_at``.

        ``base_version`` overrides the version the write is conditioned on;
        conflict resolution passes the remote version here. On failure only
        this record is reconciled, a ``data_conflict`` is queued and the
        error is re-raised.
        """
        if not record_id:
            raise ValidationError("record_id is required")
        with OperationContext("update_compliance_record"):
            started = perf_counter()
            stamped = {**dict(updates), "updated_at": self._clock()}
            pre_write: dict[str, ComplianceRecord | None] = {"record": None}

            def _optimistic(state: IntegrationState) -> None:
                found = state.find_record(record_id)
                if found is None:
                    return
                index, record = found
                pre_write["record"] = record
                state.user_compliance_records[index] = record.with_updates(stamped)

            self._container.set_state(_optimistic)
            previous = pre_write["record"]
            expected = base_version if base_version is not None else (previous.updated_at if previous else None)

            self._begin_write(record_id)
            try:
                server_record = self._data.update_compliance_record(record_id, stamped, expected_updated_at=expected)
            except Exception as exc:
                self._tracker.metrics.increment("sync.write_failures")
                log_operational_error(
                    "Compliance record write failed",
                    exc=exc,
                    operation="update_compliance_record",
                    record_id=record_id,
                )
                remote_row = self._reconcile_record(record_id, previous)
                self._conflicts.add_conflict(
                    ConflictType.DATA_CONFLICT,
                    RECORD_COMPONENT,
                    dict(updates),
                    remote_row,
                    {"record_id": record_id, "error": str(exc)},
                )
                self._settle_write(record_id, echo_updated_at=None)
                raise

            self._replace_record(server_record)
            self._settle_write(record_id, echo_updated_at=server_record.updated_at)
            duration_ms = _elapsed_ms(started)
            self._tracker.metrics.record_timing("sync.write", duration_ms)
            self._tracker.track_state_update("update_compliance_record", duration_ms)
            return server_record

    def adopt_remote_record(self, row: Mapping[str, Any]) -> None:
        """Puts a server row into the cache as-is, without writing anything back."""
        self._upsert_record(ComplianceRecord.from_row(row))

    def _reconcile_record(self, record_id: str, previous: ComplianceRecord | None) -> dict[str, Any] | None:
        try:
            current = self._data.get_compliance_record(record_id)
        except Exception as exc:  # noqa: BLE001
            log_operational_error(
                "Compliance record refetch failed",
                exc=exc,
                operation="reconcile_record",
                record_id=record_id,
            )
            if previous is not None:
                self._replace_record(previous)
            return None
        if current is None:
            self._remove_record(record_id)
            return None
        self._replace_record(current)
        return current.to_row()

    def _begin_write(self, record_id: str) -> None:
        with self._pending_lock:
            self._pending.setdefault(record_id, _PendingWrite()).in_flight += 1

    def _settle_write(self, record_id: str, *, echo_updated_at: str | None) -> None:
        with self._pending_lock:
            pending = self._pending.get(record_id)
            if pending is None:
                return
            pending.in_flight -= 1
            if pending.in_flight > 0:
                return
            deferred = self._pending.pop(record_id).deferred
        for event in deferred:
            if echo_updated_at is not None and event.new.get("updated_at") == echo_updated_at:
                continue
            self._apply_change_event(event)

    # Real-time

    def handle_change_event(self, event: ChangeEvent) -> None:
        if event.event_type == ChangeEventType.UPDATE and event.record_id is not None:
            with self._pending_lock:
                pending = self._pending.get(event.record_id)
                if pending is not None:
                    pending.deferred.append(event)
                    return
        self._apply_change_event(event)

    def _apply_change_event(self, event: ChangeEvent) -> None:
        if event.event_type == ChangeEventType.DELETE:
            if event.record_id is not None:
                self._remove_record(event.record_id)
            self._touch_sync_time()
            return

        try:
            incoming = ComplianceRecord.from_row(event.new)
        except ValidationError as exc:
            logger.warning("Ignoring malformed %s event on %s: %s", event.event_type.value, event.table, exc)
            self._touch_sync_time()
            return

        owner = self._current_user_id()
        if owner is not None and incoming.user_id != owner:
            logger.warning(
                "Ignoring %s event for record %s owned by another user", event.event_type.value, incoming.id
            )
            return

        if event.event_type == ChangeEventType.INSERT:
            self._insert_record(incoming)
        else:
            self._apply_remote_update(incoming)
        self._touch_sync_time()

    def _insert_record(self, record: ComplianceRecord) -> None:
        def _mutate(state: IntegrationState) -> None:
            if state.find_record(record.id) is None:
                state.user_compliance_records.append(record)

        self._container.set_state(_mutate)

    def _apply_remote_update(self, incoming: ComplianceRecord) -> None:
        queued: list[str] = []

        def _mutate(state: IntegrationState) -> None:
            found = state.find_record(incoming.id)
            if found is None:
                return
            index, cached = found
            if cached.updated_at == incoming.updated_at:
                state.user_compliance_records[index] = incoming
                return
            conflict = self._conflicts.new_conflict(
                ConflictType.VERSION_CONFLICT,
                RECORD_COMPONENT,
                cached.to_row(),
                incoming.to_row(),
                {"record_id": incoming.id},
            )
            state.conflict_queue.append(conflict)
            queued.append(conflict.id)

        self._container.set_state(_mutate)
        if queued:
            logger.info("version_conflict_queued record_id=%s conflict_id=%s", incoming.id, queued[0])

    def start_real_time_sync(self) -> None:
        user_id = self._current_user_id()
        if user_id is None:
            return
        channel_name = channel_name_for(user_id)
        current = self._subscriptions.get(REALTIME_SUBSCRIPTION)
        if current is not None:
            if current.channel_name == channel_name:
                return
            self.stop_real_time_sync()
        handle = self._gateway.subscribe(
            channel_name,
            RECORDS_TABLE,
            {"user_id": user_id},
            self.handle_change_event,
        )
        self._subscriptions[REALTIME_SUBSCRIPTION] = handle

        def _mutate(state: IntegrationState) -> None:
            state.active_subscriptions[REALTIME_SUBSCRIPTION] = handle.channel_name
            state.performance_metrics.memory_usage.subscription_count = len(state.active_subscriptions)

        self._container.set_state(_mutate)
        logger.info("realtime_sync_started channel=%s", handle.channel_name)

    def stop_real_time_sync(self) -> None:
        handles = list(self._subscriptions.values())
        self._subscriptions.clear()
        for handle in handles:
            try:
                self._gateway.unsubscribe(handle)
            except Exception as exc:  # noqa: BLE001
                log_operational_error(
                    "Realtime unsubscribe failed",
                    exc=exc,
                    operation="stop_real_time_sync",
                    extra={"channel": handle.channel_name},
                )

        def _mutate(state: IntegrationState) -> None:
            state.active_subscriptions = {}
            state.performance_metrics.memory_usage.subscription_count = 0

        self._container.set_state(_mutate)

    # Periodic reconcile

    def start_periodic_sync(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValidationError("Periodic sync interval must be positive")
        self.stop_periodic_sync()
        stop_event = threading.Event()

        def _run() -> None:
            while not stop_event.wait(interval_seconds):
                self.force_sync_now()

        thread = threading.Thread(target=_run, name="compliance-periodic-sync", daemon=True)
        self._periodic_stop = stop_event
        self._periodic_thread = thread
        thread.start()

    def stop_periodic_sync(self) -> None:
        stop_event, thread = self._periodic_stop, self._periodic_thread
        self._periodic_stop = None
        self._periodic_thread = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    # Snapshot helpers

    def _current_user_id(self) -> str | None:
        user_id = self._container.read(lambda state: state.current_user_id)
        return str(user_id) if user_id is not None else None

    def _set_sync_status(self, status: SyncStatus) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.sync_status = status

        self._container.set_state(_mutate)

    def _touch_sync_time(self) -> None:
        stamp = self._clock()

        def _mutate(state: IntegrationState) -> None:
            state.last_sync_time = stamp

        self._container.set_state(_mutate)

    def _replace_record(self, record: ComplianceRecord) -> None:
        def _mutate(state: IntegrationState) -> None:
            found = state.find_record(record.id)
            if found is not None:
                state.user_compliance_records[found[0]] = record

        self._container.set_state(_mutate)

    def _upsert_record(self, record: ComplianceRecord) -> None:
        def _mutate(state: IntegrationState) -> None:
            found = state.find_record(record.id)
            if found is None:
                state.user_compliance_records.append(record)
            else:
                state.user_compliance_records[found[0]] = record

        self._container.set_state(_mutate)

    def _remove_record(self, record_id: str) -> None:
        def _mutate(state: IntegrationState) -> None:
            state.user_compliance_records = [
                record for record in state.user_compliance_records if record.id != record_id
            ]

        self._container.set_state(_mutate)
