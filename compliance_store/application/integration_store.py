from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from compliance_store.application.compliance_data_service import ComplianceDataService
from compliance_store.application.conflict_queue import ConflictQueue, ConflictResolver
from compliance_store.application.error_log import ErrorLog
from compliance_store.application.performance_tracker import PerformanceReport, PerformanceTracker
from compliance_store.application.registries import ComponentRegistry, SharedDataKey, SharedDataRegistry
from compliance_store.application.state_container import (
    DEFAULT_MAX_LISTENERS,
    StateContainer,
    StateListener,
    Unsubscribe,
)
from compliance_store.application.sync_engine import SyncEngine
from compliance_store.core.metrics import MetricsRegistry
from compliance_store.domain.models import ComplianceRecord, ComplianceTier, SyncStatus, UserRole
from compliance_store.domain.ports import ChangeEvent, RemoteGateway
from compliance_store.domain.state import ConflictItem, ConflictResolution, ConflictType, IntegrationState

logger = logging.getLogger(__name__)


class IntegrationStore:
    """Per-session facade over the compliance snapshot.

    Wires the state container to the sync engine, conflict queue, registries
    and performance tracker, and exposes the operations UI code calls.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        data_service: ComplianceDataService | None = None,
        metrics: MetricsRegistry | None = None,
        max_listeners: int = DEFAULT_MAX_LISTENERS,
        clock: Callable[[], str] | None = None,
    ) -> None:
        clock_kwargs = {"clock": clock} if clock is not None else {}
        self._container = StateContainer(max_listeners=max_listeners)
        self._errors = ErrorLog(self._container, **clock_kwargs)
        self._tracker = PerformanceTracker(self._container, metrics)
        self._conflicts = ConflictQueue(self._container, **clock_kwargs)
        self._components = ComponentRegistry(self._container, self._tracker)
        self._shared = SharedDataRegistry(self._container)
        self._sync = SyncEngine(
            self._container,
            data_service or ComplianceDataService(gateway),
            gateway,
            self._conflicts,
            self._tracker,
            self._errors,
            **clock_kwargs,
        )
        self._resolver = ConflictResolver(self._conflicts, self._sync)

    # Snapshot

    def get_state(self) -> IntegrationState:
        return self._container.get_state()

    def subscribe(self, listener: StateListener) -> Unsubscribe:
        return self._container.subscribe(listener)

    @property
    def metrics(self) -> MetricsRegistry:
        return self._tracker.metrics

    # Lifecycle

    def initialize(self, user_id: str, role: UserRole | str, tier: ComplianceTier | str) -> None:
        self._sync.initialize(user_id, role, tier)

    def cleanup(self) -> None:
        self._sync.shutdown()

        def _reset(state: IntegrationState) -> None:
            state.component_states = {}
            state.shared_data = {}
            state.conflict_queue = []
            state.is_resolving_conflicts = False
            state.current_user_id = None
            state.current_user_role = None
            state.current_user_tier = None
            state.sync_status = SyncStatus.IDLE
            state.performance_metrics.memory_usage.component_count = 0

        self._container.set_state(_reset)
        logger.info("store_cleaned_up")

    # Data

    def load_user_compliance_data(self, user_id: str) -> bool:
        return self._sync.load_user_compliance_data(user_id)

    def update_compliance_record(self, record_id: str, updates: Mapping[str, Any]) -> ComplianceRecord | None:
        return self._sync.update_compliance_record(record_id, updates)

    def refresh_all_data(self) -> bool:
        return self._sync.refresh_all_data()

    # Components

    def register_component(self, component_id: str, initial_state: Mapping[str, Any] | None = None) -> None:
        self._components.register_component(component_id, initial_state)

    def update_component_state(self, component_id: str, updates: Mapping[str, Any]) -> None:
        self._components.update_component_state(component_id, updates)

    def get_component_state(self, component_id: str) -> dict[str, Any] | None:
        return self._components.get_component_state(component_id)

    def unregister_component(self, component_id: str) -> None:
        self._components.unregister_component(component_id)

    # Shared data

    def set_shared_data(self, key: SharedDataKey, data: Any) -> None:
        self._shared.set_shared_data(key, data)

    def get_shared_data(self, key: SharedDataKey) -> Any:
        return self._shared.get_shared_data(key)

    def remove_shared_data(self, key: SharedDataKey) -> None:
        self._shared.remove_shared_data(key)

    # Sync

    def start_real_time_sync(self) -> None:
        self._sync.start_real_time_sync()

    def stop_real_time_sync(self) -> None:
        self._sync.stop_real_time_sync()

    def force_sync_now(self) -> bool:
        return self._sync.force_sync_now()

    def start_periodic_sync(self, interval_seconds: float) -> None:
        self._sync.start_periodic_sync(interval_seconds)

    def stop_periodic_sync(self) -> None:
        self._sync.stop_periodic_sync()

    def handle_change_event(self, event: ChangeEvent) -> None:
        self._sync.handle_change_event(event)

    # Conflicts

    def add_conflict(
        self,
        conflict_type: ConflictType | str,
        component: str,
        local_data: Mapping[str, Any] | None,
        remote_data: Mapping[str, Any] | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ConflictItem:
        return self._conflicts.add_conflict(ConflictType(conflict_type), component, local_data, remote_data, metadata)

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: ConflictResolution | str,
        merged_data: Mapping[str, Any] | None = None,
    ) -> bool:
        return self._resolver.resolve_conflict(conflict_id, resolution, merged_data)

    def clear_conflicts(self) -> None:
        self._conflicts.clear_conflicts()

    # Performance

    def track_component_render(self, component_id: str, render_time_ms: float) -> None:
        self._tracker.track_component_render(component_id, render_time_ms)

    def track_state_update(self, state_key: str, update_time_ms: float) -> None:
        self._tracker.track_state_update(state_key, update_time_ms)

    def get_performance_report(self) -> PerformanceReport:
        return self._tracker.get_performance_report()

    def performance_report_dict(self) -> dict[str, Any]:
        return self._tracker.report_as_dict()

    # Errors

    def set_error(self, error: str | None) -> None:
        self._errors.set_error(error)

    def clear_error(self) -> None:
        self._errors.clear_error()

    def add_sync_error(self, error: str) -> None:
        self._errors.add_sync_error(error)

    def clear_sync_errors(self) -> None:
        self._errors.clear_sync_errors()
