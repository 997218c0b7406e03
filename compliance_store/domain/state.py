from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass, replace
from enum import Enum
from typing import Any

from compliance_store.domain.models import (
    ComplianceRecord,
    ComplianceTier,
    RequirementTemplate,
    SyncStatus,
    TierInfo,
    UserRole,
)

MAX_SYNC_ERRORS = 20

RECORD_COMPONENTS = frozenset({"ComplianceRecord", "UserComplianceRecord"})


class ConflictType(str, Enum):
    DATA_CONFLICT = "data_conflict"
    STATE_CONFLICT = "state_conflict"
    VERSION_CONFLICT = "version_conflict"


class ConflictResolution(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"
    MANUAL = "manual"


@dataclass
class ConflictItem:
    id: str
    type: ConflictType
    component: str
    timestamp: str
    local_data: dict[str, Any] | None
    remote_data: dict[str, Any] | None
    resolution: ConflictResolution | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str | None:
        value = self.metadata.get("record_id")
        return str(value) if value is not None else None

    @property
    def concerns_record(self) -> bool:
        return self.component in RECORD_COMPONENTS and self.record_id is not None


@dataclass
class SyncPerformance:
    average_time: float = 0.0
    success_rate: float = 100.0
    error_count: int = 0


@dataclass
class MemoryUsage:
    state_size: int = 0
    component_count: int = 0
    subscription_count: int = 0


@dataclass
class PerformanceMetrics:
    component_render_times: dict[str, list[float]] = field(default_factory=dict)
    state_update_times: dict[str, list[float]] = field(default_factory=dict)
    sync_performance: SyncPerformance = field(default_factory=SyncPerformance)
    memory_usage: MemoryUsage = field(default_factory=MemoryUsage)


@dataclass
class IntegrationState:
    user_compliance_records: list[ComplianceRecord] = field(default_factory=list)
    compliance_requirements: list[RequirementTemplate] = field(default_factory=list)
    compliance_tiers: list[TierInfo] = field(default_factory=list)
    sync_status: SyncStatus = SyncStatus.IDLE
    last_sync_time: str | None = None
    sync_errors: list[str] = field(default_factory=list)
    component_states: dict[str, dict[str, Any]] = field(default_factory=dict)
    shared_data: dict[str, dict[str, Any]] = field(default_factory=dict)
    conflict_queue: list[ConflictItem] = field(default_factory=list)
    is_resolving_conflicts: bool = False
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    active_subscriptions: dict[str, str] = field(default_factory=dict)
    is_loading: bool = False
    error: str | None = None
    current_user_id: str | None = None
    current_user_role: UserRole | None = None
    current_user_tier: ComplianceTier | None = None

    def find_record(self, record_id: str) -> tuple[int, ComplianceRecord] | None:
        for index, record in enumerate(self.user_compliance_records):
            if record.id == record_id:
                return index, record
        return None

    def clone(self, *, detach_records: bool = False) -> "IntegrationState":
        """Copies the containers the store owns.

        Values handed in by callers (shared data, component state entries)
        are kept by reference, so they never need to be copyable.
        ``detach_records`` also copies each cached row for snapshots leaving
        the store.
        """
        metrics = self.performance_metrics
        records = self.user_compliance_records
        if detach_records:
            records = [ComplianceRecord(row=dict(record.row)) for record in records]
        return replace(
            self,
            user_compliance_records=list(records),
            compliance_requirements=list(self.compliance_requirements),
            compliance_tiers=list(self.compliance_tiers),
            sync_errors=list(self.sync_errors),
            component_states={key: dict(value) for key, value in self.component_states.items()},
            shared_data={key: dict(entry) for key, entry in self.shared_data.items()},
            conflict_queue=[
                replace(
                    item,
                    local_data=dict(item.local_data) if item.local_data is not None else None,
                    remote_data=dict(item.remote_data) if item.remote_data is not None else None,
                    metadata=dict(item.metadata),
                )
                for item in self.conflict_queue
            ],
            performance_metrics=PerformanceMetrics(
                component_render_times={key: list(values) for key, values in metrics.component_render_times.items()},
                state_update_times={key: list(values) for key, values in metrics.state_update_times.items()},
                sync_performance=replace(metrics.sync_performance),
                memory_usage=replace(metrics.memory_usage),
            ),
            active_subscriptions=dict(self.active_subscriptions),
        )

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


def _plain(value: Any) -> Any:
    # Unlike dataclasses.asdict, leaves are not deep-copied.
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: _plain(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value
