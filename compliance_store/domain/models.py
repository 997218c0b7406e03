from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from compliance_store.core.errors import ValidationError


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    PENDING = "pending"
    WARNING = "warning"
    NON_COMPLIANT = "non_compliant"


class UserRole(str, Enum):
    AP = "AP"
    IC = "IC"
    IP = "IP"
    IT = "IT"


class ComplianceTier(str, Enum):
    BASIC = "basic"
    ROBUST = "robust"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


STATUS_COLUMN = "compliance_status"
LEGACY_STATUS_COLUMN = "status"


@dataclass(frozen=True)
class ComplianceRecord:
    """Cached copy of one ``user_compliance_records`` row.

    The raw row is kept as-is so that columns the store does not model
    (joined metric details, audit columns) survive a round trip through the
    cache and can be compared against incoming payloads verbatim.
    """

    row: Mapping[str, Any]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ComplianceRecord":
        if not row.get("id"):
            raise ValidationError("Compliance record without id")
        if not row.get("user_id"):
            raise ValidationError(f"Compliance record {row.get('id')} without user_id")
        raw_status = row.get(STATUS_COLUMN, row.get(LEGACY_STATUS_COLUMN))
        if raw_status is not None:
            try:
                ComplianceStatus(raw_status)
            except ValueError as exc:
                raise ValidationError(f"Unknown compliance status: {raw_status!r}") from exc
        return cls(row=dict(row))

    @property
    def id(self) -> str:
        return str(self.row["id"])

    @property
    def user_id(self) -> str:
        return str(self.row["user_id"])

    @property
    def status(self) -> ComplianceStatus:
        raw_status = self.row.get(STATUS_COLUMN, self.row.get(LEGACY_STATUS_COLUMN))
        return ComplianceStatus(raw_status) if raw_status is not None else ComplianceStatus.PENDING

    @property
    def updated_at(self) -> str | None:
        value = self.row.get("updated_at")
        return str(value) if value is not None else None

    @property
    def metric_id(self) -> str | None:
        value = self.row.get("metric_id")
        return str(value) if value is not None else None

    @property
    def metric_name(self) -> str | None:
        metric = self.row.get("compliance_metrics")
        if isinstance(metric, Mapping) and metric.get("name"):
            return str(metric["name"])
        value = self.row.get("metric_name")
        return str(value) if value is not None else None

    @property
    def category(self) -> str | None:
        metric = self.row.get("compliance_metrics")
        if isinstance(metric, Mapping) and metric.get("category"):
            return str(metric["category"])
        value = self.row.get("category")
        return str(value) if value is not None else None

    def with_updates(self, updates: Mapping[str, Any]) -> "ComplianceRecord":
        merged = {**self.row, **updates}
        merged["id"] = self.row["id"]
        return ComplianceRecord.from_row(merged)

    def to_row(self) -> dict[str, Any]:
        return dict(self.row)


@dataclass(frozen=True)
class RequirementDefinition:
    name: str
    description: str
    category: str
    requirement_type: str
    is_mandatory: bool
    points_value: int
    due_days_from_assignment: int
    display_order: int


@dataclass(frozen=True)
class RequirementTemplate:
    role: UserRole
    tier: ComplianceTier
    requirements: tuple[RequirementDefinition, ...] = ()

    @property
    def total_points(self) -> int:
        return sum(requirement.points_value for requirement in self.requirements)


@dataclass(frozen=True)
class TierInfo:
    user_id: str
    role: UserRole
    tier: ComplianceTier
    template_name: str
    description: str
    requirements_count: int
    completed_requirements: int
    completion_percentage: int
    can_advance_tier: bool
    advancement_blocked_reason: str | None = None
    ui_config: dict[str, Any] = field(default_factory=dict)
