from __future__ import annotations

import logging
from typing import Any, Mapping

from compliance_store.core.errors import ValidationError, VersionConflictError
from compliance_store.domain.models import (
    ComplianceRecord,
    ComplianceStatus,
    ComplianceTier,
    RequirementTemplate,
    TierInfo,
    UserRole,
)
from compliance_store.domain.ports import RemoteGateway
from compliance_store.domain.requirement_templates import get_all_role_templates, get_template

logger = logging.getLogger(__name__)

RECORDS_TABLE = "user_compliance_records"
PROFILES_TABLE = "profiles"
TEMPLATES_TABLE = "compliance_templates"

# Embedded relations returned by selects; never written back.
READONLY_COLUMNS = frozenset({"id", "compliance_metrics"})

ADVANCEMENT_THRESHOLD = 80

DEFAULT_UI_CONFIG: dict[str, Any] = {
    "theme_color": "#3B82F6",
    "icon": "Shield",
    "dashboard_layout": "grid",
}


def completion_percentage(records: list[ComplianceRecord]) -> int:
    if not records:
        return 0
    completed = sum(1 for record in records if record.status == ComplianceStatus.COMPLIANT)
    return round((completed / len(records)) * 100)


def advancement_blocked_reason(tier: ComplianceTier, percentage: int) -> str | None:
    if tier == ComplianceTier.ROBUST:
        return "Already at the highest compliance tier"
    if percentage < ADVANCEMENT_THRESHOLD:
        return f"Complete at least {ADVANCEMENT_THRESHOLD}% of requirements (currently {percentage}%)"
    return None


class ComplianceDataService:
    """Remote reads and writes behind the store's sync engine."""

    def __init__(self, gateway: RemoteGateway) -> None:
        self._gateway = gateway

    def get_user_compliance_records(self, user_id: str) -> list[ComplianceRecord]:
        rows = self._gateway.select(RECORDS_TABLE, {"user_id": user_id})
        return [ComplianceRecord.from_row(row) for row in rows]

    def get_compliance_record(self, record_id: str) -> ComplianceRecord | None:
        rows = self._gateway.select(RECORDS_TABLE, {"id": record_id})
        return ComplianceRecord.from_row(rows[0]) if rows else None

    def get_all_role_templates(self) -> list[RequirementTemplate]:
        return get_all_role_templates()

    def get_user_compliance_tier_info(self, user_id: str) -> TierInfo | None:
        profiles = self._gateway.select(PROFILES_TABLE, {"id": user_id}, columns="id, role, compliance_tier")
        if not profiles:
            logger.info("No profile found for user_id=%s; tier info skipped", user_id)
            return None
        profile = profiles[0]
        try:
            role = UserRole(profile.get("role"))
            tier = ComplianceTier(profile.get("compliance_tier") or ComplianceTier.BASIC.value)
        except ValueError as exc:
            raise ValidationError(f"Profile {user_id} has an unknown role or tier") from exc

        templates = self._gateway.select(TEMPLATES_TABLE, {"role": role.value, "tier": tier.value})
        template_row = templates[0] if templates else {}
        local_template = get_template(role, tier)
        records = self.get_user_compliance_records(user_id)
        percentage = completion_percentage(records)
        blocked_reason = advancement_blocked_reason(tier, percentage)
        return TierInfo(
            user_id=user_id,
            role=role,
            tier=tier,
            template_name=str(template_row.get("template_name") or f"{role.value} {tier.value.title()}"),
            description=str(template_row.get("description") or ""),
            requirements_count=len(records) or (len(local_template.requirements) if local_template else 0),
            completed_requirements=sum(1 for record in records if record.status == ComplianceStatus.COMPLIANT),
            completion_percentage=percentage,
            can_advance_tier=blocked_reason is None,
            advancement_blocked_reason=blocked_reason,
            ui_config=dict(template_row.get("ui_config") or DEFAULT_UI_CONFIG),
        )

    def update_compliance_record(
        self,
        record_id: str,
        values: Mapping[str, Any],
        *,
        expected_updated_at: str | None,
    ) -> ComplianceRecord:
        """Compare-and-swap write keyed on the row's ``updated_at``.

        Raises :class:`VersionConflictError` when no row matched, meaning the
        row changed (or vanished) since ``expected_updated_at`` was read.
        """
        filters: dict[str, Any] = {"id": record_id}
        if expected_updated_at is not None:
            filters["updated_at"] = expected_updated_at
        payload = {key: value for key, value in values.items() if key not in READONLY_COLUMNS}
        rows = self._gateway.update(RECORDS_TABLE, payload, filters)
        if not rows:
            raise VersionConflictError(record_id, expected_updated_at)
        return ComplianceRecord.from_row(rows[0])
