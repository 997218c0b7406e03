from __future__ import annotations

from pathlib import Path

import pytest

from compliance_store.core.errors import ValidationError
from compliance_store.domain.models import ComplianceRecord, ComplianceTier, TierInfo, UserRole
from compliance_store.pdf.compliance_report_pdf import ReportlabComplianceReportRenderer
from tests.fakes import make_record


def _tier_info(**overrides) -> TierInfo:
    values = dict(
        user_id="user-1",
        role=UserRole.IC,
        tier=ComplianceTier.BASIC,
        template_name="Instructor Candidate <Basic>",
        description="",
        requirements_count=2,
        completed_requirements=1,
        completion_percentage=50,
        can_advance_tier=False,
        advancement_blocked_reason="Complete at least 80% of requirements (currently 50%)",
    )
    values.update(overrides)
    return TierInfo(**values)


def test_file_name_uses_user_and_day() -> None:
    name = ReportlabComplianceReportRenderer().build_file_name("ana lopez/ops", "2025-03-04T22:10:00Z")

    assert name == "Compliance_Report_(ana_lopez-ops)_(2025-03-04).pdf"
    assert "/" not in name


def test_file_name_with_unparseable_timestamp() -> None:
    assert ReportlabComplianceReportRenderer().build_file_name("u1", "yesterday").endswith("_(undated).pdf")


def test_render_writes_pdf_with_tier_summary(tmp_path: Path) -> None:
    records = [
        ComplianceRecord.from_row(make_record("r1", "compliant")),
        ComplianceRecord.from_row(make_record("r2", "non_compliant", updated_at="not-a-date")),
        ComplianceRecord.from_row({"id": "r3", "user_id": "user-1", "compliance_status": "warning"}),
    ]

    path = ReportlabComplianceReportRenderer().render(
        records, _tier_info(), tmp_path / "out.pdf", user_id="user-1", pending_conflicts=2
    )

    content = path.read_bytes()
    assert content.startswith(b"%PDF")
    assert len(content) > 1000


def test_render_eligible_tier_without_conflicts(tmp_path: Path) -> None:
    records = [ComplianceRecord.from_row(make_record("r1", "compliant"))]

    path = ReportlabComplianceReportRenderer().render(
        records,
        _tier_info(completion_percentage=100, can_advance_tier=True, advancement_blocked_reason=None),
        tmp_path / "eligible",
        user_id="user-1",
        pending_conflicts=0,
    )

    assert path.suffix == ".pdf"
    assert path.exists()


def test_render_rejects_empty_record_list(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        ReportlabComplianceReportRenderer().render([], None, tmp_path / "x.pdf", user_id="u1", pending_conflicts=0)
