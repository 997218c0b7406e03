from __future__ import annotations

from pathlib import Path

import pytest

from compliance_store.application.compliance_report import REPORTS_BUCKET, ComplianceReportService
from compliance_store.application.integration_store import IntegrationStore
from compliance_store.core.errors import RemoteGatewayError, ValidationError
from compliance_store.core.metrics import MetricsRegistry
from compliance_store.domain.models import ComplianceRecord, TierInfo
from compliance_store.pdf.compliance_report_pdf import ReportlabComplianceReportRenderer
from tests.fakes import FakeGateway


class RecordingRenderer:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def build_file_name(self, user_id: str, generated_at: str) -> str:
        return f"report-{user_id}.pdf"

    def render(
        self,
        records: list[ComplianceRecord],
        tier_info: TierInfo | None,
        destination: Path,
        *,
        user_id: str,
        pending_conflicts: int,
    ) -> Path:
        self.calls.append(
            {
                "records": [record.id for record in records],
                "tier_info": tier_info,
                "user_id": user_id,
                "pending_conflicts": pending_conflicts,
            }
        )
        destination.write_bytes(b"%PDF-fake")
        return destination


def _service(store: IntegrationStore, gateway: FakeGateway, renderer, metrics: MetricsRegistry | None = None):
    return ComplianceReportService(
        store.get_state,
        renderer,
        gateway,
        metrics=metrics,
        clock=lambda: "2025-03-01T10:00:00+00:00",
    )


def test_export_renders_current_snapshot(loaded_store: IntegrationStore, gateway: FakeGateway, tmp_path: Path) -> None:
    renderer = RecordingRenderer()
    metrics = MetricsRegistry()
    loaded_store.add_conflict("state_conflict", "Dashboard", None, None)

    result = _service(loaded_store, gateway, renderer, metrics).export(tmp_path)

    assert result.path == tmp_path / "report-user-1.pdf"
    assert result.public_url is None
    call = renderer.calls[0]
    assert call["records"] == ["r1", "r2"]
    assert call["user_id"] == "user-1"
    assert call["pending_conflicts"] == 1
    assert call["tier_info"].completion_percentage == 50
    assert len(metrics.timings("report.render")) == 1


def test_export_and_upload(loaded_store: IntegrationStore, gateway: FakeGateway, tmp_path: Path) -> None:
    metrics = MetricsRegistry()

    result = _service(loaded_store, gateway, RecordingRenderer(), metrics).export(
        tmp_path / "custom.pdf", upload=True
    )

    assert result.storage_path == "user-1/custom.pdf"
    assert result.public_url == f"https://storage.test/{REPORTS_BUCKET}/user-1/custom.pdf"
    assert gateway.uploads[(REPORTS_BUCKET, "user-1/custom.pdf")] == b"%PDF-fake"
    assert metrics.counter("report.uploads") == 1


def test_upload_failure_propagates(loaded_store: IntegrationStore, gateway: FakeGateway, tmp_path: Path) -> None:
    gateway.failures["upload"] = RemoteGatewayError("bucket missing")

    with pytest.raises(RemoteGatewayError):
        _service(loaded_store, gateway, RecordingRenderer()).export(tmp_path, upload=True)


def test_export_needs_a_loaded_user(store: IntegrationStore, gateway: FakeGateway, tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        _service(store, gateway, RecordingRenderer()).export(tmp_path)


def test_export_needs_records(tmp_path: Path) -> None:
    gateway = FakeGateway({"user_compliance_records": [], "profiles": []})
    store = IntegrationStore(gateway)
    store.initialize("user-1", "IT", "basic")

    with pytest.raises(ValidationError):
        _service(store, gateway, RecordingRenderer()).export(tmp_path)
    store.cleanup()


def test_reportlab_renderer_writes_pdf(loaded_store: IntegrationStore, gateway: FakeGateway, tmp_path: Path) -> None:
    renderer = ReportlabComplianceReportRenderer()
    service = _service(loaded_store, gateway, renderer)

    assert service.suggested_file_name() == "Compliance_Report_(user-1)_(2025-03-01).pdf"
    result = service.export(tmp_path)

    assert result.path.name == "Compliance_Report_(user-1)_(2025-03-01).pdf"
    assert result.path.read_bytes().startswith(b"%PDF")


def test_reportlab_renderer_forces_pdf_suffix(loaded_store: IntegrationStore, tmp_path: Path) -> None:
    state = loaded_store.get_state()

    path = ReportlabComplianceReportRenderer().render(
        state.user_compliance_records,
        None,
        tmp_path / "nested" / "summary.txt",
        user_id="user-1",
        pending_conflicts=0,
    )

    assert path == tmp_path / "nested" / "summary.pdf"
    assert path.exists()
