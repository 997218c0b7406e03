from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from compliance_store.core.errors import ValidationError
from compliance_store.core.metrics import MetricsRegistry, measure_time
from compliance_store.core.observability import OperationContext, log_event
from compliance_store.core.operational_logging import log_operational_error
from compliance_store.domain.ports import ComplianceReportRenderer, RemoteGateway
from compliance_store.domain.state import IntegrationState

logger = logging.getLogger(__name__)

REPORTS_BUCKET = "compliance-reports"
PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class ReportResult:
    path: Path
    storage_path: str | None = None
    public_url: str | None = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ComplianceReportService:
    """Exports the cached compliance snapshot of the current user as a PDF."""

    def __init__(
        self,
        snapshot: Callable[[], IntegrationState],
        renderer: ComplianceReportRenderer,
        gateway: RemoteGateway | None = None,
        *,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self._snapshot = snapshot
        self._renderer = renderer
        self._gateway = gateway
        self._metrics = metrics or MetricsRegistry()
        self._clock = clock
        self._render = measure_time("report.render", self._metrics)(self._renderer.render)

    def suggested_file_name(self) -> str:
        state = self._snapshot()
        if state.current_user_id is None:
            raise ValidationError("No user is loaded in the store")
        return self._renderer.build_file_name(state.current_user_id, self._clock())

    def export(self, destination: Path, *, upload: bool = False) -> ReportResult:
        state = self._snapshot()
        user_id = state.current_user_id
        if user_id is None:
            raise ValidationError("No user is loaded in the store")
        if not state.user_compliance_records:
            raise ValidationError("There are no compliance records to export")
        if destination.is_dir():
            destination = destination / self._renderer.build_file_name(user_id, self._clock())

        with OperationContext("export_compliance_report"):
            tier_info = state.compliance_tiers[0] if state.compliance_tiers else None
            path = self._render(
                state.user_compliance_records,
                tier_info,
                destination,
                user_id=user_id,
                pending_conflicts=len(state.conflict_queue),
            )
            log_event(logger, "compliance_report_written", {"user_id": user_id, "path": str(path)})
            if not upload:
                return ReportResult(path=path)
            return self._upload(path, user_id)

    def _upload(self, path: Path, user_id: str) -> ReportResult:
        if self._gateway is None:
            raise ValidationError("Report upload needs a remote gateway")
        storage_path = f"{user_id}/{path.name}"
        try:
            stored = self._gateway.upload(REPORTS_BUCKET, storage_path, path.read_bytes(), PDF_CONTENT_TYPE)
            public_url = self._gateway.get_public_url(REPORTS_BUCKET, stored)
        except Exception as exc:
            log_operational_error(
                "Compliance report upload failed",
                exc=exc,
                operation="upload_compliance_report",
                user_id=user_id,
            )
            raise
        self._metrics.increment("report.uploads")
        log_event(logger, "compliance_report_uploaded", {"user_id": user_id, "storage_path": stored})
        return ReportResult(path=path, storage_path=stored, public_url=public_url)
