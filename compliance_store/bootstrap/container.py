from __future__ import annotations

from dataclasses import dataclass

from compliance_store.application.compliance_data_service import ComplianceDataService
from compliance_store.application.compliance_report import ComplianceReportService
from compliance_store.application.integration_store import IntegrationStore
from compliance_store.application.notifications import NotificationDispatcher
from compliance_store.bootstrap.settings import Settings
from compliance_store.core.metrics import MetricsRegistry
from compliance_store.domain.ports import RemoteGateway
from compliance_store.infrastructure.supabase_gateway import SupabaseGateway
from compliance_store.pdf.compliance_report_pdf import ReportlabComplianceReportRenderer


@dataclass
class AppContainer:
    gateway: RemoteGateway
    metrics: MetricsRegistry
    data_service: ComplianceDataService
    store: IntegrationStore
    report_service: ComplianceReportService
    notification_dispatcher: NotificationDispatcher

    def close(self) -> None:
        """Ends the session: stops background sync, then releases gateway feeds."""
        self.store.cleanup()
        self.gateway.close()


def build_container(settings: Settings, gateway: RemoteGateway | None = None) -> AppContainer:
    """Builds one session's object graph; each call yields an independent store."""
    resolved_gateway = gateway or SupabaseGateway.from_credentials(
        settings.supabase_url,
        settings.supabase_key,
        poll_interval_seconds=settings.poll_interval_seconds,
    )
    metrics = MetricsRegistry()
    data_service = ComplianceDataService(resolved_gateway)
    store = IntegrationStore(
        resolved_gateway,
        data_service=data_service,
        metrics=metrics,
        max_listeners=settings.max_listeners,
    )
    report_service = ComplianceReportService(
        store.get_state,
        ReportlabComplianceReportRenderer(),
        resolved_gateway,
        metrics=metrics,
    )
    return AppContainer(
        gateway=resolved_gateway,
        metrics=metrics,
        data_service=data_service,
        store=store,
        report_service=report_service,
        notification_dispatcher=NotificationDispatcher(resolved_gateway),
    )
