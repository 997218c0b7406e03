from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import (
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from compliance_store.core.errors import ValidationError
from compliance_store.domain.models import ComplianceRecord, ComplianceStatus, TierInfo

REPORT_TITLE = "COMPLIANCE STATUS REPORT"

STATUS_LABELS = {
    ComplianceStatus.COMPLIANT: "Compliant",
    ComplianceStatus.PENDING: "Pending",
    ComplianceStatus.WARNING: "Warning",
    ComplianceStatus.NON_COMPLIANT: "Non compliant",
}

STATUS_COLORS = {
    ComplianceStatus.COMPLIANT: colors.HexColor("#DCFCE7"),
    ComplianceStatus.PENDING: colors.HexColor("#F3F4F6"),
    ComplianceStatus.WARNING: colors.HexColor("#FEF9C3"),
    ComplianceStatus.NON_COMPLIANT: colors.HexColor("#FEE2E2"),
}


@dataclass(frozen=True)
class ReportRow:
    requirement: str
    category: str
    status: ComplianceStatus
    updated: str


class ReportlabComplianceReportRenderer:
    def build_file_name(self, user_id: str, generated_at: str) -> str:
        moment = _parse_timestamp(generated_at)
        day = moment.strftime("%Y-%m-%d") if moment else "undated"
        return f"Compliance_Report_({_sanitize_filename(user_id)})_({day}).pdf"

    def render(
        self,
        records: list[ComplianceRecord],
        tier_info: TierInfo | None,
        destination: Path,
        *,
        user_id: str,
        pending_conflicts: int,
    ) -> Path:
        if not records:
            raise ValidationError("There are no compliance records to export")

        destination = _ensure_pdf_extension(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        doc = SimpleDocTemplate(
            str(destination),
            pagesize=A4,
            topMargin=3.0 * cm,
            bottomMargin=2.0 * cm,
            leftMargin=2.0 * cm,
            rightMargin=2.0 * cm,
            title=REPORT_TITLE.title(),
        )

        styles = getSampleStyleSheet()
        styles.add(
            ParagraphStyle(
                name="Body",
                parent=styles["BodyText"],
                leading=14,
                spaceAfter=8,
            )
        )

        rows = _build_rows(records)
        data = [["Requirement", "Category", "Status", "Last update"]]
        data.extend([[row.requirement, row.category, STATUS_LABELS[row.status], row.updated] for row in rows])

        table = Table(data, repeatRows=1, colWidths=[7 * cm, 3.5 * cm, 3 * cm, 3.5 * cm])
        style_commands = [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#E5E7EB")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]
        for index, row in enumerate(rows, start=1):
            style_commands.append(("BACKGROUND", (2, index), (2, index), STATUS_COLORS[row.status]))
        table.setStyle(TableStyle(style_commands))

        story = [Paragraph(line, styles["Body"]) for line in _summary_lines(user_id, tier_info, records, pending_conflicts)]
        story.extend([Spacer(1, 0.4 * cm), table])

        def on_page(canvas, _doc):
            _draw_header(canvas, _doc)

        doc.build(story, onFirstPage=on_page, onLaterPages=on_page)
        return destination


def _build_rows(records: list[ComplianceRecord]) -> list[ReportRow]:
    rows = [
        ReportRow(
            requirement=record.metric_name or record.metric_id or record.id,
            category=record.category or "-",
            status=record.status,
            updated=_format_date(record.updated_at),
        )
        for record in records
    ]
    return sorted(rows, key=lambda row: (row.category, row.requirement))


def _summary_lines(
    user_id: str,
    tier_info: TierInfo | None,
    records: list[ComplianceRecord],
    pending_conflicts: int,
) -> list[str]:
    compliant = sum(1 for record in records if record.status == ComplianceStatus.COMPLIANT)
    lines = [f"<b>User:</b> {_escape(user_id)}"]
    if tier_info is not None:
        lines.append(
            f"<b>Role / tier:</b> {tier_info.role.value} / {tier_info.tier.value} "
            f"({_escape(tier_info.template_name)})"
        )
        lines.append(f"<b>Completion:</b> {tier_info.completion_percentage}%")
        if tier_info.advancement_blocked_reason:
            lines.append(f"<b>Advancement:</b> {_escape(tier_info.advancement_blocked_reason)}")
        else:
            lines.append("<b>Advancement:</b> eligible for the next tier")
    lines.append(f"<b>Requirements met:</b> {compliant} of {len(records)}")
    if pending_conflicts:
        lines.append(f"<b>Unresolved sync conflicts:</b> {pending_conflicts}")
    return lines


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_date(value: str | None) -> str:
    moment = _parse_timestamp(value)
    return moment.strftime("%d/%m/%Y") if moment else "-"


def _sanitize_filename(name: str) -> str:
    replacements = {"/": "-", "\\": "-", " ": "_"}
    for source, target in replacements.items():
        name = name.replace(source, target)
    return name


def _ensure_pdf_extension(path: Path) -> Path:
    if path.suffix.lower() != ".pdf":
        return path.with_suffix(".pdf")
    return path


def _draw_header(canvas, doc) -> None:
    width, height = A4
    title_y = height - doc.topMargin + 1.0 * cm
    canvas.setFont("Helvetica-Bold", 14)
    canvas.drawCentredString(width / 2, title_y, REPORT_TITLE)
    canvas.setFont("Helvetica", 8)
    canvas.drawRightString(width - doc.rightMargin, 1.0 * cm, f"Page {doc.page}")
