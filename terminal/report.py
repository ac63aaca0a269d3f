"""Printable PDF report of a synced allocation batch."""

from __future__ import annotations

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from backend.domain.models import Allocation
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

ACCENT = colors.HexColor("#38BDF8")


def _display_time(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return timestamp


def group_by_room(allocations: Sequence[Allocation]) -> list[tuple[str, list[Allocation]]]:
    """Groups keyed "<hostel> - Room <no>", sorted by that label."""
    groups: dict[str, list[Allocation]] = {}
    for allocation in allocations:
        label = f"{allocation.hostel} - Room {allocation.room_no}"
        groups.setdefault(label, []).append(allocation)
    return sorted(groups.items())


class AllocationReportBuilder:
    def __init__(
        self,
        output_directory: Optional[Path] = None,
        title: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        resolved = settings or get_settings()
        self._output_directory = Path(output_directory or resolved.report_directory)
        self._title = title or resolved.report_title

    def render(self, allocations: Sequence[Allocation]) -> bytes:
        if not allocations:
            raise ValueError("No allocations to print")

        buffer = BytesIO()
        document = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            leftMargin=14 * mm,
            rightMargin=14 * mm,
            title=self._title,
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Title"],
            textColor=colors.HexColor("#0EA5E9"),
        )
        room_style = ParagraphStyle("RoomHeading", parent=styles["Heading2"], textColor=ACCENT)

        elements = [
            Paragraph(self._title, title_style),
            Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles["Normal"]),
            Paragraph(f"Total Allocations: {len(allocations)}", styles["Normal"]),
            Spacer(1, 8 * mm),
        ]

        for label, people in group_by_room(allocations):
            elements.append(Paragraph(label, room_style))
            elements.append(
                Paragraph(f"Password: {people[0].room_password or 'N/A'}", styles["Normal"])
            )
            elements.append(Paragraph(f"Occupancy: {len(people)} person(s)", styles["Normal"]))
            elements.append(Spacer(1, 3 * mm))

            rows = [["Name", "MI No.", "Email", "Allocated At"]]
            rows.extend(
                [person.name, person.mi_no, person.email, _display_time(person.timestamp)]
                for person in people
            )
            table = Table(rows, colWidths=[45 * mm, 30 * mm, 60 * mm, 45 * mm], repeatRows=1)
            table.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
                        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                        ("FONTSIZE", (0, 0), (-1, 0), 10),
                        ("FONTSIZE", (0, 1), (-1, -1), 9),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ]
                )
            )
            elements.append(table)
            elements.append(Spacer(1, 8 * mm))

        document.build(elements, onFirstPage=self._footer, onLaterPages=self._footer)
        return buffer.getvalue()

    def _footer(self, canvas, document) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.grey)
        canvas.drawCentredString(
            A4[0] / 2.0,
            10 * mm,
            f"Page {document.page} | {self._title}",
        )
        canvas.restoreState()

    def build(self, allocations: Sequence[Allocation]) -> Path:
        """Render and write the report; returns the written file."""
        content = self.render(allocations)
        self._output_directory.mkdir(parents=True, exist_ok=True)
        path = self._output_directory / f"allocations_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.pdf"
        path.write_bytes(content)
        logger.info("Wrote allocation report for %s allocations to %s", len(allocations), path)
        return path
