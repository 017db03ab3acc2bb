# SPDX-License-Identifier: Apache-2.0

"""
PDF receipts for issued service tokens.

The receipt is rendered in memory with reportlab and streamed to the
citizen; nothing is written to disk.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from opentelemetry import trace
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer
from reportlab.platypus.flowables import HRFlowable

from domain.tokens import UTC, as_utc

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

IMPORTANT_NOTES = (
    "Please bring all required documents listed above",
    "This token is valid for today only",
    "Arrive at the office during working hours",
    "Keep this token with you at all times during your visit",
)
FOOTER = "This is a computer-generated token. No signature required."


@dataclass
class ReceiptContent:
    """Everything printed on a token receipt, already formatted."""
    token_number: int
    generated_on: str
    service: List[Tuple[str, str]]
    organization: List[Tuple[str, str]]
    applicant: List[Tuple[str, str]]
    documents: List[str] = field(default_factory=list)
    notes: Tuple[str, ...] = IMPORTANT_NOTES


def build_receipt_content(
    token_number: int,
    service: Dict[str, Any],
    organization: Optional[Dict[str, Any]],
    user_name: str,
    user_contact: str,
    issued_at: datetime,
    tz: tzinfo = UTC
) -> ReceiptContent:
    """
    Assemble the text of a token receipt.

    Args:
        token_number: Sequential token number for the day
        service: Service document (camelCase fields)
        organization: Owning user document, if it still exists
        user_name: Applicant name
        user_contact: Applicant contact
        issued_at: Issue time (UTC)
        tz: Zone used to print the issue time
    """
    local = as_utc(issued_at).astimezone(tz)
    generated_on = f"{local.strftime('%Y-%m-%d')} at {local.strftime('%I:%M %p')}"

    organization_lines = []
    if organization:
        organization_lines.append(("Organization", organization.get("organizationName", "")))
        location = organization.get("location")
        if location:
            organization_lines.append((
                "Location",
                f"{location.get('municipality', '')}, {location.get('district', '')}, {location.get('province', '')}"
            ))

    return ReceiptContent(
        token_number=token_number,
        generated_on=generated_on,
        service=[
            ("Service Name", service.get("serviceName", "")),
            ("Estimated Time", service.get("estimatedTime", "")),
            ("Service Charge", service.get("charge", ""))
        ],
        organization=organization_lines,
        applicant=[
            ("Name", user_name),
            ("Contact", user_contact)
        ],
        documents=list(service.get("documents") or [])
    )


class TokenReceiptRenderer:
    """Renders ``ReceiptContent`` to an A4 PDF."""

    def __init__(self):
        base = getSampleStyleSheet()
        self.styles = {
            "title": ParagraphStyle(
                "ReceiptTitle", parent=base["Title"], fontSize=24,
                textColor=colors.HexColor("#1f2937"), alignment=TA_CENTER
            ),
            "token": ParagraphStyle(
                "ReceiptToken", parent=base["Heading1"], fontSize=18,
                textColor=colors.HexColor("#dc2626"), alignment=TA_CENTER
            ),
            "meta": ParagraphStyle(
                "ReceiptMeta", parent=base["Normal"], fontSize=12,
                textColor=colors.HexColor("#6b7280"), alignment=TA_CENTER
            ),
            "section": ParagraphStyle(
                "ReceiptSection", parent=base["Heading2"], fontSize=16,
                textColor=colors.HexColor("#1f2937"), spaceBefore=8
            ),
            "body": ParagraphStyle(
                "ReceiptBody", parent=base["Normal"], fontSize=12, leading=16,
                textColor=colors.HexColor("#374151"), leftIndent=20
            ),
            "note": ParagraphStyle(
                "ReceiptNote", parent=base["Normal"], fontSize=11, leading=15,
                textColor=colors.HexColor("#dc2626"), leftIndent=20
            ),
            "footer": ParagraphStyle(
                "ReceiptFooter", parent=base["Normal"], fontSize=10,
                textColor=colors.HexColor("#9ca3af"), alignment=TA_CENTER, spaceBefore=12
            ),
        }

    def _section(self, title: str, lines: List[str], style: str = "body") -> List[Any]:
        story = [Paragraph(f"<u>{escape(title)}</u>", self.styles["section"])]
        story.extend(Paragraph(escape(line), self.styles[style]) for line in lines)
        return story

    def render(self, content: ReceiptContent) -> bytes:
        """Render the receipt and return the PDF bytes."""
        with tracer.start_as_current_span(
            "receipt.render",
            attributes={"token.number": content.token_number}
        ):
            buffer = BytesIO()
            document = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                leftMargin=18 * mm,
                rightMargin=18 * mm,
                topMargin=18 * mm,
                bottomMargin=18 * mm,
                title=f"Service Token #{content.token_number}"
            )

            story: List[Any] = [
                Paragraph("SERVICE TOKEN", self.styles["title"]),
                Paragraph(f"Token #{content.token_number}", self.styles["token"]),
                Paragraph(f"Generated on: {escape(content.generated_on)}", self.styles["meta"]),
                Spacer(1, 6 * mm),
                HRFlowable(width="100%", thickness=1, color=colors.HexColor("#e5e7eb")),
            ]

            story += self._section("SERVICE DETAILS", [f"{k}: {v}" for k, v in content.service])
            story += self._section("ORGANIZATION DETAILS", [f"{k}: {v}" for k, v in content.organization])
            story += self._section("APPLICANT DETAILS", [f"{k}: {v}" for k, v in content.applicant])
            story += self._section(
                "REQUIRED DOCUMENTS",
                [f"{index}. {name}" for index, name in enumerate(content.documents, start=1)]
            )
            story += self._section("IMPORTANT NOTES", [f"• {note}" for note in content.notes], style="note")
            story.append(Paragraph(FOOTER, self.styles["footer"]))

            document.build(story)
            pdf = buffer.getvalue()

            logger.debug("Token receipt rendered", extra={"token_number": content.token_number, "size": len(pdf)})
            return pdf


def receipt_filename(service_id: str, token_number: int, issued_at: datetime) -> str:
    """Download name: ``token-<serviceId>-<number>-<epoch ms>.pdf``."""
    epoch_ms = int(as_utc(issued_at).timestamp() * 1000)
    return f"token-{service_id}-{token_number}-{epoch_ms}.pdf"
