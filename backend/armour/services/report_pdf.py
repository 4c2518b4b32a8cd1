"""Analysis report PDF, rendered with reportlab."""

import io
import logging
from datetime import datetime
from typing import Any, Dict
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from armour.errors import DocumentRenderError
from armour.services.normalizer import normalize

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "high": "#c0392b",
    "medium": "#d68910",
    "warning": "#2e86c1",
    "low": "#229954",
}


def _p(text: Any, style) -> Paragraph:
    return Paragraph(escape(str(text or "")), style)


def generate_report_pdf(analysis: Dict[str, Any]) -> bytes:
    """Render the analysis as a PDF. Raises DocumentRenderError on failure."""
    try:
        return _render(analysis)
    except Exception as e:
        logger.error(f"[Report] PDF rendering failed: {e}")
        raise DocumentRenderError(f"Failed to render report PDF: {e}") from e


def _render(analysis: Dict[str, Any]) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=72, leftMargin=72, topMargin=72, bottomMargin=72)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle", parent=styles["Heading1"], fontSize=22, spaceAfter=24,
        alignment=TA_CENTER, textColor=colors.darkblue,
    )
    heading_style = ParagraphStyle(
        "ReportHeading", parent=styles["Heading2"], fontSize=15, spaceBefore=18,
        spaceAfter=10, textColor=colors.darkblue,
    )
    normal_style = ParagraphStyle("ReportNormal", parent=styles["Normal"], fontSize=10.5, spaceAfter=6)

    normalized = normalize(analysis)
    story = [
        Paragraph("Creator Armour", title_style),
        Paragraph("Contract Protection Report", title_style),
        _p(f"Generated: {datetime.now().strftime('%d %B %Y')}", normal_style),
        _p(f"Protection Score: {normalized['protectionScore']}/100", normal_style),
        _p(f"Overall Risk: {normalized['overallRisk'].upper()}", normal_style),
    ]
    if analysis.get("negotiationPowerScore") is not None:
        story.append(_p(f"Negotiation Power Score: {analysis['negotiationPowerScore']}", normal_style))
    story.append(Spacer(1, 16))

    key_terms = analysis.get("keyTerms") or {}
    if key_terms:
        story.append(Paragraph("Key Terms", heading_style))
        rows = [["Term", "Value"]] + [
            [_p(k, normal_style), _p(v, normal_style)] for k, v in key_terms.items() if v
        ]
        table = Table(rows, colWidths=[1.8 * inch, 4.2 * inch])
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.beige, colors.white]),
        ]))
        story.append(table)

    issues = analysis.get("issues") or []
    if issues:
        story.append(Paragraph("Issues Found", heading_style))
        for n, issue in enumerate(issues, 1):
            severity = str(issue.get("severity") or "medium").lower()
            color = SEVERITY_COLORS.get(severity, "#000000")
            story.append(Paragraph(
                f'<font color="{color}"><b>[{escape(severity.upper())}]</b></font> '
                f"<b>{n}. {escape(str(issue.get('title') or 'Issue'))}</b>",
                normal_style,
            ))
            story.append(_p(issue.get("description"), normal_style))
            if issue.get("clause"):
                story.append(_p(f"Clause: {issue['clause']}", normal_style))
            if issue.get("recommendation"):
                story.append(_p(f"Recommendation: {issue['recommendation']}", normal_style))
            story.append(Spacer(1, 6))

    verified = analysis.get("verified") or []
    if verified:
        story.append(Paragraph("What Looks Good", heading_style))
        for item in verified:
            story.append(_p(f"{item.get('title') or ''}: {item.get('description') or ''}", normal_style))

    recommendations = analysis.get("recommendations") or []
    if recommendations:
        story.append(Paragraph("Recommendations", heading_style))
        for n, rec in enumerate(recommendations, 1):
            story.append(_p(f"{n}. {rec}", normal_style))

    story.append(Spacer(1, 24))
    story.append(_p(
        "This report was generated automatically and is not legal advice. "
        "Consult a lawyer before signing.",
        normal_style,
    ))

    doc.build(story)
    return buffer.getvalue()
