"""Contract DOCX generation with python-docx."""

import html
import io
import logging
import re

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from armour.errors import DocumentRenderError

logger = logging.getLogger(__name__)

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SECTION_HEADING = re.compile(r"^\d+\.\s+\S")


def html_to_text(markup: str) -> str:
    """Flatten contract HTML into the plain-text layout the DOCX builder expects."""
    text = re.sub(r"(?is)<(script|style|head)[^>]*>.*?</\1>", "", markup or "")
    text = re.sub(r"(?i)<li[^>]*>", "• ", text)
    text = re.sub(r"(?i)<br\s*/?>", "\n", text)
    text = re.sub(r"(?i)</(p|div|h[1-6]|li|tr|ol|ul)>", "\n\n", text)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def _is_heading(line: str) -> bool:
    return bool(SECTION_HEADING.match(line)) or (line.isupper() and len(line) > 3)


def build_contract_docx(contract_text: str, title: str = None) -> bytes:
    """Render agreement text as a DOCX document. Raises DocumentRenderError."""
    if not contract_text or not contract_text.strip():
        raise DocumentRenderError("Contract text is empty")

    try:
        document = Document()
        style = document.styles["Normal"]
        style.font.name = "Calibri"
        style.font.size = Pt(11)

        lines = contract_text.strip().splitlines()
        if title is None and lines and lines[0].isupper():
            title = lines.pop(0).strip()
        if title:
            heading = document.add_heading(title, level=0)
            heading.alignment = WD_ALIGN_PARAGRAPH.CENTER

        for raw in lines:
            line = raw.strip()
            if not line:
                continue
            if line.startswith("• "):
                document.add_paragraph(line[2:], style="List Bullet")
            elif _is_heading(line):
                document.add_heading(line, level=2)
            else:
                document.add_paragraph(line)

        buffer = io.BytesIO()
        document.save(buffer)
    except Exception as e:
        logger.error(f"[Contract] DOCX generation failed: {e}")
        raise DocumentRenderError(f"DOCX generation failed: {e}") from e

    return buffer.getvalue()
