"""Text extraction for PDF, DOCX and DOC contract files."""

import io
import logging
from typing import Optional

from docx import Document
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from armour.errors import DocumentParsingError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
ZIP_MAGIC = b"PK"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"


def detect_document_type(data: bytes, url: Optional[str] = None) -> str:
    """Detect 'pdf', 'docx' or 'doc' from magic bytes, falling back to the URL extension."""
    signature = data[:8]
    if signature.startswith(PDF_MAGIC):
        return "pdf"
    if signature.startswith(ZIP_MAGIC):
        return "docx"
    if signature.startswith(OLE_MAGIC):
        return "doc"

    if url:
        path = url.lower().split("?", 1)[0]
        for ext in ("pdf", "docx", "doc"):
            if path.endswith(f".{ext}"):
                return ext

    return "pdf"


def _extract_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError, KeyError) as e:
        raise DocumentParsingError(f"Invalid PDF structure: {e}")
    return "\n".join(pages)


def _extract_docx(data: bytes) -> str:
    try:
        document = Document(io.BytesIO(data))
    except Exception as e:
        raise DocumentParsingError(f"Invalid DOCX file: {e}")

    parts = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.append(" | ".join(cell.text for cell in row.cells))
    return "\n".join(parts)


def extract_text(data: bytes, url: Optional[str] = None) -> str:
    """Extract the plain text of a contract document."""
    if not data:
        raise DocumentParsingError("Invalid document: file is empty")

    doc_type = detect_document_type(data, url)
    logger.info(f"[Extractor] Detected document type: {doc_type} ({len(data)} bytes)")

    if doc_type == "pdf":
        text = _extract_pdf(data)
    elif doc_type == "docx":
        text = _extract_docx(data)
    else:
        raise DocumentParsingError(
            "Could not extract text from legacy .doc files. Please convert to PDF or DOCX."
        )

    text = text.strip()
    if not text:
        raise DocumentParsingError("Could not extract text from document (is it a scanned image?)")
    return text
