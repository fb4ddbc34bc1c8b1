"""Text extraction from resume documents."""

import io
import zipfile
from typing import Optional

import structlog
from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = structlog.get_logger()

DOCX_TYPES = (
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class ExtractionError(Exception):
    """Raised when text extraction fails."""

    pass


def extract_text_from_file(
    content: bytes,
    filename: str,
    content_type: Optional[str] = None,
) -> str:
    """Extract text content from a resume file.

    Args:
        content: File content as bytes
        filename: Original filename (for extension detection)
        content_type: MIME type (optional)

    Returns:
        Extracted text content

    Raises:
        ExtractionError: If the document cannot be read
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    content_type = (content_type or "").split(";")[0].strip().lower()

    if content_type == "application/pdf" or ext == "pdf":
        return _extract_from_pdf(content)
    if content_type in DOCX_TYPES or ext in ("doc", "docx"):
        return _extract_from_docx(content)
    if content_type.startswith("text/") or ext in ("txt", "md"):
        return content.decode("utf-8", errors="ignore")

    logger.warning("Unknown file type, attempting PDF extraction", filename=filename, content_type=content_type)
    return _extract_from_pdf(content)


def _extract_from_pdf(content: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(content))
        text = "\n\n".join(page_text for page_text in (p.extract_text() for p in reader.pages) if page_text)
    except (PdfReadError, ValueError, OSError) as e:
        logger.error("PDF extraction failed", error=str(e))
        raise ExtractionError(f"PDF extraction failed: {e}") from e

    logger.info("PDF text extracted", pages=len(reader.pages), chars=len(text))
    return text


def _extract_from_docx(content: bytes) -> str:
    try:
        doc = Document(io.BytesIO(content))
    except (PackageNotFoundError, zipfile.BadZipFile, ValueError, KeyError, OSError) as e:
        logger.error("DOCX extraction failed", error=str(e))
        raise ExtractionError(f"DOCX extraction failed: {e}") from e

    text_parts = [para.text for para in doc.paragraphs if para.text.strip()]

    # Also extract from tables
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                text_parts.append(" | ".join(cells))

    text = "\n\n".join(text_parts)
    logger.info("DOCX text extracted", paragraphs=len(doc.paragraphs), chars=len(text))
    return text
