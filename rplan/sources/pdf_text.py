"""PDF page text extraction via pypdf."""

from __future__ import annotations

import io
import logging

from pypdf import PdfReader

from rplan.utils.errors import SourceReadError

logger = logging.getLogger("rplan.sources")


def extract_pdf_text(data: bytes, *, strict: bool = False, filename: str | None = None) -> str:
    """Return page texts in page order, each page prefixed by a newline."""

    try:
        reader = PdfReader(io.BytesIO(data), strict=strict)
        pages = list(reader.pages)
    except Exception as exc:  # noqa: BLE001 - upstream errors vary
        raise SourceReadError(f"PDF cannot be read: {exc}", filename=filename) from exc

    chunks: list[str] = []
    for page_number, page in enumerate(pages, start=1):
        try:
            text = page.extract_text() or ""
        except Exception as exc:  # noqa: BLE001
            logger.warning("pdf page %d text extraction failed: %s", page_number, exc)
            text = ""
        chunks.append("\n" + text)
    return "".join(chunks)
