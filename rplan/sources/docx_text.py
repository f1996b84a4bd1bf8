"""DOCX to plain text conversion via python-docx."""

from __future__ import annotations

import io

from docx import Document

from rplan.utils.errors import SourceReadError


def extract_docx_text(data: bytes, *, filename: str | None = None) -> str:
    """Return body paragraph texts, then table cell texts, one per line."""

    try:
        document = Document(io.BytesIO(data))
    except Exception as exc:  # noqa: BLE001 - upstream errors vary
        raise SourceReadError(f"DOCX cannot be read: {exc}", filename=filename) from exc

    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                lines.extend(paragraph.text for paragraph in cell.paragraphs)
    return "\n".join(lines)
