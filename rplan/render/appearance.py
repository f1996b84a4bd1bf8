"""Optional appearance pass applied after rendering.

Rendering itself never changes styles; this pass is opt-in.
"""

from __future__ import annotations

import io
from collections.abc import Iterator

from docx import Document
from docx.document import Document as DocxDocument
from docx.table import Table
from docx.text.paragraph import Paragraph

from rplan.utils.docx_xml import set_run_plain_black


def apply_black_text(content: bytes) -> bytes:
    """Return a copy of ``content`` with every run upright and black."""

    document = Document(io.BytesIO(content))
    for paragraph in _iter_all_paragraphs(document):
        for run in paragraph.runs:
            set_run_plain_black(run)

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _iter_all_paragraphs(document: DocxDocument) -> Iterator[Paragraph]:
    yield from _iter_block_paragraphs(document.paragraphs, document.tables)
    for section in document.sections:
        for story in (section.header, section.footer):
            if story.is_linked_to_previous:
                continue
            yield from _iter_block_paragraphs(story.paragraphs, story.tables)


def _iter_block_paragraphs(
    paragraphs: list[Paragraph], tables: list[Table]
) -> Iterator[Paragraph]:
    yield from paragraphs
    for table in tables:
        for row in table.rows:
            for cell in row.cells:
                yield from _iter_block_paragraphs(cell.paragraphs, cell.tables)
