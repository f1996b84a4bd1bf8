"""Text extraction adapter: protocol upload bytes to SourceText."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal

from rplan.sources.docx_text import extract_docx_text
from rplan.sources.pdf_text import extract_pdf_text
from rplan.utils.errors import SourceReadError

SourceKind = Literal["pdf", "docx"]

_PDF_MAGIC = b"%PDF"
_ZIP_MAGIC = b"PK\x03\x04"


@dataclass(frozen=True)
class SourceAdapterConfig:
    """Process-wide backend setup, passed in once at startup."""

    pdf_strict: bool = False


class SourceTextAdapter:
    """Converts uploaded protocol documents into plain text."""

    def __init__(self, config: SourceAdapterConfig | None = None) -> None:
        self.config = config or SourceAdapterConfig()

    def extract_text(self, data: bytes, filename: str | None = None) -> str:
        kind = detect_source_kind(data, filename)
        if kind == "pdf":
            return extract_pdf_text(data, strict=self.config.pdf_strict, filename=filename)
        return extract_docx_text(data, filename=filename)

    async def aextract_text(self, data: bytes, filename: str | None = None) -> str:
        return await asyncio.to_thread(self.extract_text, data, filename)


def detect_source_kind(data: bytes, filename: str | None = None) -> SourceKind:
    """Pick a backend from magic bytes, falling back to the file suffix."""

    if data.startswith(_PDF_MAGIC):
        return "pdf"
    if data.startswith(_ZIP_MAGIC):
        return "docx"

    suffix = PurePath(filename).suffix.lower() if filename else ""
    if suffix == ".pdf":
        return "pdf"
    if suffix == ".docx":
        return "docx"
    raise SourceReadError(
        "Unsupported source document: expected a .pdf or .docx file", filename=filename
    )
