"""Utilities for docx XML operations.

All XML-level operations on docx content must be implemented here.
Do not spread XML manipulation logic across other modules.
"""

from __future__ import annotations

import re

from docx.oxml.ns import qn
from docx.shared import RGBColor
from docx.text.run import Run
from lxml import etree

_P_TAG = qn("w:p")
_T_TAG = qn("w:t")
_XML_SPACE = qn("xml:space")

# Template parts are re-emitted with their original whitespace and prolog.
_PART_PARSER = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
_PROLOG_RE = re.compile(rb"^(?:\xef\xbb\xbf)?(?:\s*<\?.*?\?>|\s*<!--.*?-->)*\s*", re.DOTALL)
_EPILOG_RE = re.compile(rb"\s*\Z")


def parse_part_xml(xml: bytes) -> etree._Element:
    """Parse raw part markup. Raises ``lxml.etree.XMLSyntaxError`` on bad input."""

    return etree.fromstring(xml, _PART_PARSER)


def serialize_part_xml(element: etree._Element, source: bytes) -> bytes:
    """Serialize a part root, keeping the declaration and outer whitespace of ``source``."""

    prolog = _PROLOG_RE.match(source)
    epilog = _EPILOG_RE.search(source)
    encoding = element.getroottree().docinfo.encoding or "UTF-8"
    body = etree.tostring(element, encoding=encoding, xml_declaration=False)
    return (prolog.group(0) if prolog else b"") + body + (epilog.group(0) if epilog else b"")


def iter_paragraphs(root: etree._Element) -> list[etree._Element]:
    """Return every ``w:p`` in document order, nested text-box paragraphs included."""

    return list(root.iter(_P_TAG))


def paragraph_text_nodes(paragraph: etree._Element) -> list[etree._Element]:
    """Return ``w:t`` nodes owned by ``paragraph`` (not by a nested paragraph)."""

    return [node for node in paragraph.iter(_T_TAG) if _owning_paragraph(node) is paragraph]


def paragraph_text_spans(
    paragraph: etree._Element,
) -> tuple[str, list[tuple[etree._Element, int, int]]]:
    """Return paragraph text and ``(node, start, end)`` spans of its text nodes."""

    spans: list[tuple[etree._Element, int, int]] = []
    chunks: list[str] = []
    cursor = 0

    for node in paragraph_text_nodes(paragraph):
        text = node.text or ""
        start = cursor
        cursor += len(text)
        spans.append((node, start, cursor))
        chunks.append(text)

    return "".join(chunks), spans


def set_text_node(node: etree._Element, text: str) -> None:
    """Replace ``w:t`` content and keep leading/trailing spaces significant."""

    node.text = text
    if text != text.strip():
        node.set(_XML_SPACE, "preserve")


def set_run_plain_black(run: Run) -> None:
    """Force a run to upright black text without touching font or size."""

    run.font.italic = False
    run.font.color.rgb = RGBColor(0x00, 0x00, 0x00)


def _owning_paragraph(node: etree._Element) -> etree._Element | None:
    parent = node.getparent()
    while parent is not None and parent.tag != _P_TAG:
        parent = parent.getparent()
    return parent
