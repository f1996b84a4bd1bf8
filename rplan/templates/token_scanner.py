"""Token scanner over body, header and footer parts of a template archive.

Rules:
- Tokens are written as ``{{NAME}}``; the name is the trimmed text between the
  nearest delimiter pair and may contain any character except the delimiters.
- A paragraph's text is the concatenation of its own ``w:t`` nodes, so a token
  split across runs is still a single token.
- Token identity is exact after trimming. Aliases are resolved at render time.
"""

from __future__ import annotations

import re

from lxml import etree

from rplan.templates.models import (
    ScanResult,
    TemplateDocument,
    TemplateIssue,
    TemplatePart,
    TokenOccurrence,
)
from rplan.utils.docx_xml import iter_paragraphs, paragraph_text_spans, parse_part_xml
from rplan.utils.errors import TemplateParseError

OPEN_DELIMITER = "{{"
CLOSE_DELIMITER = "}}"
TOKEN_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)


def scan_tokens(document: TemplateDocument) -> frozenset[str]:
    """Return the distinct tokens referenced by a template."""

    return parse_template_tokens(document).token_set


def parse_template_tokens(document: TemplateDocument, strict: bool = False) -> ScanResult:
    """Scan every body/header/footer part and collect tokens and delimiter issues.

    Args:
        document: Loaded template archive.
        strict: When True, raise TemplateParseError if any issue exists.

    Returns:
        ScanResult with tokens in discovery order, occurrences and issues.
    """

    result = ScanResult()
    seen: set[str] = set()

    for part in document.parts:
        root = load_part_root(part)
        for paragraph_index, paragraph in enumerate(iter_paragraphs(root)):
            text, _ = paragraph_text_spans(paragraph)
            if OPEN_DELIMITER not in text and CLOSE_DELIMITER not in text:
                continue

            for occurrence in find_token_occurrences(text, part.name, paragraph_index):
                if not occurrence.token:
                    result.issues.append(
                        TemplateIssue(
                            kind="empty_tag",
                            part=part.name,
                            text=text[occurrence.start : occurrence.end],
                            paragraph_index=paragraph_index,
                            start=occurrence.start,
                        )
                    )
                    continue
                result.occurrences.append(occurrence)
                if occurrence.token not in seen:
                    result.tokens.append(occurrence.token)
                    seen.add(occurrence.token)

            result.issues.extend(_find_unbalanced_delimiters(text, part.name, paragraph_index))

    if strict and result.issues:
        raise TemplateParseError("Template has malformed tokens", errors=result.issues)

    return result


def find_token_occurrences(text: str, part: str, paragraph_index: int) -> list[TokenOccurrence]:
    """Return every delimiter-bounded occurrence in ``text``, left to right."""

    return [
        TokenOccurrence(
            token=match.group(1).strip(),
            part=part,
            paragraph_index=paragraph_index,
            start=match.start(),
            end=match.end(),
        )
        for match in TOKEN_RE.finditer(text)
    ]


def load_part_root(part: TemplatePart) -> etree._Element:
    """Parse one part, mapping XML faults to TemplateParseError."""

    try:
        return parse_part_xml(part.xml)
    except etree.XMLSyntaxError as exc:
        raise TemplateParseError(
            f"Template part is not well-formed XML: {part.name}",
            part=part.name,
            errors=[TemplateIssue(kind="xml_error", part=part.name, text=str(exc))],
        ) from exc


def _find_unbalanced_delimiters(
    text: str, part: str, paragraph_index: int
) -> list[TemplateIssue]:
    issues: list[TemplateIssue] = []
    stripped = TOKEN_RE.sub(lambda match: " " * len(match.group(0)), text)

    for match in re.finditer(re.escape(OPEN_DELIMITER), stripped):
        issues.append(
            TemplateIssue(
                kind="unclosed_tag",
                part=part,
                text=text[match.start() : match.start() + 40],
                paragraph_index=paragraph_index,
                start=match.start(),
            )
        )
    for match in re.finditer(re.escape(CLOSE_DELIMITER), stripped):
        issues.append(
            TemplateIssue(
                kind="stray_close",
                part=part,
                text=CLOSE_DELIMITER,
                paragraph_index=paragraph_index,
                start=match.start(),
            )
        )

    return issues
