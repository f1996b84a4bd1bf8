"""Token substitution over body/header/footer parts of a template archive."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping

from lxml import etree

from rplan.render.aliases import expand_aliases
from rplan.render.models import RenderOutput, ReplaceLogEntry, ReplaceReport, ReplaceSummary
from rplan.templates.archive import write_archive
from rplan.templates.models import ScanResult, TemplateDocument, TemplatePart
from rplan.templates.token_scanner import (
    OPEN_DELIMITER,
    find_token_occurrences,
    load_part_root,
    parse_template_tokens,
)
from rplan.utils.docx_xml import (
    iter_paragraphs,
    paragraph_text_spans,
    serialize_part_xml,
    set_text_node,
)
from rplan.utils.errors import MissingTokenError, TemplateParseError

logger = logging.getLogger("rplan.render")


def find_missing_tokens(tokens: Collection[str], values: Mapping[str, str]) -> list[str]:
    """Return tokens without a supplied value, keeping ``tokens`` order.

    An empty string is a value; only absent keys are missing.
    """

    return [token for token in tokens if token not in values]


def render_template(
    document: TemplateDocument,
    field_map: Mapping[str, str],
    aliases: Mapping[str, list[str]] | None = None,
    scan: ScanResult | None = None,
) -> RenderOutput:
    """Validate ``field_map`` against the template tokens and render the archive.

    Raises:
        TemplateParseError: malformed part XML or unbalanced delimiters.
        MissingTokenError: at least one token has no value; nothing is rendered.
    """

    scan_result = scan if scan is not None else parse_template_tokens(document)
    if scan_result.issues:
        raise TemplateParseError(
            "Template has malformed tokens",
            part=scan_result.issues[0].part,
            errors=scan_result.issues,
        )

    values = expand_aliases(field_map, aliases)
    missing = find_missing_tokens(scan_result.tokens, values)
    if missing:
        logger.warning("render aborted, missing tokens: %s", missing)
        raise MissingTokenError("Missing values for template tokens", missing=missing)

    entries: list[ReplaceLogEntry] = []
    replaced_parts: dict[str, bytes] = {}
    for part in document.parts:
        part_entries, rendered = _render_part(part, values)
        if rendered is not None:
            replaced_parts[part.name] = rendered
            entries.extend(part_entries)

    content = write_archive(document, replaced_parts)
    summary = ReplaceSummary(
        total_tokens=len(scan_result.tokens),
        total_occurrences=len(scan_result.occurrences),
        replaced_count=len(entries),
        touched_parts=sorted(replaced_parts),
    )
    logger.info(
        "rendered template: tokens=%d replaced=%d parts=%s",
        summary.total_tokens,
        summary.replaced_count,
        summary.touched_parts,
    )
    return RenderOutput(
        content=content,
        tokens=list(scan_result.tokens),
        replace_report=ReplaceReport(entries=entries, summary=summary),
    )


def _render_part(
    part: TemplatePart, values: Mapping[str, str]
) -> tuple[list[ReplaceLogEntry], bytes | None]:
    root = load_part_root(part)
    entries: list[ReplaceLogEntry] = []

    for paragraph_index, paragraph in enumerate(iter_paragraphs(root)):
        text, spans = paragraph_text_spans(paragraph)
        if OPEN_DELIMITER not in text:
            continue

        occurrences = find_token_occurrences(text, part.name, paragraph_index)
        paragraph_entries: list[ReplaceLogEntry] = []
        for occurrence in reversed(occurrences):
            replacement = values[occurrence.token]
            _replace_span(spans, occurrence.start, occurrence.end, replacement)
            paragraph_entries.append(
                ReplaceLogEntry(
                    status="replaced",
                    token=occurrence.token,
                    part=part.name,
                    paragraph_index=paragraph_index,
                    original_text=text[occurrence.start : occurrence.end],
                    new_text=replacement,
                )
            )
        entries.extend(reversed(paragraph_entries))

    if not entries:
        return entries, None

    return entries, serialize_part_xml(root, part.xml)


def _replace_span(
    spans: list[tuple[etree._Element, int, int]], start: int, end: int, replacement: str
) -> None:
    """Write ``replacement`` into the node holding ``start``; cut the rest of the span.

    Spans keep their original offsets, so callers must go right to left.
    """

    for node, node_start, node_end in spans:
        if node_end <= start or node_start >= end:
            continue
        current = node.text or ""
        low = max(start, node_start) - node_start
        high = min(end, node_end) - node_start
        inserted = replacement if node_start <= start < node_end else ""
        set_text_node(node, current[:low] + inserted + current[high:])

