from __future__ import annotations

import io
import zipfile

import pytest
from docx import Document

from rplan.render.aliases import expand_aliases, resolve_field_name
from rplan.render.token_renderer import find_missing_tokens, render_template
from rplan.templates.archive import load_template
from rplan.templates.token_scanner import scan_tokens
from rplan.utils.errors import MissingTokenError, TemplateParseError


def _docx_bytes(body: list[list[str]], *, header: list[str] | None = None) -> bytes:
    document = Document()
    for runs in body:
        paragraph = document.add_paragraph()
        for text in runs:
            paragraph.add_run(text)
    if header is not None:
        paragraph = document.sections[0].header.paragraphs[0]
        for text in header:
            paragraph.add_run(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _all_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    lines = [paragraph.text for paragraph in document.paragraphs]
    for section in document.sections:
        lines.extend(paragraph.text for paragraph in section.header.paragraphs)
    return "\n".join(lines)


def test_missing_site_token_is_reported() -> None:
    document = load_template(_docx_bytes([["{{PROTOCOL_NO}} at {{SITE}}"]]))

    with pytest.raises(MissingTokenError) as exc_info:
        render_template(document, {"PROTOCOL_NO": "ABC-123"})

    assert exc_info.value.missing == ["SITE"]


def test_missing_list_equals_set_difference() -> None:
    document = load_template(_docx_bytes([["{{A}} {{B}} {{C}} {{D}}"]]))
    values = {"B": "b", "D": "d", "UNUSED": "x"}

    with pytest.raises(MissingTokenError) as exc_info:
        render_template(document, values)

    assert set(exc_info.value.missing) == scan_tokens(document) - set(values)
    assert exc_info.value.missing == ["A", "C"]


def test_empty_string_is_a_valid_value() -> None:
    document = load_template(_docx_bytes([["Site: {{SITE}}."]]))

    output = render_template(document, {"SITE": ""})

    assert "Site: ." in _all_text(output.content)


def test_round_trip_leaves_no_delimiters() -> None:
    data = _docx_bytes(
        [["Protocol {{PROTOCOL_NO}}, phase {{PHASE}}"], ["PI: {{PI}} / {{PI}}"]],
        header=["{{PROTOCOL_NO}} header"],
    )
    document = load_template(data)

    output = render_template(document, {"PROTOCOL_NO": "ABC-123", "PHASE": "Phase 2", "PI": "Kim"})

    text = _all_text(output.content)
    assert "{{" not in text
    assert "}}" not in text
    assert "Protocol ABC-123, phase Phase 2" in text
    assert "PI: Kim / Kim" in text
    assert "ABC-123 header" in text
    assert output.replace_report.summary.replaced_count == 5
    assert output.replace_report.summary.touched_parts == ["word/document.xml", "word/header1.xml"]


def test_field_names_and_aliases_are_expanded() -> None:
    document = load_template(
        _docx_bytes([["{{PROTOCOL_NO}} | {{시험계획서 번호}} | {{protocolNo}} | {{CUSTOM}}"]])
    )
    aliases = {"PROTOCOL_NO": ["시험계획서 번호"]}

    output = render_template(document, {"protocolNo": "ABC-123", "CUSTOM": "c"}, aliases)

    assert "ABC-123 | ABC-123 | ABC-123 | c" in _all_text(output.content)


def test_cross_run_token_is_replaced_in_first_run() -> None:
    document = load_template(_docx_bytes([["Sponsor: {{SPO", "NS", "OR}} Ltd."]]))

    output = render_template(document, {"SPONSOR": "ACME"})

    rendered = Document(io.BytesIO(output.content))
    runs = [run.text for run in rendered.paragraphs[-1].runs]
    assert runs == ["Sponsor: ACME", "", " Ltd."]


def test_replacement_entries_follow_document_order() -> None:
    document = load_template(_docx_bytes([["{{A}}{{B}}"], ["{{C}}"]]))

    output = render_template(document, {"A": "1", "B": "2", "C": "3"})

    entries = output.replace_report.entries
    assert [entry.token for entry in entries] == ["A", "B", "C"]
    assert entries[0].original_text == "{{A}}"
    assert entries[2].new_text == "3"


def test_unmodified_parts_are_kept_byte_identical() -> None:
    data = _docx_bytes([["{{A}}"]], header=["static header"])
    document = load_template(data)

    output = render_template(document, {"A": "x"})

    with zipfile.ZipFile(io.BytesIO(data)) as original, zipfile.ZipFile(
        io.BytesIO(output.content)
    ) as rendered:
        assert original.namelist() == rendered.namelist()
        assert original.read("word/header1.xml") == rendered.read("word/header1.xml")
        assert original.read("word/styles.xml") == rendered.read("word/styles.xml")
        assert original.read("word/document.xml") != rendered.read("word/document.xml")


def test_rendered_part_keeps_markup_outside_tokens_byte_identical() -> None:
    part_xml = (
        b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\r\n'
        b'<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">\n'
        b"  <w:body>\n"
        b"    <w:p>\n"
        b"      <w:pPr>\n"
        b'        <w:jc w:val="center"/>\n'
        b"      </w:pPr>\n"
        b"      <w:r>\n"
        b"        <w:t>Protocol {{PROTOCOL_NO}} at {{SITE}}</w:t>\n"
        b"      </w:r>\n"
        b"    </w:p>\n"
        b"    <w:p>\n"
        b"      <w:r>\n"
        b'        <w:t xml:space="preserve">No tokens here </w:t>\n'
        b"      </w:r>\n"
        b"    </w:p>\n"
        b"  </w:body>\n"
        b"</w:document>\n"
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w") as archive:
        archive.writestr("word/document.xml", part_xml)

    output = render_template(
        load_template(buffer.getvalue()), {"PROTOCOL_NO": "ABC-123", "SITE": "Seoul"}
    )

    with zipfile.ZipFile(io.BytesIO(output.content)) as rendered:
        rendered_xml = rendered.read("word/document.xml")
    expected = part_xml.replace(b"{{PROTOCOL_NO}}", b"ABC-123").replace(b"{{SITE}}", b"Seoul")
    assert rendered_xml == expected


def test_template_without_tokens_renders_unchanged_text() -> None:
    data = _docx_bytes([["nothing to fill"]])

    output = render_template(load_template(data), {})

    assert output.tokens == []
    assert _all_text(output.content) == _all_text(data)


def test_malformed_delimiters_block_rendering() -> None:
    document = load_template(_docx_bytes([["{{SITE} broken"]]))

    with pytest.raises(TemplateParseError) as exc_info:
        render_template(document, {"SITE": "x"})

    assert exc_info.value.part == "word/document.xml"
    assert exc_info.value.errors


def test_literal_closing_braces_block_rendering() -> None:
    document = load_template(_docx_bytes([['{{A}} json: {"a": {"b": 1}}']]))

    with pytest.raises(TemplateParseError) as exc_info:
        render_template(document, {"A": "x"})

    assert [issue.kind for issue in exc_info.value.errors] == ["stray_close"]


def test_leading_space_value_is_preserved() -> None:
    document = load_template(_docx_bytes([["[{{A}}]"]]))

    output = render_template(document, {"A": "  padded  "})

    assert "[  padded  ]" in _all_text(output.content)


def test_find_missing_tokens_keeps_order() -> None:
    assert find_missing_tokens(["Z", "A", "M"], {"A": ""}) == ["Z", "M"]


def test_resolve_field_name() -> None:
    aliases = {"SITE": ["임상시험실시기관 (Site)"]}

    assert resolve_field_name("site", aliases) == "site"
    assert resolve_field_name("SITE", aliases) == "site"
    assert resolve_field_name("임상시험실시기관 (Site)", aliases) == "site"
    assert resolve_field_name("CUSTOM", aliases) == "CUSTOM"


def test_expand_aliases_keys_every_spelling() -> None:
    expanded = expand_aliases({"pi": "Kim", "extra": "e"}, {"PI": ["시험책임자 (PI)"]})

    assert expanded == {"pi": "Kim", "PI": "Kim", "시험책임자 (PI)": "Kim", "extra": "e"}
