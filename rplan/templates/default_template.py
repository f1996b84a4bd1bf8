"""Built-in Randomization Plan template used when no template is uploaded."""

from __future__ import annotations

import io

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt
from docx.text.paragraph import Paragraph

CONFIDENTIAL_NOTICE = (
    "CONFIDENTIAL: This document contains confidential information belonging to the Sponsor."
)

_META_LINES: tuple[tuple[str, str], ...] = (
    ("시험계획서 번호 (Protocol No.)", "PROTOCOL_NO"),
    ("버전 (Version)", "VERSION"),
    ("시험단계 (Phase)", "PHASE"),
    ("임상시험실시기관 (Site)", "SITE"),
    ("시험책임자 (PI)", "PI"),
    ("임상시험의뢰자 (Sponsor)", "SPONSOR"),
)

_SECTIONS: tuple[tuple[str, str], ...] = (
    (
        "1. 서론",
        "무작위배정계획은 해당 임상시험의 무작위배정 방법과 과정에 대해 설명합니다. (자동 생성 초안)",
    ),
    ("2. 무작위배정 절차", "업로드한 템플릿/완성본을 참고해 절차 문안을 자동 채워 넣습니다."),
    ("3. 무작위배정 방법", "Block randomization 1:1 (초안)."),
    ("4. 문서의 관리", "무작위배정코드/표 관리 및 전달 절차는 완성본을 바탕으로 채워 넣습니다."),
)


def build_default_template() -> bytes:
    """Build the default plan skeleton with ``{{TOKEN}}`` placeholders."""

    document = Document()
    section = document.sections[0]

    header_paragraph = section.header.paragraphs[0]
    header_paragraph.alignment = WD_ALIGN_PARAGRAPH.LEFT
    header_paragraph.add_run("시험계획서 번호: {{PROTOCOL_NO}}    버전: {{VERSION}}")

    footer_paragraph = section.footer.paragraphs[0]
    footer_paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
    footer_paragraph.add_run(CONFIDENTIAL_NOTICE).font.size = Pt(8)

    title = document.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    title.paragraph_format.space_after = Pt(15)
    title_run = title.add_run("Randomization Plan")
    title_run.bold = True
    title_run.font.size = Pt(28)

    _centered(document.add_paragraph(), "{{KOR_TITLE}}", Pt(11))
    eng_title = _centered(document.add_paragraph(), "{{ENG_TITLE}}", Pt(10.5))
    eng_title.paragraph_format.space_after = Pt(15)

    for label, token in _META_LINES:
        paragraph = document.add_paragraph()
        paragraph.paragraph_format.space_after = Pt(4)
        paragraph.add_run(f"{label}: ").bold = True
        paragraph.add_run(f"{{{{{token}}}}}")

    for heading, body in _SECTIONS:
        heading_paragraph = document.add_heading(heading, level=1)
        heading_paragraph.paragraph_format.space_before = Pt(13)
        heading_paragraph.paragraph_format.space_after = Pt(6)
        document.add_paragraph(body)
        if heading.startswith("3."):
            document.add_paragraph(
                "Arms: {{ARMS}} / Sequences: {{SEQUENCES}} / N per arm: {{N_PER_ARM}}"
            )

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _centered(paragraph: Paragraph, text: str, size: Pt) -> Paragraph:
    paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
    paragraph.add_run(text).font.size = size
    return paragraph
