"""Ordered bilingual extraction rule chains for protocol metadata.

English labels win for Latin-alphabet identifiers (protocol number, phase);
Korean labels win for Korean-origin metadata (sponsor, site, investigator).
"""

from __future__ import annotations

import re

from rplan.extraction.models import ExtractionRule, FieldSpec
from rplan.extraction.normalizers import collapse_whitespace, prefix_phase, squeeze_korean_phase

_LINE_VALUE = r"\s*[:\-]?\s*(.+?)\s*(?:\n|$)"

PROTOCOL_NO_SPEC = FieldSpec(
    name="protocolNo",
    rules=(
        ExtractionRule(
            label="protocol_no_en",
            pattern=re.compile(r"Protocol\s*No\.?\s*:?\s*([A-Za-z0-9_\-.]+)", re.IGNORECASE),
        ),
        ExtractionRule(
            label="protocol_no_ko",
            pattern=re.compile(r"시험계획서\s*번호\s*[:\-]?\s*([A-Za-z0-9_\-.]+)"),
        ),
    ),
)

PHASE_SPEC = FieldSpec(
    name="phase",
    rules=(
        ExtractionRule(
            label="phase_en",
            pattern=re.compile(r"\bPhase\s*([0-9]+[ab]?|[IVX]+[ab]?)\b", re.IGNORECASE),
            normalizer=prefix_phase,
        ),
        ExtractionRule(
            label="phase_ko",
            pattern=re.compile(r"제\s*[0-9一-龥IVX]+\s*상"),
            normalizer=lambda value: prefix_phase(squeeze_korean_phase(value)),
        ),
    ),
)

SPONSOR_SPEC = FieldSpec(
    name="sponsor",
    rules=(
        ExtractionRule(label="sponsor_ko", pattern=re.compile(r"의뢰자" + _LINE_VALUE)),
        ExtractionRule(
            label="sponsor_en",
            pattern=re.compile(r"\bSponsor\b" + _LINE_VALUE, re.IGNORECASE),
        ),
    ),
)

SITE_SPEC = FieldSpec(
    name="site",
    rules=(
        ExtractionRule(label="site_ko", pattern=re.compile(r"임상시험실시기관" + _LINE_VALUE)),
        ExtractionRule(
            label="site_en",
            pattern=re.compile(r"\bSite\b" + _LINE_VALUE, re.IGNORECASE),
        ),
    ),
)

PI_SPEC = FieldSpec(
    name="pi",
    rules=(
        ExtractionRule(label="pi_ko", pattern=re.compile(r"시험책임자" + _LINE_VALUE)),
        ExtractionRule(
            label="pi_en",
            pattern=re.compile(r"\bPrincipal\s*Investigator\b" + _LINE_VALUE, re.IGNORECASE),
        ),
    ),
)

KOR_TITLE_SPEC = FieldSpec(
    name="korTitle",
    rules=(
        ExtractionRule(
            label="kor_title",
            pattern=re.compile(
                r"^(?:\s*제목|\s*시험제목|\s*임상시험명)\s*[:\-]?\s*(.+)$",
                re.IGNORECASE | re.MULTILINE,
            ),
            normalizer=collapse_whitespace,
        ),
    ),
)

ENG_TITLE_SPEC = FieldSpec(
    name="engTitle",
    rules=(
        ExtractionRule(
            label="eng_title_open_label",
            pattern=re.compile(r"(\b[Aa]n\s+open-label[\s\S]{30,2000}$)", re.MULTILINE),
            normalizer=collapse_whitespace,
        ),
        ExtractionRule(
            label="eng_title_label",
            pattern=re.compile(r"\bTitle\s*[:\-]?\s*(.+)$", re.IGNORECASE | re.MULTILINE),
            normalizer=collapse_whitespace,
        ),
    ),
)

VERSION_SPEC = FieldSpec(name="version")
ARMS_SPEC = FieldSpec(name="arms")
SEQUENCES_SPEC = FieldSpec(name="sequences")
N_PER_ARM_SPEC = FieldSpec(name="nPerArm")

FIELD_SPECS: tuple[FieldSpec, ...] = (
    PROTOCOL_NO_SPEC,
    PHASE_SPEC,
    SPONSOR_SPEC,
    SITE_SPEC,
    PI_SPEC,
    KOR_TITLE_SPEC,
    ENG_TITLE_SPEC,
    VERSION_SPEC,
    ARMS_SPEC,
    SEQUENCES_SPEC,
    N_PER_ARM_SPEC,
)
