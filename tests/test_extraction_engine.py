from __future__ import annotations

import re

import pytest

from rplan.extraction.engine import extract_field, extract_fields, merge_fields, run_extraction
from rplan.extraction.models import ExtractionRule, FieldSpec, new_field_map
from rplan.extraction.normalizers import prefix_phase

KOREAN_PROTOCOL = """임상시험 계획서
제목: 건강한 성인에서 ABC정의 약동학적 특성을 평가하기 위한
시험계획서 번호: KR-2024-007
의뢰자: 한국제약 주식회사
임상시험실시기관: 서울대학교병원
시험책임자: 홍길동
제 1 상
"""


def test_english_protocol_number_and_phase() -> None:
    extracted = extract_fields("Protocol No. ABC-123\nA Phase 2 study")

    assert extracted["protocolNo"] == "ABC-123"
    assert extracted["phase"] == "Phase 2"


def test_korean_phase_keeps_ordinal_marker() -> None:
    extracted = extract_fields("본 시험은 제1상 임상시험이다.")

    assert extracted == {"phase": "제1상"}


def test_korean_phase_with_spaces_is_squeezed() -> None:
    extracted = extract_fields(KOREAN_PROTOCOL)

    assert extracted["phase"] == "제1상"


def test_korean_protocol_fields() -> None:
    extracted = extract_fields(KOREAN_PROTOCOL)

    assert extracted["protocolNo"] == "KR-2024-007"
    assert extracted["sponsor"] == "한국제약 주식회사"
    assert extracted["site"] == "서울대학교병원"
    assert extracted["pi"] == "홍길동"
    assert extracted["korTitle"] == "건강한 성인에서 ABC정의 약동학적 특성을 평가하기 위한"


def test_english_protocol_number_wins_over_korean_label() -> None:
    text = "시험계획서 번호: KR-1\nProtocol No: EN-2"

    assert extract_fields(text)["protocolNo"] == "EN-2"


def test_korean_sponsor_wins_over_english_label() -> None:
    text = "Sponsor: Global Pharma Inc.\n의뢰자: 한국제약"

    assert extract_fields(text)["sponsor"] == "한국제약"


def test_english_labels_are_used_when_korean_labels_are_absent() -> None:
    text = "Sponsor: Global Pharma Inc.\nSite: General Hospital\nPrincipal Investigator: J. Kim\n"

    extracted = extract_fields(text)

    assert extracted["sponsor"] == "Global Pharma Inc."
    assert extracted["site"] == "General Hospital"
    assert extracted["pi"] == "J. Kim"


def test_open_label_english_title_collapses_wrapped_lines() -> None:
    text = (
        "An open-label, randomized, two-period crossover study\n"
        "to evaluate the pharmacokinetics of ABC in healthy adults"
    )

    assert extract_fields(text)["engTitle"] == (
        "An open-label, randomized, two-period crossover study "
        "to evaluate the pharmacokinetics of ABC in healthy adults"
    )


def test_roman_numeral_phase_is_prefixed() -> None:
    assert extract_fields("phase III trial")["phase"] == "Phase III"


def test_text_without_cues_leaves_field_map_unchanged() -> None:
    field_map = new_field_map()
    field_map["site"] = "typed by user"
    before = dict(field_map)

    changed = run_extraction(field_map, "nothing recognizable here\n12345")

    assert changed == []
    assert field_map == before


def test_first_matching_rule_wins_and_later_rules_are_not_evaluated() -> None:
    calls: list[str] = []

    def _record(value: str) -> str:
        calls.append(value)
        return value

    spec = FieldSpec(
        name="code",
        rules=(
            ExtractionRule(label="first", pattern=re.compile(r"A=(\w+)"), normalizer=_record),
            ExtractionRule(label="second", pattern=re.compile(r"B=(\w+)"), normalizer=_record),
        ),
    )

    assert extract_field("B=two A=one", spec) == "one"
    assert calls == ["one"]


def test_empty_candidate_falls_through_to_next_rule() -> None:
    spec = FieldSpec(
        name="code",
        rules=(
            ExtractionRule(label="blank", pattern=re.compile(r"A=(\s*)")),
            ExtractionRule(label="fallback", pattern=re.compile(r"B=(\w+)")),
        ),
    )

    assert extract_field("A=  B=two", spec) == "two"


def test_pattern_without_group_uses_whole_match() -> None:
    spec = FieldSpec(
        name="code",
        rules=(ExtractionRule(label="whole", pattern=re.compile(r"XY-\d+")),),
    )

    assert extract_field("ref XY-42 end", spec) == "XY-42"


def test_failing_normalizer_keeps_raw_value() -> None:
    def _boom(value: str) -> str:
        raise RuntimeError("normalizer bug")

    spec = FieldSpec(
        name="code",
        rules=(ExtractionRule(label="raw", pattern=re.compile(r"A=(\w+)"), normalizer=_boom),),
    )

    assert extract_field("A=kept", spec) == "kept"


def test_failing_matcher_moves_to_next_rule() -> None:
    class _BrokenPattern:
        groups = 1

        def search(self, text: str) -> None:
            raise RuntimeError("matcher bug")

    spec = FieldSpec(
        name="code",
        rules=(
            ExtractionRule(label="broken", pattern=_BrokenPattern()),  # type: ignore[arg-type]
            ExtractionRule(label="fallback", pattern=re.compile(r"B=(\w+)")),
        ),
    )

    assert extract_field("B=two", spec) == "two"


def test_second_extraction_pass_is_idempotent() -> None:
    field_map = new_field_map()

    first = run_extraction(field_map, KOREAN_PROTOCOL)
    snapshot = dict(field_map)
    second = run_extraction(field_map, KOREAN_PROTOCOL)

    assert first
    assert second == []
    assert field_map == snapshot


def test_fill_empty_mode_keeps_existing_values() -> None:
    field_map = new_field_map()
    field_map["protocolNo"] = "USER-1"

    changed = merge_fields(field_map, {"protocolNo": "ABC-123", "phase": "Phase 2"})

    assert changed == ["phase"]
    assert field_map["protocolNo"] == "USER-1"


def test_overwrite_mode_replaces_with_non_empty_values_only() -> None:
    field_map = new_field_map()
    field_map["protocolNo"] = "USER-1"
    field_map["site"] = "typed"

    changed = merge_fields(field_map, {"protocolNo": "ABC-123", "site": ""}, mode="overwrite")

    assert changed == ["protocolNo"]
    assert field_map["protocolNo"] == "ABC-123"
    assert field_map["site"] == "typed"


def test_merge_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError, match="Unsupported merge mode"):
        merge_fields(new_field_map(), {}, mode="sometimes")  # type: ignore[arg-type]


def test_new_field_map_has_string_defaults() -> None:
    field_map = new_field_map("v1.0")

    assert all(isinstance(value, str) for value in field_map.values())
    assert field_map["version"] == "v1.0"
    assert field_map["protocolNo"] == ""


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("2", "Phase 2"), ("IIb", "Phase IIb"), ("제2상", "제2상"), ("Phase 1", "Phase 1")],
)
def test_prefix_phase(raw: str, expected: str) -> None:
    assert prefix_phase(raw) == expected
