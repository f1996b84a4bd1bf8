"""Field extraction engine: first-match-wins rule chains over protocol text."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping

from rplan.extraction.models import ExtractionRule, FieldSpec, MergeMode
from rplan.extraction.rules import FIELD_SPECS
from rplan.utils.errors import FieldExtractionError

logger = logging.getLogger("rplan.extraction")

MERGE_MODES: tuple[MergeMode, ...] = ("fill_empty", "overwrite")


def extract_fields(text: str, specs: Iterable[FieldSpec] = FIELD_SPECS) -> dict[str, str]:
    """Return the best value per field; fields without a match are left out."""

    extracted: dict[str, str] = {}
    for spec in specs:
        value = extract_field(text, spec)
        if value:
            extracted[spec.name] = value
    return extracted


def extract_field(text: str, spec: FieldSpec) -> str:
    """Evaluate ``spec.rules`` in order and stop at the first non-empty match."""

    for rule in spec.rules:
        try:
            candidate = _match_rule(text, spec.name, rule)
        except FieldExtractionError as exc:
            logger.warning(
                "extraction rule failed: field=%s rule=%s: %s", spec.name, rule.label, exc
            )
            continue
        if not candidate:
            continue
        logger.debug("field=%s matched rule=%s", spec.name, rule.label)
        return _normalize(candidate, spec.name, rule)
    return ""


def merge_fields(
    field_map: MutableMapping[str, str],
    extracted: Mapping[str, str],
    mode: MergeMode = "fill_empty",
) -> list[str]:
    """Merge extracted values into ``field_map`` and return changed field names.

    Empty extracted values never replace anything. In ``fill_empty`` mode only
    empty fields are written; in ``overwrite`` mode any non-empty extraction
    replaces the current value.
    """

    if mode not in MERGE_MODES:
        raise ValueError(f"Unsupported merge mode: {mode}")

    changed: list[str] = []
    for name, value in extracted.items():
        if not value:
            continue
        current = field_map.get(name, "")
        if mode == "fill_empty" and current:
            continue
        if current == value:
            continue
        field_map[name] = value
        changed.append(name)
    return changed


def run_extraction(
    field_map: MutableMapping[str, str],
    text: str,
    mode: MergeMode = "fill_empty",
    specs: Iterable[FieldSpec] = FIELD_SPECS,
) -> list[str]:
    """Extract from ``text`` and merge into ``field_map`` in one pass."""

    extracted = extract_fields(text, specs)
    changed = merge_fields(field_map, extracted, mode)
    logger.info(
        "extraction pass: matched=%s changed=%s mode=%s",
        sorted(extracted),
        changed,
        mode,
    )
    return changed


def _match_rule(text: str, field_name: str, rule: ExtractionRule) -> str:
    try:
        match = rule.pattern.search(text)
        if match is None:
            return ""
        return rule.select(match).strip()
    except Exception as exc:  # noqa: BLE001
        raise FieldExtractionError(
            f"matcher raised {type(exc).__name__}: {exc}",
            field_name=field_name,
            rule_label=rule.label,
        ) from exc


def _normalize(candidate: str, field_name: str, rule: ExtractionRule) -> str:
    if rule.normalizer is None:
        return candidate
    try:
        normalized = rule.normalizer(candidate)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "normalizer failed, keeping raw value: field=%s rule=%s: %s",
            field_name,
            rule.label,
            exc,
        )
        return candidate
    if not isinstance(normalized, str) or not normalized:
        return candidate
    return normalized
