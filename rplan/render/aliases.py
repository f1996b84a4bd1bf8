"""Canonical template keys and alias expansion for field maps."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

CANONICAL_KEYS: Mapping[str, str] = MappingProxyType(
    {
        "protocolNo": "PROTOCOL_NO",
        "version": "VERSION",
        "korTitle": "KOR_TITLE",
        "engTitle": "ENG_TITLE",
        "phase": "PHASE",
        "site": "SITE",
        "pi": "PI",
        "sponsor": "SPONSOR",
        "arms": "ARMS",
        "sequences": "SEQUENCES",
        "nPerArm": "N_PER_ARM",
    }
)

FIELD_BY_CANONICAL: Mapping[str, str] = MappingProxyType(
    {key: name for name, key in CANONICAL_KEYS.items()}
)


def resolve_field_name(key: str, aliases: Mapping[str, list[str]] | None = None) -> str:
    """Map a canonical key, alias or field name to its field name.

    Unknown keys are returned unchanged so custom template tokens still work.
    """

    if key in CANONICAL_KEYS:
        return key
    if key in FIELD_BY_CANONICAL:
        return FIELD_BY_CANONICAL[key]
    for canonical, spellings in (aliases or {}).items():
        if key in spellings and canonical in FIELD_BY_CANONICAL:
            return FIELD_BY_CANONICAL[canonical]
    return key


def expand_aliases(
    field_map: Mapping[str, str], aliases: Mapping[str, list[str]] | None = None
) -> dict[str, str]:
    """Key every value by field name, canonical key and each accepted alias."""

    expanded: dict[str, str] = {}
    for name, value in field_map.items():
        expanded[name] = value
        canonical = CANONICAL_KEYS.get(name)
        if canonical is None:
            continue
        expanded[canonical] = value
        for alias in (aliases or {}).get(canonical, []):
            expanded[alias] = value
    return expanded
