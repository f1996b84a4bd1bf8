"""Field and rule models for protocol metadata extraction."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

Normalizer = Callable[[str], str]
MergeMode = Literal["fill_empty", "overwrite"]

FIELD_NAMES: tuple[str, ...] = (
    "korTitle",
    "engTitle",
    "protocolNo",
    "version",
    "phase",
    "site",
    "pi",
    "sponsor",
    "arms",
    "sequences",
    "nPerArm",
)

DEFAULT_VERSION = "DRAFT"


@dataclass(frozen=True)
class ExtractionRule:
    """One pattern in a field's fallback chain."""

    label: str
    pattern: re.Pattern[str]
    normalizer: Normalizer | None = None

    def select(self, match: re.Match[str]) -> str:
        """Use group 1 when the pattern defines one, else the whole match."""

        if self.pattern.groups >= 1 and match.group(1) is not None:
            return match.group(1)
        return match.group(0)


@dataclass(frozen=True)
class FieldSpec:
    """A named metadata slot with an ordered extraction rule chain."""

    name: str
    rules: tuple[ExtractionRule, ...] = ()


def new_field_map(default_version: str = DEFAULT_VERSION) -> dict[str, str]:
    """Build a session field map with every known field set to a string."""

    field_map = {name: "" for name in FIELD_NAMES}
    field_map["version"] = default_version
    return field_map
