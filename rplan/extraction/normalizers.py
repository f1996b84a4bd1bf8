"""Pure post-match transforms applied to raw extracted values."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
KOREAN_ORDINAL_MARKER = "제"
PHASE_PREFIX = "Phase "


def prefix_phase(value: str) -> str:
    """Turn a bare phase numeral into ``Phase <n>``; Korean ordinals pass through."""

    if value.startswith(KOREAN_ORDINAL_MARKER) or value.lower().startswith(PHASE_PREFIX.lower()):
        return value
    return f"{PHASE_PREFIX}{value}"


def collapse_whitespace(value: str) -> str:
    """Join wrapped lines: every whitespace run becomes one space."""

    return _WHITESPACE_RE.sub(" ", value).strip()


def squeeze_korean_phase(value: str) -> str:
    """``제 1 상`` -> ``제1상``."""

    return _WHITESPACE_RE.sub("", value)
