"""Data models for template archives and token scanning."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

PartRole = Literal["body", "header", "footer"]


@dataclass(frozen=True)
class ArchiveMember:
    """One zip member kept verbatim so the archive can be rebuilt in order."""

    name: str
    data: bytes
    compress_type: int
    date_time: tuple[int, int, int, int, int, int]


@dataclass(frozen=True)
class TemplatePart:
    """A body, header or footer part holding raw WordprocessingML markup."""

    name: str
    role: PartRole
    xml: bytes


@dataclass(frozen=True)
class TemplateDocument:
    """An uploaded template archive. Immutable once loaded."""

    members: tuple[ArchiveMember, ...] = ()
    parts: tuple[TemplatePart, ...] = ()


@dataclass(frozen=True)
class TokenOccurrence:
    """A token found in one paragraph of one part."""

    token: str
    part: str
    paragraph_index: int
    start: int
    end: int


@dataclass(frozen=True)
class TemplateIssue:
    """A delimiter problem that makes the template unsafe to render."""

    kind: Literal["unclosed_tag", "stray_close", "empty_tag", "xml_error"]
    part: str
    text: str
    paragraph_index: int | None = None
    start: int | None = None

    def explain(self) -> str:
        location = self.part
        if self.paragraph_index is not None:
            location = f"{location} paragraph {self.paragraph_index}"
        if self.kind == "unclosed_tag":
            return f"{location}: '{{{{' is never closed near {self.text!r}"
        if self.kind == "stray_close":
            return f"{location}: '}}}}' has no matching '{{{{'"
        if self.kind == "empty_tag":
            return f"{location}: empty tag {self.text!r}"
        return f"{location}: {self.text}"


@dataclass
class ScanResult:
    """Token scanning output for one template."""

    tokens: list[str] = field(default_factory=list)
    occurrences: list[TokenOccurrence] = field(default_factory=list)
    issues: list[TemplateIssue] = field(default_factory=list)

    @property
    def token_set(self) -> frozenset[str]:
        return frozenset(self.tokens)
