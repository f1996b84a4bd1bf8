"""Custom exceptions for plan drafting."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rplan.templates.models import TemplateIssue


class SourceReadError(Exception):
    """Raised when a protocol source document cannot be turned into text."""

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message)
        self.filename = filename


class FieldExtractionError(Exception):
    """Raised inside the extraction engine when a rule or normalizer misbehaves.

    Always recovered by the engine; callers never see it.
    """

    def __init__(self, message: str, *, field_name: str, rule_label: str) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.rule_label = rule_label


class MissingTokenError(Exception):
    """Raised when template tokens have no supplied value."""

    def __init__(self, message: str, *, missing: list[str]) -> None:
        super().__init__(message)
        self.missing = missing


class TemplateParseError(Exception):
    """Raised when template bytes are not a usable document archive."""

    def __init__(
        self,
        message: str,
        *,
        part: str | None = None,
        errors: list[TemplateIssue] | None = None,
    ) -> None:
        super().__init__(message)
        self.part = part
        self.errors = list(errors or [])

    def explanations(self) -> list[str]:
        """Return one human readable line per recorded issue."""

        return [issue.explain() for issue in self.errors]
