"""Render pipeline report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ReplaceLogEntry(BaseModel):
    """Single token replacement log item."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["replaced"]
    token: str
    part: str
    paragraph_index: int
    original_text: str
    new_text: str


class ReplaceSummary(BaseModel):
    """Aggregate replacement summary for observability."""

    model_config = ConfigDict(extra="forbid")

    total_tokens: int
    total_occurrences: int
    replaced_count: int
    touched_parts: list[str] = Field(default_factory=list)


class ReplaceReport(BaseModel):
    """Full replacement report."""

    model_config = ConfigDict(extra="forbid")

    entries: list[ReplaceLogEntry] = Field(default_factory=list)
    summary: ReplaceSummary


class RenderOutput(BaseModel):
    """In-memory render output (rendered archive bytes plus report)."""

    model_config = ConfigDict(extra="forbid")

    content: bytes
    tokens: list[str]
    replace_report: ReplaceReport
