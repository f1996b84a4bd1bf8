"""Settings model for plan drafting."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rplan.render.aliases import FIELD_BY_CANONICAL


class PlanSettings(BaseModel):
    """Drafting settings loaded from YAML."""

    model_config = ConfigDict(extra="forbid")

    output_prefix: str
    output_placeholder: str
    default_version: str
    merge_mode: Literal["fill_empty", "overwrite"] = "fill_empty"
    pdf_strict: bool = False
    token_aliases: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("token_aliases")
    @classmethod
    def _aliases_target_known_keys(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        unknown = sorted(set(value) - set(FIELD_BY_CANONICAL))
        if unknown:
            raise ValueError(f"token_aliases has unknown canonical keys: {unknown}")
        return value
