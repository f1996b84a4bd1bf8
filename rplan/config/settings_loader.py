"""Settings loading utilities for plan drafting."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from rplan.config.models import PlanSettings


def default_settings_path() -> Path:
    return Path(__file__).with_name("settings.yaml")


def load_settings(path: Path | None = None) -> PlanSettings:
    """Load and validate drafting settings from YAML."""

    settings_path = path or default_settings_path()

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        return PlanSettings.model_validate(_normalize_aliases(raw))
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc


def _normalize_aliases(raw: dict[object, object]) -> dict[object, object]:
    normalized = dict(raw)
    aliases = normalized.get("token_aliases")
    if aliases is None:
        normalized["token_aliases"] = {}
        return normalized
    if not isinstance(aliases, dict):
        return normalized

    cleaned: dict[object, object] = {}
    for key, value in aliases.items():
        if isinstance(value, str):
            cleaned[key] = [value]
        elif value is None:
            cleaned[key] = []
        else:
            cleaned[key] = value
    normalized["token_aliases"] = cleaned
    return normalized
