from __future__ import annotations

from pathlib import Path

import pytest

from rplan.config.settings_loader import load_settings


def test_load_default_settings() -> None:
    settings = load_settings()

    assert settings.output_prefix == "Randomization Plan"
    assert settings.output_placeholder == "draft"
    assert settings.default_version == "DRAFT"
    assert settings.merge_mode == "fill_empty"
    assert "시험계획서 번호 (Protocol No.)" in settings.token_aliases["PROTOCOL_NO"]


def test_load_settings_normalizes_scalar_and_empty_aliases(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
output_prefix: RP
output_placeholder: tbd
default_version: "0.1"
merge_mode: overwrite
token_aliases:
  SITE: "기관"
  PI:
""",
        encoding="utf-8",
    )

    settings = load_settings(path)

    assert settings.merge_mode == "overwrite"
    assert settings.token_aliases == {"SITE": ["기관"], "PI": []}


def test_load_settings_rejects_unknown_canonical_key(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
output_prefix: RP
output_placeholder: tbd
default_version: "0.1"
token_aliases:
  NOT_A_KEY: ["x"]
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid settings schema"):
        load_settings(path)


def test_load_settings_rejects_bad_merge_mode(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        """
output_prefix: RP
output_placeholder: tbd
default_version: "0.1"
merge_mode: always
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid settings schema"):
        load_settings(path)


def test_load_settings_raises_for_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Settings file not found"):
        load_settings(tmp_path / "missing.yaml")


def test_load_settings_raises_for_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("output_prefix: [unclosed", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_settings(path)


def test_load_settings_requires_mapping(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_settings(path)
