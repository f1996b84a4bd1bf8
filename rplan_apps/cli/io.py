"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rplan.render.models import ReplaceReport


@dataclass(frozen=True)
class OutputPaths:
    """Artifact paths for one generate run."""

    docx: Path
    fields: Path
    replace_log: Path


def build_output_paths(out_dir: Path, docx_name: str) -> OutputPaths:
    """Build output file paths under out_dir."""

    return OutputPaths(
        docx=out_dir / docx_name,
        fields=out_dir / "out.fields.json",
        replace_log=out_dir / "out.replace_log.json",
    )


def write_plan_atomic(
    paths: OutputPaths,
    content: bytes,
    field_map: dict[str, str],
    report: ReplaceReport,
) -> None:
    """Write the rendered plan and its JSON side files atomically."""

    paths.docx.parent.mkdir(parents=True, exist_ok=True)
    write_bytes_atomic(paths.docx, content)
    write_json_atomic(paths.fields, field_map)
    write_json_atomic(paths.replace_log, report.model_dump(mode="json"))


def write_error_report_atomic(
    paths: OutputPaths,
    *,
    error_type: str,
    error_message: str,
    field_map: dict[str, str],
    detail: dict[str, Any] | None = None,
) -> None:
    """Write the field map and an error block when rendering fails."""

    paths.replace_log.parent.mkdir(parents=True, exist_ok=True)
    write_json_atomic(paths.fields, field_map)
    write_json_atomic(
        paths.replace_log,
        {
            "entries": [],
            "error": {
                "error_type": error_type,
                "error_message": error_message,
                "detail": detail or {},
            },
        },
    )


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, indent=2)

    tmp_path.replace(path)


def write_bytes_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        tmp_path.write_bytes(content)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
