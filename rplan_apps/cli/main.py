"""Typer CLI entrypoint for the randomization plan drafter."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, cast

import typer

from rplan.config.models import PlanSettings
from rplan.config.settings_loader import load_settings
from rplan.extraction.engine import MERGE_MODES, run_extraction
from rplan.extraction.models import MergeMode, new_field_map
from rplan.session.controller import PlanSession, RenderedPlan
from rplan.sources.adapter import SourceAdapterConfig, SourceTextAdapter
from rplan.templates.archive import load_template
from rplan.templates.token_scanner import parse_template_tokens
from rplan.utils.errors import MissingTokenError, SourceReadError, TemplateParseError
from rplan_apps.cli.io import (
    build_output_paths,
    write_error_report_atomic,
    write_json_atomic,
    write_plan_atomic,
)

app = typer.Typer(help="Randomization Plan drafter CLI", rich_markup_mode=None)


@app.callback()
def cli_callback(
    verbose: Annotated[bool, typer.Option("--verbose", help="Log engine details.")] = False,
) -> None:
    """Draft Randomization Plan documents from protocols and DOCX templates."""

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("extract")
def extract_command(
    protocol: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    out: Annotated[Path | None, typer.Option(help="Write the field map JSON here.")] = None,
    settings: Annotated[Path | None, typer.Option()] = None,
) -> None:
    """Extract protocol metadata and print the field map as JSON."""

    settings_model = _load_settings_or_exit(settings)
    adapter = SourceTextAdapter(SourceAdapterConfig(pdf_strict=settings_model.pdf_strict))
    field_map = new_field_map(settings_model.default_version)

    try:
        text = adapter.extract_text(protocol.read_bytes(), protocol.name)
    except SourceReadError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    changed = run_extraction(field_map, text, settings_model.merge_mode)
    typer.echo(f"INFO: extracted {len(changed)} field(s)")
    if out is not None:
        write_json_atomic(out, field_map)
        typer.echo(f"INFO: wrote {out}")
    else:
        typer.echo(json.dumps(field_map, ensure_ascii=False, indent=2))


@app.command("tokens")
def tokens_command(
    template: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
) -> None:
    """List the distinct tokens a template references."""

    try:
        scan = parse_template_tokens(load_template(template.read_bytes()))
    except TemplateParseError as exc:
        _echo_template_error(exc)
        raise typer.Exit(code=3) from exc

    for token in scan.tokens:
        typer.echo(token)
    for issue in scan.issues:
        typer.echo(f"WARNING(template): {issue.explain()}")
    if scan.issues:
        raise typer.Exit(code=3)


@app.command("generate")
def generate_command(
    template: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    protocol: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    fields: Annotated[
        Path | None,
        typer.Option(
            exists=True,
            dir_okay=False,
            file_okay=True,
            help="JSON object of field values applied after extraction.",
        ),
    ] = None,
    set_values: Annotated[
        list[str] | None,
        typer.Option("--set", help="KEY=VALUE override; repeatable."),
    ] = None,
    out_dir: Annotated[Path, typer.Option()] = Path("."),
    merge_mode: Annotated[str | None, typer.Option()] = None,
    black_text: Annotated[
        bool, typer.Option("--black-text", help="Force every run to upright black text.")
    ] = False,
    settings: Annotated[Path | None, typer.Option()] = None,
) -> None:
    """Extract, merge user values, and render one plan document."""

    settings_model = _load_settings_or_exit(settings)

    mode: MergeMode | None = None
    if merge_mode is not None:
        normalized_mode = merge_mode.lower().strip()
        if normalized_mode not in MERGE_MODES:
            typer.echo("ERROR: --merge-mode must be one of: fill_empty, overwrite.")
            raise typer.Exit(code=1)
        mode = cast(MergeMode, normalized_mode)

    try:
        overrides = _parse_overrides(fields, set_values or [])
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc

    session = PlanSession(settings=settings_model)
    exit_code = 0
    plan: RenderedPlan | None = None
    try:
        plan = asyncio.run(
            _run_session(session, template, protocol, overrides, mode, black_text)
        )
    except MissingTokenError as exc:
        exit_code = 2
        typer.echo(f"ERROR: missing tokens: {', '.join(exc.missing)}")
        _write_failure(out_dir, session, exc, {"missing": exc.missing})
    except TemplateParseError as exc:
        exit_code = 3
        _echo_template_error(exc)
        _write_failure(out_dir, session, exc, {"part": exc.part, "errors": exc.explanations()})
    except Exception as exc:  # noqa: BLE001
        exit_code = 1
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")

    for line in session.log:
        typer.echo(f"INFO(session): {line}")

    if exit_code == 0 and plan is not None:
        paths = build_output_paths(out_dir, plan.filename)
        try:
            write_plan_atomic(paths, plan.content, session.field_map, plan.report)
        except Exception as exc:  # noqa: BLE001
            typer.echo(f"ERROR: write output failed: {exc}")
            raise typer.Exit(code=1) from exc
        typer.echo(f"INFO: wrote {paths.docx}")
        typer.echo("INFO: success")

    raise typer.Exit(code=exit_code)


async def _run_session(
    session: PlanSession,
    template: Path | None,
    protocol: Path | None,
    overrides: dict[str, str],
    mode: MergeMode | None,
    black_text: bool,
) -> RenderedPlan:
    if protocol is not None:
        await session.load_protocol(protocol.read_bytes(), protocol.name, mode)
    session.update_fields(overrides)
    if template is not None:
        await session.load_template(template.read_bytes())
    return await session.generate(black_text=black_text)


def _parse_overrides(fields: Path | None, set_values: list[str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    if fields is not None:
        raw = json.loads(fields.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("Fields JSON must be an object")
        for key, value in raw.items():
            overrides[str(key)] = "" if value is None else str(value)

    for item in set_values:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"--set expects KEY=VALUE, got: {item}")
        overrides[key.strip()] = value
    return overrides


def _load_settings_or_exit(path: Path | None) -> PlanSettings:
    try:
        return load_settings(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=1) from exc


def _echo_template_error(exc: TemplateParseError) -> None:
    typer.echo(f"ERROR: template parse error: {exc}")
    for line in exc.explanations():
        typer.echo(f"ERROR(template): {line}")


def _write_failure(
    out_dir: Path, session: PlanSession, exc: Exception, detail: dict[str, object]
) -> None:
    paths = build_output_paths(out_dir, "unused.docx")
    try:
        write_error_report_atomic(
            paths,
            error_type=type(exc).__name__,
            error_message=str(exc),
            field_map=session.field_map,
            detail=detail,
        )
    except OSError as write_exc:
        typer.echo(f"ERROR: failure report write failed: {write_exc}")


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
