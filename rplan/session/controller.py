"""In-process session controller: one field map, one template, one message log."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from rplan.config.models import PlanSettings
from rplan.config.settings_loader import load_settings
from rplan.extraction.engine import run_extraction
from rplan.extraction.models import MergeMode, new_field_map
from rplan.render.aliases import resolve_field_name
from rplan.render.appearance import apply_black_text
from rplan.render.models import ReplaceReport
from rplan.render.token_renderer import render_template
from rplan.sources.adapter import SourceAdapterConfig, SourceTextAdapter, detect_source_kind
from rplan.templates.archive import load_template
from rplan.templates.default_template import build_default_template
from rplan.templates.models import ScanResult, TemplateDocument
from rplan.templates.token_scanner import parse_template_tokens
from rplan.utils.errors import MissingTokenError, SourceReadError, TemplateParseError

logger = logging.getLogger("rplan.session")


@dataclass(frozen=True)
class LoadedTemplate:
    """A scanned template; replaced wholesale on the next upload."""

    document: TemplateDocument
    scan: ScanResult
    builtin: bool = False

    @property
    def tokens(self) -> frozenset[str]:
        return self.scan.token_set


@dataclass(frozen=True)
class RenderedPlan:
    """A generated plan ready to be saved."""

    filename: str
    content: bytes
    report: ReplaceReport


def output_filename(settings: PlanSettings, protocol_no: str) -> str:
    """``<prefix>_<protocol number or placeholder>.docx``."""

    stem = protocol_no.strip() or settings.output_placeholder
    for char in '\\/:*?"<>|':
        stem = stem.replace(char, "_")
    return f"{settings.output_prefix}_{stem}.docx"


class PlanSession:
    """Holds the editable field map and serializes upload/generate operations."""

    def __init__(
        self,
        settings: PlanSettings | None = None,
        adapter: SourceTextAdapter | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.adapter = adapter or SourceTextAdapter(
            SourceAdapterConfig(pdf_strict=self.settings.pdf_strict)
        )
        self.field_map: dict[str, str] = new_field_map(self.settings.default_version)
        self.template: LoadedTemplate | None = None
        self.log: list[str] = []
        self._lock = asyncio.Lock()

    async def load_protocol(
        self, data: bytes, filename: str | None = None, mode: MergeMode | None = None
    ) -> list[str]:
        """Extract metadata from a protocol upload; returns changed field names.

        Read failures are logged and leave the field map unchanged.
        """

        async with self._lock:
            try:
                tag = f"[{detect_source_kind(data, filename).upper()}]"
                text = await self.adapter.aextract_text(data, filename)
            except SourceReadError as exc:
                self._append_log(f"[SOURCE] read failed: {exc}")
                logger.warning("source read failed: filename=%s error=%s", filename, exc)
                return []

            self._append_log(f"{tag} text extracted")
            changed = run_extraction(self.field_map, text, mode or self.settings.merge_mode)
            if changed:
                self._append_log(f"{tag} fields filled: {', '.join(changed)}")
            return changed

    async def load_template(self, data: bytes) -> frozenset[str]:
        """Scan an uploaded template and make it the current one."""

        async with self._lock:
            try:
                loaded = await asyncio.to_thread(_scan_template, data, False)
            except TemplateParseError as exc:
                self._append_log(f"[TEMPLATE] parse error: {exc}")
                raise
            self.template = loaded
            self._append_log(f"[TEMPLATE] tokens: {', '.join(loaded.scan.tokens) or '(none)'}")
            if loaded.scan.issues:
                self._append_log(f"[TEMPLATE] malformed tokens: {len(loaded.scan.issues)}")
            return loaded.tokens

    def set_field(self, name: str, value: str | None) -> str:
        """Set one field by field name, canonical key or alias; returns the key used."""

        key = resolve_field_name(name, self.settings.token_aliases)
        self.field_map[key] = "" if value is None else str(value)
        return key

    def update_fields(self, values: Mapping[str, str]) -> list[str]:
        return [self.set_field(name, value) for name, value in values.items()]

    async def generate(self, black_text: bool = False) -> RenderedPlan:
        """Render the current template (or the built-in one) with the field map.

        MissingTokenError and TemplateParseError are logged and re-raised; the
        session state is left untouched.
        """

        async with self._lock:
            template = self.template or await asyncio.to_thread(_scan_template, None, True)
            try:
                output = await asyncio.to_thread(
                    render_template,
                    template.document,
                    dict(self.field_map),
                    self.settings.token_aliases,
                    template.scan,
                )
            except MissingTokenError as exc:
                self._append_log(f"[RENDER] missing tokens: {', '.join(exc.missing)}")
                raise
            except TemplateParseError as exc:
                self._append_log(f"[RENDER] template error: {exc}")
                for line in exc.explanations():
                    self._append_log(f"[RENDER]   {line}")
                raise

            content = output.content
            if black_text:
                content = await asyncio.to_thread(apply_black_text, content)

            filename = output_filename(self.settings, self.field_map.get("protocolNo", ""))
            source = " (built-in template)" if template.builtin else ""
            self._append_log(f"[RENDER] generated {filename}{source}")
            return RenderedPlan(
                filename=filename, content=content, report=output.replace_report
            )

    def _append_log(self, message: str) -> None:
        self.log.append(message)
        logger.info(message)


def _scan_template(data: bytes | None, builtin: bool) -> LoadedTemplate:
    document = load_template(build_default_template() if data is None else data)
    return LoadedTemplate(document=document, scan=parse_template_tokens(document), builtin=builtin)
