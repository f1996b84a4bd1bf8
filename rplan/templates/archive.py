"""Template archive reader/writer working on raw zip members."""

from __future__ import annotations

import io
import re
import zipfile
import zlib
from collections.abc import Mapping

from rplan.templates.models import ArchiveMember, PartRole, TemplateDocument, TemplatePart
from rplan.utils.errors import TemplateParseError

_PART_ROLES: tuple[tuple[re.Pattern[str], PartRole], ...] = (
    (re.compile(r"word/document\.xml"), "body"),
    (re.compile(r"word/header\d*\.xml"), "header"),
    (re.compile(r"word/footer\d*\.xml"), "footer"),
)

# Unsupported compression methods raise NotImplementedError, encrypted members RuntimeError.
_MEMBER_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    OSError,
    NotImplementedError,
    RuntimeError,
)


def part_role(name: str) -> PartRole | None:
    """Return the template role of an archive member name, or None if ignored."""

    for pattern, role in _PART_ROLES:
        if pattern.fullmatch(name):
            return role
    return None


def load_template(data: bytes) -> TemplateDocument:
    """Read template bytes into an immutable ``TemplateDocument``."""

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise TemplateParseError(f"Template is not a valid docx archive: {exc}") from exc

    members: list[ArchiveMember] = []
    parts: list[TemplatePart] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            try:
                payload = archive.read(info)
            except _MEMBER_READ_ERRORS as exc:
                raise TemplateParseError(
                    f"Template member cannot be read: {info.filename}", part=info.filename
                ) from exc

            members.append(
                ArchiveMember(
                    name=info.filename,
                    data=payload,
                    compress_type=info.compress_type,
                    date_time=info.date_time,
                )
            )
            role = part_role(info.filename)
            if role is not None:
                parts.append(TemplatePart(name=info.filename, role=role, xml=payload))

    if not any(part.role == "body" for part in parts):
        raise TemplateParseError("Template archive has no word/document.xml body part")

    return TemplateDocument(members=tuple(members), parts=tuple(parts))


def write_archive(document: TemplateDocument, replaced: Mapping[str, bytes]) -> bytes:
    """Rebuild the archive in original member order, swapping ``replaced`` parts."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w") as archive:
        for member in document.members:
            info = zipfile.ZipInfo(filename=member.name, date_time=member.date_time)
            info.compress_type = member.compress_type
            archive.writestr(info, replaced.get(member.name, member.data))
    return buffer.getvalue()
