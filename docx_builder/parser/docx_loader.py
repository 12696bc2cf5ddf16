"""DOCX package store: named parts, relationships and content types in a zip container."""
from __future__ import annotations

import io
import os
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from docx_builder.errors import FormatError, PackageClosedError, PackageIOError, ValidationError
from docx_builder.parser.content_types import (
    CONTENT_TYPES_PATH,
    CT_DOCUMENT_MAIN,
    CT_NUMBERING,
    CT_RELATIONSHIPS,
    CT_SETTINGS,
    CT_STYLES,
    CT_XML,
    ContentTypes,
)
from docx_builder.parser.rels_parser import (
    RELTYPE_NUMBERING,
    RELTYPE_OFFICE_DOCUMENT,
    RELTYPE_SETTINGS,
    RELTYPE_STYLES,
    Relationships,
    rels_part_name,
    resolve_part_name,
)
from docx_builder.utils.logger import get_logger

LOGGER = get_logger(__name__)

DOCUMENT_XML_PATH = "word/document.xml"
STYLES_XML_PATH = "word/styles.xml"
SETTINGS_XML_PATH = "word/settings.xml"
NUMBERING_XML_PATH = "word/numbering.xml"
MEDIA_DIR = "word/media"

_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
_W = 'xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'

DEFAULT_DOCUMENT_XML = (
    _XML_DECLARATION
    + f'<w:document {_W} xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
    + '<w:body><w:sectPr><w:pgSz w:w="11906" w:h="16838"/>'
    + '<w:pgMar w:top="1440" w:right="1440" w:bottom="1440" w:left="1440"/></w:sectPr></w:body>'
    + "</w:document>"
)

DEFAULT_STYLES_XML = (
    _XML_DECLARATION
    + f"<w:styles {_W}>"
    + "<w:docDefaults><w:rPrDefault><w:rPr>"
    + '<w:rFonts w:ascii="Calibri" w:hAnsi="Calibri" w:cs="Times New Roman"/>'
    + '<w:sz w:val="22"/><w:szCs w:val="22"/><w:lang w:val="en-US"/>'
    + "</w:rPr></w:rPrDefault><w:pPrDefault/></w:docDefaults>"
    + "</w:styles>"
)

DEFAULT_SETTINGS_XML = (
    _XML_DECLARATION
    + f"<w:settings {_W}>"
    + '<w:zoom w:percent="100"/><w:defaultTabStop w:val="708"/>'
    + '<w:characterSpacingControl w:val="doNotCompress"/>'
    + "</w:settings>"
)

_LIST_LEVEL = (
    '<w:lvl w:ilvl="0"><w:start w:val="1"/><w:numFmt w:val="{fmt}"/><w:lvlText w:val="{text}"/>'
    '<w:lvlJc w:val="left"/><w:pPr><w:ind w:left="720" w:hanging="360"/></w:pPr>{rpr}</w:lvl>'
)

DEFAULT_NUMBERING_XML = (
    _XML_DECLARATION
    + f"<w:numbering {_W}>"
    + '<w:abstractNum w:abstractNumId="0"><w:multiLevelType w:val="singleLevel"/>'
    + _LIST_LEVEL.format(fmt="decimal", text="%1.", rpr="")
    + "</w:abstractNum>"
    + '<w:abstractNum w:abstractNumId="1"><w:multiLevelType w:val="singleLevel"/>'
    + _LIST_LEVEL.format(
        fmt="bullet", text="•", rpr='<w:rPr><w:rFonts w:ascii="Symbol" w:hAnsi="Symbol" w:hint="default"/></w:rPr>'
    )
    + "</w:abstractNum>"
    + '<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>'
    + '<w:num w:numId="2"><w:abstractNumId w:val="1"/></w:num>'
    + "</w:numbering>"
)


@dataclass(slots=True)
class Part:
    """One named entry of the container."""

    name: str
    content_type: str
    data: bytes


@dataclass(slots=True)
class DocxPackage:
    """In-memory view of a DOCX archive: parts, relationships and content types."""

    parts: Dict[str, Part] = field(default_factory=dict)
    relationships: Relationships = field(default_factory=Relationships)
    content_types: ContentTypes = field(default_factory=ContentTypes)
    path: Optional[Path] = None
    _archive: Optional[zipfile.ZipFile] = None
    _closed: bool = False

    @classmethod
    def create_empty(cls) -> "DocxPackage":
        """Build a package seeded with the parts a minimal document needs."""
        package = cls()
        package.content_types.set_default("rels", CT_RELATIONSHIPS)
        package.content_types.set_default("xml", CT_XML)
        package.set_part(DOCUMENT_XML_PATH, CT_DOCUMENT_MAIN, DEFAULT_DOCUMENT_XML.encode("utf-8"))
        package.set_part(STYLES_XML_PATH, CT_STYLES, DEFAULT_STYLES_XML.encode("utf-8"))
        package.set_part(SETTINGS_XML_PATH, CT_SETTINGS, DEFAULT_SETTINGS_XML.encode("utf-8"))
        package.set_part(NUMBERING_XML_PATH, CT_NUMBERING, DEFAULT_NUMBERING_XML.encode("utf-8"))

        package.relationships.ensure("", RELTYPE_OFFICE_DOCUMENT, DOCUMENT_XML_PATH)
        package.relationships.ensure(DOCUMENT_XML_PATH, RELTYPE_STYLES, "styles.xml")
        package.relationships.ensure(DOCUMENT_XML_PATH, RELTYPE_SETTINGS, "settings.xml")
        package.relationships.ensure(DOCUMENT_XML_PATH, RELTYPE_NUMBERING, "numbering.xml")
        return package

    @classmethod
    def load(cls, docx_path: Path | str) -> "DocxPackage":
        """Open a DOCX archive and read every part into memory."""
        docx_path = Path(docx_path)
        try:
            archive = zipfile.ZipFile(docx_path)
        except zipfile.BadZipFile as exc:
            raise FormatError(f"{docx_path} is not a zip container") from exc
        except OSError as exc:
            raise PackageIOError(f"Cannot open {docx_path}: {exc}") from exc

        package = cls(path=docx_path, _archive=archive)
        try:
            package._read_archive(archive)
        except (zipfile.BadZipFile, OSError) as exc:
            archive.close()
            raise PackageIOError(f"Cannot read {docx_path}: {exc}") from exc
        except FormatError:
            archive.close()
            raise

        LOGGER.debug("Loaded %d parts from %s", len(package.parts), docx_path.name)
        return package

    # ------------------------------------------------------------------
    # Public helpers
    def part(self, name: str) -> Optional[Part]:
        self._check_open()
        return self.parts.get(name.lstrip("/"))

    def set_part(self, name: str, content_type: str, data: bytes) -> Part:
        """Create or replace a part, recording an override unless the default covers it."""
        self._check_open()
        name = name.lstrip("/")
        if content_type and content_type != self.content_types.default_for(name):
            self.content_types.set_override(name, content_type)
        part = Part(name=name, content_type=content_type or self.content_types.content_type_of(name), data=data)
        self.parts[name] = part
        return part

    def update_part_data(self, name: str, data: bytes) -> None:
        self._check_open()
        existing = self.parts.get(name)
        if existing is None:
            raise KeyError(f"Unknown part: {name}")
        existing.data = data

    def remove_part(self, name: str) -> Optional[Part]:
        self._check_open()
        name = name.lstrip("/")
        self.content_types.remove_override(name)
        return self.parts.pop(name, None)

    def content_type_of(self, name: str) -> str:
        return self.content_types.content_type_of(name)

    def part_names(self) -> List[str]:
        return sorted(self.parts)

    def main_document_part_name(self) -> str:
        for rel in self.relationships.for_source(""):
            if rel.rel_type == RELTYPE_OFFICE_DOCUMENT:
                return resolve_part_name("", rel.target)
        return DOCUMENT_XML_PATH

    def save(self, docx_path: Path | str | None = None) -> Path:
        """Write every part, relationship list and the content-types manifest."""
        self._check_open()
        target = Path(docx_path) if docx_path is not None else self.path
        if target is None:
            raise ValidationError("No path given and the package was not loaded from a file")

        self._validate_relationships()
        payload = self._build_archive()
        self._write_atomically(target, payload)
        self.path = target
        LOGGER.debug("Saved %d parts to %s", len(self.parts), target.name)
        return target

    def close(self) -> None:
        """Release the archive handle; further use raises ``PackageClosedError``."""
        if self._closed:
            return
        if self._archive is not None:
            self._archive.close()
            self._archive = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "DocxPackage":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal bootstrap
    def _read_archive(self, archive: zipfile.ZipFile) -> None:
        names = archive.namelist()
        if CONTENT_TYPES_PATH in names:
            self.content_types = ContentTypes.from_xml(archive.read(CONTENT_TYPES_PATH))
        else:
            LOGGER.warning("Package has no %s; relying on extension defaults", CONTENT_TYPES_PATH)

        for name in names:
            if name.endswith("/") or name == CONTENT_TYPES_PATH:
                continue
            data = archive.read(name)
            if name.endswith(".rels"):
                self.relationships.parse_part(name, data)
                continue
            self.parts[name] = Part(name=name, content_type=self.content_types.content_type_of(name), data=data)

    def _validate_relationships(self) -> None:
        for owner, rel in self.relationships.iter_all():
            if rel.is_external:
                continue
            part_name = resolve_part_name(owner, rel.target)
            if part_name not in self.parts:
                raise ValidationError(
                    f"Relationship {rel.r_id} of {owner or '/'} targets missing part {part_name}"
                )

    def _build_archive(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as docx_zip:
            docx_zip.writestr(CONTENT_TYPES_PATH, self.content_types.to_xml(self.parts))
            for name in sorted(self.parts):
                docx_zip.writestr(name, self.parts[name].data)
            for owner in sorted(self.relationships.owners()):
                docx_zip.writestr(rels_part_name(owner), self.relationships.to_xml(owner))
        return buffer.getvalue()

    @staticmethod
    def _write_atomically(target: Path, payload: bytes) -> None:
        directory = target.resolve().parent
        try:
            fd, temp_name = tempfile.mkstemp(prefix=".docx-", suffix=".tmp", dir=directory)
        except OSError as exc:
            raise PackageIOError(f"Cannot write {target}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(temp_name, target)
        except OSError as exc:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise PackageIOError(f"Cannot write {target}: {exc}") from exc

    def _check_open(self) -> None:
        if self._closed:
            raise PackageClosedError("Package has been closed")

