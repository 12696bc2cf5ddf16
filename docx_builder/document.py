"""High-level entry point: open or create a DOCX file and edit its body."""
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional

from docx_builder.errors import FormatError
from docx_builder.model.document_model import BodyElement, DocumentPart, FooterPart, HeaderPart
from docx_builder.model.elements import Paragraph, Picture
from docx_builder.model.numbering_model import NumberingCatalog
from docx_builder.model.section_model import HeaderFooterType, Section, SectionStart
from docx_builder.model.table_model import Table
from docx_builder.parser.content_types import CT_DOCUMENT_MAIN
from docx_builder.parser.docx_loader import NUMBERING_XML_PATH, DocxPackage
from docx_builder.parser.numbering_parser import NumberingParser
from docx_builder.parser.rels_parser import RELTYPE_NUMBERING, resolve_part_name
from docx_builder.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Document:
    """A WordprocessingML document backed by an in-memory package."""

    def __init__(self, package: DocxPackage, body: DocumentPart) -> None:
        self.package = package
        self.body = body
        self._numbering: Optional[NumberingCatalog] = None

    @classmethod
    def new(cls) -> "Document":
        package = DocxPackage.create_empty()
        return cls(package, DocumentPart.load(package, package.main_document_part_name()))

    @classmethod
    def open(cls, path: Path | str) -> "Document":
        package = DocxPackage.load(path)
        try:
            part_name = package.main_document_part_name()
            if package.part(part_name) is None:
                raise FormatError(f"{path} has no main document part")
            content_type = package.content_type_of(part_name)
            if content_type != CT_DOCUMENT_MAIN:
                raise FormatError(f"{part_name} has content type {content_type!r}, not a WordprocessingML document")
            document = cls(package, DocumentPart.load(package, part_name))
        except Exception:
            package.close()
            raise

        LOGGER.info("Opened %s (%d body elements)", Path(path).name, len(document.elements))
        for paragraph in document.unresolved_numbering():
            LOGGER.warning(
                "Paragraph %r references numbering %s level %s with no definition",
                paragraph.text[:40],
                paragraph.numbering.num_id,
                paragraph.numbering.level,
            )
        return document

    # ------------------------------------------------------------------
    # Queries
    @property
    def elements(self) -> List[BodyElement]:
        return self.body.elements

    @property
    def paragraphs(self) -> List[Paragraph]:
        return self.body.paragraphs

    @property
    def tables(self) -> List[Table]:
        return self.body.tables

    @property
    def sections(self) -> List[Section]:
        return self.body.sections()

    @property
    def numbering(self) -> NumberingCatalog:
        """Numbering definitions, parsed once on first access."""
        if self._numbering is None:
            part = self.package.part(self._numbering_part_name())
            self._numbering = NumberingParser(part.data if part is not None else None).parse()
        return self._numbering

    def unresolved_numbering(self) -> List[Paragraph]:
        """Paragraphs whose list reference has no matching definition."""
        catalog = self.numbering
        return [
            paragraph
            for paragraph in self._all_paragraphs()
            if paragraph.numbering is not None
            and not catalog.resolves(paragraph.numbering.num_id, paragraph.numbering.level)
        ]

    # ------------------------------------------------------------------
    # Editing
    def add_paragraph(self, text: str = "", style: Optional[str] = None) -> Paragraph:
        return self.body.add_paragraph(text, style)

    def add_table(self, rows: int, cols: int) -> Table:
        return self.body.add_table(rows, cols)

    def insert_table_after_paragraph(self, paragraph: Paragraph, rows: int, cols: int) -> Table:
        return self.body.insert_table_after_paragraph(paragraph, rows, cols)

    def remove_paragraph(self, paragraph: Paragraph) -> Paragraph:
        return self.body.remove_paragraph(paragraph)

    def remove_table(self, table: Table) -> Table:
        return self.body.remove_table(table)

    def add_section(self, start_type: SectionStart = SectionStart.NEW_PAGE) -> Section:
        return self.body.add_section(start_type)

    def remove_section(self, section: Section) -> Section:
        return self.body.remove_section(section)

    def add_picture(self, path: Path | str, width_emu: int = 0, height_emu: int = 0) -> Picture:
        return self.body.add_picture(path, width_emu, height_emu)

    def header(self, kind: HeaderFooterType = HeaderFooterType.DEFAULT) -> HeaderPart:
        return self.body.last_section(create=True).header(kind)

    def footer(self, kind: HeaderFooterType = HeaderFooterType.DEFAULT) -> FooterPart:
        return self.body.last_section(create=True).footer(kind)

    # ------------------------------------------------------------------
    # Output
    def xml(self) -> str:
        return self.body.xml()

    def save(self, path: Path | str | None = None) -> Path:
        for part in self.body.loaded_parts():
            part.refresh()
        target = self.package.save(path)
        LOGGER.info("Saved %s", target.name)
        return target

    def close(self) -> None:
        self.package.close()

    def __enter__(self) -> "Document":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    def _numbering_part_name(self) -> str:
        owner = self.body.part_name
        for rel in self.package.relationships.for_source(owner):
            if rel.rel_type == RELTYPE_NUMBERING and not rel.is_external:
                return resolve_part_name(owner, rel.target)
        return NUMBERING_XML_PATH

    def _all_paragraphs(self) -> Iterator[Paragraph]:
        for element in self.body.elements:
            if isinstance(element, Paragraph):
                yield element
            elif isinstance(element, Table):
                for row in element.rows:
                    for cell in row.cells:
                        yield from cell.paragraphs
