"""Body-bearing parts: the main document plus header and footer parts."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Type, TypeVar, Union

from docx_builder.errors import (
    FormatError,
    PackageClosedError,
    PackageIOError,
    UnresolvedReferenceError,
    ValidationError,
)
from docx_builder.model.elements import Paragraph, Picture
from docx_builder.model.section_model import HeaderFooterReference, HeaderFooterType, Section, SectionStart
from docx_builder.model.table_model import Table
from docx_builder.parser.content_types import CT_DOCUMENT_MAIN, CT_FOOTER, CT_HEADER
from docx_builder.parser.docx_loader import DocxPackage
from docx_builder.parser.document_parser import BodyParser
from docx_builder.parser.media_extractor import MediaCatalog, image_content_type, resolve_picture_size
from docx_builder.parser.rels_parser import (
    MODE_EXTERNAL,
    RELTYPE_FOOTER,
    RELTYPE_HEADER,
    RELTYPE_HYPERLINK,
    RELTYPE_IMAGE,
    relative_target,
)
from docx_builder.utils.logger import get_logger
from docx_builder.writer.body_writer import BodyWriter

LOGGER = get_logger(__name__)

BodyElement = Union[Paragraph, Table, Section]
PartT = TypeVar("PartT", bound="BodyPart")


class BodyPart:
    """Owns the ordered block elements of one XML part and keeps its bytes current.

    Structural operations regenerate the part immediately. Formatting set
    directly on nodes is picked up by the next ``refresh()``, which
    ``Document.save`` performs for every loaded part.
    """

    ROOT_TAG = ""
    CONTENT_TYPE = ""

    def __init__(self, package: DocxPackage, part_name: str) -> None:
        self.package = package
        self.part_name = part_name
        self.elements: List[BodyElement] = []
        self._drawing_ids = 0
        self._writer = BodyWriter(self)
        self._media = MediaCatalog(package)

    @classmethod
    def load(cls: Type[PartT], package: DocxPackage, part_name: str) -> PartT:
        """Parse an existing part of the package."""
        part = package.part(part_name)
        if part is None:
            raise FormatError(f"Part {part_name} is missing from the package")
        parser = BodyParser(part_name, package.relationships)
        body_part = cls(package, part_name)
        body_part.elements = parser.parse(part.data)
        body_part._drawing_ids = parser.max_drawing_id
        for element in body_part.elements:
            element._bind(body_part)
        LOGGER.debug("Parsed %d body elements from %s", len(body_part.elements), part_name)
        return body_part

    # ------------------------------------------------------------------
    # Queries
    @property
    def paragraphs(self) -> List[Paragraph]:
        return [element for element in self.elements if isinstance(element, Paragraph)]

    @property
    def tables(self) -> List[Table]:
        return [element for element in self.elements if isinstance(element, Table)]

    def index_of(self, element: BodyElement) -> int:
        for index, candidate in enumerate(self.elements):
            if candidate is element:
                return index
        raise ValidationError(f"{type(element).__name__} is not part of {self.part_name}")

    # ------------------------------------------------------------------
    # Structural operations
    def add_paragraph(self, text: str = "", style: Optional[str] = None) -> Paragraph:
        self._check_open()
        paragraph = Paragraph(style=style)
        paragraph._bind(self)
        if text:
            paragraph.add_run(text)
        self._append_block(paragraph)
        self.refresh()
        return paragraph

    def add_table(self, rows: int, cols: int) -> Table:
        self._check_open()
        table = Table.create(rows, cols)
        table._bind(self)
        self._append_block(table)
        self.refresh()
        return table

    def insert_table_after_paragraph(self, paragraph: Paragraph, rows: int, cols: int) -> Table:
        self._check_open()
        index = self.index_of(paragraph)
        table = Table.create(rows, cols)
        table._bind(self)
        self.elements.insert(index + 1, table)
        self.refresh()
        return table

    def remove_paragraph(self, paragraph: Paragraph) -> Paragraph:
        """Detach a body paragraph.

        Hyperlink and image relationships it used, and their media parts,
        are left in the package.
        """
        if not isinstance(paragraph, Paragraph):
            raise ValidationError(f"Expected a Paragraph, got {type(paragraph).__name__}")
        self._check_open()
        del self.elements[self.index_of(paragraph)]
        self.refresh()
        return paragraph

    def remove_table(self, table: Table) -> Table:
        """Detach a body table. As with paragraphs, relationships its cells used are kept."""
        if not isinstance(table, Table):
            raise ValidationError(f"Expected a Table, got {type(table).__name__}")
        self._check_open()
        del self.elements[self.index_of(table)]
        self.refresh()
        return table

    def add_picture(self, path: Path | str, width_emu: int = 0, height_emu: int = 0) -> Picture:
        """Append a paragraph holding a single inline picture."""
        self._check_open()
        paragraph = Paragraph()
        paragraph._bind(self)
        run = paragraph.add_picture(path, width_emu, height_emu)
        self._append_block(paragraph)
        self.refresh()
        return run.picture

    def _check_open(self) -> None:
        # structural edits must not leave the element list ahead of the package
        if self.package.closed:
            raise PackageClosedError("Package has been closed")

    def _append_block(self, element: BodyElement) -> None:
        # the body-level section marker stays last
        if self.elements and isinstance(self.elements[-1], Section):
            self.elements.insert(len(self.elements) - 1, element)
        else:
            self.elements.append(element)

    # ------------------------------------------------------------------
    # Services used by attached nodes and the writer
    def ensure_hyperlink(self, url: str) -> str:
        return self.package.relationships.ensure(self.part_name, RELTYPE_HYPERLINK, url, MODE_EXTERNAL)

    def next_drawing_id(self) -> int:
        self._drawing_ids += 1
        return self._drawing_ids

    def create_picture(self, path: Path, width_emu: int, height_emu: int) -> Picture:
        extension = path.suffix.lstrip(".").lower()
        image_content_type(extension)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise PackageIOError(f"Cannot read image {path}: {exc}") from exc

        width_emu, height_emu = resolve_picture_size(data, width_emu, height_emu)
        part_name = self._media.add_image(data, extension)
        target = relative_target(self.part_name, part_name)
        r_id = self.package.relationships.ensure(self.part_name, RELTYPE_IMAGE, target)
        drawing_id = self.next_drawing_id()
        picture = Picture(
            r_id=r_id,
            target=target,
            part_name=part_name,
            width_emu=width_emu,
            height_emu=height_emu,
            drawing_id=drawing_id,
            name=path.name,
        )
        picture._bind(self)
        return picture

    def read_image(self, picture: Picture) -> bytes:
        data = self._media.read(picture.part_name)
        if data is None:
            raise UnresolvedReferenceError(self.part_name, picture.r_id)
        return data

    # ------------------------------------------------------------------
    # Serialization
    def xml(self) -> str:
        return self._writer.part_xml(self.ROOT_TAG, self.elements)

    def refresh(self) -> None:
        """Regenerate this part's bytes inside the package."""
        data = self.xml().encode("utf-8")
        if self.package.part(self.part_name) is None:
            self.package.set_part(self.part_name, self.CONTENT_TYPE, data)
        else:
            self.package.update_part_data(self.part_name, data)


class HeaderPart(BodyPart):
    ROOT_TAG = "hdr"
    CONTENT_TYPE = CT_HEADER
    REL_TYPE = RELTYPE_HEADER
    FILE_PREFIX = "header"


class FooterPart(BodyPart):
    ROOT_TAG = "ftr"
    CONTENT_TYPE = CT_FOOTER
    REL_TYPE = RELTYPE_FOOTER
    FILE_PREFIX = "footer"


class DocumentPart(BodyPart):
    """The main document body, which also owns sections and their header/footer parts."""

    ROOT_TAG = "document"
    CONTENT_TYPE = CT_DOCUMENT_MAIN

    def __init__(self, package: DocxPackage, part_name: str) -> None:
        super().__init__(package, part_name)
        self._subparts: Dict[str, BodyPart] = {}

    # ------------------------------------------------------------------
    # Sections
    def sections(self) -> List[Section]:
        """Paragraph-anchored and body-level sections in document order."""
        found: List[Section] = []
        for element in self.elements:
            if isinstance(element, Paragraph) and element.section is not None:
                found.append(element.section)
            elif isinstance(element, Section):
                found.append(element)
        return found

    def last_section(self, create: bool = False) -> Optional[Section]:
        sections = self.sections()
        if sections:
            return sections[-1]
        if not create:
            return None
        section = Section()
        section._bind(self)
        self.elements.append(section)
        self.refresh()
        return section

    def add_section(self, start_type: SectionStart = SectionStart.NEW_PAGE) -> Section:
        """Close the current section at a new paragraph and start another one."""
        start_type = SectionStart(start_type)
        trailing = self.elements[-1] if self.elements and isinstance(self.elements[-1], Section) else None
        template = trailing if trailing is not None else self.last_section()
        section = template.copy_page_setup(start_type) if template is not None else Section(start_type=start_type)
        section._bind(self)

        if trailing is not None:
            anchor = Paragraph(section=trailing)
            anchor._bind(self)
            self.elements[-1] = anchor
        self.elements.append(section)
        self.refresh()
        return section

    def remove_section(self, section: Section) -> Section:
        for index, element in enumerate(self.elements):
            if element is section:
                del self.elements[index]
                self.refresh()
                return section
            if isinstance(element, Paragraph) and element.section is section:
                element.section = None
                self.refresh()
                return section
        raise ValidationError(f"Section is not part of {self.part_name}")

    # ------------------------------------------------------------------
    # Headers and footers
    def header_for(self, section: Section, kind: HeaderFooterType) -> HeaderPart:
        return self._header_footer(section, section.headers, kind, HeaderPart)

    def footer_for(self, section: Section, kind: HeaderFooterType) -> FooterPart:
        return self._header_footer(section, section.footers, kind, FooterPart)

    def loaded_parts(self) -> List[BodyPart]:
        return [self, *self._subparts.values()]

    def _header_footer(
        self,
        section: Section,
        references: Dict[HeaderFooterType, HeaderFooterReference],
        kind: HeaderFooterType,
        part_cls: Type[PartT],
    ) -> PartT:
        reference = references.get(kind)
        if reference is not None:
            return self._load_subpart(reference, part_cls)

        part = self._create_subpart(part_cls)
        target = relative_target(self.part_name, part.part_name)
        r_id = self.package.relationships.ensure(self.part_name, part_cls.REL_TYPE, target)
        references[kind] = HeaderFooterReference(r_id=r_id, part_name=part.part_name)
        if kind == HeaderFooterType.FIRST:
            section.title_page = True
        self.refresh()
        return part

    def _load_subpart(self, reference: HeaderFooterReference, part_cls: Type[PartT]) -> PartT:
        cached = self._subparts.get(reference.part_name)
        if cached is not None:
            return cached  # type: ignore[return-value]
        if self.package.part(reference.part_name) is None:
            raise UnresolvedReferenceError(self.part_name, reference.r_id)
        part = part_cls.load(self.package, reference.part_name)
        self._subparts[reference.part_name] = part
        return part

    def _create_subpart(self, part_cls: Type[PartT]) -> PartT:
        index = 1
        while self.package.part(f"word/{part_cls.FILE_PREFIX}{index}.xml") is not None:
            index += 1
        part = part_cls(self.package, f"word/{part_cls.FILE_PREFIX}{index}.xml")
        paragraph = Paragraph()
        paragraph._bind(part)
        part.elements.append(paragraph)
        part.refresh()
        self._subparts[part.part_name] = part
        LOGGER.debug("Created %s", part.part_name)
        return part

    def xml(self) -> str:
        return self._writer.document_xml(self.elements)
