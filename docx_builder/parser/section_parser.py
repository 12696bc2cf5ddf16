"""Parse ``w:sectPr`` blocks into Section models, resolving header/footer links."""
from __future__ import annotations

from typing import Dict, Optional
from xml.etree import ElementTree as ET

from docx_builder.model.section_model import HeaderFooterReference, HeaderFooterType, Section, SectionStart
from docx_builder.parser.rels_parser import Relationships
from docx_builder.utils.logger import get_logger
from docx_builder.utils.xml_utils import TokenStream, get_attr, get_int_attr, get_on_off, local_name

LOGGER = get_logger(__name__)

_MARGIN_ATTRIBUTES = {
    "top": "margin_top",
    "right": "margin_right",
    "bottom": "margin_bottom",
    "left": "margin_left",
}
_OPTIONAL_MARGIN_ATTRIBUTES = {
    "header": "margin_header",
    "footer": "margin_footer",
    "gutter": "margin_gutter",
}


class SectionParser:
    """Reads section properties for one part, resolving references against its relationships."""

    def __init__(self, part_name: str, relationships: Relationships) -> None:
        self._part_name = part_name
        self._relationships = relationships

    def parse(self, stream: TokenStream, sect_pr: ET.Element) -> Section:
        section = Section()
        for child in stream.children(sect_pr):
            tag = local_name(child.tag)
            if tag == "headerReference":
                self._add_reference(section.headers, child, "header")
            elif tag == "footerReference":
                self._add_reference(section.footers, child, "footer")
            elif tag == "type":
                section.start_type = self._start_type(get_attr(child, "val"))
            elif tag == "pgSz":
                self._apply_page_size(section, child)
            elif tag == "pgMar":
                self._apply_margins(section, child)
            elif tag == "titlePg":
                section.title_page = get_on_off(child)
            else:
                LOGGER.debug("Skipping section property: %s", tag)
            stream.skip(child)
        return section

    # ------------------------------------------------------------------
    def _add_reference(
        self, references: Dict[HeaderFooterType, HeaderFooterReference], element: ET.Element, label: str
    ) -> None:
        r_id = get_attr(element, "id")
        try:
            kind = HeaderFooterType(get_attr(element, "type") or HeaderFooterType.DEFAULT.value)
        except ValueError:
            LOGGER.warning("Ignoring %s reference with unknown type %r", label, get_attr(element, "type"))
            return
        part_name = self._relationships.resolve_part(self._part_name, r_id) if r_id else None
        if part_name is None:
            LOGGER.warning("Unresolved %s reference %r in %s; treating it as absent", label, r_id, self._part_name)
            return
        references[kind] = HeaderFooterReference(r_id=r_id, part_name=part_name)

    @staticmethod
    def _start_type(value: Optional[str]) -> Optional[SectionStart]:
        if value is None:
            return None
        try:
            return SectionStart(value)
        except ValueError:
            LOGGER.warning("Unknown section start type %r; leaving it unset", value)
            return None

    @staticmethod
    def _apply_page_size(section: Section, element: ET.Element) -> None:
        width = get_int_attr(element, "w")
        height = get_int_attr(element, "h")
        if width is not None:
            section.page_width = width
        if height is not None:
            section.page_height = height
        section.orientation = get_attr(element, "orient")

    @staticmethod
    def _apply_margins(section: Section, element: ET.Element) -> None:
        for attribute, field_name in _MARGIN_ATTRIBUTES.items():
            value = get_int_attr(element, attribute)
            if value is not None:
                setattr(section, field_name, value)
        for attribute, field_name in _OPTIONAL_MARGIN_ATTRIBUTES.items():
            setattr(section, field_name, get_int_attr(element, attribute))
