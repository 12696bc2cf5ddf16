"""Parse numbering.xml into numbering model definitions."""
from __future__ import annotations

from typing import Dict, Optional
from xml.etree import ElementTree as ET

from docx_builder.model.numbering_model import (
    AbstractNumberingDefinition,
    NumberingCatalog,
    NumberingInstance,
    NumberingLevel,
)
from docx_builder.utils.xml_utils import Namespaces, get_attr, get_int_attr, parse_xml


class NumberingParser:
    """Parser for numbering definitions defined in numbering.xml."""

    def __init__(self, numbering_xml: Optional[bytes]) -> None:
        self._numbering_xml = numbering_xml

    def parse(self) -> NumberingCatalog:
        if not self._numbering_xml:
            return NumberingCatalog()

        root = parse_xml(self._numbering_xml, "numbering.xml").getroot()
        return NumberingCatalog(abstracts=self._parse_abstract_nums(root), instances=self._parse_nums(root))

    # ------------------------------------------------------------------
    def _parse_abstract_nums(self, root: ET.Element) -> Dict[int, AbstractNumberingDefinition]:
        abstracts: Dict[int, AbstractNumberingDefinition] = {}
        for abstract_el in root.findall("w:abstractNum", Namespaces.WORD):
            abstract_id = get_int_attr(abstract_el, "abstractNumId")
            if abstract_id is None:
                continue
            abstracts[abstract_id] = AbstractNumberingDefinition(
                abstract_num_id=abstract_id,
                multi_level_type=self._child_val(abstract_el, "w:multiLevelType"),
                name=self._child_val(abstract_el, "w:name"),
                levels=self._parse_levels(abstract_el),
            )
        return abstracts

    def _parse_levels(self, abstract_el: ET.Element) -> Dict[int, NumberingLevel]:
        levels: Dict[int, NumberingLevel] = {}
        for lvl_el in abstract_el.findall("w:lvl", Namespaces.WORD):
            level_index = get_int_attr(lvl_el, "ilvl")
            if level_index is None:
                continue
            start = self._child_val(lvl_el, "w:start")
            levels[level_index] = NumberingLevel(
                level_index=level_index,
                start=int(start) if start and start.lstrip("-").isdigit() else None,
                num_format=self._child_val(lvl_el, "w:numFmt"),
                level_text=self._child_val(lvl_el, "w:lvlText"),
                alignment=self._child_val(lvl_el, "w:lvlJc"),
            )
        return levels

    def _parse_nums(self, root: ET.Element) -> Dict[int, NumberingInstance]:
        instances: Dict[int, NumberingInstance] = {}
        for num_el in root.findall("w:num", Namespaces.WORD):
            num_id = get_int_attr(num_el, "numId")
            abstract_el = num_el.find("w:abstractNumId", Namespaces.WORD)
            abstract_num_id = get_int_attr(abstract_el, "val") if abstract_el is not None else None
            if num_id is None or abstract_num_id is None:
                continue
            instances[num_id] = NumberingInstance(
                num_id=num_id,
                abstract_num_id=abstract_num_id,
                start_overrides=self._parse_overrides(num_el),
            )
        return instances

    def _parse_overrides(self, num_el: ET.Element) -> Dict[int, int]:
        overrides: Dict[int, int] = {}
        for override_el in num_el.findall("w:lvlOverride", Namespaces.WORD):
            level_index = get_int_attr(override_el, "ilvl")
            start_el = override_el.find("w:startOverride", Namespaces.WORD)
            if level_index is None or start_el is None:
                continue
            start = get_int_attr(start_el, "val")
            if start is not None:
                overrides[level_index] = start
        return overrides

    @staticmethod
    def _child_val(element: ET.Element, child_name: str) -> Optional[str]:
        child = element.find(child_name, Namespaces.WORD)
        if child is None:
            return None
        return get_attr(child, "val")
