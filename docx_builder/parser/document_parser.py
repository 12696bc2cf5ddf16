"""Parse WordprocessingML body XML into paragraphs, tables and sections."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union
from xml.etree import ElementTree as ET

from docx_builder.errors import FormatError
from docx_builder.model.elements import (
    Border,
    BreakType,
    NumberingReference,
    Paragraph,
    ParagraphAlignment,
    Picture,
    Run,
    Shading,
    TabAlignment,
    TabLeader,
    TabStop,
)
from docx_builder.model.section_model import Section
from docx_builder.model.table_model import (
    CellMargins,
    Table,
    TableCell,
    TableLook,
    TableRow,
    VerticalAlignment,
    VerticalMerge,
)
from docx_builder.parser.rels_parser import Relationships, resolve_part_name
from docx_builder.parser.section_parser import SectionParser
from docx_builder.utils.logger import get_logger
from docx_builder.utils.xml_utils import (
    WP_NS,
    TokenStream,
    get_attr,
    get_int_attr,
    get_on_off,
    local_name,
    namespace_of,
)

LOGGER = get_logger(__name__)

BodyElement = Union[Paragraph, Table, Section]

BODY_ROOTS = {"document", "hdr", "ftr"}

# Wrappers whose runs stay visible; the wrapper itself is not kept.
TRANSPARENT_INLINE = frozenset({"ins", "smartTag", "sdt", "sdtContent", "fldSimple", "customXml"})
TRANSPARENT_BLOCK = frozenset({"sdt", "sdtContent", "customXml"})

RUN_TOGGLES = {
    "b": "bold",
    "i": "italic",
    "strike": "strike",
    "dstrike": "double_strike",
    "smallCaps": "small_caps",
    "caps": "all_caps",
    "shadow": "shadow",
    "outline": "outline",
    "emboss": "emboss",
    "imprint": "imprint",
}

KEEP_FLAGS = {
    "keepNext": "keep_with_next",
    "keepLines": "keep_lines",
    "pageBreakBefore": "page_break_before",
    "widowControl": "widow_control",
}

PARAGRAPH_ALIGNMENTS = {
    "left": ParagraphAlignment.LEFT,
    "start": ParagraphAlignment.LEFT,
    "center": ParagraphAlignment.CENTER,
    "right": ParagraphAlignment.RIGHT,
    "end": ParagraphAlignment.RIGHT,
    "both": ParagraphAlignment.JUSTIFY,
    "distribute": ParagraphAlignment.DISTRIBUTE,
}

_TAB_ALIGNMENT_ALIASES = {"start": TabAlignment.LEFT, "end": TabAlignment.RIGHT}

_BREAK_TYPES = {"page": BreakType.PAGE, "column": BreakType.COLUMN}


@dataclass(slots=True)
class ParagraphState:
    """Accumulators for the paragraph currently being read."""

    paragraph: Paragraph
    run: Optional[Run] = None
    text: List[str] = field(default_factory=list)
    hyperlink_url: Optional[str] = None
    hyperlink_anchor: Optional[str] = None
    hyperlink_rel_id: Optional[str] = None

    def begin_run(self) -> Run:
        self.run = Run()
        self.text = []
        return self.run

    def finish_run(self) -> None:
        run = self.run
        if run is None:
            return
        run.text = "".join(self.text)
        if self.hyperlink_url is not None:
            run.hyperlink_url = self.hyperlink_url
            run.hyperlink_rel_id = self.hyperlink_rel_id
        elif self.hyperlink_anchor is not None:
            run.hyperlink_anchor = self.hyperlink_anchor
        self.paragraph.runs.append(run)
        self.run = None
        self.text = []

    def clear_hyperlink(self) -> None:
        self.hyperlink_url = None
        self.hyperlink_anchor = None
        self.hyperlink_rel_id = None


class BodyParser:
    """Token-driven reader for ``document``, ``hdr`` and ``ftr`` parts.

    Unknown elements are consumed with a balanced skip so vendor extensions
    never stall the reader. Relationship ids that cannot be resolved are
    logged and dropped; only malformed XML aborts the parse.
    """

    def __init__(self, part_name: str, relationships: Relationships) -> None:
        self._part_name = part_name
        self._relationships = relationships
        self._sections = SectionParser(part_name, relationships)
        self._stream: Optional[TokenStream] = None
        self.max_drawing_id = 0

        self._paragraph_property_handlers: Dict[str, Callable[[Paragraph, ET.Element], None]] = {
            "pStyle": self._on_paragraph_style,
            "jc": self._on_alignment,
            "numPr": self._on_numbering,
            "spacing": self._on_paragraph_spacing,
            "ind": self._on_indentation,
            "tabs": self._on_tabs,
            "pBdr": self._on_paragraph_borders,
            "shd": self._on_paragraph_shading,
            "sectPr": self._on_paragraph_section,
        }
        self._run_property_handlers: Dict[str, Callable[[Run, ET.Element], None]] = {
            "rStyle": self._on_run_style,
            "u": self._on_underline,
            "sz": self._on_size,
            "color": self._on_color,
            "rFonts": self._on_fonts,
            "highlight": self._on_highlight,
            "spacing": self._on_char_spacing,
            "kern": self._on_kerning,
            "position": self._on_position,
        }

    def parse(self, data: bytes) -> List[BodyElement]:
        """Parse a whole part into its ordered block elements."""
        self._stream = TokenStream(data, self._part_name)
        self.max_drawing_id = 0
        root = self._stream.root()
        root_name = local_name(root.tag)
        if root_name not in BODY_ROOTS:
            raise FormatError(f"{self._part_name} has unexpected root element <{root_name}>")

        if root_name != "document":
            return self._parse_blocks(root)

        elements: List[BodyElement] = []
        found_body = False
        for child in self._stream.children(root):
            if local_name(child.tag) == "body":
                elements = self._parse_blocks(child)
                found_body = True
            else:
                self._stream.skip(child)
        if not found_body:
            LOGGER.warning("%s has no body element", self._part_name)
        return elements

    # ------------------------------------------------------------------
    # Block level
    def _parse_blocks(self, parent: ET.Element) -> List[BodyElement]:
        stream = self._require_stream()
        elements: List[BodyElement] = []
        for child in stream.children(parent):
            tag = local_name(child.tag)
            if tag == "p":
                elements.append(self._parse_paragraph(child))
            elif tag == "tbl":
                elements.append(self._parse_table(child))
            elif tag == "sectPr":
                elements.append(self._sections.parse(stream, child))
            elif tag in TRANSPARENT_BLOCK:
                elements.extend(self._parse_blocks(child))
            else:
                LOGGER.debug("Skipping unsupported element: %s", tag)
                stream.skip(child)
        return elements

    # ------------------------------------------------------------------
    # Paragraphs
    def _parse_paragraph(self, paragraph_el: ET.Element) -> Paragraph:
        state = ParagraphState(paragraph=Paragraph())
        self._parse_inline_content(state, paragraph_el)
        return state.paragraph

    def _parse_inline_content(self, state: ParagraphState, parent: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(parent):
            tag = local_name(child.tag)
            if tag == "pPr":
                self._parse_paragraph_properties(state.paragraph, child)
            elif tag == "r":
                self._parse_run(state, child)
            elif tag == "hyperlink":
                self._enter_hyperlink(state, child)
                self._parse_inline_content(state, child)
                state.clear_hyperlink()
            elif tag in TRANSPARENT_INLINE:
                self._parse_inline_content(state, child)
            else:
                LOGGER.debug("Skipping paragraph child element: %s", tag)
                stream.skip(child)

    def _enter_hyperlink(self, state: ParagraphState, element: ET.Element) -> None:
        state.clear_hyperlink()
        anchor = get_attr(element, "anchor")
        r_id = get_attr(element, "id")
        if r_id:
            rel = self._relationships.find(self._part_name, r_id)
            if rel is None:
                LOGGER.warning("Unresolved hyperlink %s in %s; treating it as absent", r_id, self._part_name)
            elif rel.is_external:
                state.hyperlink_url = rel.target
                state.hyperlink_rel_id = r_id
                return
            elif not anchor:
                anchor = rel.target
        state.hyperlink_anchor = anchor or None

    def _parse_paragraph_properties(self, paragraph: Paragraph, ppr: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(ppr):
            tag = local_name(child.tag)
            handler = self._paragraph_property_handlers.get(tag)
            if handler is not None:
                handler(paragraph, child)
            elif tag in KEEP_FLAGS:
                setattr(paragraph, KEEP_FLAGS[tag], get_on_off(child))
                stream.skip(child)
            else:
                # rPr here formats the paragraph mark, not a run
                LOGGER.debug("Skipping paragraph property: %s", tag)
                stream.skip(child)

    def _on_paragraph_style(self, paragraph: Paragraph, element: ET.Element) -> None:
        paragraph.style = get_attr(element, "val")
        self._require_stream().skip(element)

    def _on_alignment(self, paragraph: Paragraph, element: ET.Element) -> None:
        paragraph.alignment = PARAGRAPH_ALIGNMENTS.get(get_attr(element, "val") or "", ParagraphAlignment.LEFT)
        self._require_stream().skip(element)

    def _on_numbering(self, paragraph: Paragraph, element: ET.Element) -> None:
        stream = self._require_stream()
        num_id: Optional[int] = None
        level = 0
        for child in stream.children(element):
            tag = local_name(child.tag)
            if tag == "numId":
                num_id = get_int_attr(child, "val")
            elif tag == "ilvl":
                level = get_int_attr(child, "val") or 0
            stream.skip(child)
        if num_id is not None:
            paragraph.numbering = NumberingReference(num_id=num_id, level=level)

    def _on_paragraph_spacing(self, paragraph: Paragraph, element: ET.Element) -> None:
        spacing = paragraph.spacing
        spacing.before = get_int_attr(element, "before")
        spacing.after = get_int_attr(element, "after")
        spacing.line = get_int_attr(element, "line")
        spacing.line_rule = get_attr(element, "lineRule")
        self._require_stream().skip(element)

    def _on_indentation(self, paragraph: Paragraph, element: ET.Element) -> None:
        indentation = paragraph.indentation
        left = get_int_attr(element, "left")
        right = get_int_attr(element, "right")
        indentation.left = left if left is not None else get_int_attr(element, "start")
        indentation.right = right if right is not None else get_int_attr(element, "end")
        indentation.first_line = get_int_attr(element, "firstLine")
        indentation.hanging = get_int_attr(element, "hanging")
        self._require_stream().skip(element)

    def _on_tabs(self, paragraph: Paragraph, element: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(element):
            if local_name(child.tag) == "tab":
                position = get_int_attr(child, "pos")
                if position is not None:
                    paragraph.tab_stops.append(
                        TabStop(
                            position=position,
                            alignment=_tab_alignment(get_attr(child, "val")),
                            leader=_tab_leader(get_attr(child, "leader")),
                        )
                    )
            stream.skip(child)

    def _on_paragraph_borders(self, paragraph: Paragraph, element: ET.Element) -> None:
        self._read_borders(element, paragraph.borders)

    def _on_paragraph_shading(self, paragraph: Paragraph, element: ET.Element) -> None:
        paragraph.shading = _shading(element)
        self._require_stream().skip(element)

    def _on_paragraph_section(self, paragraph: Paragraph, element: ET.Element) -> None:
        paragraph.section = self._sections.parse(self._require_stream(), element)

    # ------------------------------------------------------------------
    # Runs
    def _parse_run(self, state: ParagraphState, run_el: ET.Element) -> None:
        stream = self._require_stream()
        run = state.begin_run()
        for child in stream.children(run_el):
            tag = local_name(child.tag)
            if tag == "rPr":
                self._parse_run_properties(run, child)
            elif tag == "t":
                state.text.append(stream.read_text(child))
            elif tag == "tab":
                state.text.append("\t")
                stream.skip(child)
            elif tag == "br":
                run.break_type = _BREAK_TYPES.get(get_attr(child, "type") or "", BreakType.LINE)
                stream.skip(child)
            elif tag == "drawing":
                run.picture = self._parse_drawing(child)
            else:
                LOGGER.debug("Skipping run child element: %s", tag)
                stream.skip(child)
        state.finish_run()

    def _parse_run_properties(self, run: Run, rpr: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(rpr):
            tag = local_name(child.tag)
            if tag in RUN_TOGGLES:
                setattr(run, RUN_TOGGLES[tag], get_on_off(child))
            else:
                handler = self._run_property_handlers.get(tag)
                if handler is not None:
                    handler(run, child)
                else:
                    LOGGER.debug("Skipping run property: %s", tag)
            stream.skip(child)

    @staticmethod
    def _on_run_style(run: Run, element: ET.Element) -> None:
        run.style = get_attr(element, "val")

    @staticmethod
    def _on_underline(run: Run, element: ET.Element) -> None:
        run.underline = get_attr(element, "val") or "single"

    @staticmethod
    def _on_size(run: Run, element: ET.Element) -> None:
        size = get_int_attr(element, "val")
        if size is not None:
            run.size = size

    @staticmethod
    def _on_color(run: Run, element: ET.Element) -> None:
        run.color = get_attr(element, "val") or run.color

    @staticmethod
    def _on_fonts(run: Run, element: ET.Element) -> None:
        font = get_attr(element, "ascii") or get_attr(element, "hAnsi")
        if font:
            run.font = font

    @staticmethod
    def _on_highlight(run: Run, element: ET.Element) -> None:
        run.highlight = get_attr(element, "val") or run.highlight

    @staticmethod
    def _on_char_spacing(run: Run, element: ET.Element) -> None:
        run.char_spacing = get_int_attr(element, "val")

    @staticmethod
    def _on_kerning(run: Run, element: ET.Element) -> None:
        run.kerning = get_int_attr(element, "val")

    @staticmethod
    def _on_position(run: Run, element: ET.Element) -> None:
        run.baseline_shift = get_int_attr(element, "val")

    # ------------------------------------------------------------------
    # Drawings
    def _parse_drawing(self, drawing_el: ET.Element) -> Optional[Picture]:
        stream = self._require_stream()
        width = height = 0
        drawing_id = 0
        name = description = ""
        embed: Optional[str] = None
        seen_extent = False

        for element in stream.descendants(drawing_el):
            tag = local_name(element.tag)
            if tag == "extent" and namespace_of(element.tag) == WP_NS and not seen_extent:
                width = get_int_attr(element, "cx") or 0
                height = get_int_attr(element, "cy") or 0
                seen_extent = True
            elif tag == "docPr":
                drawing_id = get_int_attr(element, "id") or 0
                name = get_attr(element, "name") or ""
                description = get_attr(element, "descr") or ""
            elif tag == "blip" and embed is None:
                embed = get_attr(element, "embed")

        self.max_drawing_id = max(self.max_drawing_id, drawing_id)
        if not embed:
            LOGGER.debug("Skipping drawing without an embedded image in %s", self._part_name)
            return None
        rel = self._relationships.find(self._part_name, embed)
        if rel is None or rel.is_external:
            LOGGER.warning("Unresolved image %s in %s; treating it as absent", embed, self._part_name)
            return None
        return Picture(
            r_id=embed,
            target=rel.target,
            part_name=resolve_part_name(self._part_name, rel.target),
            width_emu=width,
            height_emu=height,
            drawing_id=drawing_id,
            name=name,
            description=description,
        )

    # ------------------------------------------------------------------
    # Tables
    def _parse_table(self, table_el: ET.Element) -> Table:
        stream = self._require_stream()
        table = Table()
        for child in stream.children(table_el):
            tag = local_name(child.tag)
            if tag == "tblPr":
                self._parse_table_properties(table, child)
            elif tag == "tblGrid":
                for grid_col in stream.children(child):
                    if local_name(grid_col.tag) == "gridCol":
                        table.grid.append(get_int_attr(grid_col, "w") or 0)
                    stream.skip(grid_col)
            elif tag == "tr":
                table.rows.append(self._parse_row(child))
            else:
                LOGGER.debug("Skipping table child element: %s", tag)
                stream.skip(child)

        table.column_count = max([len(table.grid)] + [row.grid_columns() for row in table.rows])
        if not table.grid:
            LOGGER.debug("Table without tblGrid; widths will be inferred from %d rows", len(table.rows))
        return table

    def _parse_table_properties(self, table: Table, tbl_pr: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(tbl_pr):
            tag = local_name(child.tag)
            if tag == "tblStyle":
                table.style = get_attr(child, "val")
            elif tag == "tblW":
                table.width = get_int_attr(child, "w") or 0
                table.width_type = get_attr(child, "type") or "auto"
            elif tag == "jc":
                table.alignment = get_attr(child, "val")
            elif tag == "tblInd":
                table.indent = get_int_attr(child, "w")
                table.indent_type = get_attr(child, "type") or "dxa"
            elif tag == "tblBorders":
                self._read_borders(child, table.borders)
                continue
            elif tag == "shd":
                table.shading = _shading(child)
            elif tag == "tblLayout":
                table.layout = get_attr(child, "type")
            elif tag == "tblCellMar":
                table.cell_margins = self._read_cell_margins(child)
                continue
            elif tag == "tblLook":
                table.look = _table_look(child)
            else:
                LOGGER.debug("Skipping table property: %s", tag)
            stream.skip(child)

    def _read_cell_margins(self, element: ET.Element) -> CellMargins:
        stream = self._require_stream()
        margins = CellMargins()
        aliases = {"start": "left", "end": "right"}
        for child in stream.children(element):
            side = aliases.get(local_name(child.tag), local_name(child.tag))
            if side in ("top", "left", "bottom", "right"):
                setattr(margins, side, get_int_attr(child, "w"))
            stream.skip(child)
        return margins

    def _parse_row(self, row_el: ET.Element) -> TableRow:
        stream = self._require_stream()
        row = TableRow()
        for child in stream.children(row_el):
            if local_name(child.tag) == "tc":
                row.cells.append(self._parse_cell(child))
            else:
                stream.skip(child)
        return row

    def _parse_cell(self, cell_el: ET.Element) -> TableCell:
        stream = self._require_stream()
        cell = TableCell()
        for child in stream.children(cell_el):
            tag = local_name(child.tag)
            if tag == "tcPr":
                self._parse_cell_properties(cell, child)
            elif tag == "p":
                cell.paragraphs.append(self._parse_paragraph(child))
            elif tag == "tbl":
                LOGGER.debug("Skipping nested table inside a cell of %s", self._part_name)
                stream.skip(child)
            else:
                LOGGER.debug("Skipping cell child element: %s", tag)
                stream.skip(child)
        if not cell.paragraphs:
            cell.paragraphs.append(Paragraph())
        return cell

    def _parse_cell_properties(self, cell: TableCell, tc_pr: ET.Element) -> None:
        stream = self._require_stream()
        for child in stream.children(tc_pr):
            tag = local_name(child.tag)
            if tag == "tcW":
                width = get_int_attr(child, "w")
                if width is not None:
                    cell.width = width
            elif tag == "gridSpan":
                cell.grid_span = max(get_int_attr(child, "val") or 1, 1)
            elif tag == "vMerge":
                merge = get_attr(child, "val")
                cell.vertical_merge = VerticalMerge.RESTART if merge == "restart" else VerticalMerge.CONTINUE
            elif tag == "vAlign":
                cell.vertical_alignment = _vertical_alignment(get_attr(child, "val"))
            elif tag == "tcBorders":
                self._read_borders(child, cell.borders)
                continue
            elif tag == "shd":
                cell.shading = _shading(child)
            else:
                LOGGER.debug("Skipping cell property: %s", tag)
            stream.skip(child)

    # ------------------------------------------------------------------
    def _read_borders(self, element: ET.Element, target: Dict[str, Border]) -> None:
        stream = self._require_stream()
        aliases = {"start": "left", "end": "right"}
        for child in stream.children(element):
            side = aliases.get(local_name(child.tag), local_name(child.tag))
            target[side] = Border(
                style=get_attr(child, "val") or "single",
                size=get_int_attr(child, "sz") or 0,
                space=get_int_attr(child, "space") or 0,
                color=get_attr(child, "color") or "auto",
            )
            stream.skip(child)

    def _require_stream(self) -> TokenStream:
        if self._stream is None:
            raise RuntimeError("BodyParser.parse() must be called first")
        return self._stream


def _shading(element: ET.Element) -> Shading:
    return Shading(
        pattern=get_attr(element, "val") or "clear",
        color=get_attr(element, "color") or "auto",
        fill=get_attr(element, "fill") or "auto",
    )


def _attr_flag(element: ET.Element, name: str, default: bool) -> bool:
    if get_attr(element, name) is None:
        return default
    return get_on_off(element, name)


def _table_look(element: ET.Element) -> TableLook:
    defaults = TableLook()
    return TableLook(
        val=get_attr(element, "val") or defaults.val,
        first_row=_attr_flag(element, "firstRow", defaults.first_row),
        last_row=_attr_flag(element, "lastRow", defaults.last_row),
        first_column=_attr_flag(element, "firstColumn", defaults.first_column),
        last_column=_attr_flag(element, "lastColumn", defaults.last_column),
        no_h_band=_attr_flag(element, "noHBand", defaults.no_h_band),
        no_v_band=_attr_flag(element, "noVBand", defaults.no_v_band),
    )


def _tab_alignment(value: Optional[str]) -> TabAlignment:
    if value in _TAB_ALIGNMENT_ALIASES:
        return _TAB_ALIGNMENT_ALIASES[value]
    try:
        return TabAlignment(value or TabAlignment.LEFT.value)
    except ValueError:
        return TabAlignment.LEFT


def _tab_leader(value: Optional[str]) -> TabLeader:
    try:
        return TabLeader(value or TabLeader.NONE.value)
    except ValueError:
        return TabLeader.NONE


def _vertical_alignment(value: Optional[str]) -> VerticalAlignment:
    try:
        return VerticalAlignment(value or VerticalAlignment.TOP.value)
    except ValueError:
        return VerticalAlignment.TOP
