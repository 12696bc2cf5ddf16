"""Serialize the document model back into WordprocessingML body XML."""
from __future__ import annotations

from typing import Dict, Iterable, List, Protocol, Sequence, Union

from docx_builder.model.elements import (
    COLOR_AUTO,
    DEFAULT_FONT,
    DEFAULT_FONT_SIZE,
    HIGHLIGHT_AUTO,
    PARAGRAPH_BORDER_SIDES,
    UNDERLINE_NONE,
    Border,
    BreakType,
    Paragraph,
    ParagraphAlignment,
    Picture,
    Run,
    Shading,
    TabLeader,
)
from docx_builder.model.section_model import HeaderFooterType, Section
from docx_builder.model.table_model import (
    CELL_BORDER_SIDES,
    TABLE_BORDER_SIDES,
    Table,
    TableCell,
    TableLook,
    VerticalAlignment,
    VerticalMerge,
)
from docx_builder.utils.xml_utils import A_NS, PIC_NS, R_NS, W_NS, WP_NS, strip_invalid_chars, xml_attr, xml_text

BodyElement = Union[Paragraph, Table, Section]

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
ROOT_NAMESPACES = (
    f"xmlns:w={xml_attr(W_NS)} xmlns:r={xml_attr(R_NS)} "
    f"xmlns:wp={xml_attr(WP_NS)} xmlns:a={xml_attr(A_NS)} xmlns:pic={xml_attr(PIC_NS)}"
)

_RUN_TOGGLE_TAGS = (
    ("bold", "b"),
    ("italic", "i"),
    ("strike", "strike"),
    ("double_strike", "dstrike"),
    ("small_caps", "smallCaps"),
    ("all_caps", "caps"),
    ("shadow", "shadow"),
    ("outline", "outline"),
    ("emboss", "emboss"),
    ("imprint", "imprint"),
)

_KEEP_FLAG_TAGS = (
    ("keep_with_next", "keepNext"),
    ("keep_lines", "keepLines"),
    ("page_break_before", "pageBreakBefore"),
    ("widow_control", "widowControl"),
)


class HyperlinkContext(Protocol):
    def ensure_hyperlink(self, url: str) -> str:
        ...


class BodyWriter:
    """Regenerates a part's XML from its element list.

    Every call rebuilds the full string; fields at their defaults are left
    out so an unformatted run carries no ``w:rPr`` at all.
    """

    def __init__(self, context: HyperlinkContext) -> None:
        self._context = context

    def document_xml(self, elements: Sequence[BodyElement]) -> str:
        body = "".join(self.element_xml(element) for element in elements)
        return f"{XML_DECLARATION}<w:document {ROOT_NAMESPACES}><w:body>{body}</w:body></w:document>"

    def part_xml(self, root_tag: str, elements: Sequence[BodyElement]) -> str:
        """Header and footer parts hold block content directly under the root."""
        body = "".join(self.element_xml(element) for element in elements)
        return f"{XML_DECLARATION}<w:{root_tag} {ROOT_NAMESPACES}>{body}</w:{root_tag}>"

    def element_xml(self, element: BodyElement) -> str:
        if isinstance(element, Paragraph):
            return self.paragraph_xml(element)
        if isinstance(element, Table):
            return self.table_xml(element)
        if isinstance(element, Section):
            return self.section_xml(element)
        raise TypeError(f"Unsupported body element: {type(element).__name__}")

    # ------------------------------------------------------------------
    # Paragraphs
    def paragraph_xml(self, paragraph: Paragraph) -> str:
        properties = self.paragraph_properties_xml(paragraph)
        runs = "".join(self.run_xml(run) for run in paragraph.runs)
        return f"<w:p>{properties}{runs}</w:p>"

    def paragraph_properties_xml(self, paragraph: Paragraph) -> str:
        parts: List[str] = []
        if paragraph.style:
            parts.append(f"<w:pStyle w:val={xml_attr(paragraph.style)}/>")
        if paragraph.alignment != ParagraphAlignment.LEFT:
            parts.append(f"<w:jc w:val={xml_attr(paragraph.alignment.value)}/>")
        if paragraph.numbering is not None:
            parts.append(
                f'<w:numPr><w:ilvl w:val="{paragraph.numbering.level}"/>'
                f'<w:numId w:val="{paragraph.numbering.num_id}"/></w:numPr>'
            )
        if paragraph.spacing.is_set():
            spacing = paragraph.spacing
            attributes = _attributes(
                (
                    ("before", spacing.before),
                    ("after", spacing.after),
                    ("line", spacing.line),
                    ("lineRule", spacing.line_rule),
                )
            )
            parts.append(f"<w:spacing{attributes}/>")
        if paragraph.indentation.is_set():
            indentation = paragraph.indentation
            attributes = _attributes(
                (
                    ("left", indentation.left),
                    ("right", indentation.right),
                    ("firstLine", indentation.first_line),
                    ("hanging", indentation.hanging),
                )
            )
            parts.append(f"<w:ind{attributes}/>")
        if paragraph.tab_stops:
            tabs = []
            for tab in paragraph.tab_stops:
                leader = f" w:leader={xml_attr(tab.leader.value)}" if tab.leader != TabLeader.NONE else ""
                tabs.append(f'<w:tab w:val={xml_attr(tab.alignment.value)}{leader} w:pos="{tab.position}"/>')
            parts.append(f"<w:tabs>{''.join(tabs)}</w:tabs>")
        if paragraph.borders:
            parts.append(_borders_xml("pBdr", paragraph.borders, PARAGRAPH_BORDER_SIDES))
        if paragraph.shading is not None:
            parts.append(_shading_xml(paragraph.shading))
        for field_name, tag in _KEEP_FLAG_TAGS:
            value = getattr(paragraph, field_name)
            if value is not None:
                parts.append(f"<w:{tag}/>" if value else f'<w:{tag} w:val="0"/>')
        if paragraph.section is not None:
            parts.append(self.section_xml(paragraph.section))
        if not parts:
            return ""
        return f"<w:pPr>{''.join(parts)}</w:pPr>"

    # ------------------------------------------------------------------
    # Runs
    def run_xml(self, run: Run) -> str:
        content: List[str] = [self.run_properties_xml(run)]
        if run.text:
            content.append(_text_xml(run.text))
        if run.picture is not None:
            content.append(self.picture_xml(run.picture))
        if run.break_type is not None:
            if run.break_type == BreakType.LINE:
                content.append("<w:br/>")
            else:
                content.append(f"<w:br w:type={xml_attr(run.break_type.value)}/>")
        run_el = f"<w:r>{''.join(content)}</w:r>"

        if run.hyperlink_url:
            r_id = self._context.ensure_hyperlink(run.hyperlink_url)
            run.hyperlink_rel_id = r_id
            return f'<w:hyperlink r:id={xml_attr(r_id)} w:history="1">{run_el}</w:hyperlink>'
        if run.hyperlink_anchor:
            return f"<w:hyperlink w:anchor={xml_attr(run.hyperlink_anchor)}>{run_el}</w:hyperlink>"
        return run_el

    def run_properties_xml(self, run: Run) -> str:
        if not run.has_formatting():
            return ""
        parts: List[str] = []
        if run.style:
            parts.append(f"<w:rStyle w:val={xml_attr(run.style)}/>")
        for field_name, tag in _RUN_TOGGLE_TAGS:
            value = getattr(run, field_name)
            if value is not None:
                parts.append(f"<w:{tag}/>" if value else f'<w:{tag} w:val="0"/>')
        if run.underline != UNDERLINE_NONE:
            parts.append(f"<w:u w:val={xml_attr(run.underline)}/>")
        if run.size != DEFAULT_FONT_SIZE:
            parts.append(f'<w:sz w:val="{run.size}"/><w:szCs w:val="{run.size}"/>')
        if run.color != COLOR_AUTO:
            parts.append(f"<w:color w:val={xml_attr(run.color)}/>")
        if run.font != DEFAULT_FONT:
            parts.append(f"<w:rFonts w:ascii={xml_attr(run.font)} w:hAnsi={xml_attr(run.font)}/>")
        if run.highlight != HIGHLIGHT_AUTO:
            parts.append(f"<w:highlight w:val={xml_attr(run.highlight)}/>")
        if run.char_spacing is not None:
            parts.append(f'<w:spacing w:val="{run.char_spacing}"/>')
        if run.kerning is not None:
            parts.append(f'<w:kern w:val="{run.kerning}"/>')
        if run.baseline_shift is not None:
            parts.append(f'<w:position w:val="{run.baseline_shift}"/>')
        return f"<w:rPr>{''.join(parts)}</w:rPr>"

    def picture_xml(self, picture: Picture) -> str:
        name = picture.name or f"Picture {picture.drawing_id}"
        extent = f'cx="{picture.width_emu}" cy="{picture.height_emu}"'
        return (
            "<w:drawing>"
            '<wp:inline distT="0" distB="0" distL="0" distR="0">'
            f"<wp:extent {extent}/>"
            '<wp:effectExtent l="0" t="0" r="0" b="0"/>'
            f'<wp:docPr id="{picture.drawing_id}" name={xml_attr(name)} descr={xml_attr(picture.description)}/>'
            '<wp:cNvGraphicFramePr><a:graphicFrameLocks noChangeAspect="1"/></wp:cNvGraphicFramePr>'
            f"<a:graphic><a:graphicData uri={xml_attr(PIC_NS)}>"
            "<pic:pic>"
            f'<pic:nvPicPr><pic:cNvPr id="0" name={xml_attr(name)}/><pic:cNvPicPr/></pic:nvPicPr>'
            f"<pic:blipFill><a:blip r:embed={xml_attr(picture.r_id)}/><a:stretch><a:fillRect/></a:stretch></pic:blipFill>"
            f'<pic:spPr><a:xfrm><a:off x="0" y="0"/><a:ext {extent}/></a:xfrm>'
            '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></pic:spPr>'
            "</pic:pic>"
            "</a:graphicData></a:graphic>"
            "</wp:inline>"
            "</w:drawing>"
        )

    # ------------------------------------------------------------------
    # Tables
    def table_xml(self, table: Table) -> str:
        widths = table.column_widths()
        grid = "".join(f'<w:gridCol w:w="{max(width, 0)}"/>' for width in widths)
        grid_xml = f"<w:tblGrid>{grid}</w:tblGrid>" if widths else ""
        rows = "".join(
            f"<w:tr>{''.join(self.cell_xml(cell) for cell in row.cells)}</w:tr>" for row in table.rows
        )
        return f"<w:tbl>{self.table_properties_xml(table)}{grid_xml}{rows}</w:tbl>"

    def table_properties_xml(self, table: Table) -> str:
        parts: List[str] = []
        if table.style:
            parts.append(f"<w:tblStyle w:val={xml_attr(table.style)}/>")
        parts.append(f'<w:tblW w:w="{table.width}" w:type={xml_attr(table.width_type or "auto")}/>')
        if table.alignment:
            parts.append(f"<w:jc w:val={xml_attr(table.alignment)}/>")
        if table.indent is not None:
            parts.append(f'<w:tblInd w:w="{table.indent}" w:type={xml_attr(table.indent_type or "dxa")}/>')
        if table.borders:
            parts.append(_borders_xml("tblBorders", table.borders, TABLE_BORDER_SIDES))
        if table.shading is not None:
            parts.append(_shading_xml(table.shading))
        if table.layout:
            parts.append(f"<w:tblLayout w:type={xml_attr(table.layout)}/>")
        if table.cell_margins is not None:
            margins = table.cell_margins
            sides = [
                f'<w:{side} w:w="{value}" w:type="dxa"/>'
                for side, value in (
                    ("top", margins.top),
                    ("left", margins.left),
                    ("bottom", margins.bottom),
                    ("right", margins.right),
                )
                if value is not None
            ]
            if sides:
                parts.append(f"<w:tblCellMar>{''.join(sides)}</w:tblCellMar>")
        if table.look is not None:
            parts.append(_table_look_xml(table.look))
        return f"<w:tblPr>{''.join(parts)}</w:tblPr>"

    def cell_xml(self, cell: TableCell) -> str:
        parts: List[str] = [f'<w:tcW w:w="{cell.width}" w:type="dxa"/>']
        if cell.grid_span > 1:
            parts.append(f'<w:gridSpan w:val="{cell.grid_span}"/>')
        if cell.vertical_merge == VerticalMerge.RESTART:
            parts.append('<w:vMerge w:val="restart"/>')
        elif cell.vertical_merge == VerticalMerge.CONTINUE:
            parts.append("<w:vMerge/>")
        if cell.borders:
            parts.append(_borders_xml("tcBorders", cell.borders, CELL_BORDER_SIDES))
        if cell.shading is not None:
            parts.append(_shading_xml(cell.shading))
        if cell.vertical_alignment != VerticalAlignment.TOP:
            parts.append(f"<w:vAlign w:val={xml_attr(cell.vertical_alignment.value)}/>")
        paragraphs = cell.paragraphs or [Paragraph()]
        content = "".join(self.paragraph_xml(paragraph) for paragraph in paragraphs)
        return f"<w:tc><w:tcPr>{''.join(parts)}</w:tcPr>{content}</w:tc>"

    # ------------------------------------------------------------------
    # Sections
    def section_xml(self, section: Section) -> str:
        parts: List[str] = []
        for tag, references in (("headerReference", section.headers), ("footerReference", section.footers)):
            for kind in HeaderFooterType:
                reference = references.get(kind)
                if reference is not None:
                    parts.append(f"<w:{tag} w:type={xml_attr(kind.value)} r:id={xml_attr(reference.r_id)}/>")
        if section.start_type is not None:
            parts.append(f"<w:type w:val={xml_attr(section.start_type.value)}/>")
        orient = f" w:orient={xml_attr(section.orientation)}" if section.orientation else ""
        parts.append(f'<w:pgSz w:w="{section.page_width}" w:h="{section.page_height}"{orient}/>')
        margins = _attributes(
            (
                ("top", section.margin_top),
                ("right", section.margin_right),
                ("bottom", section.margin_bottom),
                ("left", section.margin_left),
                ("header", section.margin_header),
                ("footer", section.margin_footer),
                ("gutter", section.margin_gutter),
            )
        )
        parts.append(f"<w:pgMar{margins}/>")
        if section.title_page is not None:
            parts.append("<w:titlePg/>" if section.title_page else '<w:titlePg w:val="0"/>')
        return f"<w:sectPr>{''.join(parts)}</w:sectPr>"


def _attributes(pairs: Iterable[tuple]) -> str:
    return "".join(f" w:{name}={xml_attr(value)}" for name, value in pairs if value is not None)


def _text_xml(text: str) -> str:
    pieces: List[str] = []
    for index, chunk in enumerate(strip_invalid_chars(text).split("\t")):
        if index:
            pieces.append("<w:tab/>")
        if not chunk:
            continue
        preserve = ' xml:space="preserve"' if chunk != chunk.strip() else ""
        pieces.append(f"<w:t{preserve}>{xml_text(chunk)}</w:t>")
    return "".join(pieces)


def _border_xml(side: str, border: Border) -> str:
    return (
        f"<w:{side} w:val={xml_attr(border.style)} w:sz=\"{border.size}\" "
        f"w:space=\"{border.space}\" w:color={xml_attr(border.color)}/>"
    )


def _borders_xml(tag: str, borders: Dict[str, Border], order: Sequence[str]) -> str:
    ordered = [side for side in order if side in borders]
    ordered += sorted(side for side in borders if side not in order)
    return f"<w:{tag}>{''.join(_border_xml(side, borders[side]) for side in ordered)}</w:{tag}>"


def _shading_xml(shading: Shading) -> str:
    return (
        f"<w:shd w:val={xml_attr(shading.pattern)} w:color={xml_attr(shading.color)} "
        f"w:fill={xml_attr(shading.fill)}/>"
    )


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _table_look_xml(look: TableLook) -> str:
    return (
        f"<w:tblLook w:val={xml_attr(look.val)} w:firstRow=\"{_flag(look.first_row)}\" "
        f"w:lastRow=\"{_flag(look.last_row)}\" w:firstColumn=\"{_flag(look.first_column)}\" "
        f"w:lastColumn=\"{_flag(look.last_column)}\" w:noHBand=\"{_flag(look.no_h_band)}\" "
        f"w:noVBand=\"{_flag(look.no_v_band)}\"/>"
    )
