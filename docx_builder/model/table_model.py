"""Tables, rows and cells together with merge and column-grid helpers."""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from docx_builder.errors import ValidationError
from docx_builder.model.elements import Attachable, Border, Paragraph, Shading

DEFAULT_COLUMN_WIDTH = 1440

TABLE_BORDER_SIDES = ("top", "left", "bottom", "right", "insideH", "insideV")
CELL_BORDER_SIDES = ("top", "left", "bottom", "right", "insideH", "insideV", "tl2br", "tr2bl")


class VerticalMerge(str, Enum):
    NONE = "none"
    RESTART = "restart"
    CONTINUE = "continue"


class VerticalAlignment(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


@dataclass(slots=True)
class TableLook:
    """Conditional-formatting flags from ``w:tblLook``."""

    val: str = "04A0"
    first_row: bool = True
    last_row: bool = False
    first_column: bool = True
    last_column: bool = False
    no_h_band: bool = False
    no_v_band: bool = True


@dataclass(slots=True)
class CellMargins:
    top: Optional[int] = None
    left: Optional[int] = None
    bottom: Optional[int] = None
    right: Optional[int] = None


@dataclass(slots=True)
class TableCell(Attachable):
    paragraphs: List[Paragraph] = field(default_factory=list)
    width: int = DEFAULT_COLUMN_WIDTH
    _grid_span: int = 1
    vertical_merge: VerticalMerge = VerticalMerge.NONE
    vertical_alignment: VerticalAlignment = VerticalAlignment.TOP
    borders: Dict[str, Border] = field(default_factory=dict)
    shading: Optional[Shading] = None
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    @property
    def grid_span(self) -> int:
        return self._grid_span

    @grid_span.setter
    def grid_span(self, span: int) -> None:
        if span < 1:
            raise ValidationError(f"Grid span must be at least 1, got {span}")
        self._grid_span = span

    @property
    def text(self) -> str:
        return "\n".join(paragraph.text for paragraph in self.paragraphs)

    def set_text(self, text: str) -> Paragraph:
        """Replace the cell content with a single paragraph holding ``text``."""
        paragraph = Paragraph()
        paragraph._bind(self.owner)
        paragraph.add_run(text)
        self.paragraphs = [paragraph]
        return paragraph

    def add_paragraph(self, text: str = "") -> Paragraph:
        paragraph = Paragraph()
        paragraph._bind(self.owner)
        if text:
            paragraph.add_run(text)
        self.paragraphs.append(paragraph)
        return paragraph

    def set_border(self, side: str, border: Border) -> None:
        if side not in CELL_BORDER_SIDES:
            raise ValidationError(f"Unknown cell border side: {side}")
        self.borders[side] = border

    def _bind(self, owner: Any) -> None:
        Attachable._bind(self, owner)
        for paragraph in self.paragraphs:
            paragraph._bind(owner)


@dataclass(slots=True)
class TableRow:
    cells: List[TableCell] = field(default_factory=list)

    def cell(self, index: int) -> TableCell:
        if index < 0 or index >= len(self.cells):
            raise ValidationError(f"Cell index {index} out of range (row has {len(self.cells)} cells)")
        return self.cells[index]

    def grid_columns(self) -> int:
        return sum(cell.grid_span for cell in self.cells)


@dataclass(slots=True)
class Table(Attachable):
    """A table with an optional explicit column grid.

    ``grid`` is empty when the source declared no ``w:tblGrid``; in that case
    ``column_widths()`` infers the grid from cell widths.
    """

    rows: List[TableRow] = field(default_factory=list)
    grid: List[int] = field(default_factory=list)
    column_count: int = 0
    width: int = 0
    width_type: str = "auto"
    indent: Optional[int] = None
    indent_type: str = "dxa"
    style: Optional[str] = None
    alignment: Optional[str] = None
    layout: Optional[str] = None
    look: Optional[TableLook] = None
    borders: Dict[str, Border] = field(default_factory=dict)
    shading: Optional[Shading] = None
    cell_margins: Optional[CellMargins] = None
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    @classmethod
    def create(cls, rows: int, cols: int) -> "Table":
        """Build a ``rows`` x ``cols`` table with single borders and one-inch columns."""
        if rows < 1 or cols < 1:
            raise ValidationError(f"Table dimensions must be positive, got {rows}x{cols}")
        table = cls(grid=[DEFAULT_COLUMN_WIDTH] * cols, column_count=cols)
        for side in TABLE_BORDER_SIDES:
            table.borders[side] = Border()
        for _ in range(rows):
            table.rows.append(table._new_row(cols))
        return table

    # ------------------------------------------------------------------
    # Navigation
    def row(self, index: int) -> TableRow:
        if index < 0 or index >= len(self.rows):
            raise ValidationError(f"Row index {index} out of range (table has {len(self.rows)} rows)")
        return self.rows[index]

    def cell(self, row: int, col: int) -> TableCell:
        return self.row(row).cell(col)

    # ------------------------------------------------------------------
    # Row management
    def add_row(self) -> TableRow:
        row = self._new_row(self._reference_columns(len(self.rows) - 1))
        self.rows.append(row)
        return row

    def insert_row(self, index: int) -> TableRow:
        """Insert an empty row before ``index``; ``index == len(rows)`` appends."""
        if index < 0 or index > len(self.rows):
            raise ValidationError(f"Row index {index} out of range for insertion")
        reference = index - 1 if index > 0 else 0
        row = self._new_row(self._reference_columns(reference))
        self.rows.insert(index, row)
        return row

    def remove_row(self, index: int) -> TableRow:
        row = self.row(index)
        if len(self.rows) == 1:
            raise ValidationError("A table must keep at least one row")
        del self.rows[index]
        return row

    # ------------------------------------------------------------------
    # Merging
    def merge_horizontal(self, row_index: int, start: int, end: int) -> TableCell:
        """Merge cells ``start..end`` of a row into the first one."""
        row = self.row(row_index)
        if start < 0 or end < start:
            raise ValidationError(f"Invalid horizontal merge range {start}..{end}")
        if end >= len(row.cells):
            raise ValidationError(f"Merge end {end} out of range (row has {len(row.cells)} cells)")
        first = row.cells[start]
        if start == end:
            return first
        merged = row.cells[start : end + 1]
        first.width = sum(cell.width for cell in merged)
        first.grid_span = sum(cell.grid_span for cell in merged)
        del row.cells[start + 1 : end + 1]
        return first

    def merge_vertical(self, column: int, start_row: int, end_row: int) -> None:
        """Mark a column's cells ``start_row..end_row`` as one vertically merged block."""
        if column < 0:
            raise ValidationError(f"Column index must be non-negative, got {column}")
        if start_row < 0 or end_row < start_row or end_row >= len(self.rows):
            raise ValidationError(f"Invalid vertical merge rows {start_row}..{end_row}")
        for row_index in range(start_row, end_row + 1):
            if column >= len(self.rows[row_index].cells):
                raise ValidationError(f"Column {column} out of range for row {row_index}")

        for row_index in range(start_row, end_row + 1):
            cell = self.rows[row_index].cells[column]
            cell.vertical_merge = VerticalMerge.RESTART if row_index == start_row else VerticalMerge.CONTINUE

    # ------------------------------------------------------------------
    # Column grid
    def set_column_widths(self, *widths: int) -> None:
        """Set an explicit grid and resize every cell to the columns it covers."""
        if any(width <= 0 for width in widths):
            raise ValidationError(f"Column widths must be positive, got {widths}")
        self.grid = list(widths)
        self.column_count = len(widths)
        for row in self.rows:
            col = 0
            for cell in row.cells:
                if col >= len(widths):
                    break
                cell.width = sum(widths[col : col + cell.grid_span])
                col += cell.grid_span

    def clear_column_widths(self) -> None:
        """Drop the explicit grid so widths are inferred from the cells."""
        self.grid = []

    def column_widths(self) -> List[int]:
        if self.grid:
            return list(self.grid)
        return infer_column_widths(self.rows, self.columns())

    def columns(self) -> int:
        if self.grid:
            return len(self.grid)
        return max([self.column_count] + [row.grid_columns() for row in self.rows])

    # ------------------------------------------------------------------
    # Formatting
    def set_border(self, side: str, border: Border) -> None:
        if side not in TABLE_BORDER_SIDES:
            raise ValidationError(f"Unknown table border side: {side}")
        self.borders[side] = border

    def clear_borders(self) -> None:
        self.borders.clear()

    def set_width(self, width: int, width_type: str = "dxa") -> None:
        self.width = width
        self.width_type = width_type

    def set_indent(self, value: int, indent_type: str = "dxa") -> None:
        self.indent = value
        self.indent_type = indent_type

    def set_cell_margins(self, top: int, left: int, bottom: int, right: int) -> None:
        self.cell_margins = CellMargins(top=top, left=left, bottom=bottom, right=right)

    # ------------------------------------------------------------------
    def _reference_columns(self, reference_index: int) -> int:
        if 0 <= reference_index < len(self.rows):
            return max(len(self.rows[reference_index].cells), 1)
        return max(self.columns(), 1)

    def _new_row(self, cols: int) -> TableRow:
        widths = self.column_widths() if (self.grid or self.rows) else []
        cells = []
        for index in range(cols):
            cell = TableCell(width=widths[index] if index < len(widths) else DEFAULT_COLUMN_WIDTH)
            cell.paragraphs.append(Paragraph())
            cell._bind(self.owner)
            cells.append(cell)
        if cols > self.column_count:
            self.column_count = cols
        return TableRow(cells=cells)

    def _bind(self, owner: Any) -> None:
        Attachable._bind(self, owner)
        for row in self.rows:
            for cell in row.cells:
                cell._bind(owner)


def infer_column_widths(rows: Sequence[TableRow], column_count: int) -> List[int]:
    """Derive grid widths from cell widths, top row first.

    Each cell's width is split evenly over the columns it spans, with any
    remainder going to the leading columns. The first row that supplies a
    width for a column wins; columns nobody fills fall back to one inch.
    """
    if column_count <= 0:
        return []
    widths = [0] * column_count
    filled = [False] * column_count

    for row in rows:
        col = 0
        for cell in row.cells:
            span = max(cell.grid_span, 1)
            total = cell.width
            if total <= 0:
                col += span
                continue
            per_column, remainder = divmod(total, span)
            for _ in range(span):
                if col >= column_count:
                    break
                width = per_column
                if remainder > 0:
                    width += 1
                    remainder -= 1
                if not filled[col] and width > 0:
                    widths[col] = width
                    filled[col] = True
                col += 1
        if all(filled):
            break

    return [width if width > 0 else DEFAULT_COLUMN_WIDTH for width in widths]
