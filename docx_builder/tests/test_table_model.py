"""Tests for table construction, merging and grid inference."""
import unittest

from docx_builder.errors import ValidationError
from docx_builder.model.table_model import (
    DEFAULT_COLUMN_WIDTH,
    Table,
    TableCell,
    TableRow,
    VerticalMerge,
    infer_column_widths,
)


class TableModelTest(unittest.TestCase):
    def setUp(self) -> None:
        self.table = Table.create(3, 3)

    def test_create_defaults(self) -> None:
        self.assertEqual(self.table.grid, [DEFAULT_COLUMN_WIDTH] * 3)
        self.assertEqual(self.table.columns(), 3)
        self.assertEqual(self.table.borders["top"].style, "single")
        self.assertEqual(self.table.borders["insideV"].size, 4)
        cell = self.table.cell(2, 2)
        self.assertEqual(cell.width, DEFAULT_COLUMN_WIDTH)
        self.assertEqual(len(cell.paragraphs), 1)

    def test_create_rejects_empty_dimensions(self) -> None:
        for rows, cols in ((0, 1), (1, 0), (-1, 2)):
            with self.assertRaises(ValidationError):
                Table.create(rows, cols)

    def test_out_of_range_access(self) -> None:
        with self.assertRaises(ValidationError):
            self.table.cell(3, 0)
        with self.assertRaises(ValidationError):
            self.table.cell(0, -1)

    def test_merge_horizontal_sums_widths(self) -> None:
        merged = self.table.merge_horizontal(0, 0, 1)
        self.assertEqual(merged.width, 2 * DEFAULT_COLUMN_WIDTH)
        self.assertEqual(merged.grid_span, 2)
        self.assertEqual(len(self.table.row(0).cells), 2)
        self.assertEqual(self.table.row(0).grid_columns(), 3)

    def test_merge_horizontal_single_cell_is_noop(self) -> None:
        cell = self.table.merge_horizontal(1, 2, 2)
        self.assertIs(cell, self.table.cell(1, 2))
        self.assertEqual(cell.grid_span, 1)

    def test_merge_horizontal_out_of_range_does_not_mutate(self) -> None:
        with self.assertRaises(ValidationError):
            self.table.merge_horizontal(0, 1, 5)
        self.assertEqual(len(self.table.row(0).cells), 3)

    def test_merge_vertical_marks_cells(self) -> None:
        self.table.merge_vertical(1, 0, 2)
        self.assertEqual(self.table.cell(0, 1).vertical_merge, VerticalMerge.RESTART)
        self.assertEqual(self.table.cell(1, 1).vertical_merge, VerticalMerge.CONTINUE)
        self.assertEqual(self.table.cell(2, 1).vertical_merge, VerticalMerge.CONTINUE)

    def test_merge_vertical_validates_before_mutating(self) -> None:
        self.table.merge_horizontal(2, 0, 2)
        with self.assertRaises(ValidationError):
            self.table.merge_vertical(2, 0, 2)
        self.assertEqual(self.table.cell(0, 2).vertical_merge, VerticalMerge.NONE)
        self.assertEqual(self.table.cell(1, 2).vertical_merge, VerticalMerge.NONE)

    def test_grid_span_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.table.cell(0, 0).grid_span = 0

    def test_rows_management(self) -> None:
        self.table.set_column_widths(1000, 2000, 3000)
        added = self.table.add_row()
        self.assertEqual([cell.width for cell in added.cells], [1000, 2000, 3000])
        inserted = self.table.insert_row(0)
        self.assertIs(self.table.row(0), inserted)
        self.assertEqual(len(self.table.rows), 5)
        removed = self.table.remove_row(0)
        self.assertIs(removed, inserted)
        with self.assertRaises(ValidationError):
            self.table.insert_row(9)

    def test_last_row_cannot_be_removed(self) -> None:
        table = Table.create(1, 2)
        with self.assertRaises(ValidationError):
            table.remove_row(0)

    def test_set_column_widths_resizes_spanned_cells(self) -> None:
        self.table.merge_horizontal(0, 1, 2)
        self.table.set_column_widths(500, 600, 700)
        self.assertEqual(self.table.cell(0, 1).width, 1300)
        self.assertEqual(self.table.column_widths(), [500, 600, 700])
        with self.assertRaises(ValidationError):
            self.table.set_column_widths(100, 0)

    def test_cell_text_helpers(self) -> None:
        cell = self.table.cell(0, 0)
        cell.set_text("first")
        cell.add_paragraph("second")
        self.assertEqual(cell.text, "first\nsecond")


class InferColumnWidthsTest(unittest.TestCase):
    def _row(self, *cells):
        row = TableRow()
        for width, span in cells:
            cell = TableCell(width=width)
            cell.grid_span = span
            row.cells.append(cell)
        return row

    def test_first_row_wins(self) -> None:
        rows = [self._row((1000, 1), (2000, 1)), self._row((5000, 1), (6000, 1))]
        self.assertEqual(infer_column_widths(rows, 2), [1000, 2000])

    def test_spanned_remainder_goes_to_leading_columns(self) -> None:
        rows = [self._row((1000, 3))]
        self.assertEqual(infer_column_widths(rows, 3), [334, 333, 333])

    def test_zero_widths_fall_through_to_later_rows(self) -> None:
        rows = [self._row((0, 1), (900, 1)), self._row((400, 1), (100, 1))]
        self.assertEqual(infer_column_widths(rows, 2), [400, 900])

    def test_unfilled_columns_default(self) -> None:
        rows = [self._row((700, 1))]
        self.assertEqual(infer_column_widths(rows, 3), [700, DEFAULT_COLUMN_WIDTH, DEFAULT_COLUMN_WIDTH])
        self.assertEqual(infer_column_widths(rows, 0), [])

    def test_inference_is_deterministic(self) -> None:
        rows = [self._row((1001, 2), (300, 1)), self._row((10, 1), (20, 1), (30, 1))]
        self.assertEqual(infer_column_widths(rows, 3), infer_column_widths(rows, 3))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
