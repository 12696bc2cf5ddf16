"""
Integration tests for the complete build, save and reload cycle.

Documents are created through the public API, written to a temporary
directory and parsed back from disk.
"""

import json
import struct
import tempfile
import unittest
import zipfile
import zlib
from pathlib import Path

from docx_builder.document import Document
from docx_builder.errors import (
    DetachedError,
    FormatError,
    PackageClosedError,
    UnresolvedReferenceError,
    ValidationError,
)
from docx_builder.main import main, roundtrip
from docx_builder.model.elements import Paragraph, Run
from docx_builder.model.section_model import HeaderFooterType, Section, SectionStart
from docx_builder.parser.content_types import CT_FOOTER, CT_HEADER
from docx_builder.parser.docx_loader import DocxPackage
from docx_builder.parser.rels_parser import MODE_EXTERNAL


def make_png(width: int, height: int) -> bytes:
    def chunk(kind: bytes, payload: bytes) -> bytes:
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\x00\x00\x00" * width for _ in range(height))
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", zlib.compress(raw)) + chunk(b"IEND", b"")


class IntegrationTest(unittest.TestCase):
    """End-to-end checks through the Document facade."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _reload(self, document: Document, name: str = "out.docx") -> Document:
        target = document.save(self.tmp_path / name)
        return Document.open(target)

    # ------------------------------------------------------------------
    def test_table_survives_reload(self) -> None:
        document = Document.new()
        table = document.add_table(2, 3)
        table.cell(0, 0).set_text("A1")

        with self._reload(document) as reloaded:
            self.assertEqual(len(reloaded.tables), 1)
            loaded = reloaded.tables[0]
            self.assertEqual(len(loaded.rows), 2)
            self.assertTrue(all(len(row.cells) == 3 for row in loaded.rows))
            self.assertEqual(loaded.cell(0, 0).text, "A1")

    def test_run_toggles_survive_reload(self) -> None:
        document = Document.new()
        run = document.add_paragraph().add_run("Hello")
        run.bold = True
        run.italic = True
        run.strike = False

        with self._reload(document) as reloaded:
            loaded = reloaded.paragraphs[0].runs[0]
            self.assertTrue(loaded.bold)
            self.assertTrue(loaded.italic)
            self.assertIs(loaded.strike, False)
            self.assertIsNone(loaded.emboss)
            self.assertEqual(loaded.text, "Hello")

    def test_removed_hyperlink_keeps_its_relationship(self) -> None:
        document = Document.new()
        paragraph = document.add_paragraph()
        run = paragraph.add_hyperlink("Example", "https://example.com")
        document.xml()
        document.remove_paragraph(paragraph)

        with self._reload(document) as reloaded:
            self.assertEqual(reloaded.paragraphs, [])
            resolved = reloaded.package.relationships.resolve(reloaded.body.part_name, run.hyperlink_rel_id)
            self.assertEqual(resolved, ("https://example.com", MODE_EXTERNAL))

    def test_control_characters_do_not_corrupt_saved_file(self) -> None:
        document = Document.new()
        document.add_paragraph("a\x0bb\x01", style="Body\x1fText")

        with self._reload(document) as reloaded:
            self.assertEqual(reloaded.paragraphs[0].text, "ab")
            self.assertEqual(reloaded.paragraphs[0].style, "BodyText")

    def test_external_hyperlink_survives_reload(self) -> None:
        document = Document.new()
        document.add_paragraph().add_hyperlink("Example", "https://example.com")

        with self._reload(document) as reloaded:
            run = reloaded.paragraphs[0].runs[0]
            self.assertEqual(run.hyperlink_url, "https://example.com")
            resolved = reloaded.package.relationships.resolve(reloaded.body.part_name, run.hyperlink_rel_id)
            self.assertEqual(resolved, ("https://example.com", MODE_EXTERNAL))

    # ------------------------------------------------------------------
    def test_round_trip_preserves_model(self) -> None:
        document = Document.new()
        intro = document.add_paragraph("Intro", style="Title")
        intro.spacing.after = 0
        intro.keep_with_next = True
        styled = intro.add_run(" styled")
        styled.underline = "double"
        styled.size_pt = 14
        table = document.add_table(2, 2)
        table.set_column_widths(2000, 4000)
        table.cell(1, 1).set_text("B2")
        document.sections[-1].set_margins(720, 720, 720, 720)

        with self._reload(document) as reloaded:
            paragraph = reloaded.paragraphs[0]
            self.assertEqual(paragraph.text, "Intro styled")
            self.assertEqual(paragraph.style, "Title")
            self.assertEqual(paragraph.spacing.after, 0)
            self.assertIsNone(paragraph.spacing.before)
            self.assertIs(paragraph.keep_with_next, True)
            self.assertEqual(paragraph.runs[1].underline, "double")
            self.assertEqual(paragraph.runs[1].size, 28)
            self.assertEqual(paragraph.runs[1].size_pt, 14)
            loaded_table = reloaded.tables[0]
            self.assertEqual(loaded_table.column_widths(), [2000, 4000])
            self.assertEqual(loaded_table.cell(1, 1).width, 4000)
            self.assertEqual(loaded_table.cell(1, 1).text, "B2")
            self.assertEqual(reloaded.sections[-1].margin_top, 720)

    def test_serialization_is_idempotent(self) -> None:
        document = Document.new()
        document.add_paragraph("one").add_run("two").bold = True
        document.add_table(1, 2).merge_horizontal(0, 0, 1)
        document.add_section(SectionStart.CONTINUOUS)
        first_xml = document.xml()

        with self._reload(document, "first.docx") as reloaded:
            self.assertEqual(reloaded.xml(), first_xml)
            with self._reload(reloaded, "second.docx") as again:
                self.assertEqual(again.xml(), first_xml)

    def test_default_run_has_no_properties(self) -> None:
        document = Document.new()
        document.add_paragraph("plain")
        self.assertNotIn("<w:rPr>", document.xml())

    def test_relationship_ids_unique_per_part(self) -> None:
        document = Document.new()
        for index in range(3):
            document.add_paragraph().add_hyperlink(f"link {index}", f"https://example.com/{index}")
        document.header()
        document.footer()

        with self._reload(document) as reloaded:
            relationships = reloaded.package.relationships
            for owner in relationships.owners():
                ids = [rel.r_id for rel in relationships.for_source(owner)]
                self.assertEqual(len(ids), len(set(ids)), owner)

    # ------------------------------------------------------------------
    def test_paragraphs_insert_before_trailing_section(self) -> None:
        document = Document.new()
        first = document.add_paragraph("first")
        document.add_paragraph("second")
        self.assertIsInstance(document.elements[-1], Section)

        table = document.insert_table_after_paragraph(first, 1, 1)
        self.assertIs(document.elements[1], table)
        self.assertIs(document.remove_table(table), table)
        self.assertIs(document.remove_paragraph(first), first)
        self.assertEqual([p.text for p in document.paragraphs], ["second"])

    def test_removing_foreign_elements_raises(self) -> None:
        document = Document.new()
        document.add_paragraph("same")
        stranger = Paragraph(runs=[Run(text="same")])
        with self.assertRaises(ValidationError):
            document.remove_paragraph(stranger)
        with self.assertRaises(ValidationError):
            document.insert_table_after_paragraph(stranger, 1, 1)
        with self.assertRaises(ValidationError):
            document.add_table(0, 2)
        self.assertEqual(len(document.elements), 2)

    def test_add_section_anchors_previous_one(self) -> None:
        document = Document.new()
        document.add_paragraph("page one")
        original = document.sections[-1]
        original.set_page_size(16838, 11906, "landscape")
        added = document.add_section()

        self.assertEqual(len(document.sections), 2)
        self.assertIs(document.sections[0], original)
        self.assertIs(document.elements[-2].section, original)
        self.assertEqual(added.start_type, SectionStart.NEW_PAGE)
        self.assertEqual(added.orientation, "landscape")

        with self._reload(document) as reloaded:
            sections = reloaded.sections
            self.assertEqual(len(sections), 2)
            self.assertEqual(sections[1].start_type, SectionStart.NEW_PAGE)
            self.assertIsNone(sections[0].start_type)

        document.remove_section(original)
        self.assertEqual(len(document.sections), 1)

    # ------------------------------------------------------------------
    def test_headers_and_footers(self) -> None:
        document = Document.new()
        header = document.header()
        header.add_paragraph("Running head")
        first_footer = document.footer(HeaderFooterType.FIRST)
        first_footer.add_paragraph("Page one")

        section = document.sections[-1]
        self.assertTrue(section.title_page)
        self.assertIs(document.header(), header)
        self.assertEqual(document.package.content_type_of(header.part_name), CT_HEADER)
        self.assertEqual(document.package.content_type_of(first_footer.part_name), CT_FOOTER)

        with self._reload(document) as reloaded:
            loaded_header = reloaded.header()
            self.assertEqual(loaded_header.part_name, "word/header1.xml")
            self.assertEqual([p.text for p in loaded_header.paragraphs], ["", "Running head"])
            loaded_footer = reloaded.sections[-1].footer(HeaderFooterType.FIRST)
            self.assertEqual(loaded_footer.paragraphs[-1].text, "Page one")
            self.assertTrue(reloaded.sections[-1].title_page)

    def test_header_hyperlink_uses_header_relationships(self) -> None:
        document = Document.new()
        document.header().add_paragraph().add_hyperlink("home", "https://example.org")

        with self._reload(document) as reloaded:
            header = reloaded.header()
            run = header.paragraphs[-1].runs[0]
            self.assertEqual(run.hyperlink_url, "https://example.org")
            self.assertIsNotNone(reloaded.package.relationships.find(header.part_name, run.hyperlink_rel_id))

    # ------------------------------------------------------------------
    def test_pictures(self) -> None:
        image_path = self.tmp_path / "dot.png"
        image_path.write_bytes(make_png(192, 96))
        document = Document.new()
        picture = document.add_picture(image_path, width_emu=914400)
        again = document.add_paragraph().add_picture(image_path)

        self.assertEqual((picture.width_emu, picture.height_emu), (914400, 457200))
        self.assertEqual((again.picture.width_emu, again.picture.height_emu), (1828800, 914400))
        self.assertEqual(picture.part_name, again.picture.part_name)
        self.assertNotEqual(picture.drawing_id, again.picture.drawing_id)

        with self._reload(document) as reloaded:
            loaded = reloaded.paragraphs[0].runs[0].picture
            self.assertEqual(loaded.part_name, "word/media/image1.png")
            self.assertEqual(loaded.image_data(), image_path.read_bytes())
            self.assertEqual(loaded.width_emu, 914400)
            next_picture = reloaded.add_picture(image_path)
            self.assertGreater(next_picture.drawing_id, again.picture.drawing_id)

    def test_picture_errors_leave_paragraph_unchanged(self) -> None:
        document = Document.new()
        paragraph = document.add_paragraph()
        with self.assertRaises(ValidationError):
            paragraph.add_picture(self.tmp_path / "notes.txt")
        self.assertEqual(paragraph.runs, [])
        with self.assertRaises(DetachedError):
            Paragraph().add_picture(self.tmp_path / "dot.png")

    def test_missing_media_raises_on_read(self) -> None:
        image_path = self.tmp_path / "dot.png"
        image_path.write_bytes(make_png(2, 2))
        document = Document.new()
        picture = document.add_picture(image_path)
        document.package.remove_part(picture.part_name)
        with self.assertRaises(UnresolvedReferenceError):
            picture.image_data()

    # ------------------------------------------------------------------
    def test_unresolved_numbering_is_reported(self) -> None:
        document = Document.new()
        document.add_paragraph("listed").set_numbering(1)
        document.add_paragraph("orphan").set_numbering(77)

        with self.assertLogs("docx_builder.document", level="WARNING"):
            reloaded = self._reload(document)
        with reloaded:
            self.assertEqual([p.text for p in reloaded.unresolved_numbering()], ["orphan"])
            self.assertTrue(reloaded.numbering.resolves(2))

    def test_closed_document_rejects_use(self) -> None:
        document = Document.new()
        document.close()
        with self.assertRaises(PackageClosedError):
            document.add_paragraph("late")
        self.assertEqual(document.paragraphs, [])

    def test_open_rejects_wrong_main_content_type(self) -> None:
        package = DocxPackage.create_empty()
        package.content_types.set_override("word/document.xml", "application/xml")
        target = package.save(self.tmp_path / "odd.docx")
        with self.assertRaises(FormatError):
            Document.open(target)

    def test_open_rejects_malformed_body(self) -> None:
        source = self.tmp_path / "source.docx"
        DocxPackage.create_empty().save(source)
        broken = self.tmp_path / "broken.docx"
        with zipfile.ZipFile(source) as src, zipfile.ZipFile(broken, "w") as dst:
            for item in src.infolist():
                data = src.read(item.filename)
                if item.filename == "word/document.xml":
                    data = data[: len(data) // 2]
                dst.writestr(item, data)
        with self.assertRaises(FormatError):
            Document.open(broken)

    # ------------------------------------------------------------------
    def test_cli_dump_and_roundtrip(self) -> None:
        document = Document.new()
        document.add_paragraph("cli").add_hyperlink(" link", "https://example.com")
        document.add_table(1, 1)
        source = document.save(self.tmp_path / "cli.docx")

        summary = main(str(source), dump_dir=str(self.tmp_path / "dump"), output=str(self.tmp_path / "copy.docx"))
        self.assertEqual(summary["paragraphs"], 1)
        self.assertEqual(summary["tables"], 1)
        self.assertEqual(summary["sections"], 1)

        dump = json.loads((self.tmp_path / "dump" / "document_model.json").read_text(encoding="utf-8"))
        self.assertEqual(dump[0]["kind"], "Paragraph")
        self.assertEqual(dump[0]["runs"][1]["hyperlink_url"], "https://example.com")
        self.assertNotIn("_owner", dump[0])

        copied = roundtrip(self.tmp_path / "copy.docx", self.tmp_path / "copy2.docx")
        with Document.open(copied) as reloaded:
            self.assertEqual(reloaded.paragraphs[0].text, "cli link")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
