"""Tests for the zip-backed package store."""
import tempfile
import unittest
import zipfile
from pathlib import Path

from docx_builder.errors import FormatError, PackageClosedError, PackageIOError, ValidationError
from docx_builder.parser.content_types import CT_DOCUMENT_MAIN, CT_HEADER
from docx_builder.parser.docx_loader import DOCUMENT_XML_PATH, DocxPackage
from docx_builder.parser.rels_parser import RELTYPE_HEADER


class DocxPackageTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_create_empty_has_minimal_parts(self) -> None:
        package = DocxPackage.create_empty()
        self.assertEqual(package.main_document_part_name(), DOCUMENT_XML_PATH)
        self.assertEqual(package.content_type_of(DOCUMENT_XML_PATH), CT_DOCUMENT_MAIN)
        for name in ("word/styles.xml", "word/settings.xml", "word/numbering.xml"):
            self.assertIsNotNone(package.part(name), name)

    def test_save_and_reload_preserves_parts(self) -> None:
        package = DocxPackage.create_empty()
        package.set_part("customXml/item1.xml", "", b"<root/>")
        target = package.save(self.tmp_path / "out.docx")

        with zipfile.ZipFile(target) as archive:
            names = archive.namelist()
        self.assertEqual(names[0], "[Content_Types].xml")
        self.assertIn("_rels/.rels", names)
        self.assertIn("word/_rels/document.xml.rels", names)

        with DocxPackage.load(target) as reloaded:
            self.assertEqual(sorted(reloaded.parts), sorted(package.parts))
            self.assertEqual(reloaded.part("customXml/item1.xml").data, b"<root/>")
            self.assertEqual(reloaded.content_type_of(DOCUMENT_XML_PATH), CT_DOCUMENT_MAIN)

    def test_set_part_records_override_only_when_needed(self) -> None:
        package = DocxPackage.create_empty()
        package.set_part("word/header1.xml", CT_HEADER, b"<w:hdr/>")
        package.set_part("word/plain.xml", "application/xml", b"<x/>")
        self.assertIn("/word/header1.xml", package.content_types.overrides)
        self.assertNotIn("/word/plain.xml", package.content_types.overrides)

    def test_remove_part_drops_override(self) -> None:
        package = DocxPackage.create_empty()
        package.set_part("word/header1.xml", CT_HEADER, b"<w:hdr/>")
        removed = package.remove_part("word/header1.xml")
        self.assertIsNotNone(removed)
        self.assertIsNone(package.part("word/header1.xml"))
        self.assertNotIn("/word/header1.xml", package.content_types.overrides)

    def test_save_rejects_dangling_internal_relationship(self) -> None:
        package = DocxPackage.create_empty()
        package.relationships.ensure(DOCUMENT_XML_PATH, RELTYPE_HEADER, "header9.xml")
        target = self.tmp_path / "broken.docx"
        with self.assertRaises(ValidationError):
            package.save(target)
        self.assertFalse(target.exists())

    def test_save_without_path_requires_origin(self) -> None:
        with self.assertRaises(ValidationError):
            DocxPackage.create_empty().save()

    def test_load_rejects_non_zip(self) -> None:
        bogus = self.tmp_path / "bogus.docx"
        bogus.write_bytes(b"not a zip file")
        with self.assertRaises(FormatError):
            DocxPackage.load(bogus)

    def test_load_missing_file_raises_io_error(self) -> None:
        with self.assertRaises(PackageIOError):
            DocxPackage.load(self.tmp_path / "missing.docx")

    def test_closed_package_rejects_use(self) -> None:
        package = DocxPackage.create_empty()
        package.close()
        package.close()
        self.assertTrue(package.closed)
        with self.assertRaises(PackageClosedError):
            package.part(DOCUMENT_XML_PATH)
        with self.assertRaises(PackageClosedError):
            package.save(self.tmp_path / "closed.docx")

    def test_unknown_entries_survive_round_trip(self) -> None:
        source = self.tmp_path / "source.docx"
        DocxPackage.create_empty().save(source)
        with zipfile.ZipFile(source, "a") as archive:
            archive.writestr("docProps/custom.xml", b"<Properties/>")

        copy = self.tmp_path / "copy.docx"
        with DocxPackage.load(source) as package:
            package.save(copy)
        with zipfile.ZipFile(copy) as archive:
            self.assertEqual(archive.read("docProps/custom.xml"), b"<Properties/>")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
