"""Tests for the content-types manifest."""
import unittest

from docx_builder.errors import FormatError
from docx_builder.parser.content_types import CT_DOCUMENT_MAIN, CT_HEADER, CT_XML, ContentTypes


content_types_xml = b"""<?xml version="1.0" encoding="UTF-8"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">
  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>
  <Default Extension="XML" ContentType="application/xml"/>
  <Default Extension="png" ContentType="image/png"/>
  <Override PartName="/word/document.xml" ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>
  <Override PartName="/word/header1.xml" ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.header+xml"/>
</Types>
"""


class ContentTypesTest(unittest.TestCase):
    def setUp(self) -> None:
        self.content_types = ContentTypes.from_xml(content_types_xml)

    def test_override_wins_over_default(self) -> None:
        self.assertEqual(self.content_types.content_type_of("word/document.xml"), CT_DOCUMENT_MAIN)
        self.assertEqual(self.content_types.content_type_of("/word/header1.xml"), CT_HEADER)

    def test_default_by_extension_is_case_insensitive(self) -> None:
        self.assertEqual(self.content_types.content_type_of("word/styles.xml"), CT_XML)
        self.assertEqual(self.content_types.content_type_of("word/media/image1.PNG"), "image/png")
        self.assertEqual(self.content_types.content_type_of("word/media/image1.jpeg"), "")

    def test_to_xml_drops_overrides_without_parts(self) -> None:
        with self.assertLogs("docx_builder.parser.content_types", level="WARNING"):
            payload = self.content_types.to_xml(["word/document.xml"])
        self.assertIn(b'PartName="/word/document.xml"', payload)
        self.assertNotIn(b"header1.xml", payload)

    def test_remove_override(self) -> None:
        self.content_types.remove_override("word/header1.xml")
        self.assertEqual(self.content_types.content_type_of("word/header1.xml"), CT_XML)

    def test_empty_registry_seeds_defaults(self) -> None:
        payload = ContentTypes().to_xml([])
        reloaded = ContentTypes.from_xml(payload)
        self.assertIn("rels", reloaded.defaults)
        self.assertIn("xml", reloaded.defaults)

    def test_malformed_manifest_raises_format_error(self) -> None:
        with self.assertRaises(FormatError):
            ContentTypes.from_xml(b"<Types><Default")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
