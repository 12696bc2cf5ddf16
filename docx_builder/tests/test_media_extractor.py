"""Tests for image storage and size resolution."""
import struct
import unittest
import zlib

from docx_builder.errors import ImageDecodeError, ValidationError
from docx_builder.parser.docx_loader import DocxPackage
from docx_builder.parser.media_extractor import (
    MediaCatalog,
    decode_dimensions,
    image_content_type,
    pixels_to_emu,
    resolve_picture_size,
    scale_emu,
)


def make_png(width: int, height: int) -> bytes:
    def chunk(kind: bytes, payload: bytes) -> bytes:
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\x00\x00\x00" * width for _ in range(height))
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", zlib.compress(raw)) + chunk(b"IEND", b"")


def make_jpeg(width: int, height: int) -> bytes:
    app0 = b"\xff\xe0" + struct.pack(">H", 16) + b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    sof0 = b"\xff\xc0" + struct.pack(">HBHHB", 11, 8, height, width, 1) + b"\x01\x11\x00"
    return b"\xff\xd8" + app0 + sof0 + b"\xff\xd9"


class ImageSizeTest(unittest.TestCase):
    def test_decode_png_and_jpeg(self) -> None:
        self.assertEqual(decode_dimensions(make_png(4, 3)), (4, 3))
        self.assertEqual(decode_dimensions(make_jpeg(640, 480)), (640, 480))
        self.assertEqual(decode_dimensions(b"GIF89a" + struct.pack("<HH", 10, 20)), (10, 20))

    def test_decode_rejects_unknown_payload(self) -> None:
        with self.assertRaises(ImageDecodeError):
            decode_dimensions(b"plain text")
        with self.assertRaises(ImageDecodeError):
            decode_dimensions(b"\x89PNG\r\n\x1a\n")

    def test_scale_rounds_half_up(self) -> None:
        self.assertEqual(scale_emu(5, 1, 2), 3)
        self.assertEqual(scale_emu(914400, 3, 4), 685800)
        self.assertEqual(pixels_to_emu(96), 914400)

    def test_resolve_picture_size_rules(self) -> None:
        png = make_png(200, 100)
        self.assertEqual(resolve_picture_size(png, 0, 0), (pixels_to_emu(200), pixels_to_emu(100)))
        self.assertEqual(resolve_picture_size(png, 914400, 0), (914400, 457200))
        self.assertEqual(resolve_picture_size(png, 0, 457200), (914400, 457200))
        self.assertEqual(resolve_picture_size(b"not decoded", 10, 20), (10, 20))

    def test_negative_size_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            resolve_picture_size(make_png(1, 1), -1, 0)

    def test_content_type_lookup(self) -> None:
        self.assertEqual(image_content_type(".JPG"), "image/jpeg")
        self.assertEqual(image_content_type("png"), "image/png")
        with self.assertRaises(ValidationError):
            image_content_type("txt")


class MediaCatalogTest(unittest.TestCase):
    def setUp(self) -> None:
        self.package = DocxPackage.create_empty()
        self.media = MediaCatalog(self.package)

    def test_add_image_registers_default_and_part(self) -> None:
        part_name = self.media.add_image(make_png(2, 2), "png")
        self.assertEqual(part_name, "word/media/image1.png")
        self.assertEqual(self.package.content_types.defaults["png"], "image/png")
        self.assertEqual(self.package.content_type_of(part_name), "image/png")

    def test_identical_bytes_are_deduplicated(self) -> None:
        first = self.media.add_image(make_png(2, 2), "png")
        second = self.media.add_image(make_png(2, 2), ".png")
        third = self.media.add_image(make_png(3, 2), "png")
        self.assertEqual(first, second)
        self.assertEqual(third, "word/media/image2.png")
        self.assertEqual(self.media.read(third), make_png(3, 2))
        self.assertIsNone(self.media.read("word/media/missing.png"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
