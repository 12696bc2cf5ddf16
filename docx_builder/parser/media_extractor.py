"""
DOCX media helpers

Stores image payloads under ``word/media/``, maps file extensions to content
types, reads pixel dimensions from raster headers and converts them to EMU
for inline pictures.
"""
from __future__ import annotations

import hashlib
import posixpath
import struct
from typing import Dict, Optional, Tuple

from docx_builder.errors import ImageDecodeError, ValidationError
from docx_builder.parser.docx_loader import MEDIA_DIR, DocxPackage
from docx_builder.utils.logger import get_logger
from docx_builder.utils.units import EMU_PER_INCH

LOGGER = get_logger(__name__)

DEFAULT_IMAGE_DPI = 96

IMAGE_CONTENT_TYPES: Dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "emf": "image/x-emf",
    "wmf": "image/x-wmf",
    "ico": "image/x-icon",
    "svg": "image/svg+xml",
    "webp": "image/webp",
}

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_JPEG_SOF_MARKERS = frozenset(
    {0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF}
)
_JPEG_STANDALONE_MARKERS = frozenset({0x01, 0xD0, 0xD1, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8, 0xD9})


def image_content_type(extension: str) -> str:
    """Return the content type for an image extension or raise ``ValidationError``."""
    key = extension.lstrip(".").lower()
    content_type = IMAGE_CONTENT_TYPES.get(key)
    if content_type is None:
        raise ValidationError(f"Unsupported image format: {extension or '(none)'}")
    return content_type


def decode_dimensions(data: bytes) -> Tuple[int, int]:
    """Read ``(width_px, height_px)`` from PNG, GIF, JPEG or BMP headers."""
    if data.startswith(_PNG_SIGNATURE):
        if len(data) < 24:
            raise ImageDecodeError("Truncated PNG header")
        return struct.unpack(">II", data[16:24])
    if data[:6] in (b"GIF87a", b"GIF89a"):
        if len(data) < 10:
            raise ImageDecodeError("Truncated GIF header")
        return struct.unpack("<HH", data[6:10])
    if data.startswith(b"BM"):
        if len(data) < 26:
            raise ImageDecodeError("Truncated BMP header")
        width, height = struct.unpack("<ii", data[18:26])
        return abs(width), abs(height)
    if data.startswith(b"\xff\xd8"):
        return _jpeg_dimensions(data)
    raise ImageDecodeError("Unrecognized image format")


def _jpeg_dimensions(data: bytes) -> Tuple[int, int]:
    offset = 2
    while offset + 4 <= len(data):
        if data[offset] != 0xFF:
            raise ImageDecodeError(f"Corrupt JPEG marker at offset {offset}")
        marker = data[offset + 1]
        if marker == 0xFF:
            offset += 1
            continue
        if marker in _JPEG_STANDALONE_MARKERS:
            offset += 2
            continue
        (segment_length,) = struct.unpack(">H", data[offset + 2 : offset + 4])
        if marker in _JPEG_SOF_MARKERS:
            if offset + 9 > len(data):
                break
            height, width = struct.unpack(">HH", data[offset + 5 : offset + 9])
            return width, height
        offset += 2 + segment_length
    raise ImageDecodeError("JPEG stream has no frame header")


def scale_emu(value: int, numerator: int, denominator: int) -> int:
    """``value * numerator / denominator`` rounded half up in integer arithmetic."""
    if denominator <= 0:
        raise ValidationError("Cannot scale by a non-positive denominator")
    return (value * numerator + denominator // 2) // denominator


def pixels_to_emu(pixels: int, dpi: int = DEFAULT_IMAGE_DPI) -> int:
    return scale_emu(pixels, EMU_PER_INCH, dpi)


def resolve_picture_size(data: bytes, width_emu: int = 0, height_emu: int = 0) -> Tuple[int, int]:
    """Fill in a zero dimension from the image's own aspect ratio.

    Both given: used as is. One given: the other keeps the source aspect
    ratio. Neither given: the decoded pixel size at 96 DPI.
    """
    if width_emu < 0 or height_emu < 0:
        raise ValidationError(f"Picture size must not be negative, got {width_emu}x{height_emu}")
    if width_emu > 0 and height_emu > 0:
        return width_emu, height_emu

    width_px, height_px = decode_dimensions(data)
    if width_px <= 0 or height_px <= 0:
        raise ImageDecodeError(f"Image reports empty dimensions {width_px}x{height_px}")
    if width_emu == 0 and height_emu == 0:
        return pixels_to_emu(width_px), pixels_to_emu(height_px)
    if width_emu > 0:
        return width_emu, scale_emu(width_emu, height_px, width_px)
    return scale_emu(height_emu, width_px, height_px), height_emu


class MediaCatalog:
    """Image parts stored under ``word/media``, deduplicated by content digest."""

    def __init__(self, package: DocxPackage) -> None:
        self._package = package

    def find_by_digest(self, data: bytes) -> Optional[str]:
        digest = hashlib.sha1(data).hexdigest()
        for name in self._package.part_names():
            if not name.startswith(f"{MEDIA_DIR}/"):
                continue
            part = self._package.part(name)
            if part is not None and hashlib.sha1(part.data).hexdigest() == digest:
                return name
        return None

    def add_image(self, data: bytes, extension: str) -> str:
        """Store ``data`` and return its part name, reusing an identical existing image."""
        extension = extension.lstrip(".").lower()
        content_type = image_content_type(extension)
        existing = self.find_by_digest(data)
        if existing is not None:
            LOGGER.debug("Reusing media part %s", existing)
            return existing

        if self._package.content_types.default_for(f"x.{extension}") is None:
            self._package.content_types.set_default(extension, content_type)
        part_name = self._next_name(extension)
        self._package.set_part(part_name, content_type, data)
        LOGGER.debug("Stored %d bytes of %s as %s", len(data), content_type, part_name)
        return part_name

    def read(self, part_name: str) -> Optional[bytes]:
        part = self._package.part(part_name)
        return part.data if part is not None else None

    def _next_name(self, extension: str) -> str:
        taken = set(self._package.part_names())
        index = 1
        while True:
            candidate = posixpath.join(MEDIA_DIR, f"image{index}.{extension}")
            if candidate not in taken:
                return candidate
            index += 1
