"""Exception hierarchy raised by the package, parser and document model."""
from __future__ import annotations


class DocxError(Exception):
    """Base class for every error raised by docx_builder."""


class PackageIOError(DocxError, OSError):
    """Reading or writing the zip container failed."""


class FormatError(DocxError, ValueError):
    """A part is not well-formed XML or the container layout is invalid."""


class ImageDecodeError(FormatError):
    """Pixel dimensions could not be read from an image payload."""


class UnresolvedReferenceError(DocxError, LookupError):
    """A relationship id required by an operation has no matching entry."""

    def __init__(self, owner: str, r_id: str) -> None:
        super().__init__(f"Relationship {r_id!r} not found for part {owner or '/'!r}")
        self.owner = owner
        self.r_id = r_id


class ValidationError(DocxError, ValueError):
    """Arguments to a structural operation were rejected before any change."""


class DetachedError(DocxError, RuntimeError):
    """The node is not attached to a part, so it cannot reach the container."""


class PackageClosedError(DocxError, RuntimeError):
    """The container was closed and can no longer be used."""
