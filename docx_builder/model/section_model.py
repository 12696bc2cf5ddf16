"""Section properties: page setup plus header/footer references."""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from docx_builder.errors import ValidationError
from docx_builder.model.elements import Attachable

DEFAULT_PAGE_WIDTH = 11906
DEFAULT_PAGE_HEIGHT = 16838
DEFAULT_MARGIN = 1440


class SectionStart(str, Enum):
    CONTINUOUS = "continuous"
    NEW_COLUMN = "nextColumn"
    NEW_PAGE = "nextPage"
    EVEN_PAGE = "evenPage"
    ODD_PAGE = "oddPage"


class HeaderFooterType(str, Enum):
    DEFAULT = "default"
    FIRST = "first"
    EVEN = "even"


@dataclass(slots=True)
class HeaderFooterReference:
    """Relationship id plus the resolved part name of a header or footer."""

    r_id: str
    part_name: str


@dataclass(slots=True)
class Section(Attachable):
    """Page layout for the content that precedes this section marker."""

    start_type: Optional[SectionStart] = None
    page_width: int = DEFAULT_PAGE_WIDTH
    page_height: int = DEFAULT_PAGE_HEIGHT
    orientation: Optional[str] = None
    margin_top: int = DEFAULT_MARGIN
    margin_right: int = DEFAULT_MARGIN
    margin_bottom: int = DEFAULT_MARGIN
    margin_left: int = DEFAULT_MARGIN
    margin_header: Optional[int] = None
    margin_footer: Optional[int] = None
    margin_gutter: Optional[int] = None
    title_page: Optional[bool] = None
    headers: Dict[HeaderFooterType, HeaderFooterReference] = field(default_factory=dict)
    footers: Dict[HeaderFooterType, HeaderFooterReference] = field(default_factory=dict)
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    def set_page_size(self, width: int, height: int, orientation: Optional[str] = None) -> None:
        if width <= 0 or height <= 0:
            raise ValidationError(f"Page size must be positive, got {width}x{height}")
        self.page_width = width
        self.page_height = height
        self.orientation = orientation

    def set_margins(self, top: int, right: int, bottom: int, left: int) -> None:
        self.margin_top = top
        self.margin_right = right
        self.margin_bottom = bottom
        self.margin_left = left

    def header(self, kind: HeaderFooterType = HeaderFooterType.DEFAULT) -> Any:
        """Return the header part for ``kind``, creating it on first use."""
        return self._require_owner().header_for(self, HeaderFooterType(kind))

    def footer(self, kind: HeaderFooterType = HeaderFooterType.DEFAULT) -> Any:
        """Return the footer part for ``kind``, creating it on first use."""
        return self._require_owner().footer_for(self, HeaderFooterType(kind))

    def copy_page_setup(self, start_type: Optional[SectionStart] = None) -> "Section":
        """New detached section with the same page geometry and no header/footer links."""
        return Section(
            start_type=start_type,
            page_width=self.page_width,
            page_height=self.page_height,
            orientation=self.orientation,
            margin_top=self.margin_top,
            margin_right=self.margin_right,
            margin_bottom=self.margin_bottom,
            margin_left=self.margin_left,
            margin_header=self.margin_header,
            margin_footer=self.margin_footer,
            margin_gutter=self.margin_gutter,
        )
