"""In-memory representation of paragraphs, runs and inline pictures."""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from docx_builder.errors import DetachedError, ValidationError
from docx_builder.utils.units import half_points_to_points, points_to_half_points

if TYPE_CHECKING:  # pragma: no cover
    from docx_builder.model.section_model import Section

DEFAULT_FONT = "Calibri"
DEFAULT_FONT_SIZE = 22
COLOR_AUTO = "auto"
HIGHLIGHT_AUTO = "auto"
UNDERLINE_NONE = "none"
UNDERLINE_SINGLE = "single"

PARAGRAPH_BORDER_SIDES = ("top", "left", "bottom", "right", "between", "bar")


class ParagraphAlignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "both"
    DISTRIBUTE = "distribute"


class TabAlignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    DECIMAL = "decimal"
    BAR = "bar"
    CLEAR = "clear"


class TabLeader(str, Enum):
    NONE = "none"
    DOT = "dot"
    HYPHEN = "hyphen"
    UNDERSCORE = "underscore"
    HEAVY = "heavy"
    MIDDLE_DOT = "middleDot"


class BreakType(str, Enum):
    PAGE = "page"
    COLUMN = "column"
    LINE = "textWrapping"


class Attachable:
    """Mixin for nodes holding a non-owning reference to the part that contains them."""

    __slots__ = ()

    @property
    def owner(self) -> Any:
        ref = self._owner
        return ref() if ref is not None else None

    def _bind(self, owner: Any) -> None:
        self._owner = weakref.ref(owner) if owner is not None else None

    def _require_owner(self) -> Any:
        owner = self.owner
        if owner is None:
            raise DetachedError(f"{type(self).__name__} is not attached to a document part")
        return owner


@dataclass(slots=True)
class Border:
    """One side of a paragraph, table or cell border."""

    style: str = "single"
    size: int = 4
    space: int = 0
    color: str = COLOR_AUTO


@dataclass(slots=True)
class Shading:
    pattern: str = "clear"
    color: str = COLOR_AUTO
    fill: str = COLOR_AUTO


@dataclass(slots=True)
class TabStop:
    position: int
    alignment: TabAlignment = TabAlignment.LEFT
    leader: TabLeader = TabLeader.NONE


@dataclass(slots=True)
class Spacing:
    """Paragraph spacing in twips; ``None`` means the attribute is not declared."""

    before: Optional[int] = None
    after: Optional[int] = None
    line: Optional[int] = None
    line_rule: Optional[str] = None

    def is_set(self) -> bool:
        return any(value is not None for value in (self.before, self.after, self.line, self.line_rule))


@dataclass(slots=True)
class Indentation:
    """Paragraph indentation in twips; ``None`` means the attribute is not declared."""

    left: Optional[int] = None
    right: Optional[int] = None
    first_line: Optional[int] = None
    hanging: Optional[int] = None

    def is_set(self) -> bool:
        return any(value is not None for value in (self.left, self.right, self.first_line, self.hanging))


@dataclass(slots=True)
class NumberingReference:
    """Points a paragraph at a ``w:num`` instance and list level."""

    num_id: int
    level: int = 0


@dataclass(slots=True)
class Picture(Attachable):
    """An inline image drawn inside a run."""

    r_id: str
    target: str
    part_name: str
    width_emu: int
    height_emu: int
    drawing_id: int = 1
    name: str = ""
    description: str = ""
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    def image_data(self) -> bytes:
        """Return the media bytes referenced by this picture."""
        return self._require_owner().read_image(self)


@dataclass(slots=True)
class Run(Attachable):
    """A contiguous span of text sharing one formatting set."""

    text: str = ""
    style: Optional[str] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    strike: Optional[bool] = None
    double_strike: Optional[bool] = None
    small_caps: Optional[bool] = None
    all_caps: Optional[bool] = None
    shadow: Optional[bool] = None
    outline: Optional[bool] = None
    emboss: Optional[bool] = None
    imprint: Optional[bool] = None
    underline: str = UNDERLINE_NONE
    size: int = DEFAULT_FONT_SIZE
    color: str = COLOR_AUTO
    font: str = DEFAULT_FONT
    highlight: str = HIGHLIGHT_AUTO
    char_spacing: Optional[int] = None
    kerning: Optional[int] = None
    baseline_shift: Optional[int] = None
    break_type: Optional[BreakType] = None
    picture: Optional[Picture] = None
    _hyperlink_url: Optional[str] = None
    _hyperlink_anchor: Optional[str] = None
    hyperlink_rel_id: Optional[str] = field(default=None, compare=False)
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    @property
    def hyperlink_url(self) -> Optional[str]:
        return self._hyperlink_url

    @hyperlink_url.setter
    def hyperlink_url(self, url: Optional[str]) -> None:
        self._hyperlink_url = url or None
        self._hyperlink_anchor = None
        self.hyperlink_rel_id = None

    @property
    def hyperlink_anchor(self) -> Optional[str]:
        return self._hyperlink_anchor

    @hyperlink_anchor.setter
    def hyperlink_anchor(self, anchor: Optional[str]) -> None:
        self._hyperlink_anchor = anchor or None
        self._hyperlink_url = None
        self.hyperlink_rel_id = None

    def clear_hyperlink(self) -> None:
        self._hyperlink_url = None
        self._hyperlink_anchor = None
        self.hyperlink_rel_id = None

    @property
    def size_pt(self) -> float:
        return half_points_to_points(self.size)

    @size_pt.setter
    def size_pt(self, points: float) -> None:
        if points <= 0:
            raise ValidationError(f"Font size must be positive, got {points}")
        self.size = points_to_half_points(points)

    def add_break(self, break_type: BreakType = BreakType.LINE) -> None:
        self.break_type = break_type

    def add_picture(self, path: Path | str, width_emu: int = 0, height_emu: int = 0) -> Picture:
        """Embed an image from disk; a zero dimension is derived from the image itself."""
        owner = self._require_owner()
        self.picture = owner.create_picture(Path(path), width_emu, height_emu)
        return self.picture

    def has_formatting(self) -> bool:
        return (
            any(
                toggle is not None
                for toggle in (
                    self.bold,
                    self.italic,
                    self.strike,
                    self.double_strike,
                    self.small_caps,
                    self.all_caps,
                    self.shadow,
                    self.outline,
                    self.emboss,
                    self.imprint,
                )
            )
            or self.style is not None
            or self.underline != UNDERLINE_NONE
            or self.size != DEFAULT_FONT_SIZE
            or self.color != COLOR_AUTO
            or self.font != DEFAULT_FONT
            or self.highlight != HIGHLIGHT_AUTO
            or self.char_spacing is not None
            or self.kerning is not None
            or self.baseline_shift is not None
        )

    def _bind(self, owner: Any) -> None:
        Attachable._bind(self, owner)
        if self.picture is not None:
            self.picture._bind(owner)


@dataclass(slots=True)
class Paragraph(Attachable):
    """Block element holding runs plus paragraph-level formatting."""

    runs: List[Run] = field(default_factory=list)
    style: Optional[str] = None
    alignment: ParagraphAlignment = ParagraphAlignment.LEFT
    numbering: Optional[NumberingReference] = None
    spacing: Spacing = field(default_factory=Spacing)
    indentation: Indentation = field(default_factory=Indentation)
    tab_stops: List[TabStop] = field(default_factory=list)
    borders: Dict[str, Border] = field(default_factory=dict)
    shading: Optional[Shading] = None
    keep_with_next: Optional[bool] = None
    keep_lines: Optional[bool] = None
    page_break_before: Optional[bool] = None
    widow_control: Optional[bool] = None
    section: Optional["Section"] = None
    _owner: Optional[weakref.ref] = field(default=None, repr=False, compare=False)

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)

    def add_run(self, text: str = "") -> Run:
        run = Run(text=text)
        run._bind(self.owner)
        self.runs.append(run)
        return run

    def add_hyperlink(self, text: str, url: str) -> Run:
        """Append a run linking to an external URL."""
        run = self.add_run(text)
        run.hyperlink_url = url
        return run

    def add_internal_link(self, text: str, anchor: str) -> Run:
        """Append a run linking to a bookmark inside the document."""
        run = self.add_run(text)
        run.hyperlink_anchor = anchor
        return run

    def add_picture(self, path: Path | str, width_emu: int = 0, height_emu: int = 0) -> Run:
        """Append a run holding an inline picture; the paragraph is unchanged on failure."""
        run = Run()
        run._bind(self._require_owner())
        run.add_picture(path, width_emu, height_emu)
        self.runs.append(run)
        return run

    def clear_runs(self) -> None:
        self.runs.clear()

    def set_numbering(self, num_id: int, level: int = 0) -> None:
        if level < 0 or level > 8:
            raise ValidationError(f"List level must be between 0 and 8, got {level}")
        self.numbering = NumberingReference(num_id=num_id, level=level)

    def clear_numbering(self) -> None:
        self.numbering = None

    def add_tab_stop(
        self, position: int, alignment: TabAlignment = TabAlignment.LEFT, leader: TabLeader = TabLeader.NONE
    ) -> TabStop:
        tab = TabStop(position=position, alignment=alignment, leader=leader)
        self.tab_stops.append(tab)
        return tab

    def clear_tab_stops(self) -> None:
        self.tab_stops.clear()

    def set_border(self, side: str, border: Border) -> None:
        if side not in PARAGRAPH_BORDER_SIDES:
            raise ValidationError(f"Unknown paragraph border side: {side}")
        self.borders[side] = border

    def clear_borders(self) -> None:
        self.borders.clear()

    def _bind(self, owner: Any) -> None:
        Attachable._bind(self, owner)
        for run in self.runs:
            run._bind(owner)
        if self.section is not None:
            self.section._bind(owner)
