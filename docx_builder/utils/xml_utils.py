"""Helper functions to work with XML namespaces, parsing and escaping."""
from __future__ import annotations

import io
import re
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape, quoteattr

import defusedxml
import defusedxml.ElementTree as SafeET

from docx_builder.errors import FormatError

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
WP_NS = "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing"
A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
PIC_NS = "http://schemas.openxmlformats.org/drawingml/2006/picture"
PKG_RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CONTENT_TYPES_NS = "http://schemas.openxmlformats.org/package/2006/content-types"

_FALSE_VALUES = frozenset({"0", "false", "off"})
# characters XML 1.0 does not allow anywhere in a document
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


@dataclass(frozen=True)
class Namespaces:
    """Common OpenXML namespace prefixes used across parsers."""

    WORD: Dict[str, str] = None  # type: ignore[assignment]
    RELS: Dict[str, str] = None  # type: ignore[assignment]
    DRAWING: Dict[str, str] = None  # type: ignore[assignment]
    CONTENT_TYPES: Dict[str, str] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:  # pragma: no cover
        raise RuntimeError("Namespaces should not be instantiated")


Namespaces.WORD = {"w": W_NS}  # type: ignore[attr-defined]
Namespaces.RELS = {"rel": PKG_RELS_NS}  # type: ignore[attr-defined]
Namespaces.DRAWING = {  # type: ignore[attr-defined]
    "a": A_NS,
    "wp": WP_NS,
    "pic": PIC_NS,
}
Namespaces.CONTENT_TYPES = {"ct": CONTENT_TYPES_NS}  # type: ignore[attr-defined]


def parse_xml(data: bytes, part_name: str = "") -> ET.ElementTree:
    """Parse XML from raw bytes, rejecting entity expansion and external DTDs."""
    try:
        return ET.ElementTree(SafeET.fromstring(data))
    except (SafeET.ParseError, defusedxml.DefusedXmlException) as exc:
        raise FormatError(f"Malformed XML in {part_name or 'part'}: {exc}") from exc


def local_name(tag: str) -> str:
    return tag.split("}", 1)[-1]


def namespace_of(tag: str) -> str:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def get_attr(element: ET.Element, name: str) -> Optional[str]:
    """Look up an attribute by local name, whatever namespace it was written in."""
    value = element.attrib.get(f"{{{W_NS}}}{name}")
    if value is not None:
        return value
    for key, candidate in element.attrib.items():
        if local_name(key) == name:
            return candidate
    return None


def get_int_attr(element: ET.Element, name: str) -> Optional[int]:
    raw = get_attr(element, name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        try:
            return int(float(raw))
        except ValueError:
            return None


def get_on_off(element: ET.Element, name: str = "val") -> bool:
    """Evaluate an ST_OnOff toggle: absent value means on, only 0/false/off mean off."""
    raw = get_attr(element, name)
    if raw is None or raw == "":
        return True
    return raw.strip().lower() not in _FALSE_VALUES


def strip_invalid_chars(value: str) -> str:
    return _INVALID_XML_CHARS.sub("", value)


def xml_text(value: str) -> str:
    """Escape character data, dropping characters XML cannot carry."""
    return escape(strip_invalid_chars(value))


def xml_attr(value: object) -> str:
    """Quote an attribute value, including the surrounding quotes."""
    return quoteattr(strip_invalid_chars(str(value)))


class TokenStream:
    """Start/end element events over one XML part, consumed strictly in order.

    Every consumer must read an element through to its matching end event
    before returning, either by walking ``children`` or by calling ``skip``.
    """

    def __init__(self, data: bytes, part_name: str = "") -> None:
        self.part_name = part_name
        self._events = SafeET.iterparse(io.BytesIO(data), events=("start", "end"))

    def next(self) -> Tuple[str, ET.Element]:
        try:
            return next(self._events)
        except StopIteration:
            raise FormatError(f"Unexpected end of XML in {self.part_name or 'part'}") from None
        except (SafeET.ParseError, defusedxml.DefusedXmlException) as exc:
            raise FormatError(f"Malformed XML in {self.part_name or 'part'}: {exc}") from exc

    def root(self) -> ET.Element:
        event, element = self.next()
        if event != "start":
            raise FormatError(f"No root element in {self.part_name or 'part'}")
        return element

    def children(self, parent: ET.Element) -> Iterator[ET.Element]:
        """Yield each direct child of ``parent`` at its start event."""
        while True:
            event, element = self.next()
            if event == "start":
                yield element
                continue
            if element is parent:
                return
            raise FormatError(f"Unbalanced </{local_name(element.tag)}> in {self.part_name or 'part'}")

    def skip(self, element: ET.Element) -> None:
        """Consume the rest of ``element`` whatever it contains."""
        depth = 1
        while depth:
            event, _ = self.next()
            depth += 1 if event == "start" else -1

    def read_text(self, element: ET.Element) -> str:
        self.skip(element)
        return element.text or ""

    def descendants(self, element: ET.Element) -> Iterator[ET.Element]:
        """Yield every nested element at its start event, consuming ``element`` fully."""
        depth = 1
        while depth:
            event, nested = self.next()
            if event == "start":
                depth += 1
                yield nested
            else:
                depth -= 1
