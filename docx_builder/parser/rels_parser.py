"""Reading, allocating and writing Open Packaging Convention relationships."""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from docx_builder.utils.logger import get_logger
from docx_builder.utils.xml_utils import Namespaces, PKG_RELS_NS, parse_xml, xml_attr

LOGGER = get_logger(__name__)

WORD_REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

RELTYPE_OFFICE_DOCUMENT = f"{WORD_REL_NS}/officeDocument"
RELTYPE_STYLES = f"{WORD_REL_NS}/styles"
RELTYPE_SETTINGS = f"{WORD_REL_NS}/settings"
RELTYPE_NUMBERING = f"{WORD_REL_NS}/numbering"
RELTYPE_HEADER = f"{WORD_REL_NS}/header"
RELTYPE_FOOTER = f"{WORD_REL_NS}/footer"
RELTYPE_IMAGE = f"{WORD_REL_NS}/image"
RELTYPE_HYPERLINK = f"{WORD_REL_NS}/hyperlink"
RELTYPE_COMMENTS = f"{WORD_REL_NS}/comments"

MODE_INTERNAL = "Internal"
MODE_EXTERNAL = "External"

PACKAGE_REL_PATH = "_rels/.rels"

_RID_PATTERN = re.compile(r"^rId(\d+)$")


@dataclass(frozen=True)
class Relationship:
    """Represents a single OPC relationship."""

    r_id: str
    rel_type: str
    target: str
    target_mode: str = MODE_INTERNAL

    @property
    def is_external(self) -> bool:
        return self.target_mode == MODE_EXTERNAL


class Relationships:
    """Per-owner relationship lists with monotonic ``rIdN`` allocation.

    The owner of a relationship list is the part name it belongs to; the
    package-level list (``_rels/.rels``) uses the empty string.
    """

    def __init__(self) -> None:
        self._by_source: Dict[str, List[Relationship]] = {}
        self._high_water: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Loading
    def parse_part(self, rels_part_name: str, payload: bytes) -> str:
        """Register every relationship declared in a ``.rels`` part; return the owner."""
        owner = owner_from_rels_part(rels_part_name)
        root = parse_xml(payload, rels_part_name).getroot()
        relationships = self._by_source.setdefault(owner, [])
        for rel_el in root.findall("rel:Relationship", Namespaces.RELS):
            r_id = rel_el.attrib.get("Id", "")
            if not r_id:
                LOGGER.debug("Ignoring relationship without Id in %s", rels_part_name)
                continue
            if any(rel.r_id == r_id for rel in relationships):
                LOGGER.warning("Duplicate relationship id %s in %s; keeping the first", r_id, rels_part_name)
                continue
            mode = MODE_EXTERNAL if rel_el.attrib.get("TargetMode") == MODE_EXTERNAL else MODE_INTERNAL
            relationships.append(
                Relationship(
                    r_id=r_id,
                    rel_type=rel_el.attrib.get("Type", ""),
                    target=rel_el.attrib.get("Target", ""),
                    target_mode=mode,
                )
            )
            self._bump(owner, r_id)
        return owner

    # ------------------------------------------------------------------
    # Queries
    def find(self, owner: str, r_id: str) -> Optional[Relationship]:
        """Return a relationship by owner and id if present."""
        for rel in self._by_source.get(owner, []):
            if rel.r_id == r_id:
                return rel
        return None

    def resolve(self, owner: str, r_id: str) -> Optional[Tuple[str, str]]:
        """Return ``(target, mode)`` or ``None`` when the id is unknown."""
        rel = self.find(owner, r_id)
        if rel is None:
            return None
        return rel.target, rel.target_mode

    def resolve_part(self, owner: str, r_id: str) -> Optional[str]:
        """Resolve an internal relationship straight to a part name."""
        rel = self.find(owner, r_id)
        if rel is None or rel.is_external:
            return None
        return resolve_part_name(owner, rel.target)

    def for_source(self, owner: str) -> List[Relationship]:
        """Return all relationships for a given source part, in file order."""
        return list(self._by_source.get(owner, []))

    def owners(self) -> List[str]:
        return [owner for owner, rels in self._by_source.items() if rels]

    def iter_all(self) -> Iterable[Tuple[str, Relationship]]:
        """Iterate over ``(owner, relationship)`` pairs."""
        for owner, rels in self._by_source.items():
            for rel in rels:
                yield owner, rel

    # ------------------------------------------------------------------
    # Mutation
    def ensure(self, owner: str, rel_type: str, target: str, mode: str = MODE_INTERNAL) -> str:
        """Return the id of a matching relationship, creating one when needed."""
        relationships = self._by_source.setdefault(owner, [])
        for rel in relationships:
            if rel.rel_type == rel_type and rel.target == target and rel.target_mode == mode:
                return rel.r_id
        r_id = self._allocate(owner)
        relationships.append(Relationship(r_id=r_id, rel_type=rel_type, target=target, target_mode=mode))
        LOGGER.debug("Allocated %s on %s -> %s", r_id, owner or "/", target)
        return r_id

    def remove(self, owner: str, r_id: str) -> bool:
        relationships = self._by_source.get(owner, [])
        for index, rel in enumerate(relationships):
            if rel.r_id == r_id:
                del relationships[index]
                return True
        return False

    def _allocate(self, owner: str) -> str:
        next_number = self._high_water.get(owner, 0) + 1
        r_id = f"rId{next_number}"
        self._high_water[owner] = next_number
        return r_id

    def _bump(self, owner: str, r_id: str) -> None:
        match = _RID_PATTERN.match(r_id)
        if match is None:
            return
        number = int(match.group(1))
        if number > self._high_water.get(owner, 0):
            self._high_water[owner] = number

    # ------------------------------------------------------------------
    # Writing
    def to_xml(self, owner: str) -> bytes:
        lines = ['<?xml version="1.0" encoding="UTF-8" standalone="yes"?>']
        lines.append(f"<Relationships xmlns={xml_attr(PKG_RELS_NS)}>")
        for rel in self._by_source.get(owner, []):
            mode = ' TargetMode="External"' if rel.is_external else ""
            lines.append(
                f"  <Relationship Id={xml_attr(rel.r_id)} Type={xml_attr(rel.rel_type)} "
                f"Target={xml_attr(rel.target)}{mode}/>"
            )
        lines.append("</Relationships>")
        return "\n".join(lines).encode("utf-8")


def rels_part_name(owner: str) -> str:
    """``word/document.xml`` -> ``word/_rels/document.xml.rels``."""
    if not owner:
        return PACKAGE_REL_PATH
    folder, base = posixpath.split(owner)
    return posixpath.join(folder, "_rels", f"{base}.rels")


def owner_from_rels_part(rel_part: str) -> str:
    """Inverse of :func:`rels_part_name`."""
    if rel_part == PACKAGE_REL_PATH:
        return ""
    if "/_rels/" in rel_part:
        folder, suffix = rel_part.rsplit("/_rels/", 1)
        return f"{folder}/{suffix[:-5]}"
    if rel_part.startswith("_rels/"):
        return rel_part[len("_rels/") : -5]
    return rel_part[:-5]


def resolve_part_name(owner: str, target: str) -> str:
    """Resolve a relationship target against the owner part's directory."""
    if target.startswith("/"):
        return posixpath.normpath(target).lstrip("/")
    base_dir = posixpath.dirname(owner)
    resolved = posixpath.normpath(posixpath.join(base_dir, target))
    return resolved.lstrip("/")


def relative_target(owner: str, part_name: str) -> str:
    """Express ``part_name`` as a target relative to the owner's directory."""
    base_dir = posixpath.dirname(owner)
    if not base_dir:
        return part_name
    return posixpath.relpath(part_name, base_dir)
