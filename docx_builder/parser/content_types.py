"""Content-type registry backing ``[Content_Types].xml``."""
from __future__ import annotations

import posixpath
from typing import Dict, Iterable, Optional

from docx_builder.utils.logger import get_logger
from docx_builder.utils.xml_utils import CONTENT_TYPES_NS, Namespaces, parse_xml, xml_attr

LOGGER = get_logger(__name__)

CONTENT_TYPES_PATH = "[Content_Types].xml"

CT_RELATIONSHIPS = "application/vnd.openxmlformats-package.relationships+xml"
CT_XML = "application/xml"
CT_DOCUMENT_MAIN = "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"
CT_STYLES = "application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml"
CT_SETTINGS = "application/vnd.openxmlformats-officedocument.wordprocessingml.settings+xml"
CT_NUMBERING = "application/vnd.openxmlformats-officedocument.wordprocessingml.numbering+xml"
CT_HEADER = "application/vnd.openxmlformats-officedocument.wordprocessingml.header+xml"
CT_FOOTER = "application/vnd.openxmlformats-officedocument.wordprocessingml.footer+xml"
CT_COMMENTS = "application/vnd.openxmlformats-officedocument.wordprocessingml.comments+xml"
CT_CORE_PROPERTIES = "application/vnd.openxmlformats-package.core-properties+xml"


def _override_key(part_name: str) -> str:
    return "/" + part_name.lstrip("/")


def _extension(part_name: str) -> str:
    return posixpath.splitext(part_name)[1].lstrip(".").lower()


class ContentTypes:
    """Extension defaults plus per-part overrides."""

    def __init__(
        self,
        defaults: Optional[Dict[str, str]] = None,
        overrides: Optional[Dict[str, str]] = None,
    ) -> None:
        self.defaults: Dict[str, str] = dict(defaults or {})
        self.overrides: Dict[str, str] = dict(overrides or {})

    @classmethod
    def from_xml(cls, data: bytes) -> "ContentTypes":
        root = parse_xml(data, CONTENT_TYPES_PATH).getroot()
        registry = cls()
        for default_el in root.findall("ct:Default", Namespaces.CONTENT_TYPES):
            extension = default_el.attrib.get("Extension", "")
            if extension:
                registry.defaults[extension.lower()] = default_el.attrib.get("ContentType", "")
        for override_el in root.findall("ct:Override", Namespaces.CONTENT_TYPES):
            part_name = override_el.attrib.get("PartName", "")
            if part_name:
                registry.overrides[_override_key(part_name)] = override_el.attrib.get("ContentType", "")
        LOGGER.debug(
            "Parsed %d default and %d override content types", len(registry.defaults), len(registry.overrides)
        )
        return registry

    def content_type_of(self, part_name: str) -> str:
        """Override lookup, then the extension default, then empty."""
        override = self.overrides.get(_override_key(part_name))
        if override is not None:
            return override
        return self.defaults.get(_extension(part_name), "")

    def default_for(self, part_name: str) -> Optional[str]:
        return self.defaults.get(_extension(part_name))

    def set_default(self, extension: str, content_type: str) -> None:
        self.defaults[extension.lstrip(".").lower()] = content_type

    def set_override(self, part_name: str, content_type: str) -> None:
        self.overrides[_override_key(part_name)] = content_type

    def remove_override(self, part_name: str) -> None:
        self.overrides.pop(_override_key(part_name), None)

    def to_xml(self, existing_parts: Iterable[str]) -> bytes:
        """Serialize with sorted entries; overrides without a part are dropped."""
        present = {_override_key(name) for name in existing_parts}
        if not self.defaults:
            self.defaults = {"rels": CT_RELATIONSHIPS, "xml": CT_XML}

        lines = ['<?xml version="1.0" encoding="UTF-8" standalone="yes"?>']
        lines.append(f"<Types xmlns={xml_attr(CONTENT_TYPES_NS)}>")
        for extension in sorted(self.defaults):
            lines.append(
                f"  <Default Extension={xml_attr(extension)} ContentType={xml_attr(self.defaults[extension])}/>"
            )
        for part_name in sorted(self.overrides):
            if part_name not in present:
                LOGGER.warning("Dropping content type override for missing part %s", part_name)
                continue
            lines.append(
                f"  <Override PartName={xml_attr(part_name)} ContentType={xml_attr(self.overrides[part_name])}/>"
            )
        lines.append("</Types>")
        return "\n".join(lines).encode("utf-8")
