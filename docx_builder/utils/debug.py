"""Helpers to persist the parsed document model for debugging."""
from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

# Private fields that still carry document content.
_EXPOSED_PRIVATE = {"_hyperlink_url": "hyperlink_url", "_hyperlink_anchor": "hyperlink_anchor", "_grid_span": "grid_span"}


class DebugDumper:
    """Writes intermediate artifacts onto disk for inspection."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def dump(self, elements: Sequence[Any], name: str = "document_model.json") -> Path:
        """Persist body elements as JSON for offline analysis."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = [self._serialize(element) for element in elements]
        target = self.directory / name
        target.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return target

    def _serialize(self, value: Any) -> Any:
        if is_dataclass(value):
            data = {"kind": type(value).__name__}
            for item in fields(value):
                key = _EXPOSED_PRIVATE.get(item.name, item.name)
                if key.startswith("_"):
                    continue
                data[key] = self._serialize(getattr(value, item.name))
            return data
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return {self._key(k): self._serialize(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._serialize(v) for v in value]
        return value

    @staticmethod
    def _key(key: Any) -> str:
        return key.value if isinstance(key, Enum) else str(key)
