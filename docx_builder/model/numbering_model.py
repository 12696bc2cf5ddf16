"""Numbering model captures list definitions extracted from numbering.xml."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(slots=True)
class NumberingLevel:
    """Defines numbering behavior for a specific indentation level."""

    level_index: int
    start: Optional[int] = None
    num_format: Optional[str] = None
    level_text: Optional[str] = None
    alignment: Optional[str] = None


@dataclass(slots=True)
class AbstractNumberingDefinition:
    """Template describing multi-level numbering behavior."""

    abstract_num_id: int
    multi_level_type: Optional[str] = None
    name: Optional[str] = None
    levels: Dict[int, NumberingLevel] = field(default_factory=dict)


@dataclass(slots=True)
class NumberingInstance:
    """Concrete numbering instance bound to an abstract definition."""

    num_id: int
    abstract_num_id: int
    start_overrides: Dict[int, int] = field(default_factory=dict)


@dataclass(slots=True)
class NumberingCatalog:
    """Collection of abstract definitions and concrete numbering instances."""

    abstracts: Dict[int, AbstractNumberingDefinition] = field(default_factory=dict)
    instances: Dict[int, NumberingInstance] = field(default_factory=dict)

    def get_abstract(self, abstract_num_id: Optional[int]) -> Optional[AbstractNumberingDefinition]:
        if abstract_num_id is None:
            return None
        return self.abstracts.get(abstract_num_id)

    def get_instance(self, num_id: Optional[int]) -> Optional[NumberingInstance]:
        if num_id is None:
            return None
        return self.instances.get(num_id)

    def level_for(self, num_id: int, level: int) -> Optional[NumberingLevel]:
        instance = self.get_instance(num_id)
        if instance is None:
            return None
        abstract = self.get_abstract(instance.abstract_num_id)
        if abstract is None:
            return None
        return abstract.levels.get(level)

    def resolves(self, num_id: int, level: int = 0) -> bool:
        """True when ``num_id`` maps to an abstract definition that declares ``level``."""
        return self.level_for(num_id, level) is not None
