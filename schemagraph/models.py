"""Core data models shared by the registry, scanners, and duplicators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .graph import DEFAULT_EDGE_WEIGHT


@dataclass(frozen=True)
class ForeignKey:
    column: str
    table: str
    key: str = ""
    cost: float = DEFAULT_EDGE_WEIGHT

    @property
    def referenced_key(self) -> str:
        return self.key or self.column


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    number: Optional[int]
    primary_key: Tuple[str, ...]
    foreign_keys: Tuple[ForeignKey, ...] = ()
    json_columns: Tuple[str, ...] = ()
    ancestored_columns: Tuple[str, ...] = ()

    def referenced_tables(self) -> List[str]:
        """Tables this table points at, in declaration order, without repeats."""
        return list(dict.fromkeys(fk.table for fk in self.foreign_keys))


@dataclass
class ScanState:
    root_table: str
    root_id: Any
    duplicated_tables: List[str] = field(default_factory=list)
    ignored_tables: List[str] = field(default_factory=list)
    # table -> column holding an id whose table is named by ``table_num``
    numbered_tables: Dict[str, str] = field(default_factory=dict)


@dataclass
class ScanResult:
    root_table: str
    root_id: Any
    tables: List[str]
    ignored_tables: List[str]
    numbered_tables: Dict[str, str]
    statements: Dict[str, str]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "root_table": self.root_table,
            "root_id": self.root_id,
            "tables": list(self.tables),
            "ignored_tables": list(self.ignored_tables),
            "numbered_tables": dict(self.numbered_tables),
            "statements": dict(self.statements),
        }
