"""Schema registry: the table graph derived from the catalog.

Every foreign key ``table.column -> referenced.key`` becomes a directed edge
``table -> referenced`` weighted by the key's cost. The registry is built once
and only read afterwards; :func:`get_datamodel` hands out a shared instance
built from the configured catalog.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .catalog import load_descriptors
from .errors import MalformedDescriptorError, UnknownTableError
from .graph import Graph, impassable_when_missing
from .models import ForeignKey, TableDescriptor

logger = logging.getLogger(__name__)

TableHandle = Union[str, TableDescriptor]


def build_graph(descriptors: Sequence[TableDescriptor]) -> Tuple[Graph, Dict[str, List[str]]]:
    """Validate *descriptors* and derive the table graph from them.

    Returns the graph and, for every table, the tables holding a foreign key
    that points at it (in catalog order). When a table has several foreign
    keys into the same table, the first declared one labels the edge.

    Raises:
        MalformedDescriptorError: duplicate table names or numbers, or a
            foreign key into a table that is not in *descriptors*.
    """
    names: Dict[str, TableDescriptor] = {}
    numbers: Dict[int, str] = {}
    for descriptor in descriptors:
        if descriptor.name in names:
            raise MalformedDescriptorError(f"Table '{descriptor.name}' is declared twice")
        names[descriptor.name] = descriptor
        if descriptor.number is not None:
            if descriptor.number in numbers:
                raise MalformedDescriptorError(
                    f"Tables '{numbers[descriptor.number]}' and '{descriptor.name}' "
                    f"share the number {descriptor.number}"
                )
            numbers[descriptor.number] = descriptor.name

    graph = Graph()
    graph.add_nodes(names)
    referencing: Dict[str, List[str]] = {name: [] for name in names}

    for descriptor in descriptors:
        for fk in descriptor.foreign_keys:
            if fk.table not in names:
                raise MalformedDescriptorError(
                    f"Foreign key {descriptor.name}.{fk.column} references unknown table '{fk.table}'"
                )
            if not graph.has_edge(descriptor.name, fk.table):
                graph.add_edge(
                    descriptor.name,
                    fk.table,
                    fk.cost,
                    column=fk.column,
                    key=fk.referenced_key,
                )
            if descriptor.name not in referencing[fk.table]:
                referencing[fk.table].append(descriptor.name)

    logger.debug("Built schema graph with %d tables", graph.num_nodes())
    return graph, referencing


class Datamodel:
    """Read-only lookups over a set of table descriptors."""

    _instance: Optional["Datamodel"] = None
    _lock = threading.Lock()

    def __init__(self, descriptors: Sequence[TableDescriptor]) -> None:
        self._graph, self._referencing = build_graph(descriptors)
        self._tables: Dict[str, TableDescriptor] = {d.name: d for d in descriptors}
        self._numbers: Dict[int, TableDescriptor] = {
            d.number: d for d in descriptors if d.number is not None
        }

    @classmethod
    def from_catalog(cls, path: Optional[Union[str, Path]] = None) -> "Datamodel":
        return cls(load_descriptors(path))

    @classmethod
    def get_instance(cls) -> "Datamodel":
        """Shared registry built from the configured catalog on first use."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls.from_catalog()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def get_table_names(self) -> List[str]:
        return list(self._tables)

    def table_exists(self, handle: TableHandle) -> bool:
        return table_name(handle) in self._tables

    def get_table_by_name(self, name: str) -> Optional[TableDescriptor]:
        return self._tables.get(name)

    def get_table_by_number(self, number: int) -> Optional[TableDescriptor]:
        return self._numbers.get(number)

    def get_table(self, handle: TableHandle) -> TableDescriptor:
        """Strict lookup; raises :class:`UnknownTableError` for unknown tables."""
        descriptor = self._tables.get(table_name(handle))
        if descriptor is None:
            raise UnknownTableError(table_name(handle))
        return descriptor

    def get_primary_key(self, handle: TableHandle) -> List[str]:
        descriptor = self._tables.get(table_name(handle))
        return list(descriptor.primary_key) if descriptor else []

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def get_neighboring_tables(self, handle: TableHandle) -> List[str]:
        """Tables referenced by the foreign keys of *handle*."""
        return self._graph.get_neighboring_nodes(table_name(handle))

    def get_referencing_tables(self, handle: TableHandle) -> List[str]:
        """Tables holding a foreign key that points at *handle*."""
        return list(self._referencing.get(table_name(handle), []))

    def get_relationship(self, handle: TableHandle, neighbor: TableHandle) -> Optional[ForeignKey]:
        """The foreign key of *handle* that references *neighbor*, if any."""
        descriptor = self._tables.get(table_name(handle))
        if descriptor is None:
            return None
        target = table_name(neighbor)
        for fk in descriptor.foreign_keys:
            if fk.table == target:
                return fk
        return None

    def get_path(self, source: TableHandle, target: TableHandle) -> List[str]:
        """Cheapest chain of foreign keys leading from *source* to *target*."""
        return self._graph.get_path(table_name(source), table_name(target), impassable_when_missing)

    def get_graph(self) -> Graph:
        return self._graph


def table_name(handle: TableHandle) -> str:
    """Name of a table given by name or by descriptor."""
    return handle.name if isinstance(handle, TableDescriptor) else handle


def get_datamodel() -> Datamodel:
    return Datamodel.get_instance()


def reset_datamodel() -> None:
    """Forget the shared registry so the next access rebuilds it."""
    Datamodel.reset_instance()
