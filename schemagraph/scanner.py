"""Dependency scanning of a root row across the schema graph.

A scan starts from one row of a root table (``projects`` 12, say) and works
out every table whose rows hang off that row, in an order where each table
comes after the tables it references. Duplication runs in that order so the
ids a row points at have already been cloned when the row itself is copied.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set

from .datamodel import Datamodel, TableHandle, get_datamodel, table_name
from .errors import NoPathError, ScanPolicyError
from .models import ScanResult, ScanState, TableDescriptor
from .storage import SqlStore

logger = logging.getLogger(__name__)


class BaseModelScanner:
    """Plan the tables and row queries reachable from one root row.

    Every table met while walking the graph has to be listed either as
    duplicated or as ignored; ignored tables are neither entered nor
    returned.
    """

    def __init__(
        self,
        table: TableHandle,
        entity_id: Any,
        datamodel: Optional[Datamodel] = None,
        store: Optional[SqlStore] = None,
    ) -> None:
        self.datamodel = datamodel or get_datamodel()
        self.main_table: TableDescriptor = self.datamodel.get_table(table)
        self.main_table_primary_key: str = self.main_table.primary_key[0]
        self.state = ScanState(root_table=self.main_table.name, root_id=entity_id)
        self._store = store

    @property
    def main_table_name(self) -> str:
        return self.main_table.name

    @property
    def main_id(self) -> Any:
        return self.state.root_id

    @property
    def store(self) -> SqlStore:
        if self._store is None:
            self._store = SqlStore.open_default()
        return self._store

    def set_store(self, store: SqlStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def set_duplicated_tables(self, tables: Iterable[TableHandle]) -> None:
        self.state.duplicated_tables = [table_name(t) for t in tables]

    def set_ignored_tables(self, tables: Iterable[TableHandle]) -> None:
        self.state.ignored_tables = [table_name(t) for t in tables]

    def set_numbered_tables(self, tables: Dict[str, str]) -> None:
        """Tables whose ``column`` holds an id of the table named by ``table_num``."""
        self.state.numbered_tables = dict(tables)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def get_topological_dependent_tables(self) -> List[str]:
        """Tables to copy for the root row, each after the tables it references.

        Raises:
            ScanPolicyError: a table is both duplicated and ignored, or the
                walk reaches a table that is neither.
        """
        duplicated = set(self.state.duplicated_tables)
        ignored = set(self.state.ignored_tables)
        common = duplicated & ignored
        if common:
            raise ScanPolicyError(
                "Tables listed as both duplicated and ignored: " + ", ".join(sorted(common))
            )

        dependent: List[str] = []
        visited: Set[str] = set(ignored)

        def visit(table: str) -> None:
            if table in visited:
                return
            visited.add(table)
            for neighbor in self.datamodel.get_neighboring_tables(table):
                if neighbor not in visited:
                    visit(neighbor)
            if table not in duplicated:
                raise ScanPolicyError(f"The table {table} is not allowlisted")
            dependent.append(table)

        queue = deque([self.main_table_name])
        while queue:
            table = queue.popleft()
            if table in ignored:
                continue
            visit(table)
            for referencing in self.datamodel.get_referencing_tables(table):
                if referencing not in visited:
                    queue.append(referencing)

        # Numbered tables point at rows of any table, so they go last.
        numbered = self.state.numbered_tables
        ordered = [t for t in dependent if t not in numbered]
        ordered.extend(t for t in dependent if t in numbered)
        logger.debug("Dependent tables of %s: %s", self.main_table_name, ordered)
        return ordered

    def generate_sql_statement_for_table(self, table: TableHandle) -> str:
        """SELECT for the rows of *table* owned by the root row.

        The query joins along the cheapest foreign-key path from *table* up to
        the root table and leaves the root id as the single ``?`` parameter.
        """
        name = table_name(table)
        path = self.datamodel.get_path(name, self.main_table_name)
        if not path:
            raise NoPathError(name, self.main_table_name)

        clauses = [f"SELECT {name}.*", f"FROM {name}"]
        for child, parent in zip(path, path[1:]):
            fk = self.datamodel.get_relationship(child, parent)
            clauses.append(f"INNER JOIN {parent} ON")
            clauses.append(f"{parent}.{fk.referenced_key} = {child}.{fk.column}")
        clauses.append(f"WHERE {self.main_table_name}.{self.main_table_primary_key} = ?")
        return " ".join(clauses)

    def get_rows_for_table(self, table: TableHandle) -> List[Dict[str, Any]]:
        sql = self.generate_sql_statement_for_table(table)
        return self.store.query(sql, [self.main_id])

    def scan(self) -> ScanResult:
        tables = self.get_topological_dependent_tables()
        statements = {table: self.generate_sql_statement_for_table(table) for table in tables}
        return ScanResult(
            root_table=self.main_table_name,
            root_id=self.main_id,
            tables=tables,
            ignored_tables=list(self.state.ignored_tables),
            numbered_tables=dict(self.state.numbered_tables),
            statements=statements,
        )