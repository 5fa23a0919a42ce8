"""SQLite executor used by the scanners and duplicators.

Statements run synchronously on the store's own connection. Outside of
:meth:`SqlStore.transaction` every write is committed immediately; inside it
writes are committed when the outermost block exits and rolled back if it
raises.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Union

from . import config

logger = logging.getLogger(__name__)

Params = Sequence[Any]


class SqlStore:
    """Thin wrapper around a ``sqlite3`` connection returning plain dicts."""

    def __init__(self, db_path: Union[str, Path] = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._depth = 0

    @classmethod
    def open_default(cls) -> "SqlStore":
        """Open the database configured under ``[storage] database``."""
        config.ensure_base_dirs()
        return cls(config.DATABASE_PATH)

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, sql: str, params: Params = ()) -> List[Dict[str, Any]]:
        logger.debug("query: %s %s", sql, list(params))
        rows = self.conn.execute(sql, tuple(params)).fetchall()
        return [dict(row) for row in rows]

    def query_values(self, sql: str, params: Params = ()) -> List[Any]:
        """First column of every row returned by *sql*."""
        rows = self.conn.execute(sql, tuple(params)).fetchall()
        return [row[0] for row in rows]

    def get_columns(self, table: str) -> List[str]:
        rows = self.conn.execute(f'PRAGMA table_info("{table}")').fetchall()
        return [row["name"] for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        """Insert *row* into *table* and return the new row id."""
        columns = list(row)
        column_list = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join("?" * len(columns))
        if columns:
            sql = f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})'
        else:
            sql = f'INSERT INTO "{table}" DEFAULT VALUES'
        cur = self.conn.execute(sql, [row[c] for c in columns])
        self._commit_unless_nested()
        return cur.lastrowid

    def update(self, table: str, key_column: str, key: Any, values: Mapping[str, Any]) -> int:
        """Set *values* on the row of *table* whose *key_column* equals *key*.

        Columns the table does not have are left out.
        """
        known = set(self.get_columns(table))
        columns = [c for c in values if c in known]
        if not columns:
            return 0
        assignments = ", ".join(f'"{c}" = ?' for c in columns)
        return self.execute(
            f'UPDATE "{table}" SET {assignments} WHERE "{key_column}" = ?',
            [values[c] for c in columns] + [key],
        )

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        logger.debug("execute: %s %s", sql, list(params))
        cur = self.conn.execute(sql, tuple(params))
        self._commit_unless_nested()
        return cur.rowcount

    def executescript(self, script: str) -> None:
        self.conn.executescript(script)

    @contextmanager
    def transaction(self) -> Iterator["SqlStore"]:
        """Group writes; nested blocks join the outermost one."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                logger.debug("Rolling back transaction on %s", self.db_path)
                self.conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    def _commit_unless_nested(self) -> None:
        if self._depth == 0:
            self.conn.commit()
