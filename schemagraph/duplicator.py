"""Row-level duplication of a root row and everything that depends on it."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from .datamodel import TableHandle, table_name
from .errors import DuplicationError
from .models import TableDescriptor
from .scanner import BaseModelScanner
from .tables import Table

logger = logging.getLogger(__name__)

# Column holding the registry number of the table a numbered row points into.
TABLE_NUMBER_COLUMN = "table_num"

MEDIA_TABLE = "media_files"
# media_files.copyright_license of media licensed for a single project
ONETIME_USE_LICENSE = 8
# What to do with one-time use media when a project is duplicated
ONETIME_KEEP_IN_ORIGINAL = 1
ONETIME_MOVE_TO_DUPLICATE = 100


class BaseModelDuplicator(BaseModelScanner):
    """Copy the root row and its dependent rows inside the store.

    Tables are copied in topological order. While copying, every foreign key
    is rewritten to the id of the cloned row it referenced; the mapping
    ``table -> original id -> clone id`` is kept in :attr:`cloned_ids`.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.cloned_ids = Table()
        self.overridden_fields: Dict[str, Any] = {}
        self.onetime_use_action: Optional[int] = None
        self.withheld_media: Set[Any] = set()
        self.moved_media: List[Any] = []

    def set_overridden_field_names(self, fields: Mapping[str, Any]) -> None:
        """Columns forced to a fixed value on every copied row (``user_id`` etc.)."""
        self.overridden_fields = dict(fields)

    def set_onetime_use_action(self, action: Optional[int]) -> None:
        """How one-time use media are treated.

        ``ONETIME_KEEP_IN_ORIGINAL`` leaves them (and every row pointing at
        them) out of the copy; ``ONETIME_MOVE_TO_DUPLICATE`` copies them and
        then deletes them from the source project.
        """
        self.onetime_use_action = action

    def duplicate(self) -> Any:
        """Copy all dependent rows and return the clone id of the root row."""
        tables = self.get_topological_dependent_tables()
        with self.store.transaction():
            for table in tables:
                rows = self.get_rows_for_table(table)
                if rows:
                    self.duplicate_rows(table, rows)
                logger.debug("Copied %d row(s) of %s", len(rows), table)

            clone_id = self.get_duplicate_record_id(self.main_table_name, self.main_id)
            if self.onetime_use_action == ONETIME_MOVE_TO_DUPLICATE and self.moved_media:
                self.delete_moved_media()

        logger.info(
            "Duplicated %s %s as %s", self.main_table_name, self.main_id, clone_id,
        )
        return clone_id

    def duplicate_rows(self, table: TableHandle, rows: List[Dict[str, Any]]) -> int:
        """Insert copies of *rows*; returns how many were inserted."""
        descriptor = self.datamodel.get_table(table)
        primary_key = descriptor.primary_key[0]
        copied = 0

        if descriptor.name == MEDIA_TABLE and self.onetime_use_action is not None:
            rows = self._filter_onetime_use_media(rows, primary_key)

        for source in rows:
            row = dict(source)
            row_id = row[primary_key]

            if self._references_withheld_media(descriptor, row):
                logger.info(
                    "Skipping %s record %s that references withheld media", descriptor.name, row_id,
                )
                continue

            if not self.validate_foreign_keys(descriptor, row):
                logger.warning(
                    "Skipping %s record %s due to missing foreign key references",
                    descriptor.name, row_id,
                )
                continue

            del row[primary_key]
            self._rewrite_row(descriptor, row, row_id)

            clone_id = self.store.insert(descriptor.name, row)
            self.cloned_ids.set(descriptor.name, row_id, clone_id)
            copied += 1
        return copied

    def _rewrite_row(self, descriptor: TableDescriptor, row: Dict[str, Any], row_id: Any) -> None:
        if descriptor.name != self.main_table_name:
            for fk in descriptor.foreign_keys:
                if row.get(fk.column):
                    row[fk.column] = self.get_duplicate_record_id(fk.table, row[fk.column])

        linking_column = self.state.numbered_tables.get(descriptor.name)
        if linking_column and row.get(linking_column):
            linked = self._numbered_table(row)
            if linked is not None:
                row[linking_column] = self.get_duplicate_record_id(linked, row[linking_column])

        for column in descriptor.json_columns:
            if column in row:
                row[column] = _normalize_json(row[column])

        for column in descriptor.ancestored_columns:
            if column in row:
                row[column] = row_id

        for column, value in self.overridden_fields.items():
            if column in row:
                row[column] = value

    def _numbered_table(self, row: Mapping[str, Any]) -> Optional[str]:
        number = row.get(TABLE_NUMBER_COLUMN)
        if number is None:
            return None
        linked = self.datamodel.get_table_by_number(number)
        return linked.name if linked else None

    # ------------------------------------------------------------------
    # One-time use media
    # ------------------------------------------------------------------

    def _filter_onetime_use_media(
        self, rows: List[Dict[str, Any]], primary_key: str,
    ) -> List[Dict[str, Any]]:
        action = self.onetime_use_action
        if action not in (ONETIME_KEEP_IN_ORIGINAL, ONETIME_MOVE_TO_DUPLICATE):
            logger.warning("Unknown one-time use media action %s, copying all media", action)
            return rows

        kept = []
        for row in rows:
            if row.get("copyright_license") != ONETIME_USE_LICENSE:
                kept.append(row)
            elif action == ONETIME_KEEP_IN_ORIGINAL:
                self.withheld_media.add(row[primary_key])
            else:
                self.moved_media.append(row[primary_key])
                kept.append(row)
        return kept

    def _references_withheld_media(self, descriptor: TableDescriptor, row: Mapping[str, Any]) -> bool:
        if not self.withheld_media or descriptor.name == MEDIA_TABLE:
            return False
        for fk in descriptor.foreign_keys:
            if fk.table == MEDIA_TABLE and row.get(fk.column) in self.withheld_media:
                return True
        linking_column = self.state.numbered_tables.get(descriptor.name)
        if linking_column and self._numbered_table(row) == MEDIA_TABLE:
            return row.get(linking_column) in self.withheld_media
        return False

    def delete_moved_media(self) -> int:
        """Delete moved one-time use media and the rows linking to them from the source.

        Returns the number of media rows deleted.
        """
        placeholders = ",".join("?" * len(self.moved_media))
        for table in self.datamodel.get_referencing_tables(MEDIA_TABLE):
            fk = self.datamodel.get_relationship(table, MEDIA_TABLE)
            if fk is None or fk.column not in self.store.get_columns(table):
                continue
            removed = self.store.execute(
                f"DELETE FROM {table} WHERE {fk.column} IN ({placeholders})", self.moved_media,
            )
            logger.debug("Removed %d %s row(s) of moved media", removed, table)

        deleted = self.store.execute(
            f"DELETE FROM {MEDIA_TABLE} WHERE media_id IN ({placeholders}) AND project_id = ?",
            [*self.moved_media, self.main_id],
        )
        logger.info(
            "Moved %d one-time use media file(s) out of %s %s",
            deleted, self.main_table_name, self.main_id,
        )
        return deleted

    # ------------------------------------------------------------------
    # Cloned id bookkeeping
    # ------------------------------------------------------------------

    def get_duplicate_record_id(self, table: TableHandle, row_id: Any) -> Any:
        name = table_name(table)
        if self.cloned_ids.has(name, row_id):
            return self.cloned_ids.get(name, row_id)
        raise DuplicationError(f"The {row_id} for {name} was not cloned")

    def was_record_cloned(self, table: TableHandle, row_id: Any) -> bool:
        return self.cloned_ids.has(table_name(table), row_id)

    def validate_foreign_keys(self, table: TableHandle, row: Mapping[str, Any]) -> bool:
        """Whether every row that *row* references has been cloned already.

        The root row is always valid: its references stay as they are.
        """
        descriptor = self.datamodel.get_table(table)
        if descriptor.name == self.main_table_name:
            return True

        for fk in descriptor.foreign_keys:
            value = row.get(fk.column)
            if value is not None and not self.was_record_cloned(fk.table, value):
                return False

        linking_column = self.state.numbered_tables.get(descriptor.name)
        if linking_column and row.get(linking_column) is not None:
            linked = self._numbered_table(row)
            if linked is not None and not self.was_record_cloned(linked, row[linking_column]):
                return False
        return True


def _normalize_json(value: Any) -> Optional[str]:
    """JSON text for a JSON column; unparseable strings become NULL."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            json.loads(value)
        except ValueError:
            return None
        return value
    return json.dumps(value)
