"""Duplication of the subset of a project that belongs to one partition.

Walking the graph cannot express "only the taxa and characters of partition
7", so every table copied during partition publishing has a fixed query
instead of a graph-derived one. All queries take the project id as their one
``?`` parameter; the partition id and resolved id lists are inlined.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .datamodel import Datamodel, TableHandle, table_name
from .duplicator import BaseModelDuplicator
from .errors import ScanPolicyError
from .storage import SqlStore

logger = logging.getLogger(__name__)

TAXA_LINKED_TABLES = ("matrix_taxa_order", "taxa_x_media", "taxa_x_bibliographic_references")
CHARACTER_LINKED_TABLES = (
    "character_states",
    "character_rules",
    "characters_x_media",
    "characters_x_bibliographic_references",
)
MEDIA_LINKED_TABLES = ("media_files_x_documents", "media_files_x_bibliographic_references")
CELL_TABLES = ("cells", "cell_notes", "cells_x_media", "cells_x_bibliographic_references")
MATRIX_LINKED_TABLES = ("matrix_file_uploads", "matrix_additional_blocks", "character_orderings")
# Copied whole, through the graph-derived query.
WHOLE_TABLES = ("bibliographic_references", "bibliographic_authors")

ORDER_TABLES = ("matrix_taxa_order", "matrix_character_order")


def _compact(sql: str) -> str:
    return " ".join(sql.split())


class PartitionModelDuplicator(BaseModelDuplicator):
    """Copy a project restricted to the taxa and characters of one partition."""

    def __init__(
        self,
        table: TableHandle,
        project_id: Any,
        partition_id: int,
        datamodel: Optional[Datamodel] = None,
        store: Optional[SqlStore] = None,
    ) -> None:
        super().__init__(table, project_id, datamodel=datamodel, store=store)
        self.partition_id = int(partition_id)
        self._cached_ids: Dict[str, List[int]] = {}

    def get_all_ids_in_table(self, table: str) -> List[int]:
        """Ids of ``matrices`` or ``media_files`` rows used by the partition.

        Results are cached per duplicator. An empty result becomes ``[0]`` so
        the ``IN (...)`` lists built from it stay valid SQL.
        """
        if table not in self._cached_ids:
            p = self.partition_id
            if table == "matrices":
                sql = """
                    SELECT matrix_id AS id
                    FROM matrix_character_order
                    INNER JOIN characters_x_partitions USING (character_id)
                    WHERE characters_x_partitions.partition_id = ?
                    UNION
                    SELECT matrix_id AS id
                    FROM matrix_taxa_order
                    INNER JOIN taxa_x_partitions USING (taxon_id)
                    WHERE taxa_x_partitions.partition_id = ?"""
                params = [p, p]
            elif table == "media_files":
                # Media of the partition's specimens, taxa and characters, plus
                # every media file cited by a reference or attached to a document.
                sql = """
                    SELECT media_id AS id
                    FROM media_files
                    INNER JOIN taxa_x_specimens USING (specimen_id)
                    INNER JOIN taxa_x_partitions USING (taxon_id)
                    WHERE taxa_x_partitions.partition_id = ?
                    UNION
                    SELECT media_id AS id
                    FROM media_files
                    INNER JOIN taxa_x_media USING (media_id)
                    INNER JOIN taxa_x_partitions USING (taxon_id)
                    WHERE taxa_x_partitions.partition_id = ?
                    UNION
                    SELECT media_id AS id
                    FROM media_files
                    INNER JOIN characters_x_media USING (media_id)
                    INNER JOIN characters_x_partitions USING (character_id)
                    WHERE characters_x_partitions.partition_id = ?
                    UNION
                    SELECT media_id AS id
                    FROM media_files
                    INNER JOIN media_files_x_bibliographic_references USING (media_id)
                    INNER JOIN bibliographic_references USING (reference_id)
                    WHERE media_files.project_id = ?
                    UNION
                    SELECT media_id AS id
                    FROM media_files
                    INNER JOIN media_files_x_documents USING (media_id)
                    INNER JOIN project_documents USING (document_id)
                    WHERE media_files.project_id = ?"""
                params = [p, p, p, self.main_id, self.main_id]
            else:
                raise ScanPolicyError(f"There is no defined query to get ids for {table}")

            ids = sorted({int(value) for value in self.store.query_values(_compact(sql), params)})
            self._cached_ids[table] = ids or [0]
        return self._cached_ids[table]

    def _id_list(self, table: str) -> str:
        return ",".join(str(i) for i in self.get_all_ids_in_table(table))

    def generate_sql_statement_for_table(self, table: TableHandle) -> str:
        name = table_name(table)
        p = self.partition_id

        if name == "projects":
            sql = "SELECT projects.* FROM projects WHERE projects.project_id = ?"
        elif name == "taxa":
            sql = f"""
                SELECT taxa.*
                FROM taxa
                INNER JOIN taxa_x_partitions USING (taxon_id)
                WHERE
                  taxa_x_partitions.partition_id = {p} AND
                  taxa.project_id = ?"""
        elif name in TAXA_LINKED_TABLES:
            sql = f"""
                SELECT {name}.*
                FROM {name}
                INNER JOIN taxa USING (taxon_id)
                INNER JOIN taxa_x_partitions USING (taxon_id)
                WHERE
                  taxa_x_partitions.partition_id = {p} AND
                  taxa.project_id = ?"""
        elif name == "characters":
            sql = f"""
                SELECT characters.*
                FROM characters
                INNER JOIN characters_x_partitions USING (character_id)
                WHERE
                  characters_x_partitions.partition_id = {p} AND
                  characters.project_id = ?"""
        elif name in CHARACTER_LINKED_TABLES:
            sql = f"""
                SELECT {name}.*
                FROM {name}
                INNER JOIN characters USING (character_id)
                INNER JOIN characters_x_partitions USING (character_id)
                WHERE
                  characters_x_partitions.partition_id = {p} AND
                  characters.project_id = ?"""
        elif name == "matrix_character_order":
            sql = f"""
                SELECT matrix_character_order.*
                FROM matrix_character_order
                INNER JOIN characters USING (character_id)
                INNER JOIN characters_x_partitions USING (character_id)
                WHERE
                  matrix_character_order.matrix_id IN ({self._id_list("matrices")}) AND
                  characters_x_partitions.partition_id = {p} AND
                  characters.project_id = ?"""
        elif name == "character_rule_actions":
            # Both the rule's character and the action's character must be in
            # the partition.
            sql = f"""
                SELECT character_rule_actions.*
                FROM character_rule_actions
                INNER JOIN character_rules
                  ON character_rule_actions.rule_id = character_rules.rule_id
                INNER JOIN characters
                  ON character_rule_actions.character_id = characters.character_id
                INNER JOIN characters_x_partitions AS cxp_mother
                  ON cxp_mother.character_id = character_rules.character_id
                INNER JOIN characters_x_partitions AS cxp_daughter
                  ON cxp_daughter.character_id = character_rule_actions.character_id
                WHERE
                  cxp_mother.partition_id = {p} AND
                  cxp_daughter.partition_id = {p} AND
                  characters.project_id = ?"""
        elif name == "matrices":
            sql = f"""
                SELECT matrices.*
                FROM matrices
                WHERE matrix_id IN ({self._id_list("matrices")}) AND project_id = ?"""
        elif name == "media_files":
            sql = f"""
                SELECT *
                FROM media_files
                WHERE media_id IN ({self._id_list("media_files")}) AND project_id = ?"""
        elif name == "specimens":
            sql = f"""
                SELECT specimens.*
                FROM specimens
                INNER JOIN media_files USING (specimen_id)
                WHERE
                  media_files.media_id IN ({self._id_list("media_files")}) AND
                  specimens.project_id = ?
                GROUP BY specimens.specimen_id"""
        elif name == "specimens_x_bibliographic_references":
            sql = f"""
                SELECT specimens_x_bibliographic_references.*
                FROM specimens_x_bibliographic_references
                INNER JOIN specimens USING (specimen_id)
                INNER JOIN media_files USING (specimen_id)
                WHERE
                  media_files.media_id IN ({self._id_list("media_files")}) AND
                  specimens.project_id = ?
                GROUP BY specimens_x_bibliographic_references.link_id"""
        elif name == "media_views":
            sql = f"""
                SELECT media_views.*
                FROM media_views
                INNER JOIN media_files USING (view_id)
                WHERE
                  media_files.media_id IN ({self._id_list("media_files")}) AND
                  media_views.project_id = ?
                GROUP BY media_views.view_id"""
        elif name == "taxa_x_specimens":
            sql = f"""
                SELECT taxa_x_specimens.*
                FROM taxa_x_specimens
                INNER JOIN taxa_x_partitions USING (taxon_id)
                INNER JOIN specimens USING (specimen_id)
                INNER JOIN media_files USING (specimen_id)
                WHERE
                  taxa_x_partitions.partition_id = {p} AND
                  media_files.media_id IN ({self._id_list("media_files")}) AND
                  specimens.project_id = ?
                GROUP BY taxa_x_specimens.link_id"""
        elif name == "media_labels":
            sql = f"""
                SELECT media_labels.*
                FROM media_labels
                INNER JOIN media_files USING (media_id)
                WHERE
                  media_labels.media_id IN ({self._id_list("media_files")}) AND
                  media_files.project_id = ?
                GROUP BY media_labels.label_id"""
        elif name in MEDIA_LINKED_TABLES:
            sql = f"""
                SELECT {name}.*
                FROM {name}
                INNER JOIN media_files USING (media_id)
                WHERE
                  media_id IN ({self._id_list("media_files")}) AND
                  media_files.project_id = ?"""
        elif name == "project_documents":
            sql = f"""
                SELECT project_documents.*
                FROM project_documents
                INNER JOIN media_files_x_documents USING (document_id)
                WHERE
                  media_files_x_documents.media_id IN ({self._id_list("media_files")}) AND
                  project_documents.project_id = ?
                GROUP BY project_documents.document_id"""
        elif name == "project_document_folders":
            sql = f"""
                SELECT project_document_folders.*
                FROM project_document_folders
                INNER JOIN project_documents USING (folder_id)
                INNER JOIN media_files_x_documents USING (document_id)
                WHERE
                  media_files_x_documents.media_id IN ({self._id_list("media_files")}) AND
                  project_documents.project_id = ?
                GROUP BY project_document_folders.folder_id"""
        elif name in CELL_TABLES:
            sql = f"""
                SELECT {name}.*
                FROM {name}
                INNER JOIN matrices USING (matrix_id)
                INNER JOIN taxa_x_partitions USING (taxon_id)
                INNER JOIN characters_x_partitions USING (character_id)
                WHERE
                  taxa_x_partitions.partition_id = {p} AND
                  characters_x_partitions.partition_id = {p} AND
                  {name}.matrix_id IN ({self._id_list("matrices")}) AND
                  matrices.project_id = ?"""
        elif name in MATRIX_LINKED_TABLES:
            sql = f"""
                SELECT {name}.*
                FROM {name}
                INNER JOIN matrices USING (matrix_id)
                WHERE
                  matrix_id IN ({self._id_list("matrices")}) AND
                  matrices.project_id = ?"""
        elif name in WHOLE_TABLES:
            return super().generate_sql_statement_for_table(name)
        else:
            raise ScanPolicyError(f"No generated SQL for table {name}")
        return _compact(sql)

    def renumber_matrix_orders(self, project_id: Any) -> int:
        """Compact taxon and character positions of every matrix of *project_id*.

        Positions restart at 1 and keep their previous relative order, closing
        the gaps left by rows outside the partition. Returns the number of rows
        renumbered.
        """
        matrix_ids = self.store.query_values(
            "SELECT matrix_id FROM matrices WHERE project_id = ?", [project_id],
        )
        updated = 0
        with self.store.transaction():
            for matrix_id in matrix_ids:
                for order_table in ORDER_TABLES:
                    order_ids = self.store.query_values(
                        f"SELECT order_id FROM {order_table} WHERE matrix_id = ? ORDER BY position, order_id",
                        [matrix_id],
                    )
                    for position, order_id in enumerate(order_ids, start=1):
                        updated += self.store.execute(
                            f"UPDATE {order_table} SET position = ? WHERE order_id = ?",
                            [position, order_id],
                        )
        logger.debug("Renumbered %d matrix order rows for project %s", updated, project_id)
        return updated
