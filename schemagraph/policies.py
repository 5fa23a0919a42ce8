"""Which tables a duplication copies, skips, or links by table number."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class DuplicationPolicy:
    name: str
    duplicated_tables: Tuple[str, ...]
    ignored_tables: Tuple[str, ...]
    # table -> column holding an id of the table numbered in ``table_num``
    numbered_tables: Dict[str, str] = field(default_factory=dict)

    def apply(self, scanner) -> None:
        """Configure a scanner or duplicator with this policy's tables."""
        scanner.set_duplicated_tables(self.duplicated_tables)
        scanner.set_ignored_tables(self.ignored_tables)
        scanner.set_numbered_tables(self.numbered_tables)


NUMBERED_TABLES = {"media_labels": "link_id"}

# Tables shared by both policies.
_PROJECT_CONTENT_TABLES = (
    "projects",
    "specimens",
    "media_views",
    "media_files",
    "matrices",
    "hp_matrix_images",
    "character_orderings",
    "characters",
    "taxa",
    "project_document_folders",
    "project_documents",
    "bibliographic_references",
    "cells_x_media",
    "character_states",
    "characters_x_media",
    "media_files_x_bibliographic_references",
    "taxa_x_media",
    "media_files_x_documents",
    "taxa_x_specimens",
    "specimens_x_bibliographic_references",
    "cells",
    "matrix_character_order",
    "cell_notes",
    "cells_x_bibliographic_references",
    "characters_x_bibliographic_references",
    "character_rules",
    "character_rule_actions",
    "matrix_taxa_order",
    "taxa_x_bibliographic_references",
    "matrix_file_uploads",
    "matrix_additional_blocks",
    "bibliographic_authors",
    "media_labels",
)

_PARTITIONED_TABLES = (
    "folios",
    "folios_x_media_files",
    "partitions",
    "taxa_x_partitions",
    "characters_x_partitions",
)

_NEVER_COPIED_TABLES = (
    "ca_users",
    "projects_x_users",
    "project_member_groups",
    "project_groups",
    "project_duplication_requests",
    "curator_potential_projects",
    "cipres_requests",
    "institutions",
    "institutions_x_projects",
    "institutions_x_users",
    "projects_x_orcid_works",
    "composite_taxa",
    "composite_taxa_sources",
)

PROJECT_DUPLICATION = DuplicationPolicy(
    name="project-duplication",
    duplicated_tables=_PROJECT_CONTENT_TABLES + _PARTITIONED_TABLES,
    ignored_tables=_NEVER_COPIED_TABLES,
    numbered_tables=dict(NUMBERED_TABLES),
)

PARTITION_PUBLISHING = DuplicationPolicy(
    name="partition-publishing",
    duplicated_tables=_PROJECT_CONTENT_TABLES,
    ignored_tables=_PARTITIONED_TABLES + _NEVER_COPIED_TABLES,
    numbered_tables=dict(NUMBERED_TABLES),
)

POLICIES = {policy.name: policy for policy in (PROJECT_DUPLICATION, PARTITION_PUBLISHING)}
