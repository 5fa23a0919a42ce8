"""Tests for dependency scanning and graph-derived SQL."""

import pytest

from schemagraph.datamodel import Datamodel
from schemagraph.errors import NoPathError, ScanPolicyError, UnknownTableError
from schemagraph.models import ForeignKey, TableDescriptor
from schemagraph.policies import PARTITION_PUBLISHING, POLICIES, PROJECT_DUPLICATION
from schemagraph.scanner import BaseModelScanner
from schemagraph.storage import SqlStore

CHARACTER_TABLES = ["characters", "character_states", "character_rules", "character_rule_actions"]
CHARACTER_IGNORED = [
    "projects",
    "cell_notes",
    "cells",
    "cells_x_bibliographic_references",
    "cells_x_media",
    "characters_x_bibliographic_references",
    "characters_x_media",
    "characters_x_partitions",
    "matrix_character_order",
]


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


@pytest.fixture
def character_scanner(datamodel: Datamodel) -> BaseModelScanner:
    scanner = BaseModelScanner("characters", 1, datamodel)
    scanner.set_duplicated_tables(CHARACTER_TABLES)
    scanner.set_ignored_tables(CHARACTER_IGNORED)
    return scanner


class TestDependentTables:
    """Topological ordering of the tables hanging off a root row."""

    def test_character_root(self, character_scanner: BaseModelScanner):
        """Each table follows the tables it references."""
        assert character_scanner.get_topological_dependent_tables() == CHARACTER_TABLES

    def test_unlisted_table(self, datamodel: Datamodel):
        """A reachable table outside both lists is rejected."""
        scanner = BaseModelScanner("characters", 1, datamodel)
        scanner.set_duplicated_tables(CHARACTER_TABLES)
        scanner.set_ignored_tables([t for t in CHARACTER_IGNORED if t != "cells"] + ["taxa", "matrices"])
        with pytest.raises(ScanPolicyError, match="The table cells is not allowlisted"):
            scanner.get_topological_dependent_tables()

    def test_unlisted_neighbor_rejected_first(self, datamodel: Datamodel):
        """Tables a newly reached table references are checked before it."""
        scanner = BaseModelScanner("characters", 1, datamodel)
        scanner.set_duplicated_tables(CHARACTER_TABLES)
        scanner.set_ignored_tables([t for t in CHARACTER_IGNORED if t != "cells"])
        with pytest.raises(ScanPolicyError, match="The table taxa is not allowlisted"):
            scanner.get_topological_dependent_tables()

    def test_table_both_duplicated_and_ignored(self, character_scanner: BaseModelScanner):
        """Conflicting policies are rejected before walking."""
        character_scanner.set_ignored_tables(CHARACTER_IGNORED + ["character_rules"])
        with pytest.raises(ScanPolicyError, match="character_rules"):
            character_scanner.get_topological_dependent_tables()

    def test_accepts_descriptors(self, datamodel: Datamodel):
        """Policy setters take descriptors as well as names."""
        scanner = BaseModelScanner(datamodel.get_table("characters"), 1, datamodel)
        scanner.set_duplicated_tables(datamodel.get_table(t) for t in CHARACTER_TABLES)
        scanner.set_ignored_tables(CHARACTER_IGNORED)
        assert scanner.state.duplicated_tables == CHARACTER_TABLES
        assert scanner.get_topological_dependent_tables() == CHARACTER_TABLES

    @pytest.mark.parametrize("policy", [PROJECT_DUPLICATION, PARTITION_PUBLISHING])
    def test_project_policies(self, datamodel: Datamodel, policy):
        """Both project policies order every table after its references."""
        scanner = BaseModelScanner("projects", 1, datamodel)
        policy.apply(scanner)
        tables = scanner.get_topological_dependent_tables()

        assert tables[0] == "projects"
        assert tables[-1] == "media_labels"
        assert len(tables) == len(set(tables))
        assert not set(tables) & set(policy.ignored_tables)
        for position, table in enumerate(tables[:-1]):
            for neighbor in datamodel.get_neighboring_tables(table):
                if neighbor in tables:
                    assert tables.index(neighbor) < position, (table, neighbor)

    def test_partition_policy_skips_partition_tables(self, datamodel: Datamodel):
        """Publishing a partition never copies folios or partitions."""
        scanner = BaseModelScanner("projects", 1, datamodel)
        PARTITION_PUBLISHING.apply(scanner)
        tables = scanner.get_topological_dependent_tables()
        assert "partitions" not in tables
        assert "folios_x_media_files" not in tables
        assert "taxa" in tables

    def test_numbered_tables_last(self, datamodel: Datamodel):
        """Numbered tables move behind every other table."""
        scanner = BaseModelScanner("characters", 1, datamodel)
        scanner.set_duplicated_tables(CHARACTER_TABLES)
        scanner.set_ignored_tables(CHARACTER_IGNORED)
        scanner.set_numbered_tables({"character_states": "num"})
        assert scanner.get_topological_dependent_tables() == [
            "characters", "character_rules", "character_rule_actions", "character_states",
        ]

    def test_unknown_root(self, datamodel: Datamodel):
        """Scanning from an unknown table fails at construction."""
        with pytest.raises(UnknownTableError):
            BaseModelScanner("nope", 1, datamodel)

    def test_policies_registry(self):
        """Policies are looked up by name."""
        assert POLICIES["project-duplication"] is PROJECT_DUPLICATION
        assert POLICIES["partition-publishing"] is PARTITION_PUBLISHING

    @pytest.mark.parametrize("policy", list(POLICIES.values()), ids=list(POLICIES))
    def test_policy_tables_in_catalog(self, datamodel: Datamodel, policy):
        """Every table a policy names is a catalog table."""
        named = set(policy.duplicated_tables) | set(policy.ignored_tables) | set(policy.numbered_tables)
        assert sorted(t for t in named if not datamodel.table_exists(t)) == []


class TestGeneratedSql:
    """SELECT statements joined along the cheapest path to the root."""

    def test_root_table(self, datamodel: Datamodel):
        """The root table filters on its own key."""
        scanner = BaseModelScanner("projects", 1, datamodel)
        assert scanner.generate_sql_statement_for_table("projects") == (
            "SELECT projects.* FROM projects WHERE projects.project_id = ?"
        )

    def test_character_rule_actions(self, datamodel: Datamodel):
        """A two-hop join through characters."""
        scanner = BaseModelScanner("projects", 1, datamodel)
        assert _normalize(scanner.generate_sql_statement_for_table("character_rule_actions")) == (
            "SELECT character_rule_actions.* FROM character_rule_actions "
            "INNER JOIN characters ON characters.character_id = character_rule_actions.character_id "
            "INNER JOIN projects ON projects.project_id = characters.project_id "
            "WHERE projects.project_id = ?"
        )

    def test_matrix_file_uploads(self, datamodel: Datamodel):
        """A two-hop join through matrices."""
        scanner = BaseModelScanner("projects", 1, datamodel)
        assert _normalize(scanner.generate_sql_statement_for_table("matrix_file_uploads")) == (
            "SELECT matrix_file_uploads.* FROM matrix_file_uploads "
            "INNER JOIN matrices ON matrices.matrix_id = matrix_file_uploads.matrix_id "
            "INNER JOIN projects ON projects.project_id = matrices.project_id "
            "WHERE projects.project_id = ?"
        )

    def test_referenced_key_differs_from_column(self):
        """Joins use the referenced key when it is named differently."""
        datamodel = Datamodel([
            TableDescriptor("ca_users", 57, ("user_id",)),
            TableDescriptor(
                "curator_potential_projects",
                87,
                ("potential_id",),
                (ForeignKey("approved_by_id", "ca_users", key="user_id"),),
            ),
        ])
        scanner = BaseModelScanner("ca_users", 5, datamodel)
        assert scanner.generate_sql_statement_for_table("curator_potential_projects") == (
            "SELECT curator_potential_projects.* FROM curator_potential_projects "
            "INNER JOIN ca_users ON ca_users.user_id = curator_potential_projects.approved_by_id "
            "WHERE ca_users.user_id = ?"
        )

    def test_no_path(self, datamodel: Datamodel):
        """Tables that cannot reach the root raise NoPathError."""
        scanner = BaseModelScanner("taxa", 1, datamodel)
        with pytest.raises(NoPathError) as excinfo:
            scanner.generate_sql_statement_for_table("projects")
        assert excinfo.value.get_status() == 400
        assert "No path from table 'projects' to table 'taxa'" in str(excinfo.value)


class TestScan:
    """Scan results and row queries."""

    def test_scan_result(self, character_scanner: BaseModelScanner):
        """scan() bundles tables and statements."""
        result = character_scanner.scan()
        assert result.root_table == "characters"
        assert result.root_id == 1
        assert result.tables == CHARACTER_TABLES
        assert set(result.statements) == set(CHARACTER_TABLES)
        data = result.as_dict()
        assert data["ignored_tables"] == CHARACTER_IGNORED
        assert data["statements"]["character_states"].endswith("WHERE characters.character_id = ?")

    def test_rows_for_table(self, datamodel: Datamodel, store: SqlStore):
        """Row queries only return rows owned by the root."""
        scanner = BaseModelScanner("projects", 1, datamodel, store)
        states = scanner.get_rows_for_table("character_states")
        assert sorted(row["state_id"] for row in states) == [1, 2, 3]
        taxa = scanner.get_rows_for_table("taxa")
        assert sorted(row["taxon_id"] for row in taxa) == [1, 2]
