"""Tests for row-level duplication of a project."""

import logging
import sqlite3

import pytest

from schemagraph.datamodel import Datamodel
from schemagraph.duplicator import (
    ONETIME_KEEP_IN_ORIGINAL,
    ONETIME_MOVE_TO_DUPLICATE,
    BaseModelDuplicator,
)
from schemagraph.errors import DuplicationError
from schemagraph.policies import PROJECT_DUPLICATION
from schemagraph.storage import SqlStore


@pytest.fixture
def duplicator(datamodel: Datamodel, store: SqlStore) -> BaseModelDuplicator:
    duplicator = BaseModelDuplicator("projects", 1, datamodel, store)
    PROJECT_DUPLICATION.apply(duplicator)
    return duplicator


def _ids(store: SqlStore, sql: str, params=()):
    return sorted(store.query_values(sql, params))


class TestDuplicate:
    """Full copy of project 1."""

    def test_returns_clone_of_root(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """The new project gets the next id and keeps its ancestry."""
        clone_id = duplicator.duplicate()
        assert clone_id == 3
        project = store.query("SELECT * FROM projects WHERE project_id = ?", [clone_id])[0]
        assert project["name"] == "Fossil Crocs"
        assert project["ancestor_project_id"] == 1
        assert project["journal_cover"] == '{"filename": "cover.jpg"}'

    def test_copies_owned_rows_only(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Rows of other projects are left alone."""
        clone_id = duplicator.duplicate()
        assert len(_ids(store, "SELECT taxon_id FROM taxa WHERE project_id = ?", [clone_id])) == 2
        assert len(_ids(store, "SELECT media_id FROM media_files WHERE project_id = ?", [clone_id])) == 2
        assert len(_ids(store, "SELECT character_id FROM characters")) == 5
        assert len(_ids(store, "SELECT taxon_id FROM taxa WHERE project_id = 1")) == 2

    def test_foreign_keys_remapped(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Copied rows point at copied parents."""
        clone_id = duplicator.duplicate()
        new_taxa = _ids(store, "SELECT taxon_id FROM taxa WHERE project_id = ?", [clone_id])
        new_matrix = duplicator.get_duplicate_record_id("matrices", 1)
        cells = store.query("SELECT * FROM cells WHERE matrix_id = ?", [new_matrix])
        assert len(cells) == 2
        assert all(cell["taxon_id"] in new_taxa for cell in cells)
        assert sorted(cell["ancestor_cell_id"] for cell in cells) == [1, 2]

        actions = store.query(
            "SELECT * FROM character_rule_actions WHERE rule_id = ?",
            [duplicator.get_duplicate_record_id("character_rules", 1)],
        )
        assert len(actions) == 1
        assert actions[0]["character_id"] == duplicator.get_duplicate_record_id("characters", 2)
        assert actions[0]["settings"] == '{"mode": "set"}'

    def test_ancestor_columns(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Ancestor columns record the source row id."""
        clone_id = duplicator.duplicate()
        ancestors = _ids(
            store, "SELECT ancestor_character_id FROM characters WHERE project_id = ?", [clone_id],
        )
        assert ancestors == [1, 2]

    def test_nullable_foreign_keys_stay_null(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """NULL references are copied as NULL."""
        duplicator.duplicate()
        clone = duplicator.get_duplicate_record_id("media_files", 2)
        media = store.query("SELECT * FROM media_files WHERE media_id = ?", [clone])[0]
        assert media["specimen_id"] is None
        assert media["view_id"] == duplicator.get_duplicate_record_id("media_views", 1)

    def test_numbered_links_follow_table_number(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Media labels point at the clone of the row their table number names."""
        duplicator.duplicate()
        new_media = duplicator.get_duplicate_record_id("media_files", 1)
        labels = store.query(
            "SELECT * FROM media_labels WHERE media_id = ? ORDER BY label_id", [new_media],
        )
        assert len(labels) == 2
        assert labels[0]["table_num"] == 7
        assert labels[0]["link_id"] == duplicator.get_duplicate_record_id("cells_x_media", 1)
        assert labels[0]["link_id"] != 1
        assert labels[1]["link_id"] is None

    def test_overridden_fields(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Overrides apply to every copied row that has the column."""
        duplicator.set_overridden_field_names({"user_id": 2})
        clone_id = duplicator.duplicate()
        owners = set(store.query_values("SELECT user_id FROM taxa WHERE project_id = ?", [clone_id]))
        assert owners == {2}
        assert set(store.query_values("SELECT user_id FROM taxa WHERE project_id = 1")) == {1}

    def test_failure_rolls_back(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """A failing table leaves the database untouched."""
        store.executescript("DROP TABLE matrix_file_uploads;")
        with pytest.raises(sqlite3.OperationalError):
            duplicator.duplicate()
        assert store.query_values("SELECT COUNT(*) FROM projects") == [2]
        assert store.query_values("SELECT COUNT(*) FROM taxa") == [3]


class TestOnetimeUseMedia:
    """Media 2 of project 1 carries a one-time use licence."""

    def test_keep_in_original(self, duplicator: BaseModelDuplicator, store: SqlStore, caplog):
        """The media and the rows pointing at it are left out of the copy."""
        duplicator.set_onetime_use_action(ONETIME_KEEP_IN_ORIGINAL)
        with caplog.at_level(logging.INFO, logger="schemagraph.duplicator"):
            clone_id = duplicator.duplicate()

        copied = _ids(store, "SELECT ancestor_media_id FROM media_files WHERE project_id = ?", [clone_id])
        assert copied == [1]
        assert duplicator.withheld_media == {2}
        assert not duplicator.was_record_cloned("characters_x_media", 1)
        assert _ids(store, "SELECT link_id FROM characters_x_media") == [1]
        assert "Skipping characters_x_media record 1 that references withheld media" in caplog.text
        assert "missing foreign key references" not in caplog.text

    def test_source_keeps_media(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Keeping the media leaves the original project as it was."""
        duplicator.set_onetime_use_action(ONETIME_KEEP_IN_ORIGINAL)
        duplicator.duplicate()
        assert _ids(store, "SELECT media_id FROM media_files WHERE project_id = 1") == [1, 2]

    def test_move_to_duplicate(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """The media is copied and then removed from the original project."""
        duplicator.set_onetime_use_action(ONETIME_MOVE_TO_DUPLICATE)
        clone_id = duplicator.duplicate()

        moved = duplicator.get_duplicate_record_id("media_files", 2)
        assert _ids(store, "SELECT media_id FROM media_files WHERE project_id = ?", [clone_id]) == sorted(
            [duplicator.get_duplicate_record_id("media_files", 1), moved]
        )
        assert _ids(store, "SELECT media_id FROM media_files WHERE project_id = 1") == [1]
        assert duplicator.moved_media == [2]

    def test_move_deletes_links_in_source(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Rows linking to the moved media are removed from the original project only."""
        duplicator.set_onetime_use_action(ONETIME_MOVE_TO_DUPLICATE)
        duplicator.duplicate()

        links = store.query("SELECT * FROM characters_x_media")
        assert len(links) == 1
        assert links[0]["media_id"] == duplicator.get_duplicate_record_id("media_files", 2)
        assert links[0]["character_id"] == duplicator.get_duplicate_record_id("characters", 1)

    def test_other_media_untouched(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Media without the licence and their links stay in the original."""
        duplicator.set_onetime_use_action(ONETIME_MOVE_TO_DUPLICATE)
        duplicator.duplicate()
        assert store.query_values("SELECT COUNT(*) FROM media_labels WHERE media_id = 1") == [2]
        assert store.query_values("SELECT COUNT(*) FROM taxa_x_media WHERE media_id = 1") == [1]

    def test_unknown_action(self, duplicator: BaseModelDuplicator, store: SqlStore, caplog):
        """An unknown action copies every media file and warns."""
        duplicator.set_onetime_use_action(7)
        with caplog.at_level(logging.WARNING, logger="schemagraph.duplicator"):
            clone_id = duplicator.duplicate()
        assert len(_ids(store, "SELECT media_id FROM media_files WHERE project_id = ?", [clone_id])) == 2
        assert _ids(store, "SELECT media_id FROM media_files WHERE project_id = 1") == [1, 2]
        assert "Unknown one-time use media action 7" in caplog.text

    def test_no_action(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Without an action the licence is ignored."""
        clone_id = duplicator.duplicate()
        assert len(_ids(store, "SELECT media_id FROM media_files WHERE project_id = ?", [clone_id])) == 2
        assert duplicator.withheld_media == set()
        assert duplicator.moved_media == []


class TestDuplicateRows:
    """Single-table copies."""

    def test_json_columns_normalized(self, duplicator: BaseModelDuplicator, store: SqlStore):
        """Broken JSON becomes NULL; structures are serialised."""
        duplicator.cloned_ids.set("projects", 1, 1)
        copied = duplicator.duplicate_rows("taxa", [{
            "taxon_id": 1,
            "project_id": 1,
            "user_id": 1,
            "genus": "Caiman",
            "tmp_eol_data": "{broken",
            "tmp_idigbio_data": {"records": 2},
        }])
        assert copied == 1
        clone = duplicator.get_duplicate_record_id("taxa", 1)
        row = store.query("SELECT * FROM taxa WHERE taxon_id = ?", [clone])[0]
        assert row["genus"] == "Caiman"
        assert row["tmp_eol_data"] is None
        assert row["tmp_idigbio_data"] == '{"records": 2}'

    def test_rows_with_uncloned_references_skipped(self, duplicator: BaseModelDuplicator, caplog):
        """A row whose parent was not copied is skipped with a warning."""
        duplicator.cloned_ids.set("taxa", 1, 10)
        with caplog.at_level(logging.WARNING, logger="schemagraph.duplicator"):
            copied = duplicator.duplicate_rows(
                "taxa_x_media", [{"link_id": 1, "taxon_id": 1, "media_id": 99, "user_id": 1}],
            )
        assert copied == 0
        assert "Skipping taxa_x_media record 1" in caplog.text
        assert not duplicator.was_record_cloned("taxa_x_media", 1)

    def test_validate_foreign_keys(self, duplicator: BaseModelDuplicator):
        """The root is always valid; other rows need cloned references."""
        assert duplicator.validate_foreign_keys("projects", {"group_id": 5})
        assert not duplicator.validate_foreign_keys("taxa", {"project_id": 1})
        duplicator.cloned_ids.set("projects", 1, 3)
        assert duplicator.validate_foreign_keys("taxa", {"project_id": 1})
        assert duplicator.validate_foreign_keys("taxa", {"project_id": None})

    def test_numbered_link_validation(self, duplicator: BaseModelDuplicator):
        """A numbered link must point at a cloned row of its table."""
        duplicator.cloned_ids.set("media_files", 1, 4)
        label = {"media_id": 1, "link_id": 1, "table_num": 7}
        assert not duplicator.validate_foreign_keys("media_labels", label)
        duplicator.cloned_ids.set("cells_x_media", 1, 2)
        assert duplicator.validate_foreign_keys("media_labels", label)

    def test_missing_clone(self, duplicator: BaseModelDuplicator):
        """Asking for an uncloned row is a DuplicationError."""
        with pytest.raises(DuplicationError, match="The 5 for taxa was not cloned"):
            duplicator.get_duplicate_record_id("taxa", 5)
