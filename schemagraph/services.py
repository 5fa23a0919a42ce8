"""Entry points that duplicate a whole project or publish one partition of it.

Both run in a single store transaction: either every copied row and the
bookkeeping updates land, or nothing does.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from .datamodel import Datamodel, get_datamodel
from .duplicator import BaseModelDuplicator
from .errors import UserError
from .partition import PartitionModelDuplicator
from .policies import PARTITION_PUBLISHING, PROJECT_DUPLICATION
from .storage import SqlStore

logger = logging.getLogger(__name__)

# project_duplication_requests.status
REQUEST_APPROVED = 50
REQUEST_COMPLETED = 100


def _require_id(value: Any, label: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = 0
    if parsed <= 0:
        raise UserError(f"{label} ID is not defined")
    return parsed


def _require_row(store: SqlStore, table: str, key_column: str, key: int, label: str) -> Dict[str, Any]:
    rows = store.query(f"SELECT * FROM {table} WHERE {key_column} = ?", [key])
    if not rows:
        raise UserError(f"{label} {key} does not exist")
    return rows[0]


def _cloned_or_none(duplicator: BaseModelDuplicator, table: str, row_id: Any) -> Any:
    if row_id and duplicator.was_record_cloned(table, row_id):
        return duplicator.get_duplicate_record_id(table, row_id)
    return None


def _add_member(store: SqlStore, project_id: int, user_id: int, now: int) -> None:
    store.insert(
        "projects_x_users",
        {"created_on": now, "user_id": user_id, "project_id": project_id},
    )


def duplicate_project(
    store: SqlStore,
    project_id: Any,
    user_id: Any,
    datamodel: Optional[Datamodel] = None,
    onetime_use_action: Optional[int] = None,
) -> int:
    """Copy project *project_id* and everything it owns for *user_id*.

    Returns the id of the new project. *onetime_use_action* decides whether
    one-time use media stay in the original project or move to the copy.

    Raises:
        UserError: an id is missing or names a row that does not exist.
    """
    project_id = _require_id(project_id, "Project")
    user_id = _require_id(user_id, "User")
    project = _require_row(store, "projects", "project_id", project_id, "Project")
    _require_row(store, "ca_users", "user_id", user_id, "User")

    duplicator = BaseModelDuplicator("projects", project_id, datamodel or get_datamodel(), store)
    PROJECT_DUPLICATION.apply(duplicator)
    if onetime_use_action is not None:
        duplicator.set_onetime_use_action(onetime_use_action)

    now = int(time.time())
    with store.transaction():
        cloned_id = duplicator.duplicate()
        store.update(
            "projects",
            "project_id",
            cloned_id,
            {
                "created_on": now,
                "last_accessed_on": now,
                "user_id": user_id,
                "group_id": None,
                "partition_published_on": None,
                "partitioned_from_project_id": None,
                "published": 0,
                "published_on": None,
                "exemplar_media_id": _cloned_or_none(
                    duplicator, "media_files", project.get("exemplar_media_id"),
                ),
            },
        )
        _add_member(store, cloned_id, user_id, now)

    logger.info("Project %s duplicated as %s for user %s", project_id, cloned_id, user_id)
    return cloned_id


def process_duplication_request(
    store: SqlStore,
    request_id: Any,
    datamodel: Optional[Datamodel] = None,
) -> int:
    """Carry out an approved row of ``project_duplication_requests``.

    The request is marked completed and records the new project number.
    """
    request_id = _require_id(request_id, "Request")
    request = _require_row(
        store, "project_duplication_requests", "request_id", request_id, "Duplication request",
    )
    if request.get("status") != REQUEST_APPROVED:
        raise UserError(
            f"Duplication request {request_id} not approved (status: {request.get('status')})"
        )

    with store.transaction():
        cloned_id = duplicate_project(
            store,
            request["project_id"],
            request["user_id"],
            datamodel,
            onetime_use_action=request.get("onetime_use_action"),
        )
        store.update(
            "project_duplication_requests",
            "request_id",
            request_id,
            {"status": REQUEST_COMPLETED, "new_project_number": cloned_id},
        )
    return cloned_id


def publish_partition(
    store: SqlStore,
    project_id: Any,
    partition_id: Any,
    user_id: Any,
    datamodel: Optional[Datamodel] = None,
) -> int:
    """Publish partition *partition_id* of *project_id* as a new project.

    Only the partition's taxa and characters, and the matrices, cells and
    media that hang off them, are copied. Every copied ``user_id`` becomes
    *user_id*, and matrix positions are renumbered to close the gaps.

    Raises:
        UserError: an id is missing or names a row that does not exist.
    """
    project_id = _require_id(project_id, "Project")
    user_id = _require_id(user_id, "User")
    partition_id = _require_id(partition_id, "Partition")
    project = _require_row(store, "projects", "project_id", project_id, "Project")
    _require_row(store, "ca_users", "user_id", user_id, "User")
    _require_row(store, "partitions", "partition_id", partition_id, "Partition")

    duplicator = PartitionModelDuplicator(
        "projects", project_id, partition_id, datamodel or get_datamodel(), store,
    )
    PARTITION_PUBLISHING.apply(duplicator)
    duplicator.set_overridden_field_names({"user_id": user_id})

    now = int(time.time())
    with store.transaction():
        cloned_id = duplicator.duplicate()
        store.update(
            "projects",
            "project_id",
            cloned_id,
            {
                "name": f"{project.get('name') or ''} (from P{project_id})",
                "created_on": now,
                "last_accessed_on": now,
                "user_id": user_id,
                "group_id": None,
                "partitioned_from_project_id": project_id,
                "ancestor_project_id": project_id,
                "published": 0,
                "published_on": None,
                "exemplar_media_id": _cloned_or_none(
                    duplicator, "media_files", project.get("exemplar_media_id"),
                ),
            },
        )
        _add_member(store, cloned_id, user_id, now)
        duplicator.renumber_matrix_orders(cloned_id)

    logger.info(
        "Partition %s of project %s published as %s", partition_id, project_id, cloned_id,
    )
    return cloned_id
