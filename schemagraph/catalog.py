"""Loading of the table catalog that describes the relational schema.

The catalog is a YAML document with a single ``tables`` list. Each entry names
a table, its registry number, its primary key columns and the foreign keys it
holds. The bundled catalog lives in ``schemagraph/data/schema.yaml``; a
different file can be configured through ``[catalog] path``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from . import config
from .errors import MalformedDescriptorError
from .graph import DEFAULT_EDGE_WEIGHT
from .models import ForeignKey, TableDescriptor

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = Path(__file__).parent / "data" / "schema.yaml"


def load_descriptors(path: Optional[Union[str, Path]] = None) -> List[TableDescriptor]:
    """Read a catalog file and return its descriptors in file order.

    Args:
        path: Catalog file. Defaults to the configured catalog, or the
              bundled one when nothing is configured.

    Raises:
        MalformedDescriptorError: The document is not a valid catalog.
    """
    if path is None:
        path = config.CATALOG_PATH or DEFAULT_CATALOG
    catalog_path = Path(path).expanduser()
    logger.debug("Loading table catalog from %s", catalog_path)

    with open(catalog_path, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f)
    return parse_descriptors(document, source=str(catalog_path), default_cost=config.DEFAULT_EDGE_COST)


def parse_descriptors(
    document: Any,
    source: str = "<catalog>",
    default_cost: float = DEFAULT_EDGE_WEIGHT,
) -> List[TableDescriptor]:
    """Turn an already parsed catalog document into descriptors.

    Foreign keys without an explicit ``cost`` get *default_cost*.
    """
    if not isinstance(document, dict) or not isinstance(document.get("tables"), list):
        raise MalformedDescriptorError(f"{source}: expected a mapping with a 'tables' list")
    return [_parse_table(entry, source, default_cost) for entry in document["tables"]]


def _parse_table(entry: Any, source: str, default_cost: float) -> TableDescriptor:
    if not isinstance(entry, dict) or not entry.get("name"):
        raise MalformedDescriptorError(f"{source}: every table entry needs a 'name'")
    name = str(entry["name"])

    number = entry.get("number")
    if number is not None and not isinstance(number, int):
        raise MalformedDescriptorError(f"{source}: table '{name}' has a non-integer number {number!r}")

    primary_key = _string_list(entry.get("primary_key"), name, "primary_key", source)
    if not primary_key:
        raise MalformedDescriptorError(f"{source}: table '{name}' has no primary key")

    foreign_keys = []
    for raw in entry.get("foreign_keys") or []:
        if not isinstance(raw, dict) or not raw.get("column") or not raw.get("table"):
            raise MalformedDescriptorError(
                f"{source}: foreign keys of '{name}' need both 'column' and 'table'"
            )
        foreign_keys.append(
            ForeignKey(
                column=str(raw["column"]),
                table=str(raw["table"]),
                key=str(raw.get("key") or ""),
                cost=raw.get("cost", default_cost),
            )
        )

    return TableDescriptor(
        name=name,
        number=number,
        primary_key=tuple(primary_key),
        foreign_keys=tuple(foreign_keys),
        json_columns=tuple(_string_list(entry.get("json_columns"), name, "json_columns", source)),
        ancestored_columns=tuple(
            _string_list(entry.get("ancestored_columns"), name, "ancestored_columns", source)
        ),
    )


def _string_list(value: Any, table: str, field_name: str, source: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise MalformedDescriptorError(f"{source}: '{field_name}' of '{table}' must be a list")
    return [str(item) for item in value]


# ------------------------------------------------------------------
# Table numbers
# ------------------------------------------------------------------

def table_numbers(descriptors: Sequence[TableDescriptor]) -> Dict[str, int]:
    """Map of table name to registry number for every numbered table."""
    return {d.name: d.number for d in descriptors if d.number is not None}


def get_table_number(descriptors: Sequence[TableDescriptor], name: str) -> Optional[int]:
    for descriptor in descriptors:
        if descriptor.name == name:
            return descriptor.number
    return None


def get_table_name_by_number(descriptors: Sequence[TableDescriptor], number: int) -> Optional[str]:
    for descriptor in descriptors:
        if descriptor.number == number:
            return descriptor.name
    return None
