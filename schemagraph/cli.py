"""Typer-based CLI for exploring the schema graph and duplicating projects."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__, config
from .cli_config import config_app
from .datamodel import Datamodel, get_datamodel
from .errors import NoPathError, SchemaGraphError, UnknownTableError
from .partition import PartitionModelDuplicator
from .policies import POLICIES, PARTITION_PUBLISHING, PROJECT_DUPLICATION
from .scanner import BaseModelScanner
from .services import duplicate_project, process_duplication_request, publish_partition
from .storage import SqlStore

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    help="🗺️  schemagraph: schema graph queries and project duplication.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")

# Options given to the top-level callback, shared by every command.
_state = {"catalog": None}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"schemagraph v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log at DEBUG level."),
    catalog: Optional[Path] = typer.Option(
        None,
        "--catalog",
        exists=True,
        dir_okay=False,
        help="Table catalog (YAML) to use instead of the configured one.",
    ),
):
    """schemagraph: foreign-key graph of the research-data schema."""
    _configure_logging(verbose)
    _state["catalog"] = catalog


def _datamodel() -> Datamodel:
    if _state["catalog"] is not None:
        return Datamodel.from_catalog(_state["catalog"])
    return get_datamodel()


def _open_store(database: Optional[Path]) -> SqlStore:
    if database is not None:
        return SqlStore(database)
    return SqlStore.open_default()


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn library errors into a red message and exit code 1."""
    try:
        yield
    except SchemaGraphError as exc:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)
    except sqlite3.Error as exc:
        logger.debug("Database error", exc_info=True)
        console.print(f"[red]✗[/red] Database error: {exc}")
        raise typer.Exit(code=1)


def _require_table(datamodel: Datamodel, name: str) -> None:
    if not datamodel.table_exists(name):
        raise UnknownTableError(name)


# ------------------------------------------------------------------
# Schema queries
# ------------------------------------------------------------------

@app.command("tables")
def list_tables():
    """List every table of the catalog."""
    with _reported_errors():
        datamodel = _datamodel()
        table = Table(title="Tables", show_header=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Table", style="cyan")
        table.add_column("Primary key")
        table.add_column("References", justify="right")
        table.add_column("Referenced by", justify="right")
        for name in datamodel.get_table_names():
            descriptor = datamodel.get_table(name)
            table.add_row(
                "" if descriptor.number is None else str(descriptor.number),
                name,
                ", ".join(descriptor.primary_key),
                str(len(datamodel.get_neighboring_tables(name))),
                str(len(datamodel.get_referencing_tables(name))),
            )
        console.print(table)


@app.command("table")
def describe_table(name: str = typer.Argument(..., help="Table name.")):
    """Describe one table: keys, foreign keys and referencing tables."""
    with _reported_errors():
        datamodel = _datamodel()
        descriptor = datamodel.get_table(name)

        number = "-" if descriptor.number is None else descriptor.number
        console.print(f"[bold cyan]{descriptor.name}[/bold cyan] (number {number})")
        console.print(f"Primary key: {', '.join(descriptor.primary_key)}")
        if descriptor.json_columns:
            console.print(f"JSON columns: {', '.join(descriptor.json_columns)}")
        if descriptor.ancestored_columns:
            console.print(f"Ancestor columns: {', '.join(descriptor.ancestored_columns)}")

        if descriptor.foreign_keys:
            fks = Table(title="Foreign keys", show_header=True)
            fks.add_column("Column", style="cyan")
            fks.add_column("References")
            fks.add_column("Cost", justify="right")
            for fk in descriptor.foreign_keys:
                fks.add_row(fk.column, f"{fk.table}.{fk.referenced_key}", str(fk.cost))
            console.print(fks)

        referencing = datamodel.get_referencing_tables(name)
        console.print(f"Referenced by: {', '.join(referencing) if referencing else '(none)'}")


@app.command("neighbors")
def neighbors(name: str = typer.Argument(..., help="Table name.")):
    """Tables referenced by NAME's foreign keys."""
    with _reported_errors():
        datamodel = _datamodel()
        _require_table(datamodel, name)
        for table in datamodel.get_neighboring_tables(name):
            typer.echo(table)


@app.command("referencing")
def referencing(name: str = typer.Argument(..., help="Table name.")):
    """Tables holding a foreign key to NAME."""
    with _reported_errors():
        datamodel = _datamodel()
        _require_table(datamodel, name)
        for table in datamodel.get_referencing_tables(name):
            typer.echo(table)


@app.command("path")
def path(
    source: str = typer.Argument(..., help="Table to start from."),
    target: str = typer.Argument(..., help="Table to reach."),
):
    """Cheapest chain of foreign keys from SOURCE to TARGET."""
    with _reported_errors():
        datamodel = _datamodel()
        _require_table(datamodel, source)
        _require_table(datamodel, target)
        tables = datamodel.get_path(source, target)
        if not tables:
            raise NoPathError(source, target)
        typer.echo(" -> ".join(tables))


# ------------------------------------------------------------------
# Scanning
# ------------------------------------------------------------------

@app.command("scan")
def scan(
    table: str = typer.Argument(..., help="Root table."),
    entity_id: int = typer.Argument(..., help="Id of the root row."),
    policy: str = typer.Option(
        PROJECT_DUPLICATION.name, "--policy", "-p", help="project-duplication or partition-publishing.",
    ),
    partition: Optional[int] = typer.Option(None, "--partition", help="Partition id (partition-publishing only)."),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="SQLite database to read ids from."),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON."),
):
    """Plan the tables and queries a duplication of TABLE ENTITY_ID would run."""
    if policy not in POLICIES:
        raise typer.BadParameter(f"Unknown policy '{policy}'. Choose from: {', '.join(POLICIES)}.")
    if policy == PARTITION_PUBLISHING.name and partition is None:
        raise typer.BadParameter("--partition is required with the partition-publishing policy.")

    with _reported_errors():
        datamodel = _datamodel()
        partitioned = policy == PARTITION_PUBLISHING.name
        store = _open_store(database) if database is not None or partitioned else None
        try:
            if partitioned:
                scanner = PartitionModelDuplicator(table, entity_id, partition, datamodel, store)
            else:
                scanner = BaseModelScanner(table, entity_id, datamodel, store)
            POLICIES[policy].apply(scanner)
            result = scanner.scan()
        finally:
            if store is not None:
                store.close()

    if as_json:
        typer.echo(json.dumps(result.as_dict(), indent=2))
        return

    console.print(
        f"[bold cyan]{len(result.tables)} table(s)[/bold cyan] depend on "
        f"{result.root_table} {result.root_id}:"
    )
    for position, name in enumerate(result.tables, start=1):
        typer.echo(f"{position:3d}. {name}")
        typer.echo(f"     {result.statements[name]}")


@app.command("sql")
def sql(
    table: str = typer.Argument(..., help="Table whose rows to select."),
    root: str = typer.Option("projects", "--root", "-r", help="Root table the rows belong to."),
):
    """Print the SELECT gathering TABLE's rows owned by one ROOT row."""
    with _reported_errors():
        datamodel = _datamodel()
        _require_table(datamodel, table)
        scanner = BaseModelScanner(root, None, datamodel)
        typer.echo(scanner.generate_sql_statement_for_table(table))


# ------------------------------------------------------------------
# Duplication
# ------------------------------------------------------------------

@app.command("duplicate")
def duplicate(
    project_id: Optional[int] = typer.Argument(None, help="Project to duplicate."),
    user_id: Optional[int] = typer.Option(None, "--user", "-u", help="Owner of the copy."),
    request_id: Optional[int] = typer.Option(None, "--request", help="Approved duplication request to carry out."),
    onetime_use_action: Optional[int] = typer.Option(
        None, "--onetime-use-action",
        help="One-time use media: 1 keeps them in the original, 100 moves them to the copy.",
    ),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="SQLite database to work on."),
):
    """Duplicate a project with all the rows it owns."""
    if request_id is None and (project_id is None or user_id is None):
        raise typer.BadParameter("Give PROJECT_ID and --user, or --request.")

    with _reported_errors():
        datamodel = _datamodel()
        store = _open_store(database)
        try:
            if request_id is not None:
                cloned_id = process_duplication_request(store, request_id, datamodel)
            else:
                cloned_id = duplicate_project(
                    store, project_id, user_id, datamodel, onetime_use_action=onetime_use_action,
                )
        finally:
            store.close()
    console.print(f"[green]✓[/green] Created project {cloned_id}")


@app.command("publish-partition")
def publish(
    project_id: int = typer.Argument(..., help="Project the partition belongs to."),
    partition_id: int = typer.Argument(..., help="Partition to publish."),
    user_id: int = typer.Option(..., "--user", "-u", help="Owner of the new project."),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="SQLite database to work on."),
):
    """Publish one partition of a project as a new project."""
    with _reported_errors():
        datamodel = _datamodel()
        store = _open_store(database)
        try:
            cloned_id = publish_partition(store, project_id, partition_id, user_id, datamodel)
        finally:
            store.close()
    console.print(f"[green]✓[/green] Published partition {partition_id} as project {cloned_id}")


if __name__ == "__main__":
    app()
