"""`sg config` commands: inspect and edit ~/.schemagraph/config.toml."""

from __future__ import annotations

from typing import Tuple

import typer
from rich.console import Console
from rich.table import Table

from . import config, config_manager

console = Console()

config_app = typer.Typer(
    help="⚙️  Configuration: catalog, graph, storage and logging settings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _split_key(dotted: str) -> Tuple[str, str]:
    section, _, key = dotted.partition(".")
    if not section or not key:
        raise typer.BadParameter(f"Expected <section>.<key>, got '{dotted}'.")
    return section, key


@config_app.command("show")
def show_config():
    """Show the effective configuration (defaults plus config file)."""
    effective = config_manager.load_effective_config()
    file_values = config_manager.load_full_config()

    table = Table(title=f"Configuration ({config.CONFIG_FILE})", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    for section, values in effective.items():
        for key, value in values.items():
            source = "file" if key in file_values.get(section, {}) else "default"
            table.add_row(f"{section}.{key}", repr(value), source)
    console.print(table)


@config_app.command("get")
def get_config(key: str = typer.Argument(..., help="Setting as <section>.<key>, e.g. graph.default_edge_cost.")):
    """Print one configuration value."""
    section, name = _split_key(key)
    value = config_manager.get_setting(section, name)
    if value is None:
        console.print(f"[yellow]{key} is not set.[/yellow]")
        raise typer.Exit(code=1)
    typer.echo(value)


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Setting as <section>.<key>."),
    value: str = typer.Argument(..., help="New value."),
):
    """Store a value in the config file."""
    section, name = _split_key(key)
    try:
        saved = config_manager.save_setting(section, name, value)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid value for {key}: {exc}")
    if not saved:
        console.print(f"[red]✗[/red] Could not write {config.CONFIG_FILE}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] {key} = {value}")


@config_app.command("unset")
def unset_config(key: str = typer.Argument(..., help="Setting as <section>.<key>.")):
    """Remove a value from the config file, restoring its default."""
    section, name = _split_key(key)
    if config_manager.unset_setting(section, name):
        console.print(f"[green]✓[/green] {key} reset to default")
    else:
        console.print(f"[yellow]{key} was not set in {config.CONFIG_FILE}[/yellow]")


@config_app.command("path")
def config_path():
    """Print the location of the config file."""
    typer.echo(str(config.CONFIG_FILE))
