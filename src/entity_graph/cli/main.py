"""
entity-graph CLI - inspect preset schemas and run the demo domains
"""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.table import Table

from entity_graph.errors import InvalidArgument
from entity_graph.settings import EntityGraphSettings, settings

console = Console()


def _configure_logging(level: str | None = None) -> None:
    level = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _describe(entity) -> str:
    parts = []
    for name, value in entity.attributes.items():
        if value is None:
            continue
        shown = value.display() if hasattr(value, "display") else value
        parts.append(f"{name}={shown}")
    return ", ".join(parts)


@click.group()
@click.option("--log-level", default=None, help="Override ENTITY_GRAPH_LOG_LEVEL")
def cli(log_level):
    """entity-graph - relationship graph demos"""
    _configure_logging(log_level)


@cli.command()
def version():
    """Print the package version"""
    from entity_graph import __version__

    console.print(__version__)


@cli.command()
@click.argument("preset", type=click.Choice(["school", "mapping"]))
def schema(preset):
    """Show the relationships a preset registers"""
    from entity_graph.presets import build_preset

    registry = build_preset(preset)

    table = Table(title=f"Relationships: {preset}")
    table.add_column("Source", style="cyan")
    table.add_column("Slot", style="green")
    table.add_column("Cardinality", style="magenta")
    table.add_column("Target", style="cyan")
    table.add_column("Back slot", style="green")
    table.add_column("Owner", style="blue")
    table.add_column("Cascade", style="yellow")

    for d in registry.descriptors:
        table.add_row(
            d.source_type,
            d.source_slot,
            d.cardinality.value,
            d.target_type,
            d.target_slot or "-",
            d.owning_side,
            d.cascade.value,
        )
    console.print(table)


@cli.command()
@click.argument("preset", type=click.Choice(["school", "mapping"]))
@click.option("--store", "store_kind", type=click.Choice(["memory", "sqlite"]), default=None)
@click.option("--db-path", default=None, help="SQLite file (with --store sqlite)")
@click.option("--page", "page_no", default=0, help="0-based page number")
@click.option("--size", default=None, type=int, help="Page size")
@click.option("--sort", "sort_key", default="id", help="Sort key, e.g. id, email, name.first_name")
@click.option("--desc", is_flag=True, help="Sort descending")
def demo(preset, store_kind, db_path, page_no, size, sort_key, desc):
    """Seed a preset domain and print one page of it"""
    from entity_graph.manager import GraphManager
    from entity_graph.presets import build_preset, seed_preset

    overrides = {}
    if store_kind:
        overrides["store"] = store_kind
    if db_path:
        overrides["sqlite_path"] = db_path
    cfg = EntityGraphSettings(**overrides) if overrides else settings

    manager = GraphManager.from_settings(build_preset(preset), cfg)
    type_name = seed_preset(preset, manager)

    try:
        page = manager.page_number(
            type_name, page_no, size or cfg.default_page_size, sort_key, "desc" if desc else "asc"
        )
    except InvalidArgument as e:
        raise click.UsageError(str(e)) from e
    if not page.items:
        console.print("[yellow]Page is empty[/yellow]")
        return

    table = Table(title=f"{type_name} page {page.number + 1}/{page.total_pages} ({page.total} total)")
    table.add_column("Id", style="cyan", width=6)
    table.add_column("Attributes", style="white", overflow="fold")
    table.add_column("Relationships", style="magenta", overflow="fold")

    for ent in page.items:
        rels = ", ".join(
            f"{name}: {' '.join(str(k) for k in slot.keys())}"
            for name, slot in ent.slots.items()
            if len(slot)
        )
        table.add_row(str(ent.id), _describe(ent), rels)

    console.print(table)

    counts = ", ".join(f"{et.name}={manager.count(et.name)}" for et in manager.registry.entity_types)
    console.print(f"[blue]{counts}[/blue]")


if __name__ == "__main__":
    cli()
