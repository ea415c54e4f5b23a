"""kasten CLI — flashcard store backed by a SQLite file.

Commands:
    kasten init [NAME]                       create kasten.toml + empty store
    kasten template add NAME --front ...     register a card template
    kasten templates                         list templates
    kasten deck add NAME                     create a deck (and its parents)
    kasten decks                             list decks
    kasten note add TEMPLATE_ID DECK FIELD.. create a note and its cards
    kasten show CARD_ID [--side f|r]         render a card
    kasten review CARD_ID RATING             record a review
    kasten history CARD_ID                   print a card's review history
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click

from kasten.config import KastenConfig, init_config, load_config
from kasten.errors import FieldCountMismatch, KastenError
from kasten.kasten import Kasten
from kasten.persistence import load, save

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> KastenConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


@contextlib.contextmanager
def _session(*, write: bool = False) -> Iterator[Kasten]:
    """Load the project's store, yield it, save it back if *write*."""
    cfg = _load_cfg()
    try:
        kasten = load(cfg.db_path) if cfg.db_path.exists() else Kasten()
        yield kasten
        if write:
            cfg.ensure_dirs()
            save(kasten, cfg.db_path)
    except KastenError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="kasten")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool) -> None:
    """kasten — notes, cards and decks in a single SQLite file."""
    level = "DEBUG" if verbose else _load_cfg().logging.level
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")


# ---------------------------------------------------------------------------
# kasten init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create kasten.toml and an empty store in the current project."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("kasten.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    if not cfg.db_path.exists():
        try:
            save(Kasten(), cfg.db_path)
        except KastenError as exc:
            raise click.ClickException(str(exc)) from exc
    click.echo(f"Store     : {cfg.db_path}")


# ---------------------------------------------------------------------------
# kasten template / templates
# ---------------------------------------------------------------------------


@cli.group()
def template() -> None:
    """Manage card templates."""


@template.command("add")
@click.argument("name")
@click.option("--front", "fronts", multiple=True, required=True, help="Front layout (one per card)")
@click.option("--back", "backs", multiple=True, help="Back layout, same order as --front")
@click.option("--field", "fields", multiple=True, help="Field name, bound as {{name}}")
def template_add(name: str, fronts: tuple[str, ...], backs: tuple[str, ...], fields: tuple[str, ...]) -> None:
    """Register a template.

    \b
    kasten template add Basic --front "{{Front}}" --back "{{Back}}" --field Front --field Back
    """
    with _session(write=True) as kasten:
        template_id = kasten.register_template(name, fronts, backs, fields)
    click.echo(template_id)


@cli.command()
def templates() -> None:
    """List registered templates."""
    from rich.console import Console
    from rich.table import Table

    with _session() as kasten:
        table = Table(title="templates", show_header=True, header_style="bold")
        table.add_column("Name")
        table.add_column("Id", style="dim")
        table.add_column("Fields")
        table.add_column("Cards/note", justify="right")
        for t in sorted(kasten.templates, key=lambda t: t.name):
            table.add_row(t.name, str(t.id), ", ".join(t.field_names), str(t.slot_count))
    Console().print(table)


# ---------------------------------------------------------------------------
# kasten deck / decks
# ---------------------------------------------------------------------------


@cli.group()
def deck() -> None:
    """Manage decks."""


@deck.command("add")
@click.argument("name")
def deck_add(name: str) -> None:
    """Create a deck; missing parents of A::B::C are created too.

    Exits 0 if the deck already exists (idempotent).
    """
    with _session(write=True) as kasten:
        deck_id = kasten.resolve_deck(name)
    click.echo(deck_id)


@cli.command()
def decks() -> None:
    """List decks with their card counts."""
    from rich.console import Console
    from rich.table import Table

    with _session() as kasten:
        table = Table(title="decks", show_header=True, header_style="bold")
        table.add_column("Deck")
        table.add_column("Id", style="dim")
        table.add_column("Cards", justify="right")
        for d in sorted(kasten.decks, key=lambda d: d.path):
            label = "  " * (d.depth - 1) + d.leaf_name
            table.add_row(label, str(d.id), str(len(d.card_ids)))
    Console().print(table)


# ---------------------------------------------------------------------------
# kasten note
# ---------------------------------------------------------------------------


@cli.group()
def note() -> None:
    """Manage notes."""


@note.command("add")
@click.argument("template_id", type=int)
@click.argument("deck_name")
@click.argument("fields", nargs=-1)
def note_add(template_id: int, deck_name: str, fields: tuple[str, ...]) -> None:
    """Create a note; prints the id of every generated card.

    \b
    kasten note add 1234 Lang::Spanish Hola Hello
    """
    with _session(write=True) as kasten:
        # Check arity before the deck is created so a bad note leaves no trace.
        expected = len(kasten.template(template_id).field_names)
        if expected != len(fields):
            raise FieldCountMismatch(expected, len(fields))
        deck_id = kasten.resolve_deck(deck_name)
        note_id = kasten.create_note(template_id, fields, deck_id)
        card_ids = [c.id for c in kasten.note(note_id).cards]
    for card_id in card_ids:
        click.echo(card_id)


# ---------------------------------------------------------------------------
# kasten show / review / history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("card_id", type=int)
@click.option("--side", default="f", type=click.Choice(["f", "r"]), show_default=True)
def show(card_id: int, side: str) -> None:
    """Render one side of a card."""
    with _session() as kasten:
        text = kasten.render(card_id, side)
    click.echo(text)


@cli.command()
@click.argument("card_id", type=int)
@click.argument("rating", type=click.IntRange(min=0))
def review(card_id: int, rating: int) -> None:
    """Record a review rating for a card."""
    with _session(write=True) as kasten:
        entry = kasten.record_review(card_id, rating)
    click.echo(f"Recorded rating {entry.rating} (elapsed {entry.elapsed} ms)")


@cli.command()
@click.argument("card_id", type=int)
def history(card_id: int) -> None:
    """Print a card's review history, oldest first."""
    with _session() as kasten:
        entries = list(kasten.card(card_id).history)
    if not entries:
        click.echo("no reviews")
        return
    for e in entries:
        click.echo(f"{e.timestamp}\t{e.elapsed}\t{e.rating}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
