"""cadence CLI: note queue, flashcard review, decks and the HTTP daemon."""

import asyncio
import json
import logging
import sys
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Annotated

import typer

from cadence.application.config import AppConfig, resolve_config
from cadence.application.flashcards_pass import split_deck_path
from cadence.application.notes_pass import group_by_due_day, next_note
from cadence.application.review_service import ReviewService
from cadence.application.scheduler import text_interval
from cadence.domain.deck import Deck
from cadence.domain.errors import CardNotFoundError, NoteNotReviewableError
from cadence.domain.models import Card, ReviewResponse
from cadence.infrastructure.plugin_data import JsonBuriedStore
from cadence.infrastructure.vault import FileSystemVault

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: spaced repetition for markdown notes and flashcards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage cadence configuration.")
app.add_typer(config_app, name="config")


class Response(str, Enum):
    easy = "easy"
    good = "good"
    hard = "hard"
    reset = "reset"

    def to_review(self) -> ReviewResponse:
        return ReviewResponse[self.name.upper()]


CARD_PROMPT = "[e]asy [g]ood [h]ard [r]eset [b]ury [s]kip [q]uit"
CARD_KEYS = {"e": Response.easy, "g": Response.good, "h": Response.hard, "r": Response.reset}

VaultArg = Annotated[
    Path | None,
    typer.Argument(help="Path to the vault. Defaults to 'vault_root' in config, or CWD."),
]


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for cadence."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose > 1:
        logging.getLogger().setLevel(logging.DEBUG)


def _resolve(ctx: typer.Context, path: Path | None) -> AppConfig:
    return resolve_config({"vault_root": path, "verbose": (ctx.obj or {}).get("verbose")})


def _open_service(config: AppConfig) -> ReviewService:
    return ReviewService(
        FileSystemVault(config.vault_root),
        config,
        JsonBuriedStore(config.data_file),
    )


def _note_id(root: Path, note: str) -> str:
    """Accept either a vault-relative id or a filesystem path to the note."""
    p = Path(note).expanduser()
    if p.exists():
        try:
            return p.resolve().relative_to(root).as_posix()
        except ValueError:
            pass
    return PurePosixPath(note).as_posix()


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@app.command()
def notes(
    ctx: typer.Context,
    path: VaultArg = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show the note review queue: new notes, then scheduled notes by day."""
    config = _resolve(ctx, path)
    service = _open_service(config)
    service.sync_notes()
    result = service.notes

    groups = group_by_due_day(
        result.scheduled_notes, result.generated_at, config.max_n_days_notes_review_queue
    )

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "due": result.due_notes_count,
                    "new": [doc.path for doc in result.new_notes],
                    "scheduled": {
                        title: [
                            {
                                "path": n.document.path,
                                "due": n.due.date().isoformat(),
                                "importance": round(n.importance, 2),
                            }
                            for n in group
                        ]
                        for title, group in groups.items()
                    },
                },
                indent=2,
            )
        )
        return

    typer.secho(f"New ({len(result.new_notes)})", bold=True)
    for doc in result.new_notes:
        typer.echo(f"  {doc.path}")

    for title, group in groups.items():
        typer.secho(f"{title} ({len(group)})", bold=True)
        for n in group:
            typer.echo(f"  {n.document.path}")

    typer.secho(f"Due now: {result.due_notes_count}", fg="green")


@app.command("next")
def next_cmd(
    ctx: typer.Context,
    path: VaultArg = None,
    random_pick: Annotated[
        bool | None,
        typer.Option("--random/--no-random", help="Pick randomly among due (or new) notes."),
    ] = None,
):
    """Print the note to review next."""
    config = _resolve(ctx, path)
    service = _open_service(config)
    service.sync_notes()

    pick_random = config.open_random_note if random_pick is None else random_pick
    doc = next_note(service.notes, pick_random=pick_random)
    if doc is None:
        typer.secho("No notes to review.", fg="yellow")
        return
    typer.echo(doc.path)


@app.command()
def review(
    ctx: typer.Context,
    note: Annotated[str, typer.Argument(help="Note to review (vault-relative or file path).")],
    response: Annotated[Response, typer.Option("--response", "-r", help="Review response.")],
    vault: Annotated[Path | None, typer.Option(help="Vault path override.")] = None,
):
    """Review a note and write its next due date into the frontmatter."""
    config = _resolve(ctx, vault)
    service = _open_service(config)
    service.sync_notes()
    doc_id = _note_id(config.vault_root, note)

    try:
        result = asyncio.run(service.review_note(doc_id, response.to_review()))
    except NoteNotReviewableError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.secho(f"Note not found in vault: {doc_id}", fg="red")
        raise typer.Exit(1) from None

    if result is None:
        typer.echo(f"{doc_id}: scheduling reset")
    else:
        typer.secho(
            f"{doc_id}: next review in {text_interval(result.interval)} (ease {result.ease})",
            fg="green",
        )


# ---------------------------------------------------------------------------
# Flashcards
# ---------------------------------------------------------------------------


def _find_deck(tree: Deck, deck: str | None) -> tuple[list[str], Deck | None]:
    if not deck:
        return [], tree
    path = split_deck_path(deck)
    node: Deck | None = tree
    for name in path:
        node = node.get_subdeck(name) if node else None
    return path, node


def _session_cards(node: Deck, prefix: list[str]) -> list[tuple[list[str], Card]]:
    """Due cards before new ones, deck by deck, depth first."""
    queue = []
    decks = [((), node), *node.iter_decks()]
    for rel, deck in decks:
        full = [*prefix, *rel]
        queue.extend((full, c) for c in deck.due_flashcards)
        queue.extend((full, c) for c in deck.new_flashcards)
    return queue


def _drop_from_deck(tree: Deck, deck_path: list[str], card: Card) -> None:
    node = tree
    for name in deck_path:
        node = node.get_subdeck(name)
    cards = node.due_flashcards if card.is_due else node.new_flashcards
    index = next(i for i, c in enumerate(cards) if c is card)
    tree.remove_card(deck_path, index, card.is_due)


@app.command()
def decks(
    ctx: typer.Context,
    path: VaultArg = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Rebuild and show the deck tree with due/new counts."""
    config = _resolve(ctx, path)
    service = _open_service(config)
    asyncio.run(service.sync_flashcards())
    result = service.flashcards
    tree = result.deck_tree

    if json_output:
        typer.echo(json.dumps(tree.to_dict(), indent=2))
        return

    for deck_path, deck in tree.iter_decks():
        indent = "  " * (len(deck_path) - 1)
        typer.echo(
            f"{indent}{deck.deck_name}  due={deck.due_flashcards_count} "
            f"new={deck.new_flashcards_count} total={deck.total_flashcards}"
        )
    typer.secho(
        f"Due: {tree.due_flashcards_count}  New: {tree.new_flashcards_count}  "
        f"Total: {tree.total_flashcards}",
        fg="green",
    )
    for file in result.rewritten_files:
        typer.secho(f"Pruned stale cloze schedules in {file}", fg="yellow")
    for file, err in result.errors.items():
        typer.secho(f"{file}: {err}", fg="red")


@app.command()
def cards(
    ctx: typer.Context,
    path: VaultArg = None,
    deck: Annotated[
        str | None, typer.Option(help="Only review this deck, e.g. 'flashcards/bio'.")
    ] = None,
):
    """Review due and new flashcards interactively."""
    config = _resolve(ctx, path)
    service = _open_service(config)
    asyncio.run(service.sync_flashcards())
    tree = service.flashcards.deck_tree

    prefix, node = _find_deck(tree, deck)
    if node is None:
        typer.secho(f"Unknown deck: {deck}", fg="red")
        raise typer.Exit(1)

    queue = _session_cards(node, prefix)
    if not queue:
        typer.secho("No cards to review.", fg="yellow")
        return

    reviewed = 0
    for deck_path, card in queue:
        typer.echo("")
        if card.context:
            typer.secho(card.context, dim=True)
        typer.secho(card.front, bold=True)
        typer.prompt("Show answer", default="", show_default=False)
        typer.echo(card.back)

        choice = typer.prompt(CARD_PROMPT, default="g").strip().lower()[:1]
        if choice == "q":
            break
        if choice == "s":
            continue
        if choice == "b":
            service.bury(card)
            _drop_from_deck(tree, deck_path, card)
            typer.secho("Buried until the data file is cleared.", fg="yellow")
            continue
        if choice not in CARD_KEYS:
            typer.secho(f"Unknown choice {choice!r}; skipping.", fg="yellow")
            continue

        try:
            result = asyncio.run(service.review_card(card, CARD_KEYS[choice].to_review()))
        except CardNotFoundError as e:
            typer.secho(str(e), fg="red")
            continue
        _drop_from_deck(tree, deck_path, card)
        reviewed += 1
        typer.secho(f"Next review in {text_interval(result.interval)}", fg="green")

    typer.echo(f"Reviewed {reviewed} card(s).")


@app.command()
def stats(
    ctx: typer.Context,
    path: VaultArg = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show how many notes and cards fall due on each upcoming day."""
    config = _resolve(ctx, path)
    service = _open_service(config)
    service.sync_notes()
    asyncio.run(service.sync_flashcards())

    notes_hist = dict(sorted(service.notes.due_dates.items()))
    cards_hist = dict(sorted(service.flashcards.due_dates.items()))

    if json_output:
        typer.echo(json.dumps({"notes": notes_hist, "flashcards": cards_hist}, indent=2))
        return

    for title, hist in (("Notes", notes_hist), ("Flashcards", cards_hist)):
        typer.secho(f"{title} due by day", bold=True)
        if not hist:
            typer.echo("  (none scheduled)")
        for day, count in hist.items():
            typer.echo(f"  {day:>6}  {count}")


@app.command()
def bury(
    ctx: typer.Context,
    fingerprint: Annotated[
        str | None, typer.Argument(help="Card fingerprint to bury.")
    ] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Unbury every card.")] = False,
):
    """Bury a card until cleared, or clear all buried cards."""
    config = _resolve(ctx, None)
    store = JsonBuriedStore(config.data_file)

    if clear:
        store.clear()
        typer.secho("Cleared buried cards.", fg="green")
        return
    if not fingerprint:
        buried = sorted(store.load())
        typer.echo(f"{len(buried)} buried card(s)")
        for fp in buried:
            typer.echo(f"  {fp}")
        return

    store.bury(fingerprint)
    typer.secho(f"Buried {fingerprint}", fg="green")


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8778,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP daemon."""
    import uvicorn

    typer.secho(f"Starting cadence server on http://{host}:{port}", fg="green")
    uvicorn.run("cadence.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
