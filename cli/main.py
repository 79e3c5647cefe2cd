"""CLI entry point — novelforge book generation.

Usage:
  novelforge new -p "..." -g fantasy -w 20000   Create a book
  novelforge generate -b 1                       Run the pipeline for a book
  novelforge status                              List books (or -b ID for one)
  novelforge revisions -b 1                      Show the revision backlog
  novelforge checkpoints --cleanup 30            Inspect or prune checkpoints
"""

import asyncio
import logging
import sys

import click

from cli.theme import (
    BOOK_STATUS_COLORS,
    app_header,
    book_summary_panel,
    chapter_table,
    command_panel,
    get_console,
    revision_table,
    success_panel,
)
from config.exceptions import BookLockedError, NovelEngineError
from config.logging_config import setup_logging
from config.settings import Settings
from config.tiers import SubscriptionTier
from models.book import Book, BookSettings
from models.database import Database
from workflow.callbacks import LoggingCallback, RichProgressChannel
from workflow.checkpoint import CheckpointStore

console = get_console()


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _require_book(db: Database, book_id: int) -> Book:
    book = db.get_book(book_id)
    if not book:
        console.print(f"[error]Book {book_id} not found[/]")
        sys.exit(1)
    return book


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """novelforge — turn a short prompt into a novel.

    \b
    Typical session:
      novelforge new -p "A lighthouse keeper finds a door in the sea" -g fantasy
      novelforge generate -b 1
      novelforge status -b 1
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# new command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--prompt", "-p", required=True, help="Story premise")
@click.option("--title", "-t", default="", help="Working title")
@click.option("--genre", "-g", default="default", help="Genre (fantasy, mystery, romance, ...)")
@click.option("--words", "-w", default=50000, type=int, help="Target word count (default 50000)")
@click.option("--tone", default="balanced", help="Tone of the prose")
@click.option("--audience", default="adult", help="Intended audience")
@click.option("--pov", default="third person limited", help="Point of view")
@click.option("--tense", default="past", type=click.Choice(["past", "present"]), help="Narrative tense")
@click.option("--character", "-c", "characters", multiple=True, help="Character name (repeatable)")
@click.option(
    "--tier", default=None,
    type=click.Choice([t.value for t in SubscriptionTier]),
    help="Subscription tier (defaults to the configured tier)",
)
def new(prompt, title, genre, words, tone, audience, pov, tense, characters, tier):
    """Create a book record; nothing is generated yet.

    Example:
      novelforge new -p "Two rival cartographers map a shifting city" -g literary -w 30000
    """
    if words < 1:
        console.print("[error]--words must be positive[/]")
        sys.exit(1)

    settings = Settings()
    db = Database(settings.sqlite_db_path)
    book = Book(
        title=title,
        prompt=prompt,
        settings=BookSettings(
            genre=genre,
            tone=tone,
            audience=audience,
            target_word_count=words,
            point_of_view=pov,
            tense=tense,
            character_names=list(characters),
        ),
        tier=tier or settings.default_tier,
    )
    book_id = db.create_book(book)

    console.print(app_header())
    console.print(command_panel("New book", {
        "ID": str(book_id),
        "Genre": genre,
        "Target": f"{words:,} words",
        "Tier": book.tier,
    }))
    console.print(f"\n[muted]Next:[/] novelforge generate -b {book_id}")


# ---------------------------------------------------------------------------
# generate command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int, help="Book ID")
@click.option("--chapters", "-c", default=None, type=int, help="Write at most N chapters this run")
@click.option(
    "--stop-after", default=None, type=click.Choice(["back_cover", "outline"]),
    help="Stop after the given planning stage",
)
def generate(book_id, chapters, stop_after):
    """Run (or resume) the generation pipeline for a book.

    Re-running after a crash resumes from the last checkpoint.

    Example:
      novelforge generate -b 1 --stop-after outline
    """
    from workflow.book_orchestrator import BookOrchestrator, OrchestratorServices
    from workflow.graph import run_pipeline

    settings = Settings()
    channel = RichProgressChannel(console=console)
    services = OrchestratorServices.from_settings(settings, channel=channel)
    book = _require_book(services.db, book_id)
    orchestrator = BookOrchestrator(services)

    console.print(app_header())
    console.print(command_panel("Generate", {
        "Book": f"{book.title or 'Untitled'} (ID {book_id})",
        "Genre": book.settings.genre,
        "Target": f"{book.settings.target_word_count:,} words",
        "Tier": book.tier,
    }))

    channel.start()
    try:
        final_state = asyncio.run(run_pipeline(
            orchestrator, book_id,
            callback=LoggingCallback(),
            max_chapters=chapters,
            stop_after=stop_after,
        ))
    except BookLockedError as e:
        console.print(f"[error]{e}[/]")
        sys.exit(1)
    finally:
        channel.stop()

    if final_state.get("error"):
        console.print(f"\n[error]Generation stopped in {final_state.get('last_node', '?')}:[/] "
                      f"{final_state['error']}")
        sys.exit(1)

    progress = orchestrator.get_generation_progress(book_id)
    if final_state.get("completed"):
        console.print(success_panel(
            "Book complete",
            f"  {progress['total_chapters']} chapters written. "
            f"See [info]novelforge revisions -b {book_id}[/] for suggested revisions.",
        ))
    else:
        console.print(
            f"\n[warning]Stopped at step {progress['step']} "
            f"({progress['completed_chapters']}/{progress['total_chapters']} chapters).[/]"
        )
    _print_usage_summary(services.llm.get_usage_summary())


# ---------------------------------------------------------------------------
# status command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", default=None, type=int, help="Show one book (default: list all)")
def status(book_id):
    """Show books and their generation progress."""
    from workflow.book_orchestrator import BookOrchestrator, OrchestratorServices

    settings = Settings()
    console.print(app_header())
    console.print()

    if book_id:
        services = OrchestratorServices.from_settings(settings)
        book = _require_book(services.db, book_id)
        progress = BookOrchestrator(services).get_generation_progress(book_id)
        console.print(book_summary_panel(book, progress))
        summary = services.checkpoints.get_summary(book_id)
        if summary.exists:
            console.print(
                f"  [muted]Checkpoint:[/] {summary.completed_chapters} chapters, "
                f"{summary.completed_sections} sections done, "
                f"{summary.failed_sections} flagged"
            )
        chapters = services.db.get_chapters(book_id)
        if chapters:
            console.print()
            console.print(chapter_table(chapters))
        return

    db = Database(settings.sqlite_db_path)
    books = db.list_books()
    if not books:
        console.print("[warning]No books yet. Create one with [info]novelforge new[/].[/]")
        return

    from rich.table import Table

    table = Table(title="Books", show_lines=True, border_style="dim")
    table.add_column("ID", style="chapter.num")
    table.add_column("Title", style="bold")
    table.add_column("Genre", style="genre")
    table.add_column("Status")
    table.add_column("Step")
    table.add_column("Target words", justify="right")
    for b in books:
        color = BOOK_STATUS_COLORS.get(b.status, "white")
        table.add_row(
            str(b.id),
            b.title or "Untitled",
            b.settings.genre,
            f"[{color}]{b.status.value}[/]",
            b.generation_step.value,
            f"{b.settings.target_word_count:,}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# revisions command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int, help="Book ID")
@click.option("--complete", "complete_id", default=None, help="Mark a revision task as done")
def revisions(book_id, complete_id):
    """Show the advisory revision backlog for a book."""
    from workflow.book_orchestrator import BookOrchestrator, OrchestratorServices

    services = OrchestratorServices.from_settings(Settings())
    _require_book(services.db, book_id)
    orchestrator = BookOrchestrator(services)

    if complete_id:
        if orchestrator.supervision.mark_revision_complete(complete_id):
            console.print(f"[success]Revision {complete_id} marked complete[/]")
        else:
            console.print(f"[error]Revision {complete_id} not found[/]")
            sys.exit(1)

    tasks = orchestrator.get_pending_revisions(book_id)
    if not tasks:
        console.print("[muted]No pending revisions.[/]")
        return
    console.print(revision_table(tasks))


# ---------------------------------------------------------------------------
# checkpoints command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--cleanup", default=None, type=int, metavar="DAYS",
              help="Delete checkpoints older than DAYS")
def checkpoints(cleanup):
    """List saved generation checkpoints."""
    settings = Settings()
    store = CheckpointStore(settings.checkpoint_dir)

    if cleanup is not None:
        removed = store.cleanup_old_checkpoints(cleanup)
        console.print(f"[success]Removed {removed} checkpoint(s) older than {cleanup} days[/]")

    book_ids = store.list_checkpoints()
    if not book_ids:
        console.print("[muted]No checkpoints.[/]")
        return

    from rich.table import Table

    table = Table(title="Checkpoints", border_style="dim")
    table.add_column("Book", style="chapter.num")
    table.add_column("Chapters done", justify="right")
    table.add_column("Sections done", justify="right")
    table.add_column("Failed sections", justify="right")
    table.add_column("Updated")
    for book_id in book_ids:
        summary = store.get_summary(book_id)
        table.add_row(
            str(book_id),
            str(summary.completed_chapters),
            str(summary.completed_sections),
            str(summary.failed_sections),
            summary.last_updated.strftime("%Y-%m-%d %H:%M") if summary.last_updated else "-",
        )
    console.print(table)


def _print_usage_summary(usage: dict) -> None:
    """Print completion call and token totals."""
    if not usage or not usage.get("total_calls"):
        return
    console.print(
        f"\n[muted]Completions: {usage['total_calls']} calls | "
        f"{usage.get('total_tokens', 0):,} tokens[/]"
    )


def main():
    """Entry point."""
    try:
        cli()
    except NovelEngineError as e:
        console.print(f"[error]{e}[/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
