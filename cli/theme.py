"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from models.enums import BookStatus, ChapterStatus, RevisionPriority

BOOK_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
})

BOOK_STATUS_COLORS = {
    BookStatus.PLANNING: "yellow",
    BookStatus.GENERATING: "green",
    BookStatus.COMPLETE: "cyan",
    BookStatus.ERROR: "red",
}

CHAPTER_STATUS_COLORS = {
    ChapterStatus.PLANNED: "dim",
    ChapterStatus.GENERATING: "yellow",
    ChapterStatus.COMPLETE: "green",
    ChapterStatus.NEEDS_REVISION: "red",
}

PRIORITY_COLORS = {
    RevisionPriority.URGENT: "bold red",
    RevisionPriority.HIGH: "red",
    RevisionPriority.MEDIUM: "yellow",
    RevisionPriority.LOW: "dim",
}


def get_console() -> Console:
    """Return a Console instance with the book theme applied."""
    return Console(theme=BOOK_THEME)


def app_header(title: str = "novelforge") -> Rule:
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "New book").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def book_summary_panel(book, progress: dict) -> Panel:
    """Return a Panel with a book's settings and generation progress."""
    prompt = book.prompt or ""
    if len(prompt) > 150:
        prompt = prompt[:150] + "..."
    color = BOOK_STATUS_COLORS.get(book.status, "white")

    body = (
        f"  [stat.label]Genre:[/] [genre]{book.settings.genre}[/]  "
        f"[muted]|[/]  [stat.label]Tier:[/] {book.tier}  "
        f"[muted]|[/]  [stat.label]Target:[/] [stat.value]{book.settings.target_word_count:,}[/] words\n"
        f"  [stat.label]Status:[/] [{color}]{book.status.value}[/]  "
        f"[muted]|[/]  [stat.label]Step:[/] {progress['step']}  "
        f"[muted]|[/]  [stat.label]Progress:[/] [stat.value]{progress['progress']}%[/]  "
        f"[muted]|[/]  [stat.label]Chapters:[/] "
        f"[stat.value]{progress['completed_chapters']}/{progress['total_chapters']}[/]\n"
        f"  [stat.label]Prompt:[/] {prompt}"
    )
    if book.error_message:
        body += f"\n  [error]Last error:[/] {book.error_message}"
    return Panel(
        body,
        title=f"[bold]{book.title or 'Untitled'}[/] [muted](ID: {book.id})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def chapter_table(chapters: list) -> Table:
    table = Table(title="Chapters", border_style="dim")
    table.add_column("#", style="chapter.num")
    table.add_column("Title")
    table.add_column("Words", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Status")
    table.add_column("Quality", justify="right")

    for ch in chapters:
        color = CHAPTER_STATUS_COLORS.get(ch.status, "white")
        table.add_row(
            str(ch.chapter_number),
            ch.title or "-",
            f"{ch.word_count:,}",
            f"{ch.word_target:,}",
            f"[{color}]{ch.status.value}[/]",
            f"{ch.quality_score:.0f}" if ch.quality_score is not None else "-",
        )
    return table


def revision_table(tasks: list) -> Table:
    table = Table(title="Pending revisions", border_style="dim")
    table.add_column("ID", style="muted")
    table.add_column("Chapter", style="chapter.num", justify="right")
    table.add_column("Trigger")
    table.add_column("Priority")
    table.add_column("Effort")
    table.add_column("Seen", justify="right")
    table.add_column("Reason")

    for task in tasks:
        color = PRIORITY_COLORS.get(task.priority, "white")
        table.add_row(
            task.id,
            str(task.chapter_number),
            task.trigger.value,
            f"[{color}]{task.priority.value}[/]",
            task.estimated_effort,
            str(task.occurrences),
            task.reason,
        )
    return table
