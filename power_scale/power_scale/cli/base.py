"""
Shared CLI utilities: context lookup and rich rendering of library items.
"""
import click
import logging
from typing import List

from rich.table import Table
from rich import box
from rich.panel import Panel

from ..context import LibraryContext, ItemDetail, build_context
from ..models import Item, Status, media_label
from ..config import get_config
from ..constants import STATUS_COLORS
from ..logging import console

logger = logging.getLogger(__name__)

MEDIA_OPTION_HELP = "Work on the manga lists instead of anime."
STATUS_CHOICES = [s.value for s in Status]


def get_library_context(ctx: click.Context) -> LibraryContext:
    """
    Returns the LibraryContext stored on the click context, building it from
    configuration the first time a command needs it.
    """
    root = ctx.find_root()
    if not isinstance(root.obj, LibraryContext):
        root.obj = build_context(get_config())
    return root.obj


def status_text(status: Status, is_anime: bool) -> str:
    color = STATUS_COLORS.get(status.value, "white")
    return f"[{color}]{status.label(is_anime)}[/{color}]"


def format_date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def build_item_table(items: List[Item], title: str, show_status: bool = False) -> Table:
    table = Table(title=title, box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Rank", justify="right", style="cyan")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Title", style="bold")
    if show_status:
        table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Composite", justify="right", style="green")

    for item in items:
        progress = f"{item.progress}/{item.total_units}" if item.total_units else str(item.progress)
        row = [
            str(item.rank) if item.is_ranked else "-",
            str(item.media_id),
            item.display_name(),
        ]
        if show_status:
            row.append(status_text(item.status, item.is_anime))
        row.extend([
            progress,
            f"{item.score:.1f}" if item.score else "-",
            f"{item.composite_score:.1f}" if item.is_ranked or item.score else "-",
        ])
        table.add_row(*row)
    return table


def render_detail(detail: ItemDetail) -> None:
    item = detail.item
    lines = [
        f"[bold]{item.title}[/bold] ({media_label(item.is_anime)} #{item.media_id})",
        f"Status: {status_text(item.status, item.is_anime)}",
        f"Progress: {item.progress}" + (f"/{item.total_units}" if item.total_units else ""),
        f"Score: {item.score:.1f}   Rank: {item.rank or '-'}",
        f"Started: {format_date(item.start_date)}   Finished: {format_date(item.end_date)}",
    ]
    if item.genres:
        lines.append(f"Genres: {', '.join(item.genres)}")
    console.print(Panel("\n".join(lines), title="Details", border_style="cyan"))

    if detail.renumbered:
        console.print(f"[yellow]Repaired numbering on {detail.renumbered} rewatch record(s).[/yellow]")

    if detail.current_rewatch or detail.completed_rewatches:
        table = Table(title="Rewatches", box=box.SIMPLE, header_style="bold magenta")
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Started")
        table.add_column("Finished")
        for rewatch in detail.completed_rewatches + ([detail.current_rewatch] if detail.current_rewatch else []):
            table.add_row(
                str(rewatch.rewatch_count),
                status_text(rewatch.status, rewatch.is_anime),
                str(rewatch.progress),
                format_date(rewatch.start_date),
                format_date(rewatch.end_date),
            )
        console.print(table)


def report_sync_failures(context: LibraryContext, since: int = 0) -> None:
    """Prints storage failures recorded after index `since`."""
    failures = context.sync.failures[since:]
    for failure in failures:
        console.print(f"[red]{failure.store} store {failure.operation} failed for {failure.key}: {failure.error}[/red]")


def resolve_media(manga: bool) -> bool:
    """Returns is_anime for a --manga flag."""
    return not manga


def fail(message: str, code: int = 1) -> None:
    console.print(f"[red]{message}[/red]")
    raise SystemExit(code)
