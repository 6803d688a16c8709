"""
Rewatch commands for PowerScale CLI.
"""
import click
import logging
from datetime import datetime
from typing import Optional

from .base import MEDIA_OPTION_HELP, fail, get_library_context, resolve_media
from ..logging import console, RewatchError

logger = logging.getLogger(__name__)


@click.group()
def rewatch() -> None:
    """Start, finish and repair rewatches (rereads for manga)."""
    pass


@rewatch.command()
@click.argument("media_id", type=int)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.pass_context
def start(ctx, media_id: int, manga: bool) -> None:
    """Begins a new rewatch of a completed title."""
    context = get_library_context(ctx)
    is_anime = resolve_media(manga)
    item = context.library.find_item(media_id, is_anime)
    if item is None:
        fail(f"{media_id} is not in the library.")
    try:
        started = context.rewatches.start_rewatch(item)
    except RewatchError as e:
        fail(str(e))
    console.print(f"[green]Started {started.display_name()}.[/green]")


@rewatch.command()
@click.argument("media_id", type=int)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--end", "end_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Finish date (YYYY-MM-DD).")
@click.pass_context
def complete(ctx, media_id: int, manga: bool, end_date: Optional[datetime]) -> None:
    """Finishes the rewatch in progress."""
    context = get_library_context(ctx)
    if not context.rewatches.complete_rewatch(media_id, resolve_media(manga), end_date):
        fail(f"No rewatch in progress for {media_id}.")
    console.print(f"[green]Rewatch of {media_id} completed.[/green]")


@rewatch.command()
@click.argument("media_id", type=int)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.pass_context
def cleanup(ctx, media_id: int, manga: bool) -> None:
    """Renumbers a title's rewatches to 1..N."""
    context = get_library_context(ctx)
    changed = context.rewatches.cleanup_and_renumber(media_id, resolve_media(manga))
    if changed:
        console.print(f"[yellow]Renumbered {changed} rewatch record(s).[/yellow]")
    else:
        console.print("[green]Rewatch numbering is already consistent.[/green]")
