"""
List management commands: add, remove, progress, rate, list, show, verify.
"""
import click
import logging
from datetime import datetime
from typing import Optional

from .base import (
    MEDIA_OPTION_HELP,
    STATUS_CHOICES,
    build_item_table,
    fail,
    get_library_context,
    render_detail,
    report_sync_failures,
    resolve_media,
)
from ..constants import MAX_RATING
from ..models import Status, media_label
from ..logging import console, PowerScaleError

logger = logging.getLogger(__name__)


@click.command()
@click.argument("media_id", type=int)
@click.argument("status", type=click.Choice(STATUS_CHOICES, case_sensitive=False))
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--start", "start_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Start date (YYYY-MM-DD).")
@click.option("--end", "end_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="End date (YYYY-MM-DD).")
@click.option("--rewatch", "is_rewatch", is_flag=True, help="Record a rewatch/reread instead of the first run.")
@click.option("--number", "rewatch_count", type=int, help="Rewatch number to re-date (completed rewatches only).")
@click.pass_context
def add(ctx, media_id: int, status: str, manga: bool, start_date: Optional[datetime],
        end_date: Optional[datetime], is_rewatch: bool, rewatch_count: Optional[int]) -> None:
    """Files MEDIA_ID under STATUS, moving it if it is already listed."""
    logger.info(f"Add command started (id={media_id}, status={status}, manga={manga}, rewatch={is_rewatch})")
    context = get_library_context(ctx)
    before = len(context.sync.failures)
    try:
        item = context.add_item(
            media_id,
            resolve_media(manga),
            status,
            start_date=start_date,
            end_date=end_date,
            is_rewatch=is_rewatch,
            rewatch_count=rewatch_count,
        )
    except PowerScaleError as e:
        fail(str(e))
    if item is None:
        fail(f"Could not file {media_id}.")
    console.print(f"[green]Filed {item.display_name()} under {item.status.label(item.is_anime)}.[/green]")
    report_sync_failures(context, before)


@click.command()
@click.argument("media_id", type=int)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--rewatch", "rewatch_count", type=int, default=0, help="Remove this rewatch number instead of the title.")
@click.pass_context
def remove(ctx, media_id: int, manga: bool, rewatch_count: int) -> None:
    """Removes a title (or one of its rewatches) from the library."""
    context = get_library_context(ctx)
    is_anime = resolve_media(manga)
    if context.remove_item(media_id, is_anime, is_rewatch=rewatch_count > 0, rewatch_count=rewatch_count):
        console.print(f"[green]Removed {media_id}.[/green]")
    else:
        fail(f"Nothing removed for {media_id}; it is missing or still has completed rewatches.")


@click.command()
@click.argument("media_id", type=int)
@click.argument("value", type=click.IntRange(min=0))
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--rewatch", "rewatch_count", type=int, default=0, help="Update this rewatch number.")
@click.pass_context
def progress(ctx, media_id: int, value: int, manga: bool, rewatch_count: int) -> None:
    """Sets the episodes/chapters consumed on an in-progress title."""
    context = get_library_context(ctx)
    item = context.update_progress(media_id, resolve_media(manga), value,
                                   is_rewatch=rewatch_count > 0, rewatch_count=rewatch_count)
    if item is None:
        fail(f"{media_id} is not in progress.")
    console.print(f"[green]{item.display_name()}: progress {item.progress}.[/green]")


@click.command()
@click.argument("media_id", type=int)
@click.argument("rating", type=click.FloatRange(0, MAX_RATING))
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--rewatch", "rewatch_count", type=int, default=0, help="Rate this rewatch number.")
@click.pass_context
def rate(ctx, media_id: int, rating: float, manga: bool, rewatch_count: int) -> None:
    """Sets your 0-10 score for a title."""
    context = get_library_context(ctx)
    item = context.update_rating(media_id, resolve_media(manga), rating,
                                 is_rewatch=rewatch_count > 0, rewatch_count=rewatch_count)
    if item is None:
        fail(f"{media_id} is not in the library.")
    console.print(f"[green]{item.display_name()}: score {item.score:.1f}.[/green]")


@click.command(name="list")
@click.argument("status", type=click.Choice(STATUS_CHOICES, case_sensitive=False), required=False)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.pass_context
def list_items(ctx, status: Optional[str], manga: bool) -> None:
    """Shows one list, or every list when STATUS is omitted."""
    context = get_library_context(ctx)
    is_anime = resolve_media(manga)
    statuses = [Status.parse(status)] if status else list(Status)
    for current in statuses:
        items = context.bucket(is_anime, current)
        if not items and not status:
            continue
        console.print(build_item_table(items, f"{media_label(is_anime)}: {current.label(is_anime)} ({len(items)})"))


@click.command()
@click.argument("media_id", type=int)
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.pass_context
def show(ctx, media_id: int, manga: bool) -> None:
    """Shows a title with its rewatch history."""
    context = get_library_context(ctx)
    detail = context.open_item_detail(media_id, resolve_media(manga))
    if detail is None:
        fail(f"{media_id} is not in the library.")
    render_detail(detail)


@click.command()
@click.pass_context
def verify(ctx) -> None:
    """Compares the primary and backup stores."""
    context = get_library_context(ctx)
    report = context.verify_storage()
    if report.consistent:
        console.print("[green]Primary and backup stores hold the same records.[/green]")
        return
    for error in report.errors:
        console.print(f"[red]{error}[/red]")
    if report.missing_from_primary:
        console.print(f"[yellow]{len(report.missing_from_primary)} record(s) only in the backup store:[/yellow]")
        for key in report.missing_from_primary:
            console.print(f"  {key}")
    if report.missing_from_backup:
        console.print(f"[yellow]{len(report.missing_from_backup)} record(s) only in the primary store:[/yellow]")
        for key in report.missing_from_backup:
            console.print(f"  {key}")
    raise SystemExit(1)
