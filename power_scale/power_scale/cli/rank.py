"""
Head-to-head ranking commands for PowerScale CLI.
"""
import click
import logging
from typing import List, Optional

from rich.panel import Panel
from rich.columns import Columns

from .base import MEDIA_OPTION_HELP, STATUS_CHOICES, build_item_table, fail, get_library_context, resolve_media
from ..context import LibraryContext
from ..models import Item, RankingCategory, Status
from ..logging import console, NotEnoughItemsError

logger = logging.getLogger(__name__)

CHOICE_FIRST = "1"
CHOICE_SECOND = "2"
CHOICE_SKIP = "s"
CHOICE_QUIT = "q"


def _item_panel(item: Item, key: str) -> Panel:
    body = f"[bold]{item.title}[/bold]"
    if item.genres:
        body += f"\n[dim]{', '.join(item.genres[:4])}[/dim]"
    if item.score:
        body += f"\nScore: {item.score:.1f}"
    return Panel(body, title=f"[{key}]", border_style="cyan", width=40)


def run_ranking_loop(context: LibraryContext) -> Optional[List[Item]]:
    """
    Prompts for each remaining pair until the run commits or the user quits.
    Returns the committed ranking, or None if the run was saved for later.
    """
    engine = context.tournament
    while True:
        pair = engine.current_pair()
        if pair is None:
            return engine.last_ranking
        done, total = engine.progress
        console.print(f"\n[bold]Pair {done + 1} of {total}[/bold]")
        console.print(Columns([_item_panel(pair.first, CHOICE_FIRST), _item_panel(pair.second, CHOICE_SECOND)]))
        choice = click.prompt(
            "Which do you prefer? (1/2, s = skip, q = save and quit)",
            type=click.Choice([CHOICE_FIRST, CHOICE_SECOND, CHOICE_SKIP, CHOICE_QUIT], case_sensitive=False),
            show_choices=False,
        ).lower()

        if choice == CHOICE_QUIT:
            if context.save_for_later():
                console.print("[yellow]Ranking saved. Resume it with 'rank resume'.[/yellow]")
            else:
                console.print("[red]Could not save the ranking session.[/red]")
            return None
        if choice == CHOICE_SKIP:
            result = context.skip_current_pair()
        else:
            winner = pair.first if choice == CHOICE_FIRST else pair.second
            result = context.record_choice(winner.media_id)
        if result is not None:
            return result


def _show_ranking(ranking: List[Item], category: RankingCategory) -> None:
    console.print(build_item_table(ranking, f"New ranking: {category.label}"))


@click.group()
def rank() -> None:
    """Rank a list by choosing between pairs."""
    pass


@rank.command(name="start")
@click.option("--manga", is_flag=True, help=MEDIA_OPTION_HELP)
@click.option("--status", default=Status.COMPLETED.value, type=click.Choice(STATUS_CHOICES, case_sensitive=False),
              help="List to rank (default: completed).")
@click.pass_context
def start_rank(ctx, manga: bool, status: str) -> None:
    """Starts a new ranking, replacing any saved one."""
    context = get_library_context(ctx)
    category = RankingCategory(resolve_media(manga), Status.parse(status))
    if context.tournament.has_saved_session():
        console.print("[yellow]A saved ranking exists and will be replaced.[/yellow]")
    try:
        run = context.start_tournament(category)
    except NotEnoughItemsError as e:
        fail(str(e))
    console.print(f"[cyan]Ranking {len(run.candidates)} items in {run.total} comparisons.[/cyan]")
    ranking = run_ranking_loop(context)
    if ranking is not None:
        _show_ranking(ranking, category)


@rank.command(name="resume")
@click.pass_context
def resume_rank(ctx) -> None:
    """Continues the saved ranking."""
    context = get_library_context(ctx)
    run = context.resume()
    if run is None:
        fail("No saved ranking to resume.")
    ranking = run_ranking_loop(context)
    if ranking is not None:
        _show_ranking(ranking, run.category)


@rank.command(name="discard")
@click.pass_context
def discard_rank(ctx) -> None:
    """Throws away the saved ranking."""
    context = get_library_context(ctx)
    if context.tournament.discard_saved_session():
        console.print("[green]Saved ranking discarded.[/green]")
    else:
        console.print("[dim]No saved ranking.[/dim]")
