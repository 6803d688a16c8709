import logging
import click
from pathlib import Path
from typing import Optional

from .config import get_config, setup_config
from .logging import setup_logging, set_log_level, log_step
from .cli.library import add, remove, progress, rate, list_items, show, verify
from .cli.rewatch import rewatch
from .cli.rank import rank

logger = logging.getLogger(__name__)


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory holding the library stores.")
@click.option("--verbose", "-v", is_flag=True, help="Show informational log messages on the console.")
@click.pass_context
def cli(ctx, data_dir: Optional[Path], verbose: bool) -> None:
    """PowerScale: track, rewatch and rank your anime and manga."""
    config = setup_config(data_dir=data_dir) if data_dir else get_config()
    setup_logging(config.logging.log_file)
    set_log_level(config.logging.file_level, handler_type="file")
    set_log_level("INFO" if verbose or config.verbose else config.logging.console_level, handler_type="console")
    logger.info(f"PowerScale started (data_dir={config.storage.data_dir}, command={ctx.invoked_subcommand})")
    if verbose:
        log_step(f"Library data in {config.storage.data_dir}")


cli.add_command(add)
cli.add_command(remove)
cli.add_command(progress)
cli.add_command(rate)
cli.add_command(list_items)
cli.add_command(show)
cli.add_command(verify)
cli.add_command(rewatch)
cli.add_command(rank)


if __name__ == "__main__":
    cli()
