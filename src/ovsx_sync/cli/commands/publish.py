"""Publish command: one batch synchronization run."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from ...config import Config
from ...errors import StoreError
from ..display import display_batch_result
from .init import init_driver, init_store

console = Console()
logger = logging.getLogger(__name__)


@click.command("publish")
@click.option(
    "--store",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Tracked-package store (defaults to OVSX_SYNC_STORE_PATH)",
)
@click.option(
    "--only",
    "only_ids",
    multiple=True,
    help="Re-verify only these extension ids (repeatable)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Resolve sources without publishing anything",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    help="Number of extensions processed in parallel",
)
@click.option(
    "--report",
    "report_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the run report (defaults to OVSX_SYNC_REPORT_PATH)",
)
@click.option("--verbose", "-v", is_flag=True, help="Also list skipped extensions")
@click.pass_context
def publish_command(
    ctx: click.Context,
    store: Optional[Path],
    only_ids: Tuple[str, ...],
    dry_run: bool,
    workers: Optional[int],
    report_path: Optional[Path],
    verbose: bool,
) -> None:
    """Publish outdated extensions to the Open VSX registry.

    Every tracked extension is compared against both marketplaces; those
    behind the MS marketplace are resolved to an upstream source and
    published in an isolated, time-bounded worker process.
    """
    config = Config()
    dry_run = dry_run or config.dry_run
    selected = list(only_ids) or config.failed_extensions

    try:
        packages = init_store(config, store).load_packages()
    except StoreError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        ctx.exit(1)

    if dry_run:
        console.print("[yellow]⚠️  DRY RUN - nothing will be published[/yellow]")
    if not config.ovsx_pat and not dry_run:
        logger.warning("OVSX_PAT is not set, publishing will fail")

    driver = init_driver(config, dry_run=dry_run, max_workers=workers)
    result = driver.run(packages, only_ids=selected)
    exit_code = driver.finalize(
        result,
        report_path or config.report_path,
        config.failed_log_path,
    )
    display_batch_result(result, verbose=verbose)
    ctx.exit(exit_code)
