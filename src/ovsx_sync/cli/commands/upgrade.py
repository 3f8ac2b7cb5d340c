"""Upgrade command: move pinned store entries to newer upstream versions."""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from ...config import Config
from ...core.sync import UpgradeWorkflow
from ...errors import StoreError, UpgradeError
from ..display import display_upgrade_result
from .init import init_github, init_store

console = Console()
logger = logging.getLogger(__name__)


@click.command("upgrade")
@click.option(
    "--store",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Tracked-package store (defaults to OVSX_SYNC_STORE_PATH)",
)
@click.option(
    "--extension",
    "extension_filter",
    help="Only upgrade extensions whose id contains this text",
)
@click.pass_context
def upgrade_command(
    ctx: click.Context, store: Optional[Path], extension_filter: Optional[str]
) -> None:
    """Rewrite the store with the newest upstream releases.

    The store is backed up to <store>.old first and restored if the rewrite
    fails.
    """
    config = Config()
    workflow = UpgradeWorkflow(
        init_store(config, store),
        init_github(config),
        failed_log_path=config.failed_log_path,
    )
    try:
        result = workflow.run(extension_filter)
    except (StoreError, UpgradeError) as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        ctx.exit(1)

    display_upgrade_result(result)
