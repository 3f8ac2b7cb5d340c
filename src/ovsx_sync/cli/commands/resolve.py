"""Resolve command: show which upstream source would be published."""

import logging
from pathlib import Path
from typing import Optional

import click
import requests
from rich.console import Console

from ...config import Config
from ...core.sync import ResolutionPolicy
from ...errors import OvsxSyncError
from ...utils.logging_config import set_log_level
from ..display import display_resolution
from .init import init_github, init_marketplaces, init_store

console = Console()
logger = logging.getLogger(__name__)


@click.command("resolve")
@click.argument("extension_id")
@click.option(
    "--store",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Tracked-package store (defaults to OVSX_SYNC_STORE_PATH)",
)
@click.option("--debug", is_flag=True, help="Log every repository query")
@click.pass_context
def resolve_command(
    ctx: click.Context, extension_id: str, store: Optional[Path], debug: bool
) -> None:
    """Resolve EXTENSION_ID without publishing it."""
    if debug:
        set_log_level("DEBUG")
    config = Config()
    try:
        package = init_store(config, store).load().get(extension_id)
        if package is None:
            console.print(f"[red]{extension_id} is not in the store[/red]")
            ctx.exit(1)

        primary, _ = init_marketplaces(config)
        policy = ResolutionPolicy(
            init_github(config), staleness_days=config.staleness_days
        )
        source = policy.resolve(package, primary.get_version(package.id))
    except (OvsxSyncError, requests.exceptions.RequestException) as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        ctx.exit(1)

    display_resolution(package.id, source)
