"""Command-line interface for the ovsx-sync application.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Optional

import click

from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    publish_command,
    report_command,
    resolve_command,
    upgrade_command,
)


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
def cli(log_level: str, log_file: Optional[str]) -> None:
    """Open VSX synchronization tool.

    Keeps the Open VSX registry in step with the MS marketplace by
    publishing tracked extensions from their upstream repositories.
    """
    setup_logging(log_level=log_level, log_file=Path(log_file) if log_file else None)
    configure_third_party_loggers()


cli.add_command(publish_command)
cli.add_command(upgrade_command)
cli.add_command(resolve_command)
cli.add_command(report_command)


if __name__ == "__main__":
    cli()
