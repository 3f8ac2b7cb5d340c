"""Report command: pretty-print a run report."""

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from ...config import Config
from ..display import display_report

console = Console()


@click.command("report")
@click.argument(
    "path",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.pass_context
def report_command(ctx: click.Context, path: Optional[Path]) -> None:
    """Show the run report at PATH (defaults to OVSX_SYNC_REPORT_PATH)."""
    report_path = path or Config().report_path
    try:
        report = json.loads(report_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[bold red]❌ Cannot read {report_path}: {e}[/bold red]")
        ctx.exit(1)

    display_report(report)
