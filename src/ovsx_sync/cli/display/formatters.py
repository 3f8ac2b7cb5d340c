"""Display formatters and UI helpers for CLI."""

import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ...core.sync import BatchResult, OutcomeStatus, PublishOutcome, ResolvedSource
from ...core.sync.upgrade import UpgradeResult

console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    OutcomeStatus.SKIPPED: "dim",
    OutcomeStatus.SUCCEEDED: "green",
    OutcomeStatus.ALREADY_PUBLISHED: "cyan",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.TIMED_OUT: "yellow",
}

REPORT_BUCKETS = ["upToDate", "outdated", "unstable", "notInOpen", "msPublished"]


def _format_outcome(outcome: Optional[PublishOutcome]) -> str:
    if outcome is None:
        return "[dim]-[/dim]"
    style = STATUS_STYLES.get(outcome.status, "white")
    detail = outcome.error or outcome.reason
    text = f"[{style}]{outcome.status.value}[/{style}]"
    return f"{text} {detail}" if detail else text


def display_batch_result(result: BatchResult, verbose: bool = False) -> None:
    """Display the outcome of a batch run.

    Args:
        result: Result returned by the batch driver
        verbose: Also list packages that were skipped
    """
    console.print("\n[bold green]📊 Sync Summary[/bold green]")
    console.print("=" * 60)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Extension", style="cyan")
    table.add_column("Bucket")
    table.add_column("Source")
    table.add_column("Outcome")

    for package_id, report in result.reports.items():
        skipped = report.outcome and report.outcome.status == OutcomeStatus.SKIPPED
        if skipped and not verbose:
            continue
        bucket = report.final_bucket.value if report.final_bucket else "-"
        source = report.source.describe() if report.source else "-"
        table.add_row(package_id, bucket, source, _format_outcome(report.outcome))

    if table.row_count:
        console.print(table)

    summary = result.get_summary()
    summary_table = Table(show_header=False)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", style="green", justify="right")
    summary_table.add_row("Processed", str(summary["processed"]))
    for status, count in sorted(summary["outcomes"].items()):
        summary_table.add_row(status.replace("_", " ").capitalize(), str(count))
    if summary["failed"]:
        summary_table.add_row("Failed", f"[red]{summary['failed']}[/red]")
    console.print(summary_table)

    if result.failed_ids:
        console.print(
            f"[bold red]❌ Failed extensions: {', '.join(result.failed_ids)}[/bold red]"
        )
    console.print()


def display_resolution(package_id: str, source: ResolvedSource) -> None:
    """Display the resolution decision for one package."""
    table = Table(show_header=False, title=f"[bold]{package_id}[/bold]")
    table.add_column("Field", style="cyan", width=16)
    table.add_column("Value", style="green")

    table.add_row("Source", source.kind.value)
    table.add_row("Target version", source.target_version or "[dim]-[/dim]")
    if source.ref:
        table.add_row("Ref", source.ref)
    if source.link:
        table.add_row("Link", source.link)
    if source.file:
        table.add_row("File", source.file)
    table.add_row("Decision", source.describe())
    console.print(table)


def display_upgrade_result(result: UpgradeResult) -> None:
    """Display which packages the upgrade rewrote."""
    if result.upgraded:
        console.print(f"[green]✓ Upgraded {len(result.upgraded)} extensions[/green]")
        for package_id in result.upgraded:
            console.print(f"  • {package_id}")
    else:
        console.print("[dim]✓ Nothing to upgrade[/dim]")

    if result.failed_ids:
        console.print(
            f"[yellow]⚠️  Failed to upgrade: {', '.join(result.failed_ids)}[/yellow]"
        )


def _bucket_table(name: str, entries: Dict[str, Any]) -> Table:
    table = Table(title=f"{name} ({len(entries)})", header_style="bold magenta")
    table.add_column("Extension", style="cyan")
    table.add_column("MS version")
    table.add_column("Open VSX version")
    table.add_column("Installs", justify="right")
    table.add_column("Days in between", justify="right")

    ordered = sorted(
        entries.items(), key=lambda item: item[1].get("msInstalls") or 0, reverse=True
    )
    for package_id, stat in ordered:
        days = stat.get("daysInBetween")
        table.add_row(
            package_id,
            stat.get("msVersion") or "-",
            stat.get("openVersion") or "-",
            str(stat.get("msInstalls") or 0),
            f"{days:.1f}" if days is not None else "-",
        )
    return table


def display_report(report: Dict[str, Any]) -> None:
    """Pretty-print a run report written by the batch driver."""
    counts = Table(show_header=False, title="[bold]Run report[/bold]")
    counts.add_column("Bucket", style="cyan")
    counts.add_column("Count", style="green", justify="right")
    for bucket in REPORT_BUCKETS:
        counts.add_row(bucket, str(len(report.get(bucket, {}))))
    counts.add_row("notInMS", str(len(report.get("notInMS", []))))
    counts.add_row("failed", str(len(report.get("failed", []))))
    console.print(counts)

    for bucket in ("outdated", "notInOpen", "msPublished"):
        entries = report.get(bucket) or {}
        if entries:
            console.print(_bucket_table(bucket, entries))

    hit_miss = report.get("hitMiss") or {}
    if hit_miss:
        hits = sum(1 for entry in hit_miss.values() if entry.get("hit"))
        console.print(
            f"Updated within the hit window: [green]{hits}[/green] "
            f"of {len(hit_miss)} recently updated extensions"
        )

    for title, key in (("Not in MS marketplace", "notInMS"), ("Failed", "failed")):
        ids: List[str] = report.get(key) or []
        if ids:
            console.print(f"\n[bold]{title}:[/bold] {', '.join(ids)}")
