from __future__ import annotations

from typing import Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from repqueue.domain.models import (
    CreationOutcome,
    CycleReport,
    DrainReport,
    FinalTally,
    ReplicationStatus,
)

_STATUS_STYLES = {
    ReplicationStatus.NOT_STARTED.value: "blue",
    ReplicationStatus.PENDING.value: "yellow",
    ReplicationStatus.COMPLETED.value: "bold green",
    ReplicationStatus.DISCARDED.value: "magenta",
    ReplicationStatus.FAILED.value: "red",
}


def _console(console: Optional[Console]) -> Console:
    return console or Console()


def print_cycle(cycle: CycleReport, console: Optional[Console] = None) -> None:
    """Textual summary of one processing cycle."""
    out = _console(console)
    result = cycle.result
    if result.empty:
        out.print(f"[bold]Cycle {cycle.index}[/bold]: [green]All transactions processed[/green]")
        return
    out.print(
        f"[bold]Cycle {cycle.index}[/bold] ({cycle.duration_seconds:.1f}s)\n"
        f"  - Processed: [green]{result.processed}[/green]\n"
        f"  - Remains: [yellow]{result.need_processing}[/yellow]\n"
        f"  - Locked by others: [red]{result.locked_by_others}[/red]"
    )
    if result.remaining > 0:
        out.print(f"  {result.remaining} transactions left to process. Continue ...")


def print_tallies(tally: FinalTally, console: Optional[Console] = None) -> None:
    """
    Render both status tallies side by side, one row per status.
    """
    out = _console(console)
    table = Table(title="Replication Status", box=box.ROUNDED)
    table.add_column("Status", style="cyan", no_wrap=True)
    for item_tally in tally:
        table.add_column(item_tally.item_type, justify="right")

    rows = [item_tally.as_dict() for item_tally in tally]
    for status in _STATUS_STYLES:
        style = _STATUS_STYLES[status]
        table.add_row(status, *(f"[{style}]{row[status]}[/{style}]" for row in rows))
    table.add_row("[bold]Total[/bold]", *(f"[bold]{t.total}[/bold]" for t in tally))

    out.print(table)


def print_outcomes(outcomes: Iterable[CreationOutcome], console: Optional[Console] = None) -> None:
    """List the records whose replication request failed."""
    out = _console(console)
    outcomes = list(outcomes)
    failures: List[CreationOutcome] = [o for o in outcomes if not o.ok]
    out.print(
        f"Replication requested for [green]{len(outcomes) - len(failures)}[/green] of "
        f"{len(outcomes)} record(s)."
    )
    if not failures:
        return

    table = Table(title="Failed replication requests", box=box.ROUNDED)
    table.add_column("Record", style="cyan", no_wrap=True)
    table.add_column("Id", style="dim")
    table.add_column("Error", style="red")
    for outcome in failures:
        table.add_row(outcome.record.label, outcome.record.id, str(outcome.error))
    out.print(table)


def print_drain_report(
    report: DrainReport, console: Optional[Console] = None, show_tally: bool = True
) -> None:
    out = _console(console)
    out.print(
        f"\n[bold]Queue processing stopped[/bold] ({report.stop_reason}) after "
        f"{len(report.cycles)} cycle(s), {report.processed} transaction(s) processed "
        f"in {report.duration_seconds:.1f}s."
    )
    if show_tally and report.final_tally is not None:
        print_tallies(report.final_tally, console=out)
