from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cryptowill.domain.outcomes import OperationOutcome
from cryptowill.views import Page, WillStats


def _short(identity: str) -> str:
    if len(identity) <= 12:
        return identity
    return f"{identity[:6]}...{identity[-4:]}"


def _created(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def print_records(page: Page, console: Optional[Console] = None) -> None:
    """
    Render one page of records as a rich table.

    Amounts stay masked until the store reports the record as executed.
    """
    console = console or Console()

    if not page.items:
        console.print("[yellow]No encrypted wills found.[/yellow]")
        return

    table = Table(
        title="Encrypted Wills",
        box=box.ROUNDED,
        caption=f"Page {page.page} of {page.total_pages} ({page.total_items} wills)",
    )
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Beneficiary", style="magenta")
    table.add_column("Creator", style="blue")
    table.add_column("Created", justify="right")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Status", justify="center")

    for record in page.items:
        if record.is_finalized:
            amount = f"${record.revealed_amount:,}"
            status = "[green]Executed[/green]"
        else:
            amount = "[dim]Encrypted[/dim]"
            status = "[yellow]Active[/yellow]"
        table.add_row(
            record.id,
            escape(record.title),
            escape(record.beneficiary),
            _short(record.creator),
            _created(record.created_at),
            amount,
            status,
        )

    console.print(table)


def print_stats(stats: WillStats, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Will Dashboard", box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="bold green")
    table.add_row("Total wills", str(stats.total))
    table.add_row("Active wills", str(stats.active))
    table.add_row("Executed wills", str(stats.executed))
    table.add_row("Total value", f"${stats.total_amount:,}")
    table.add_row("Average value", f"${stats.average_amount:,.0f}")
    console.print(table)


def print_outcome(outcome: OperationOutcome, console: Optional[Console] = None) -> None:
    console = console or Console()
    label = outcome.kind.value.capitalize()
    if outcome.ok:
        detail = ""
        if "revealed_amount" in outcome.payload:
            resolution = outcome.payload.get("resolution")
            detail = f" revealed=${outcome.payload['revealed_amount']:,}"
            if resolution is not None:
                detail += f" ({getattr(resolution, 'value', resolution)})"
        console.print(f"[green]{label} succeeded[/green] {outcome.record_id or ''}{detail}")
    else:
        hint = " (retryable)" if outcome.retryable else ""
        error = outcome.error.value if outcome.error else "unknown"
        detail = escape(f"[{error}] {outcome.message}")
        console.print(f"[red]{label} failed[/red] {detail}{hint}")


__all__ = ["print_outcome", "print_records", "print_stats"]
