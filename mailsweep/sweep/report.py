"""Tabular report of matched messages, rendered with rich."""

from datetime import datetime, timezone

from rich import box
from rich.console import Console
from rich.table import Table

from mailsweep.soap.types import MessageRecord


def human_size(n: float) -> str:
    """Convert bytes to a human-readable size."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f}{unit}"
        n /= 1024
    return f"{n:.1f}TB"


def _iso(epoch: int) -> str:
    try:
        return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
    except (ValueError, OverflowError, OSError):
        return "out of range"


def build_table(results: dict[str, list[MessageRecord]]) -> Table:
    """One row per message: accounts sorted, messages in discovery order."""
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold cyan")
    table.add_column("Account")
    table.add_column("Id", justify="right")
    table.add_column("Conv", justify="right")
    table.add_column("Date", justify="right")
    table.add_column("Date (UTC)", style="dim")
    table.add_column("From")
    table.add_column("Size", justify="right")
    table.add_column("Subject", max_width=40)

    for account in sorted(results):
        for record in results[account]:
            table.add_row(
                account,
                record.id,
                record.conversation_id,
                str(record.date),
                _iso(record.date),
                record.sender,
                str(record.size),
                record.subject or "",
            )
    return table


def print_report(
    console: Console,
    query: str,
    results: dict[str, list[MessageRecord]],
    go: bool,
) -> None:
    """Print the match table and a one-line summary."""
    matched = {account: records for account, records in results.items() if records}
    total = sum(len(records) for records in matched.values())

    if not total:
        console.print(
            f"[yellow]No messages matched {query!r} in {len(results)} account(s).[/yellow]"
        )
        return

    console.print(f"\nMessages matching [bold]{query!r}[/bold]\n")
    console.print(build_table(matched))
    total_size = sum(r.size for records in matched.values() for r in records)
    console.print(
        f"{total} message(s) in {len(matched)} of {len(results)} account(s), "
        f"{human_size(total_size)} total"
    )
    if not go:
        console.print("[dim]Nothing deleted. Re-run with --go to delete these messages.[/dim]")


def print_deletions(console: Console, deleted: dict[str, int]) -> None:
    total = sum(deleted.values())
    console.print(
        f"[green]Deleted {total} message(s) from {len(deleted)} account(s).[/green]"
    )
