"""``veridica verify TXID``: look a proof transaction up on the ledger."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from veridica.cli.runtime import EXIT_REJECTED, EXIT_UNAVAILABLE, load_resolver
from veridica.core.errors import LedgerRejected, LedgerUnavailable

console = Console()


def verify_cmd(
    transaction_id: str = typer.Argument(..., help="Ledger transaction id."),
) -> None:
    """Verify that TXID is confirmed and show its proof note."""
    resolver = load_resolver()
    try:
        verification = resolver.verify_proof(transaction_id)
    except LedgerRejected as exc:
        console.print(f"[bold red]Ledger refused the lookup:[/bold red] {exc}")
        raise typer.Exit(EXIT_REJECTED) from exc
    except LedgerUnavailable as exc:
        console.print(f"[bold red]Ledger unavailable:[/bold red] {exc}")
        raise typer.Exit(EXIT_UNAVAILABLE) from exc

    if not verification.confirmed:
        console.print(
            f"[bold red]Not verified:[/bold red] {verification.error or 'unconfirmed'}"
        )
        raise typer.Exit(EXIT_REJECTED)

    table = Table(title=f"Proof {transaction_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Confirmed round", str(verification.confirmed_round))
    for key in ("hash", "user", "file", "type", "size", "timestamp", "app"):
        if key in verification.note:
            table.add_row(key, str(verification.note[key]))
    console.print(table)
