"""``veridica proofs --user ID``: list an owner's proofs."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from veridica.cli.runtime import EXIT_UNAVAILABLE, load_resolver
from veridica.core.errors import DataUnavailable

console = Console()


def proofs_cmd(
    user: str = typer.Option(..., "--user", "-u", help="Owner id."),
) -> None:
    """List USER's proofs, newest first."""
    resolver = load_resolver()
    try:
        records = resolver.list_proofs(user)
    except DataUnavailable as exc:
        console.print(f"[bold yellow]{exc}[/bold yellow]")
        raise typer.Exit(EXIT_UNAVAILABLE) from exc

    if not records:
        console.print(f"[dim]No proofs registered for {user}.[/dim]")
        return

    table = Table(title=f"Proofs for {user}")
    table.add_column("File", style="cyan")
    table.add_column("Type")
    table.add_column("Fingerprint")
    table.add_column("Transaction")
    table.add_column("Status", justify="center")
    table.add_column("Registered")

    for record in records:
        status_style = "green" if record.status.value == "confirmed" else "yellow"
        table.add_row(
            record.filename or "-",
            record.content_type,
            record.fingerprint[:16] + "...",
            record.ledger_transaction_id,
            f"[{status_style}]{record.status.value}[/{status_style}]",
            f"{record.created_at:%Y-%m-%d %H:%M}",
        )
    console.print(table)
