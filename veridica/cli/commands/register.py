"""``veridica register FILE --user ID``: record ownership of new content.

Fingerprints the file, checks the proof store, and registers on the ledger
only when the content is new.  Exit codes: 0 accepted, 1 conflict or
ledger refusal, 2 ownership could not be determined.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from veridica.cli.runtime import (
    EXIT_REJECTED,
    EXIT_UNAVAILABLE,
    load_resolver,
    read_content,
)
from veridica.core.errors import LedgerRejected, LedgerUnavailable
from veridica.models.proofs import RegistrationOutcome

console = Console()


def register_cmd(
    file: Path = typer.Argument(..., help="Content file to register."),
    user: str = typer.Option(..., "--user", "-u", help="Owner id to register under."),
    content_type: str = typer.Option(
        None,
        "--type",
        "-t",
        help="Content type; guessed from the file name when omitted.",
    ),
    content_id: str = typer.Option(
        None, "--content-id", help="Caller-side content identifier."
    ),
) -> None:
    """Register FILE for USER, unless it is already owned."""
    content = read_content(file)
    if not content_type:
        content_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"

    resolver = load_resolver()
    try:
        result = resolver.register_proof(
            content,
            content_type,
            user,
            content_id=content_id,
            filename=file.name,
        )
    except LedgerRejected as exc:
        console.print(f"[bold red]Ledger refused the registration:[/bold red] {exc}")
        raise typer.Exit(EXIT_REJECTED) from exc
    except LedgerUnavailable as exc:
        console.print(f"[bold red]Ledger unavailable:[/bold red] {exc}")
        raise typer.Exit(EXIT_UNAVAILABLE) from exc

    if result.outcome is RegistrationOutcome.REJECTED_UNVERIFIABLE:
        console.print(f"[bold yellow]{result.message}[/bold yellow]")
        raise typer.Exit(EXIT_UNAVAILABLE)

    if result.outcome is RegistrationOutcome.REJECTED_CONFLICT:
        console.print(
            Panel(
                "\n".join([
                    f"[bold red]{result.message}[/bold red]",
                    f"[bold]Registered:[/bold] {result.registered_at:%Y-%m-%d %H:%M:%S %Z}",
                ]),
                title="[bold]Conflict[/bold]",
                border_style="red",
            )
        )
        raise typer.Exit(EXIT_REJECTED)

    lines = [
        f"[bold green]{result.message}[/bold green]",
        "",
        f"[bold]Fingerprint:[/bold] {result.fingerprint}",
        f"[bold]Transaction:[/bold] {result.transaction_id}",
    ]
    if result.explorer_url:
        lines.append(f"[bold]Explorer:[/bold]    {result.explorer_url}")
    if result.unmirrored:
        lines.append("[yellow]Not yet stored locally; pending reconciliation.[/yellow]")
    if result.degraded:
        lines.append("[dim]Stored on the secondary tier (degraded).[/dim]")

    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]{result.outcome.value}[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    # Plain transaction id for scripting
    console.print(result.transaction_id)
