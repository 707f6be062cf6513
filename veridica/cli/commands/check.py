"""``veridica check FILE --user ID``: who owns this content?"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from veridica.cli.runtime import EXIT_UNAVAILABLE, load_resolver, read_content

console = Console()


def check_cmd(
    file: Path = typer.Argument(..., help="Content file to check."),
    user: str = typer.Option(..., "--user", "-u", help="Requesting owner id."),
) -> None:
    """Report whether FILE is registered and whether USER owns it."""
    content = read_content(file)
    resolver = load_resolver()
    result = resolver.check_ownership(content, user)

    lines = [f"[bold]Fingerprint:[/bold] {result.fingerprint}"]
    if not result.verifiable:
        lines.append(f"[bold yellow]{result.error}[/bold yellow]")
        border = "yellow"
    elif not result.exists:
        lines.append("[bold green]Not registered.[/bold green] This content is new.")
        border = "green"
    elif result.is_owner:
        lines.append("[bold green]You own this content.[/bold green]")
        lines.append(f"[bold]Registered:[/bold]  {result.registered_at:%Y-%m-%d %H:%M:%S %Z}")
        if result.proof_ref is not None:
            lines.append(f"[bold]Transaction:[/bold] {result.proof_ref.transaction_id}")
            if result.proof_ref.explorer_url:
                lines.append(f"[bold]Explorer:[/bold]    {result.proof_ref.explorer_url}")
        border = "green"
    else:
        lines.append(
            f"[bold red]Owned by {result.owner_public_handle}[/bold red] "
            f"since {result.registered_at:%Y-%m-%d %H:%M:%S %Z}"
        )
        border = "red"
    if result.degraded:
        lines.append("[dim]Answered by the secondary tier (degraded).[/dim]")

    console.print(
        Panel("\n".join(lines), title=f"[bold]{file.name}[/bold]", border_style=border)
    )
    if not result.verifiable:
        raise typer.Exit(EXIT_UNAVAILABLE)
