"""``veridica status``: storage policy, tier health and ledger connectivity."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from veridica.cli.runtime import load_resolver

console = Console()


def _tier_row(name: str, info: dict | None) -> tuple[str, str, str]:
    if info is None:
        return name, "[dim]OFF[/dim]", "disabled by storage policy"
    if info["available"]:
        return name, "[green]OK[/green]", f"{info['proofs']} proofs"
    return name, "[red]DOWN[/red]", info["error"]


def status_cmd() -> None:
    """Show the storage policy, tier availability and ledger status."""
    resolver = load_resolver()
    info = resolver.store.describe()

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Component", min_width=16)
    table.add_column("Status", width=10, justify="center")
    table.add_column("Details")

    table.add_row(*_tier_row("Primary tier", info["primary"]))
    table.add_row(*_tier_row("Secondary tier", info["secondary"]))

    network_status = getattr(resolver.ledger, "network_status", None)
    if network_status is not None:
        ledger = network_status()
        ok = "[green]OK[/green]" if ledger.get("connected") else "[red]DOWN[/red]"
        detail = f"{ledger.get('backend', '?')}, last round {ledger.get('last_round', '-')}"
        if ledger.get("amount") is not None:
            detail += f", balance {ledger['amount'] / 1_000_000:.6f} ALGO"
        if ledger.get("error"):
            detail += f" ({ledger['error']})"
        table.add_row("Ledger", ok, detail)
    else:
        table.add_row("Ledger", "[dim]?[/dim]", type(resolver.ledger).__name__)

    mode = "fail-closed" if info["fail_closed"] else "degraded fallback allowed"
    console.print(
        Panel(
            table,
            title="[bold]Veridica Status[/bold]",
            subtitle=f"environment={info['environment']} ({mode})",
            border_style="cyan",
            padding=(1, 2),
        )
    )
